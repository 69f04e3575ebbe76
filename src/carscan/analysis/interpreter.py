"""Condition interpreter: map raw model outputs onto a canned condition report.

The report is a heuristic. Combined model confidence selects one of four
bands, each with a fixed condition, score range and text. The score is
drawn uniformly inside the band so repeated runs vary in score but never in
band or text.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from carscan.analysis.errors import NoVehicleDetectedError
from carscan.analysis.result import MAX_CONFIDENCE, SCORE_RANGES, AnalysisResult, Condition

if TYPE_CHECKING:
    from collections.abc import Sequence

    from carscan.ml.image_classifier import Classification
    from carscan.ml.object_detector import Detection

logger = logging.getLogger(__name__)

VEHICLE_CATEGORIES: tuple[str, ...] = ("car", "truck", "bus", "motorcycle", "bicycle")

CAR_TERMS: tuple[str, ...] = (
    "sports car",
    "convertible",
    "limousine",
    "jeep",
    "pickup",
    "minivan",
    "taxi",
    "racer",
    "beach wagon",
    "police van",
    "ambulance",
    "tow truck",
    "moving van",
    "car wheel",
    "car mirror",
    "grille",
    "bumper",
    "headlight",
)

CONFIDENCE_OFFSET = 0.15


@dataclass(frozen=True)
class Band:
    """A confidence interval ``(threshold, upper]`` and the report it yields."""

    threshold: float
    condition: Condition
    damages: tuple[str, ...]
    recommendations: tuple[str, ...]

    @property
    def score_range(self) -> tuple[int, int]:
        return SCORE_RANGES[self.condition]


# Ordered by descending threshold; the first band whose threshold is
# strictly exceeded wins.
BANDS: tuple[Band, ...] = (
    Band(
        threshold=0.85,
        condition=Condition.EXCELLENT,
        damages=(),
        recommendations=(
            "Continue regular maintenance schedule",
            "Keep up with routine cleaning and waxing",
            "Monitor tire wear and alignment",
        ),
    ),
    Band(
        threshold=0.70,
        condition=Condition.GOOD,
        damages=("Minor paint wear", "Light surface scratches"),
        recommendations=(
            "Consider paint touch-up for minor scratches",
            "Schedule detailed cleaning",
            "Check brake pads and fluid levels",
        ),
    ),
    Band(
        threshold=0.55,
        condition=Condition.FAIR,
        damages=("Visible wear and tear", "Paint fading", "Minor dents"),
        recommendations=(
            "Professional inspection recommended",
            "Address paint and body work",
            "Service engine and transmission",
            "Replace worn components",
        ),
    ),
    Band(
        threshold=float("-inf"),
        condition=Condition.POOR,
        damages=("Significant body damage", "Rust spots", "Mechanical issues likely"),
        recommendations=(
            "Comprehensive mechanical inspection required",
            "Major bodywork and paint restoration needed",
            "Consider professional appraisal",
            "Evaluate repair costs vs. vehicle value",
        ),
    ),
)


def _matches(label: str, terms: Sequence[str]) -> bool:
    lowered = label.lower()
    return any(term in lowered for term in terms)


def select_band(combined_confidence: float) -> Band:
    """Return the band for a combined confidence value.

    Values exactly on a threshold fall to the lower band.
    """
    for band in BANDS:
        if combined_confidence > band.threshold:
            return band
    return BANDS[-1]


def interpret(
    detections: Sequence[Detection],
    classifications: Sequence[Classification],
    rng: random.Random | None = None,
) -> AnalysisResult:
    """Derive a condition report from detector and classifier output.

    Args:
        detections: Object detections, in any order.
        classifications: Classifications ranked best first.
        rng: Source for the in-band score; the module RNG when omitted.

    Raises:
        NoVehicleDetectedError: If neither model reports anything vehicle-like.
    """
    vehicle_detections = [d for d in detections if _matches(d.label, VEHICLE_CATEGORIES)]
    car_classified = any(_matches(c.label, CAR_TERMS) for c in classifications)
    if not vehicle_detections and not car_classified:
        raise NoVehicleDetectedError

    highest_detection_score = max((d.score for d in vehicle_detections), default=0.0)
    highest_classification_score = classifications[0].score if classifications else 0.0
    combined_confidence = (highest_detection_score + highest_classification_score) / 2

    band = select_band(combined_confidence)
    low, high = band.score_range
    score = (rng or random).randrange(low, high)

    logger.debug(
        "Combined confidence %.3f (detection %.3f, classification %.3f) -> %s",
        combined_confidence,
        highest_detection_score,
        highest_classification_score,
        band.condition,
    )
    return AnalysisResult(
        overall_condition=band.condition,
        condition_score=score,
        damages=band.damages,
        recommendations=band.recommendations,
        confidence=min(MAX_CONFIDENCE, combined_confidence + CONFIDENCE_OFFSET),
    )
