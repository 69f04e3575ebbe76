"""The condition report returned for each analyzed image."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

MAX_CONFIDENCE = 0.98


class Condition(StrEnum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class Tone(StrEnum):
    """Display tone used by the upload page to colour a condition."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    NEUTRAL = "neutral"


# Half-open [low, high) score ranges, one per condition.
SCORE_RANGES: dict[Condition, tuple[int, int]] = {
    Condition.EXCELLENT: (90, 100),
    Condition.GOOD: (75, 90),
    Condition.FAIR: (55, 75),
    Condition.POOR: (30, 55),
}

_TONES: dict[str, Tone] = {
    Condition.EXCELLENT: Tone.SUCCESS,
    Condition.GOOD: Tone.INFO,
    Condition.FAIR: Tone.WARNING,
    Condition.POOR: Tone.DANGER,
}


def tone_for(condition: str) -> Tone:
    """Map a condition label (case-insensitive) to its display tone."""
    return _TONES.get(condition.strip().capitalize(), Tone.NEUTRAL)


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable condition report.

    The constructor enforces the report invariants: the score lies in its
    condition's range, damages are listed for every condition but Excellent,
    there is at least one recommendation, and confidence stays within
    ``[0, MAX_CONFIDENCE]``.
    """

    overall_condition: Condition
    condition_score: int
    damages: tuple[str, ...]
    recommendations: tuple[str, ...]
    confidence: float

    def __post_init__(self) -> None:
        low, high = SCORE_RANGES[self.overall_condition]
        if not low <= self.condition_score < high:
            raise ValueError(
                f"Score {self.condition_score} is outside the {self.overall_condition} range [{low}, {high})"
            )
        if bool(self.damages) == (self.overall_condition == Condition.EXCELLENT):
            raise ValueError("Damages must be listed exactly when the condition is not Excellent")
        if not self.recommendations:
            raise ValueError("At least one recommendation is required")
        if not 0.0 <= self.confidence <= MAX_CONFIDENCE:
            raise ValueError(f"Confidence {self.confidence} is outside [0, {MAX_CONFIDENCE}]")
