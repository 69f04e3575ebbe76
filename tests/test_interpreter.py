"""Tests for the condition interpreter."""

from __future__ import annotations

import random

import pytest

from carscan.analysis.errors import NoVehicleDetectedError
from carscan.analysis.interpreter import BANDS, CAR_TERMS, interpret, select_band
from carscan.analysis.result import SCORE_RANGES, AnalysisResult, Condition, Tone, tone_for
from carscan.ml.image_classifier import Classification
from carscan.ml.object_detector import Detection

_BOX = (10.0, 20.0, 200.0, 150.0)


def _car(score: float, label: str = "car") -> Detection:
    return Detection(label=label, score=score, box=_BOX)


def _cls(score: float, label: str = "sports car, sport car") -> Classification:
    return Classification(label=label, score=score)


# ---------------------------------------------------------------------------
# Vehicle presence
# ---------------------------------------------------------------------------


class TestVehiclePresence:
    def test_no_vehicle_signal_raises(self) -> None:
        with pytest.raises(NoVehicleDetectedError):
            interpret([], [_cls(0.99, "kitchen utensil")])

    def test_non_vehicle_detections_ignored(self) -> None:
        with pytest.raises(NoVehicleDetectedError):
            interpret([_car(0.99, "person"), _car(0.95, "dog")], [_cls(0.9, "golden retriever")])

    def test_detection_alone_is_enough(self) -> None:
        result = interpret([_car(0.98, "truck")], [_cls(0.9, "kitchen utensil")])
        assert result.overall_condition == Condition.EXCELLENT

    def test_classification_alone_is_enough(self) -> None:
        result = interpret([], [_cls(0.4, "jeep, landrover")])
        assert result.overall_condition == Condition.POOR

    @pytest.mark.parametrize("label", ["bus", "motorcycle", "bicycle", "Car"])
    def test_vehicle_categories_match_case_insensitively(self, label: str) -> None:
        interpret([_car(0.5, label)], [])

    def test_car_terms_closed_list(self) -> None:
        assert len(CAR_TERMS) == 18
        assert "sports car" in CAR_TERMS
        assert "headlight" in CAR_TERMS

    def test_empty_inputs_raise(self) -> None:
        with pytest.raises(NoVehicleDetectedError):
            interpret([], [])


# ---------------------------------------------------------------------------
# Banding and confidence
# ---------------------------------------------------------------------------


class TestBanding:
    def test_high_confidence_is_excellent_and_capped(self) -> None:
        result = interpret([_car(0.9)], [_cls(0.95)])
        assert result.overall_condition == Condition.EXCELLENT
        assert 90 <= result.condition_score <= 100
        assert result.damages == ()
        assert result.confidence == 0.98

    def test_exact_lower_threshold_falls_to_fair(self) -> None:
        result = interpret([_car(0.7)], [_cls(0.7)])
        assert result.overall_condition == Condition.FAIR
        assert 55 <= result.condition_score < 75

    def test_exact_upper_threshold_falls_to_good(self) -> None:
        result = interpret([_car(0.85)], [_cls(0.85)])
        assert result.overall_condition == Condition.GOOD

    @pytest.mark.parametrize(
        ("combined", "expected"),
        [
            (0.99, Condition.EXCELLENT),
            (0.851, Condition.EXCELLENT),
            (0.80, Condition.GOOD),
            (0.701, Condition.GOOD),
            (0.60, Condition.FAIR),
            (0.55, Condition.POOR),
            (0.0, Condition.POOR),
        ],
    )
    def test_select_band(self, combined: float, expected: Condition) -> None:
        assert select_band(combined).condition == expected

    def test_empty_classifications_drive_score_down(self) -> None:
        result = interpret([_car(0.99)], [])
        # (0.99 + 0) / 2 = 0.495
        assert result.overall_condition == Condition.POOR
        assert result.confidence == pytest.approx(0.645)

    def test_best_vehicle_detection_is_used(self) -> None:
        detections = [_car(0.6), _car(0.99, "person"), _car(0.8, "truck")]
        result = interpret(detections, [_cls(0.8)])
        # (0.8 + 0.8) / 2
        assert result.overall_condition == Condition.GOOD
        assert result.confidence == min(0.98, (0.8 + 0.8) / 2 + 0.15)

    def test_top_ranked_classification_is_used(self) -> None:
        classifications = [_cls(0.6, "grille, radiator grille"), _cls(0.3), _cls(0.1, "kitchen utensil")]
        result = interpret([], classifications)
        assert result.confidence == min(0.98, 0.6 / 2 + 0.15)

    @pytest.mark.parametrize("det_score", [0.0, 0.2, 0.45, 0.6, 0.75, 0.9, 1.0])
    @pytest.mark.parametrize("cls_score", [0.0, 0.3, 0.55, 0.7, 0.85, 1.0])
    def test_result_matches_exactly_one_band(self, det_score: float, cls_score: float) -> None:
        result = interpret([_car(det_score)], [_cls(cls_score)], rng=random.Random(7))
        combined = (det_score + cls_score) / 2

        low, high = SCORE_RANGES[result.overall_condition]
        assert low <= result.condition_score < high
        assert result.overall_condition == select_band(combined).condition
        assert (result.damages == ()) == (result.overall_condition == Condition.EXCELLENT)
        assert result.recommendations
        assert 0.0 <= result.confidence <= 0.98
        assert result.confidence == min(0.98, combined + 0.15)


class TestRandomizedScore:
    def test_repeat_runs_keep_band_and_text(self) -> None:
        first = interpret([_car(0.8)], [_cls(0.75)], rng=random.Random(1))
        for seed in range(2, 30):
            again = interpret([_car(0.8)], [_cls(0.75)], rng=random.Random(seed))
            assert again.overall_condition == first.overall_condition
            assert again.damages == first.damages
            assert again.recommendations == first.recommendations

    def test_scores_cover_the_band(self) -> None:
        rng = random.Random(42)
        scores = {interpret([_car(0.3)], [_cls(0.3)], rng=rng).condition_score for _ in range(500)}
        assert min(scores) == 30
        assert max(scores) == 54

    def test_seeded_rng_is_reproducible(self) -> None:
        a = interpret([_car(0.6)], [_cls(0.6)], rng=random.Random(3))
        b = interpret([_car(0.6)], [_cls(0.6)], rng=random.Random(3))
        assert a == b


# ---------------------------------------------------------------------------
# Result invariants and presentation tone
# ---------------------------------------------------------------------------


class TestAnalysisResult:
    def test_bands_are_descending(self) -> None:
        thresholds = [band.threshold for band in BANDS]
        assert thresholds == sorted(thresholds, reverse=True)

    def test_score_outside_range_rejected(self) -> None:
        with pytest.raises(ValueError, match="outside"):
            AnalysisResult(Condition.GOOD, 95, ("Minor paint wear",), ("Wash it",), 0.9)

    def test_excellent_with_damages_rejected(self) -> None:
        with pytest.raises(ValueError, match="Damages"):
            AnalysisResult(Condition.EXCELLENT, 95, ("Dent",), ("Wash it",), 0.9)

    def test_missing_damages_rejected(self) -> None:
        with pytest.raises(ValueError, match="Damages"):
            AnalysisResult(Condition.POOR, 40, (), ("Inspect",), 0.5)

    def test_confidence_above_cap_rejected(self) -> None:
        with pytest.raises(ValueError, match="Confidence"):
            AnalysisResult(Condition.EXCELLENT, 95, (), ("Wash it",), 0.99)

    def test_result_is_immutable(self) -> None:
        result = interpret([_car(0.9)], [_cls(0.9)])
        with pytest.raises(AttributeError):
            result.condition_score = 1  # type: ignore[misc]

    @pytest.mark.parametrize(
        ("condition", "tone"),
        [
            ("Excellent", Tone.SUCCESS),
            ("good", Tone.INFO),
            ("FAIR", Tone.WARNING),
            (Condition.POOR, Tone.DANGER),
            ("Salvage", Tone.NEUTRAL),
        ],
    )
    def test_tone_for(self, condition: str, tone: Tone) -> None:
        assert tone_for(condition) == tone
