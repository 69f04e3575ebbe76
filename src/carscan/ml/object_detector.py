"""Object detection model.

Implementations: DETR ResNet-50 (default), YOLOS tiny. Both emit per-query
class logits plus centre-format boxes normalized to the input image.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from carscan.ml.model_manager import ModelTask
from carscan.ml.preprocessing import preprocess_for_detection, softmax

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from carscan.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """A labeled bounding region in original-image pixel coordinates.

    ``box`` is ``(xmin, ymin, xmax, ymax)``.
    """

    label: str
    score: float
    box: tuple[float, float, float, float]

    def __post_init__(self) -> None:
        if not isinstance(self.label, str) or not self.label:
            raise ValueError(f"Detection label must be a non-empty string, got {self.label!r}")
        if not isinstance(self.score, int | float) or not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Detection score must be in [0, 1], got {self.score!r}")
        if len(self.box) != 4 or not all(math.isfinite(v) for v in self.box):
            raise ValueError(f"Detection box must be four finite numbers, got {self.box!r}")


class ObjectDetector(Protocol):
    """Protocol for object detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def detect(self, image: NDArray[np.uint8]) -> list[Detection]:
        """Detect objects in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            Detections above the score threshold, highest score first.
        """
        ...


class OnnxObjectDetector:
    """Runs a DETR-style ONNX model through the model manager."""

    def __init__(self, manager: ModelManager, model_name: str, threshold: float) -> None:
        self._manager = manager
        self._model_name = model_name
        self._threshold = threshold

    @property
    def model_name(self) -> str:
        return self._model_name

    def detect(self, image: NDArray[np.uint8]) -> list[Detection]:
        model = self._manager.get_model(self._model_name)
        if model.spec.task != ModelTask.OBJECT_DETECTION:
            raise ValueError(f"Model '{self._model_name}' is not an object detection model")

        pixel_values = preprocess_for_detection(image, model.spec)
        feeds: dict[str, NDArray[np.generic]] = {"pixel_values": pixel_values}
        if "pixel_mask" in model.input_names:
            _, _, height, width = pixel_values.shape
            feeds["pixel_mask"] = np.ones((1, height, width), dtype=np.int64)

        logits, pred_boxes = model.session.run(["logits", "pred_boxes"], feeds)
        image_height, image_width = image.shape[:2]
        return postprocess_detections(
            logits[0],
            pred_boxes[0],
            labels=model.labels,
            threshold=self._threshold,
            image_size=(image_width, image_height),
        )


def postprocess_detections(
    logits: NDArray[np.float32],
    boxes: NDArray[np.float32],
    *,
    labels: dict[int, str],
    threshold: float,
    image_size: tuple[int, int],
) -> list[Detection]:
    """Turn per-query logits and centre boxes into thresholded detections.

    Args:
        logits: (queries, classes + 1) array; the last class is "no object".
        boxes: (queries, 4) array of normalized ``(cx, cy, w, h)``.
        labels: Class index to label mapping.
        threshold: Minimum score kept (exclusive).
        image_size: ``(width, height)`` of the original image.
    """
    probs = softmax(logits, axis=-1)[:, :-1]
    class_ids = probs.argmax(axis=-1)
    scores = probs.max(axis=-1)
    width, height = image_size

    detections: list[Detection] = []
    for query in np.flatnonzero(scores > threshold):
        cx, cy, w, h = (float(v) for v in boxes[query])
        class_id = int(class_ids[query])
        detections.append(
            Detection(
                label=labels.get(class_id, f"LABEL_{class_id}"),
                score=float(scores[query]),
                box=(
                    (cx - w / 2) * width,
                    (cy - h / 2) * height,
                    (cx + w / 2) * width,
                    (cy + h / 2) * height,
                ),
            )
        )
    detections.sort(key=lambda d: d.score, reverse=True)
    logger.debug("Kept %d of %d detection queries", len(detections), len(scores))
    return detections
