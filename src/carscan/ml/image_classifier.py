"""Image classification model.

Implementations: ViT base patch16/224 (default), ResNet-50. Both are
ImageNet-1k classifiers emitting a single logits vector.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from carscan.ml.model_manager import ModelTask
from carscan.ml.preprocessing import preprocess_for_classification, softmax

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from carscan.ml.model_manager import ModelManager


@dataclass(frozen=True)
class Classification:
    """A single classification prediction."""

    label: str
    score: float

    def __post_init__(self) -> None:
        if not isinstance(self.label, str) or not self.label:
            raise ValueError(f"Classification label must be a non-empty string, got {self.label!r}")
        if not isinstance(self.score, int | float) or not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Classification score must be in [0, 1], got {self.score!r}")


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.uint8]) -> list[Classification]:
        """Classify an image and return ranked labels.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            List of classification results sorted by score (descending).
        """
        ...


class OnnxImageClassifier:
    """Runs an ImageNet ONNX classifier through the model manager."""

    def __init__(self, manager: ModelManager, model_name: str, top_k: int) -> None:
        self._manager = manager
        self._model_name = model_name
        self._top_k = top_k

    @property
    def model_name(self) -> str:
        return self._model_name

    def classify(self, image: NDArray[np.uint8]) -> list[Classification]:
        model = self._manager.get_model(self._model_name)
        if model.spec.task != ModelTask.IMAGE_CLASSIFICATION:
            raise ValueError(f"Model '{self._model_name}' is not an image classification model")

        pixel_values = preprocess_for_classification(image, model.spec)
        (logits,) = model.session.run(["logits"], {"pixel_values": pixel_values})
        return top_k_classifications(logits[0], labels=model.labels, k=self._top_k)


def top_k_classifications(logits: NDArray[np.float32], *, labels: dict[int, str], k: int) -> list[Classification]:
    """Softmax ``logits`` and return the ``k`` most likely labels, best first."""
    probs = softmax(logits, axis=-1)
    ranked = np.argsort(probs)[::-1][:k]
    return [
        Classification(label=labels.get(int(idx), f"LABEL_{int(idx)}"), score=float(probs[idx]))
        for idx in ranked
    ]
