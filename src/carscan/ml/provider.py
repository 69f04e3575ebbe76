"""Inference provider: the two asynchronous model calls the analyzer depends on."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from carscan.ml.image_classifier import OnnxImageClassifier
from carscan.ml.object_detector import OnnxObjectDetector

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from carscan.config import Settings
    from carscan.ml.image_classifier import Classification
    from carscan.ml.inference import InferencePool
    from carscan.ml.model_manager import ModelManager
    from carscan.ml.object_detector import Detection

logger = logging.getLogger(__name__)


class InferenceProvider(Protocol):
    """Protocol for the object detection and image classification backend."""

    async def detect_objects(self, image: NDArray[np.uint8]) -> list[Detection]:
        """Return detections for an HxWx3 RGB image."""
        ...

    async def classify_image(self, image: NDArray[np.uint8]) -> list[Classification]:
        """Return classifications for an HxWx3 RGB image, best first."""
        ...


class OnnxInferenceProvider:
    """Runs the configured ONNX detector and classifier on the inference pool."""

    def __init__(self, settings: Settings, manager: ModelManager, pool: InferencePool) -> None:
        self._manager = manager
        self._pool = pool
        self._detector = OnnxObjectDetector(manager, settings.detection_model, settings.detection_threshold)
        self._classifier = OnnxImageClassifier(manager, settings.classification_model, settings.classification_top_k)

    @property
    def model_names(self) -> list[str]:
        return [self._detector.model_name, self._classifier.model_name]

    async def detect_objects(self, image: NDArray[np.uint8]) -> list[Detection]:
        return await self._pool.run(self._detector.detect, image)

    async def classify_image(self, image: NDArray[np.uint8]) -> list[Classification]:
        return await self._pool.run(self._classifier.classify, image)

    async def preload(self) -> None:
        """Load both models ahead of the first request."""
        await asyncio.gather(*(self._pool.run(self._manager.get_model, name) for name in self.model_names))
        logger.info("Preloaded models: %s", ", ".join(self.model_names))
