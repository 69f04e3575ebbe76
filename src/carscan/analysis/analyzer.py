"""Analysis orchestrator: validate the upload, run inference, interpret."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from carscan.analysis.errors import (
    InferenceError,
    InvalidInputError,
    NoVehicleDetectedError,
    UploadTooLargeError,
)
from carscan.analysis.interpreter import interpret
from carscan.ml.image_classifier import Classification
from carscan.ml.object_detector import Detection
from carscan.ml.preprocessing import ImageDecodeError, open_image

if TYPE_CHECKING:
    import random

    import numpy as np
    from numpy.typing import NDArray

    from carscan.analysis.result import AnalysisResult
    from carscan.config import Settings
    from carscan.ml.provider import InferenceProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageUpload:
    """A raw file as received from the client."""

    filename: str
    content_type: str | None
    data: bytes


def is_image_type(content_type: str | None) -> bool:
    return content_type is not None and content_type.lower().startswith("image/")


class CarAnalyzer:
    """Turns an uploaded photo into a condition report.

    The inference provider is injected so tests can substitute a fake. A
    single attempt is made per call; nothing is retried or cached.
    """

    def __init__(self, provider: InferenceProvider, settings: Settings, rng: random.Random | None = None) -> None:
        self._provider = provider
        self._max_file_size = settings.max_file_size
        self._max_image_pixels = settings.max_image_pixels
        self._rng = rng

    async def analyze(self, upload: ImageUpload) -> AnalysisResult:
        """Analyze an uploaded image.

        Raises:
            InvalidInputError: If the upload is not an image or cannot be decoded.
            UploadTooLargeError: If the upload exceeds ``max_file_size``.
            InferenceError: If the inference provider fails or returns malformed output.
            NoVehicleDetectedError: If no vehicle is found in the image.
        """
        if not is_image_type(upload.content_type):
            logger.warning("Rejected %s: content type %r is not an image", upload.filename, upload.content_type)
            raise InvalidInputError
        if len(upload.data) > self._max_file_size:
            logger.warning("Rejected %s: %d bytes exceeds %d", upload.filename, len(upload.data), self._max_file_size)
            raise UploadTooLargeError

        try:
            with open_image(upload.data, self._max_image_pixels) as image:
                detections, classifications = await self._infer(image)
        except ImageDecodeError as exc:
            logger.warning("Rejected %s: %s", upload.filename, exc)
            raise InvalidInputError from exc

        logger.debug("Detections for %s: %s", upload.filename, detections)
        logger.debug("Classifications for %s: %s", upload.filename, classifications)

        try:
            result = interpret(detections, classifications, rng=self._rng)
        except NoVehicleDetectedError:
            logger.info("No vehicle found in %s", upload.filename)
            raise

        logger.info(
            "Analyzed %s: %s (%d), confidence %.2f",
            upload.filename,
            result.overall_condition,
            result.condition_score,
            result.confidence,
        )
        return result

    async def _infer(self, image: NDArray[np.uint8]) -> tuple[list[Detection], list[Classification]]:
        try:
            detections, classifications = await asyncio.gather(
                self._provider.detect_objects(image),
                self._provider.classify_image(image),
            )
            return _checked(detections, Detection), _checked(classifications, Classification)
        except Exception as exc:
            logger.exception("Inference failed")
            raise InferenceError from exc


def _checked(items: object, kind: type) -> list:
    if not isinstance(items, list) or not all(isinstance(item, kind) for item in items):
        raise TypeError(f"Provider returned malformed {kind.__name__} output: {items!r}")
    return items
