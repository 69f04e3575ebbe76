"""Image preprocessing pipeline.

Decodes uploaded bytes into RGB numpy arrays (honouring EXIF orientation and
pixel limits) and turns them into NCHW float32 tensors for the detection and
classification models.
"""

from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray

    from carscan.ml.model_manager import ModelSpec

logger = logging.getLogger(__name__)


class ImageDecodeError(ValueError):
    """Raised when uploaded bytes are not a usable image."""


@contextmanager
def open_image(image_bytes: bytes, max_pixels: int) -> Iterator[NDArray[np.uint8]]:
    """Decode raw image bytes into an HxWx3 RGB uint8 array.

    The Pillow image backing the array is closed when the block exits,
    whether it exits normally or with an exception.

    Raises:
        ImageDecodeError: If the bytes cannot be decoded or exceed ``max_pixels``.
    """
    try:
        pil_image = Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError("Could not decode image") from exc

    try:
        width, height = pil_image.size
        if width * height > max_pixels:
            raise ImageDecodeError(f"Image has {width * height} pixels, limit is {max_pixels}")
        try:
            rgb = ImageOps.exif_transpose(pil_image).convert("RGB")
        except (OSError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError("Could not decode image") from exc
        array = np.asarray(rgb, dtype=np.uint8)
        logger.debug("Decoded %s image %dx%d", pil_image.format, width, height)
        yield array
    finally:
        pil_image.close()


def _normalize(image: Image.Image, spec: ModelSpec) -> NDArray[np.float32]:
    pixels = np.asarray(image, dtype=np.float32) / 255.0
    mean = np.asarray(spec.image_mean, dtype=np.float32)
    std = np.asarray(spec.image_std, dtype=np.float32)
    pixels = (pixels - mean) / std
    return np.ascontiguousarray(pixels.transpose(2, 0, 1)[np.newaxis, ...])


def detection_input_size(width: int, height: int, shortest_edge: int, longest_edge: int | None) -> tuple[int, int]:
    """Return ``(width, height)`` after resizing the shortest edge, capped by the longest."""
    scale = shortest_edge / min(width, height)
    if longest_edge is not None and max(width, height) * scale > longest_edge:
        scale = longest_edge / max(width, height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def preprocess_for_detection(image: NDArray[np.uint8], spec: ModelSpec) -> NDArray[np.float32]:
    """Prepare an image for a DETR-style detection model.

    Args:
        image: HxWx3 RGB uint8 array.
        spec: Registry entry providing resize and normalization constants.

    Returns:
        1x3xH'xW' float32 tensor.
    """
    height, width = image.shape[:2]
    size = detection_input_size(width, height, spec.input_size, spec.max_size)
    resized = Image.fromarray(image).resize(size, Image.Resampling.BILINEAR)
    return _normalize(resized, spec)


def preprocess_for_classification(image: NDArray[np.uint8], spec: ModelSpec) -> NDArray[np.float32]:
    """Resize to the model's square input and normalize. Returns a 1x3xSxS tensor."""
    side = spec.input_size
    resized = Image.fromarray(image).resize((side, side), Image.Resampling.BILINEAR)
    return _normalize(resized, spec)


def softmax(logits: NDArray[np.float32], axis: int = -1) -> NDArray[np.float32]:
    shifted = logits - logits.max(axis=axis, keepdims=True)
    exp = np.exp(shifted)
    return exp / exp.sum(axis=axis, keepdims=True)
