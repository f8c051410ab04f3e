"""
Detector input preprocessing: letterbox resize and tensor conversion.

The detector expects a (1, 3, S, S) float32 tensor, RGB, values in [0, 1],
channel-major (all of R, then G, then B), row-major inside each plane.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from inference.errors import DegenerateInputError


PAD_COLOR = (114, 114, 114)


@dataclass(frozen=True)
class LetterboxInfo:
    """
    Geometry of a letterbox resize.

    Attributes:
        scale: min(size / width, size / height).
        new_width: Width of the resized image before padding.
        new_height: Height of the resized image before padding.
        pad_x: Left padding in pixels.
        pad_y: Top padding in pixels.
        original_width: Width of the source image.
        original_height: Height of the source image.
        size: Side of the square canvas.
    """
    scale: float
    new_width: int
    new_height: int
    pad_x: int
    pad_y: int
    original_width: int
    original_height: int
    size: int

    def to_original(self, x: float, y: float) -> Tuple[float, float]:
        """Map a detector-space point back to original image pixels (unclamped).

        Works elementwise on numpy arrays as well as scalars.
        """
        return ((x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale)

    def to_detector(self, x: float, y: float) -> Tuple[float, float]:
        """Map an original image point into detector space."""
        return (x * self.scale + self.pad_x, y * self.scale + self.pad_y)


def compute_letterbox(width: int, height: int, size: int = 640) -> LetterboxInfo:
    """
    Compute scale and padding for a letterbox resize.

    Used both by preprocessing and by the postprocessor when undoing the
    letterbox, so the two sides always agree on the pad offsets.

    Raises:
        DegenerateInputError: If width or height is not positive.
    """
    if width <= 0 or height <= 0:
        raise DegenerateInputError(f"Cannot letterbox a {width}x{height} image")
    if size <= 0:
        raise ValueError(f"Letterbox size must be positive, got {size}")

    scale = min(size / width, size / height)
    new_width = min(size, max(1, int(round(width * scale))))
    new_height = min(size, max(1, int(round(height * scale))))

    return LetterboxInfo(
        scale=scale,
        new_width=new_width,
        new_height=new_height,
        pad_x=(size - new_width) // 2,
        pad_y=(size - new_height) // 2,
        original_width=width,
        original_height=height,
        size=size,
    )


def letterbox(
    image: np.ndarray,
    size: int = 640,
    color: Tuple[int, int, int] = PAD_COLOR,
) -> Tuple[np.ndarray, LetterboxInfo]:
    """
    Aspect-preserving resize onto a constant-color square canvas.

    Args:
        image: (H, W, 3) uint8 RGB image. Not modified.
        size: Side of the output canvas.
        color: Padding color.

    Returns:
        (padded image of shape (size, size, 3), LetterboxInfo)
    """
    height, width = image.shape[:2]
    info = compute_letterbox(width, height, size)

    if (info.new_width, info.new_height) != (width, height):
        resized = cv2.resize(image, (info.new_width, info.new_height), interpolation=cv2.INTER_LINEAR)
    else:
        resized = image

    canvas = np.empty((size, size, 3), dtype=np.uint8)
    canvas[:] = color
    canvas[
        info.pad_y:info.pad_y + info.new_height,
        info.pad_x:info.pad_x + info.new_width,
    ] = resized
    return canvas, info


def to_detector_tensor(image: np.ndarray) -> np.ndarray:
    """
    Convert an (H, W, 3) uint8 RGB image to a (1, 3, H, W) float32 tensor in [0, 1].
    """
    chw = image.astype(np.float32).transpose(2, 0, 1) / 255.0
    return np.ascontiguousarray(chw[np.newaxis, ...], dtype=np.float32)


def preprocess_for_detector(image: np.ndarray, size: int = 640) -> Tuple[np.ndarray, LetterboxInfo]:
    """Letterbox and tensorize an image for the detector."""
    padded, info = letterbox(image, size)
    return to_detector_tensor(padded), info
