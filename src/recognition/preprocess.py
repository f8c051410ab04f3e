"""
Recognizer input preprocessing.

Pipeline for the embedding model:
1. Stretch the crop to (I + P, I + P) with bicubic interpolation.
2. Center-crop to I x I, removing P / 2 pixels from each side.
3. Standardize per channel: (pixel / 255 - mean) / std.
Output is a (1, 3, I, I) float32 RGB tensor, channel-major.
"""

from __future__ import annotations

from typing import Sequence

import cv2
import numpy as np

from inference.errors import DegenerateInputError
from models.detection import BoundingBox


INPUT_SIZE = 224
CROP_PADDING = 32
MEAN_RGB = (0.498, 0.498, 0.498)
STDDEV_RGB = (0.502, 0.502, 0.502)


def crop_region(image: np.ndarray, bbox: BoundingBox) -> np.ndarray:
    """
    Copy the bbox region out of an image.

    Coordinates are truncated to integers and clamped to the image.

    Raises:
        DegenerateInputError: If the clamped region has zero area.
    """
    height, width = image.shape[:2]
    x1 = max(0, int(bbox.x1))
    y1 = max(0, int(bbox.y1))
    x2 = min(width, int(bbox.x2))
    y2 = min(height, int(bbox.y2))

    if x2 - x1 <= 0 or y2 - y1 <= 0:
        raise DegenerateInputError(f"Zero-area crop ({x1}, {y1}, {x2}, {y2})")
    return image[y1:y2, x1:x2].copy()


def resize_and_center_crop(
    image: np.ndarray,
    input_size: int = INPUT_SIZE,
    crop_padding: int = CROP_PADDING,
) -> np.ndarray:
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise DegenerateInputError(f"Cannot resize a {image.shape[1]}x{image.shape[0]} image")

    resize_size = input_size + crop_padding
    resized = cv2.resize(image, (resize_size, resize_size), interpolation=cv2.INTER_CUBIC)
    offset = crop_padding // 2
    return resized[offset:offset + input_size, offset:offset + input_size]


def standardize(
    image: np.ndarray,
    mean: Sequence[float] = MEAN_RGB,
    std: Sequence[float] = STDDEV_RGB,
) -> np.ndarray:
    """(H, W, 3) uint8 RGB -> (1, 3, H, W) float32 standardized tensor."""
    mean_arr = np.asarray(mean, dtype=np.float32).reshape(3, 1, 1)
    std_arr = np.asarray(std, dtype=np.float32).reshape(3, 1, 1)
    chw = image.astype(np.float32).transpose(2, 0, 1) / 255.0
    chw = (chw - mean_arr) / std_arr
    return np.ascontiguousarray(chw[np.newaxis, ...], dtype=np.float32)


def preprocess_for_recognizer(
    image: np.ndarray,
    input_size: int = INPUT_SIZE,
    crop_padding: int = CROP_PADDING,
    mean: Sequence[float] = MEAN_RGB,
    std: Sequence[float] = STDDEV_RGB,
) -> np.ndarray:
    cropped = resize_and_center_crop(image, input_size, crop_padding)
    return standardize(cropped, mean, std)
