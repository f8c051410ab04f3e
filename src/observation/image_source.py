"""
Still-image observation source.

Reads image files (a single file or every image in a directory) and yields
them as RGB frames. Used for single-image test runs and offline batches.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import cv2

from .base import Grab, ObservationConfig, ObservationSource


IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".webp")


def list_images(path: str) -> List[str]:
    """Return [path] for a file, or the sorted image files of a directory."""
    if os.path.isdir(path):
        return sorted(
            os.path.join(path, name)
            for name in os.listdir(path)
            if name.lower().endswith(IMAGE_EXTENSIONS)
        )
    return [path]


def read_rgb_image(path: str):
    """Load an image file as (H, W, 3) uint8 RGB, or None if unreadable."""
    bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if bgr is None:
        return None
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


@dataclass
class ImageFileSourceConfig(ObservationConfig):
    """
    Attributes:
        paths: Image files or directories, read in order.
    """
    paths: List[str] = field(default_factory=list)


class ImageFileSource(ObservationSource):
    """Observation source over still image files. FrameData.source is the file path."""

    def __init__(self, config: ImageFileSourceConfig):
        super().__init__(config)
        self._files: List[str] = []
        for path in config.paths:
            self._files.extend(list_images(path))
        self._pos = 0

    @property
    def files(self) -> List[str]:
        return list(self._files)

    @property
    def is_finite(self) -> bool:
        return True

    def _open(self) -> None:
        if not self._files:
            raise RuntimeError("No image files to read")
        self._pos = 0
        logging.info(f"ImageFileSource opened: {len(self._files)} images")

    def _grab(self) -> Optional[Grab]:
        while self._pos < len(self._files):
            path = self._files[self._pos]
            self._pos += 1
            image = read_rgb_image(path)
            if image is None:
                logging.warning(f"Failed to load image: {path}")
                continue
            return image, path
        return None

    def _release(self) -> None:
        self._pos = len(self._files)
