"""
Captured frame container passed from sources to the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class FrameData:
    """
    One captured image plus capture metadata.

    Attributes:
        frame: (H, W, 3) uint8 RGB image.
        timestamp: Unix time of capture.
        frame_index: 1-based position in the source since it was opened.
        source: Source id, or the file path for still images.
        rotation: Clockwise degrees the display must apply; pixels are never
            rotated by the pipeline.
    """
    frame: np.ndarray
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    rotation: int = 0

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
        rotation: int = 0,
    ) -> "FrameData":
        return cls(frame, timestamp, frame_index, source, rotation)

    @property
    def height(self) -> int:
        return int(self.frame.shape[0])

    @property
    def width(self) -> int:
        return int(self.frame.shape[1])

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), the order FrameResult.image_size uses."""
        return (self.width, self.height)
