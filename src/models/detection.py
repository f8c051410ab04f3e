"""
Detector output models.

Boxes are always in original-image pixel coordinates; letterbox space never
leaves the detection package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box (x1, y1) top-left to (x2, y2) bottom-right, float pixels."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        """Zero for inverted boxes."""
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        """Truncated integer corners, for drawing and cropping."""
        return (int(self.x1), int(self.y1), int(self.x2), int(self.y2))

    def clamp(self, width: float, height: float) -> "BoundingBox":
        """Box limited to an image of the given size."""
        def limit(value: float, upper: float) -> float:
            return min(max(value, 0.0), upper)

        return BoundingBox(limit(self.x1, width), limit(self.y1, height), limit(self.x2, width), limit(self.y2, height))

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> "BoundingBox":
        """From top-left corner and size."""
        return cls(x, y, x + w, y + h)

    @classmethod
    def from_center(cls, cx: float, cy: float, w: float, h: float) -> "BoundingBox":
        """From center point and size, as detectors emit them."""
        return cls(cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)


@dataclass(frozen=True)
class Detection:
    """
    One card proposal that survived thresholding and NMS.

    Attributes:
        bbox: Box in original-image pixels.
        confidence: Detector score in [0, 1].
        class_id: Index into the detector's class list.
        class_name: Name for class_id, when the config provides one.
    """
    bbox: BoundingBox
    confidence: float = 1.0
    class_id: int = 0
    class_name: Optional[str] = None

    # Corner shortcuts
    x1 = property(lambda self: self.bbox.x1)
    y1 = property(lambda self: self.bbox.y1)
    x2 = property(lambda self: self.bbox.x2)
    y2 = property(lambda self: self.bbox.y2)

    @property
    def label(self) -> str:
        return self.class_name if self.class_name is not None else str(self.class_id)

    @classmethod
    def from_xyxy(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        confidence: float = 1.0,
        class_id: int = 0,
        class_name: Optional[str] = None,
    ) -> "Detection":
        return cls(BoundingBox(x1, y1, x2, y2), confidence, class_id, class_name)

    def to_numpy(self) -> np.ndarray:
        """Row [x1, y1, x2, y2, confidence, class_id]."""
        return np.array([*self.bbox.as_tuple(), self.confidence, self.class_id], dtype=np.float64)


def detections_to_numpy(detections: List[Detection]) -> np.ndarray:
    """Stack detections into an (N, 6) array; (0, 6) when empty."""
    if not detections:
        return np.zeros((0, 6))
    return np.stack([d.to_numpy() for d in detections])
