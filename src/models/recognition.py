"""
Recognition models: embedding match results and per-frame snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .detection import BoundingBox, Detection


UNKNOWN_CATEGORY = "Unknown"


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of matching one query embedding against the reference table.

    Attributes:
        category: Best category, set only when is_match is True.
        similarity: Best cosine similarity seen (0.0 if nothing beat zero).
        is_match: similarity >= match threshold.
        comparisons: Number of reference embeddings compared.
        anomalies: Comparisons skipped as zero-norm or size-mismatched.
        early_stopped: The scan ended at the early-stop threshold.
    """
    category: Optional[str] = None
    similarity: float = 0.0
    is_match: bool = False
    comparisons: int = 0
    anomalies: int = 0
    early_stopped: bool = False

    @property
    def label(self) -> str:
        return self.category if self.is_match and self.category else UNKNOWN_CATEGORY

    @classmethod
    def no_match(cls) -> "MatchResult":
        return cls(category=None, similarity=0.0, is_match=False)


@dataclass(frozen=True)
class RecognitionResult:
    """
    Final per-detection output: detector box and confidence plus the match.

    Produced fresh every frame; there is no identity across frames.
    """
    detection: Detection
    match: MatchResult = field(default_factory=MatchResult.no_match)

    @property
    def bbox(self) -> BoundingBox:
        return self.detection.bbox

    @property
    def detection_confidence(self) -> float:
        return self.detection.confidence

    @property
    def category(self) -> str:
        return self.match.label

    @property
    def similarity(self) -> float:
        return self.match.similarity

    @property
    def is_match(self) -> bool:
        return self.match.is_match

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": list(self.bbox.as_tuple()),
            "detection_confidence": self.detection_confidence,
            "category": self.category,
            "similarity": self.similarity,
            "is_match": self.is_match,
        }


class FrameStatus(str, Enum):
    """How a frame's pipeline run ended."""
    OK = "ok"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class FrameTimings:
    """Stage timings for one frame, in milliseconds."""
    detection_ms: float = 0.0
    recognition_ms: float = 0.0
    total_ms: float = 0.0


@dataclass(frozen=True)
class FrameResult:
    """
    Immutable snapshot of one frame's pipeline outcome.

    This is the only thing handed to the presentation layer. It is created
    once the full pipeline for the frame has completed.

    Attributes:
        frame_index: Index of the frame the results belong to.
        image_size: (width, height) of the analysed image.
        rotation: Rotation metadata passed through from the capture source.
        results: Recognition results in detection (NMS) order.
        status: How the run ended.
        recognition_enabled: Whether the recognition stage ran.
        timings: Stage timings.
        error: Failure message when status is FAILED.
    """
    frame_index: int
    image_size: Tuple[int, int]
    rotation: int = 0
    results: Tuple[RecognitionResult, ...] = ()
    status: FrameStatus = FrameStatus.OK
    recognition_enabled: bool = False
    timings: FrameTimings = field(default_factory=FrameTimings)
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "frame_index": self.frame_index,
            "image_size": list(self.image_size),
            "rotation": self.rotation,
            "status": self.status.value,
            "recognition_enabled": self.recognition_enabled,
            "results": [r.to_dict() for r in self.results],
            "timings": {
                "detection_ms": self.timings.detection_ms,
                "recognition_ms": self.timings.recognition_ms,
                "total_ms": self.timings.total_ms,
            },
        }
        if self.error:
            d["error"] = self.error
        return d
