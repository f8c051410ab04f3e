"""
Typed models for the card recognition pipeline.

Plain immutable data exchanged between pipeline stages and handed to the
presentation layer.
"""

from .frame import FrameData
from .detection import Detection, BoundingBox
from .recognition import (
    UNKNOWN_CATEGORY,
    MatchResult,
    RecognitionResult,
    FrameResult,
    FrameStatus,
    FrameTimings,
)
from .status import SessionState, SessionStatus, PipelineStatus
from .config import (
    Config,
    DetectorConfig,
    RecognizerConfig,
    MatchingConfig,
    RuntimeConfig,
    CameraConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "Detection",
    "BoundingBox",
    # Recognition
    "UNKNOWN_CATEGORY",
    "MatchResult",
    "RecognitionResult",
    "FrameResult",
    "FrameStatus",
    "FrameTimings",
    # Status
    "SessionState",
    "SessionStatus",
    "PipelineStatus",
    # Config
    "Config",
    "DetectorConfig",
    "RecognizerConfig",
    "MatchingConfig",
    "RuntimeConfig",
    "CameraConfig",
]
