"""
Session state and readiness snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SessionState(str, Enum):
    """Lifecycle of a model session."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionStatus:
    """
    Readiness of one model session.

    Attributes:
        name: Session name ("detector", "recognizer").
        state: Current lifecycle state.
        hardware: Execution path that actually loaded the model, e.g.
            "CPU" or an accelerated provider name. None until ready.
        load_ms: Time spent loading the model.
        error: Last initialization error message.
    """
    name: str
    state: SessionState = SessionState.UNINITIALIZED
    hardware: Optional[str] = None
    load_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    def status_text(self) -> str:
        if self.is_ready:
            return f"{self.name}: ready ({self.hardware})"
        if self.state == SessionState.FAILED:
            return f"{self.name}: failed"
        return f"{self.name}: {self.state.value}"

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "state": self.state.value,
            "hardware": self.hardware,
            "load_ms": self.load_ms,
        }
        if self.error:
            d["error"] = self.error
        return d


@dataclass(frozen=True)
class PipelineStatus:
    """
    Readiness snapshot for the whole pipeline.

    Attributes:
        detector: Detector session status.
        recognizer: Recognizer session status.
        reference_loaded: A non-empty reference table is available.
        category_count: Categories in the reference table.
        embedding_count: Total reference embeddings.
    """
    detector: SessionStatus
    recognizer: SessionStatus
    reference_loaded: bool = False
    category_count: int = 0
    embedding_count: int = 0

    @property
    def detection_ready(self) -> bool:
        return self.detector.is_ready

    @property
    def recognition_ready(self) -> bool:
        return self.recognizer.is_ready and self.reference_loaded

    def status_text(self) -> str:
        """User-visible one-line status."""
        reference = (
            f"references: {self.category_count} categories / {self.embedding_count} embeddings"
            if self.reference_loaded
            else "references: not loaded"
        )
        return " | ".join([self.detector.status_text(), self.recognizer.status_text(), reference])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detector": self.detector.to_dict(),
            "recognizer": self.recognizer.to_dict(),
            "reference_loaded": self.reference_loaded,
            "category_count": self.category_count,
            "embedding_count": self.embedding_count,
        }
