"""
Error taxonomy for the inference pipeline.

Errors are raised where they occur and handled at the seam that owns the
recovery policy:
- InitializationError: caught by ModelSession, surfaces as "not ready".
- DegenerateInputError: caught per item (detection, crop, comparison).
- InferenceExecutionError: caught per frame by the orchestrator.
- DataLoadError: caught by the caller loading the reference table.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class InitializationError(PipelineError):
    """Model bytes unreadable or no execution path could create a session."""


class DegenerateInputError(PipelineError):
    """Zero-area crop, zero-dimension image or similar unusable input."""


class InferenceExecutionError(PipelineError):
    """The model run failed or produced output of an unexpected shape."""


class SessionNotReadyError(InferenceExecutionError):
    """A session was used before initialization or after close."""


class DataLoadError(PipelineError):
    """The reference embeddings source could not be read or parsed."""
