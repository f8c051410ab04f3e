"""
Inference backend interface.

The pipeline never talks to a concrete runtime. A backend turns model bytes
into a Session; a Session maps named input tensors to named output tensors.
Any tensor-execution engine can be plugged in behind these two protocols.
"""

from __future__ import annotations

from typing import Dict, Protocol

import numpy as np


class Session(Protocol):
    """A loaded model. Not assumed reentrant: callers serialise run()."""

    @property
    def provider(self) -> str:
        """Execution path actually in use, e.g. "CPUExecutionProvider"."""
        ...

    def run(self, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...

    def close(self) -> None:
        ...


class InferenceBackend(Protocol):
    def load(self, model_bytes: bytes, accelerate: bool) -> Session:
        """
        Create a session from serialized model bytes.

        Raises on failure. With accelerate=True the backend must fail rather
        than silently return a CPU session, so callers can log the fallback.
        """
        ...
