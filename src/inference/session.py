"""
Model session lifecycle.

ModelSession owns one model: it reads the model bytes, creates a backend
session (accelerated first when requested, CPU otherwise), and exposes a
single-tensor run() for the pipeline.

States:
    UNINITIALIZED -> LOADING -> READY
    UNINITIALIZED -> LOADING -> FAILED
    READY/FAILED  -> close() -> UNINITIALIZED
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

import numpy as np

from models.status import SessionState, SessionStatus

from .backend import InferenceBackend, Session
from .errors import InferenceExecutionError, InitializationError, SessionNotReadyError


def read_model_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise InitializationError(f"Cannot read model file {path}: {e}") from e


class ModelSession:
    """
    A named, lazily initialised model session.

    Example:
        session = ModelSession("detector", "models/yolo11n.onnx", backend, input_name="images")
        if session.initialize():
            output = session.run(tensor)
        session.close()
    """

    def __init__(
        self,
        name: str,
        model_path: str,
        backend: InferenceBackend,
        accelerate: bool = False,
        input_name: str = "input",
        model_loader: Callable[[str], bytes] = read_model_bytes,
    ):
        self.name = name
        self.model_path = model_path
        self.accelerate = accelerate
        self.input_name = input_name
        self._backend = backend
        self._model_loader = model_loader
        self._session: Optional[Session] = None
        self._state = SessionState.UNINITIALIZED
        self._hardware: Optional[str] = None
        self._load_ms: Optional[float] = None
        self._error: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == SessionState.READY

    @property
    def hardware(self) -> Optional[str]:
        return self._hardware

    def status(self) -> SessionStatus:
        return SessionStatus(
            name=self.name,
            state=self._state,
            hardware=self._hardware,
            load_ms=self._load_ms,
            error=self._error,
        )

    def initialize(self) -> bool:
        """
        Load the model. Never raises; returns whether the session is ready.

        Acceleration failure falls back to CPU and is only logged. A call on
        a READY session is a no-op.
        """
        if self._state == SessionState.READY:
            logging.debug(f"[{self.name}] Session already initialized")
            return True

        self._state = SessionState.LOADING
        self._error = None
        start = time.perf_counter()
        try:
            model_bytes = self._model_loader(self.model_path)
            self._session = self._create_session(model_bytes)
        except Exception as e:
            self._session = None
            self._state = SessionState.FAILED
            self._error = str(e)
            logging.error(f"[{self.name}] Failed to initialize session: {e}")
            return False

        self._load_ms = (time.perf_counter() - start) * 1000.0
        self._hardware = self._session.provider
        self._state = SessionState.READY
        logging.info(
            f"[{self.name}] Model loaded from {self.model_path} in {self._load_ms:.1f} ms "
            f"(hardware={self._hardware})"
        )
        return True

    def _create_session(self, model_bytes: bytes) -> Session:
        if self.accelerate:
            try:
                logging.info(f"[{self.name}] Trying accelerated execution path")
                return self._backend.load(model_bytes, accelerate=True)
            except Exception as e:
                logging.warning(f"[{self.name}] Accelerated session unavailable, falling back to CPU: {e}")

        logging.info(f"[{self.name}] Creating CPU session")
        return self._backend.load(model_bytes, accelerate=False)

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run the model on one input tensor and return its first output.

        Raises:
            SessionNotReadyError: If the session is not READY.
            InferenceExecutionError: If the backend fails or returns nothing.
        """
        if self._state != SessionState.READY or self._session is None:
            raise SessionNotReadyError(f"Session '{self.name}' is {self._state.value}")

        try:
            outputs: Dict[str, np.ndarray] = self._session.run({self.input_name: tensor})
        except Exception as e:
            raise InferenceExecutionError(f"[{self.name}] inference failed: {e}") from e

        if not outputs:
            raise InferenceExecutionError(f"[{self.name}] model returned no outputs")
        return np.asarray(next(iter(outputs.values())))

    def close(self) -> None:
        """Release the model. Safe to call multiple times."""
        if self._session is not None:
            try:
                self._session.close()
            except Exception as e:
                logging.warning(f"[{self.name}] Error closing session: {e}")
        self._session = None
        self._hardware = None
        self._state = SessionState.UNINITIALIZED
        logging.info(f"[{self.name}] Session closed")

    def __enter__(self) -> "ModelSession":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
