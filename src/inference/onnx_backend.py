"""
ONNX Runtime inference backend.

OnnxEnvironment replaces the runtime's process-wide environment singleton
with an explicitly constructed value: it owns the session defaults and the
accelerated provider preference, and is passed to every backend that needs
it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from models.config import DEFAULT_ACCELERATED_PROVIDERS, RuntimeConfig

from .backend import InferenceBackend, Session
from .errors import InitializationError


CPU_PROVIDER = "CPUExecutionProvider"


@dataclass(frozen=True)
class OnnxEnvironment:
    """
    Settings shared by all ONNX Runtime sessions of one pipeline.

    Attributes:
        accelerated_providers: Execution providers to try, in order, when a
            model asks for acceleration.
        intra_op_threads: Threads per operator (0 = runtime default).
        log_severity: ONNX Runtime log severity (0 verbose .. 4 fatal).
    """
    accelerated_providers: List[str] = field(
        default_factory=lambda: list(DEFAULT_ACCELERATED_PROVIDERS)
    )
    intra_op_threads: int = 0
    log_severity: int = 3

    @classmethod
    def from_config(cls, cfg: RuntimeConfig) -> "OnnxEnvironment":
        return cls(
            accelerated_providers=list(cfg.accelerated_providers),
            intra_op_threads=cfg.intra_op_threads,
            log_severity=cfg.log_severity,
        )


class OnnxSession(Session):
    """Session wrapper around onnxruntime.InferenceSession."""

    def __init__(self, session):
        self._session = session
        self._output_names = [o.name for o in session.get_outputs()]
        self._provider = session.get_providers()[0]

    @property
    def provider(self) -> str:
        return self._provider

    def run(self, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self._session.run(self._output_names, inputs)
        return dict(zip(self._output_names, outputs))

    def close(self) -> None:
        # InferenceSession has no explicit release; dropping the reference frees it
        self._session = None


class OnnxRuntimeBackend(InferenceBackend):
    def __init__(self, environment: OnnxEnvironment):
        self.environment = environment
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is not installed. Install with `pip install onnxruntime`."
            ) from e
        self._ort = ort

    def _session_options(self):
        options = self._ort.SessionOptions()
        options.log_severity_level = self.environment.log_severity
        if self.environment.intra_op_threads > 0:
            options.intra_op_num_threads = self.environment.intra_op_threads
        return options

    def _select_providers(self, accelerate: bool) -> List[str]:
        if not accelerate:
            return [CPU_PROVIDER]

        available = set(self._ort.get_available_providers())
        preferred = [p for p in self.environment.accelerated_providers if p in available]
        if not preferred:
            raise InitializationError(
                f"No accelerated provider available (wanted {self.environment.accelerated_providers}, "
                f"have {sorted(available)})"
            )
        return preferred + [CPU_PROVIDER]

    def load(self, model_bytes: bytes, accelerate: bool) -> Session:
        providers = self._select_providers(accelerate)
        session = self._ort.InferenceSession(
            model_bytes,
            sess_options=self._session_options(),
            providers=providers,
        )
        active = session.get_providers()
        if accelerate and (not active or active[0] == CPU_PROVIDER):
            raise InitializationError(
                f"Accelerated providers {providers[:-1]} were not applied (active: {active})"
            )

        logging.info(f"ONNX session created: providers={active}")
        for i in session.get_inputs():
            logging.info(f"  input  name={i.name} shape={i.shape} type={i.type}")
        for o in session.get_outputs():
            logging.info(f"  output name={o.name} shape={o.shape} type={o.type}")

        return OnnxSession(session)
