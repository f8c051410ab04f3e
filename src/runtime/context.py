from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from inference.backend import InferenceBackend
from inference.errors import DataLoadError
from inference.session import ModelSession
from models.config import Config
from models.status import PipelineStatus
from pipeline.orchestrator import InferencePipeline
from recognition.reference import ReferenceTable, load_reference_table


@dataclass
class RuntimeContext:
    """Owns the inference runtime for one process; avoids global singletons."""

    config: Config
    backend: InferenceBackend
    detector_session: ModelSession
    recognizer_session: ModelSession
    pipeline: InferencePipeline

    def initialize(self) -> PipelineStatus:
        return self.pipeline.initialize()

    def reload_reference(self) -> bool:
        """Reload the reference table from disk; keeps the old one on failure."""
        table = load_reference_or_none(self.config)
        if table is None:
            return False
        self.pipeline.set_reference_table(table)
        return True

    def close(self) -> None:
        self.pipeline.close()


def load_reference_or_none(config: Config) -> Optional[ReferenceTable]:
    """Load the reference table, logging and returning None if it cannot be read."""
    path = config.matching.reference_path
    try:
        table = load_reference_table(path, embedding_size=config.recognizer.embedding_size)
    except DataLoadError as e:
        logging.error(f"Reference data unavailable, recognition disabled: {e}")
        return None
    logging.info(
        f"Loaded reference table from {path}: "
        f"{table.category_count} categories, {table.embedding_count} embeddings"
    )
    return table


def create_backend(config: Config) -> InferenceBackend:
    """Create the ONNX Runtime backend with an explicit environment."""
    from inference.onnx_backend import OnnxEnvironment, OnnxRuntimeBackend

    return OnnxRuntimeBackend(OnnxEnvironment.from_config(config.runtime))


def build_runtime(
    config: Config,
    backend: Optional[InferenceBackend] = None,
    reference_table: Optional[ReferenceTable] = None,
    load_reference: bool = True,
) -> RuntimeContext:
    """
    Wire sessions, reference data and the pipeline from config.

    Sessions are created but not initialized; call ctx.initialize().

    Args:
        config: Typed application config.
        backend: Inference backend; defaults to ONNX Runtime.
        reference_table: Preloaded table; skips loading from disk.
        load_reference: Whether to load the table from matching.reference_path
            when none is given.
    """
    if backend is None:
        backend = create_backend(config)

    detector_session = ModelSession(
        "detector",
        config.detector.model_path,
        backend,
        accelerate=config.detector.use_acceleration,
        input_name=config.detector.input_name,
    )
    recognizer_session = ModelSession(
        "recognizer",
        config.recognizer.model_path,
        backend,
        accelerate=config.recognizer.use_acceleration,
        input_name=config.recognizer.input_name,
    )

    if reference_table is None and load_reference:
        reference_table = load_reference_or_none(config)

    pipeline = InferencePipeline(detector_session, recognizer_session, reference_table, config)
    return RuntimeContext(
        config=config,
        backend=backend,
        detector_session=detector_session,
        recognizer_session=recognizer_session,
        pipeline=pipeline,
    )
