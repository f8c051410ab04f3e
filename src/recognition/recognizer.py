"""
Embedding extraction: crop -> resize/center-crop/standardize -> recognizer session.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from inference.session import ModelSession
from models.config import RecognizerConfig

from .preprocess import preprocess_for_recognizer


class EmbeddingExtractor:
    """Turns an image region into a fixed-length embedding vector."""

    def __init__(self, session: ModelSession, cfg: RecognizerConfig):
        self.session = session
        self.cfg = cfg

    @property
    def is_ready(self) -> bool:
        return self.session.is_ready

    def extract(self, crop: np.ndarray) -> np.ndarray:
        """
        Compute the embedding of an (H, W, 3) uint8 RGB crop.

        Returns:
            float32 vector of shape (embedding_size,).

        Raises:
            DegenerateInputError: If the crop is empty.
            InferenceExecutionError: If the model run fails.
        """
        start = time.perf_counter()
        tensor = preprocess_for_recognizer(
            crop,
            input_size=self.cfg.input_size,
            crop_padding=self.cfg.crop_padding,
            mean=self.cfg.mean,
            std=self.cfg.std,
        )
        preprocess_ms = (time.perf_counter() - start) * 1000.0

        t0 = time.perf_counter()
        output = self.session.run(tensor)
        inference_ms = (time.perf_counter() - t0) * 1000.0

        embedding = np.asarray(output, dtype=np.float32).reshape(-1)
        if embedding.shape[0] != self.cfg.embedding_size:
            logging.warning(
                f"Embedding size {embedding.shape[0]} != expected {self.cfg.embedding_size}"
            )

        logging.debug(
            f"Recognizer: preprocess={preprocess_ms:.1f}ms inference={inference_ms:.1f}ms "
            f"size={embedding.shape[0]}"
        )
        return embedding
