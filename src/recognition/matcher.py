"""
Nearest-category lookup by cosine similarity.

The scan visits categories in table order and references in list order,
keeping the best strictly-improving similarity (starting from 0, so negative
similarities never win). When the best reaches the early-stop threshold the
scan ends immediately; the result may then be a local rather than global
maximum. Pass early_stop=None for an exhaustive scan.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from models.config import MatchingConfig
from models.recognition import MatchResult

from .reference import ReferenceTable


DEFAULT_THRESHOLD = 0.75
DEFAULT_EARLY_STOP = 0.99


def _similarities(query: np.ndarray, query_norm: float, refs: np.ndarray) -> np.ndarray:
    """Cosine similarity of query against each row; NaN marks zero-norm rows."""
    norms = np.linalg.norm(refs, axis=1)
    dots = refs @ query
    sims = np.full(refs.shape[0], np.nan, dtype=np.float64)
    valid = norms > 0
    sims[valid] = np.clip(dots[valid] / (norms[valid] * query_norm), -1.0, 1.0)
    return sims


def find_best_match(
    query: np.ndarray,
    table: Optional[ReferenceTable],
    threshold: float = DEFAULT_THRESHOLD,
    early_stop: Optional[float] = DEFAULT_EARLY_STOP,
) -> MatchResult:
    """
    Find the reference category most similar to a query embedding.

    Args:
        query: Query embedding (D,).
        table: Reference table; None or empty yields a non-match.
        threshold: Minimum similarity for is_match.
        early_stop: Stop scanning once the best similarity reaches this.

    Returns:
        MatchResult with category set only when is_match.
    """
    if table is None or not table.is_loaded:
        logging.warning("No reference embeddings loaded")
        return MatchResult.no_match()

    query = np.asarray(query, dtype=np.float32).ravel()
    if query.shape[0] != table.embedding_size:
        logging.warning(f"Query embedding size {query.shape[0]} != expected {table.embedding_size}")

    query_norm = float(np.linalg.norm(query))
    best_category: Optional[str] = None
    best_similarity = 0.0
    comparisons = 0
    anomalies = 0
    early_stopped = False

    for category, refs in table.items():
        if query_norm == 0.0 or refs.shape[1] != query.shape[0]:
            # Every comparison in this category is degenerate
            comparisons += refs.shape[0]
            anomalies += refs.shape[0]
            continue

        sims = _similarities(query, query_norm, refs)
        for sim in sims:
            comparisons += 1
            if np.isnan(sim):
                anomalies += 1
                continue
            if sim > best_similarity:
                best_similarity = float(sim)
                best_category = category
                if early_stop is not None and best_similarity >= early_stop:
                    early_stopped = True
                    break
        if early_stopped:
            logging.debug(f"Early stop: found excellent match (similarity={best_similarity:.4f})")
            break

    if anomalies:
        logging.warning(f"Zero norm or size mismatch in {anomalies} of {comparisons} comparisons")

    is_match = best_category is not None and best_similarity >= threshold
    logging.debug(
        f"find_best_match: {comparisons} comparisons, best={best_category}, "
        f"similarity={best_similarity:.4f}, match={is_match}"
    )
    return MatchResult(
        category=best_category if is_match else None,
        similarity=best_similarity,
        is_match=is_match,
        comparisons=comparisons,
        anomalies=anomalies,
        early_stopped=early_stopped,
    )


class EmbeddingMatcher:
    """find_best_match bound to a reference table and configured thresholds."""

    def __init__(self, table: Optional[ReferenceTable], cfg: MatchingConfig):
        self.table = table
        self.cfg = cfg

    @property
    def is_loaded(self) -> bool:
        return self.table is not None and self.table.is_loaded

    def match(self, query: np.ndarray) -> MatchResult:
        return find_best_match(
            query,
            self.table,
            threshold=self.cfg.threshold,
            early_stop=self.cfg.early_stop_threshold,
        )
