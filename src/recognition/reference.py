"""
Reference embeddings table.

Source format (JSON):
    { "category_a": [[e0, e1, ...], [e0, e1, ...]], "category_b": [...] }

Loaded once, read-only afterwards. Bad entries are logged and skipped; only
an unreadable or unparsable document fails the load.
"""

from __future__ import annotations

import json
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Tuple

import numpy as np

from inference.errors import DataLoadError


DEFAULT_EMBEDDING_SIZE = 1280


class ReferenceTable:
    """
    Mapping of category name to a (k, D) float32 matrix of reference embeddings.

    Category order is the source order and is the order the matcher scans.
    A single 1-D vector is taken as a one-row matrix; categories with no rows
    are dropped.
    """

    def __init__(self, embeddings: Mapping[str, np.ndarray], embedding_size: int = DEFAULT_EMBEDDING_SIZE):
        frozen: Dict[str, np.ndarray] = {}
        for category, matrix in embeddings.items():
            matrix = np.array(matrix, dtype=np.float32, copy=True)
            if matrix.size == 0:
                logging.warning(f"Reference category '{category}' has no embeddings, dropped")
                continue
            if matrix.ndim == 1:
                matrix = matrix.reshape(1, -1)
            elif matrix.ndim != 2:
                raise ValueError(f"Reference category '{category}' has shape {matrix.shape}, expected (k, D)")
            matrix.setflags(write=False)
            frozen[category] = matrix
        self._embeddings = MappingProxyType(frozen)
        self.embedding_size = embedding_size

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        embedding_size: int = DEFAULT_EMBEDDING_SIZE,
    ) -> "ReferenceTable":
        """
        Build a table from parsed JSON, skipping malformed entries.

        Args:
            data: {category: [[floats], ...]}.
            embedding_size: Required vector length; other lengths are skipped.
        """
        table: Dict[str, np.ndarray] = {}
        skipped = 0
        for category, vectors in data.items():
            if not isinstance(vectors, list):
                logging.warning(f"Reference category '{category}' is not a list, skipping")
                continue

            valid: List[np.ndarray] = []
            for i, vector in enumerate(vectors):
                try:
                    arr = np.asarray(vector, dtype=np.float32)
                except (TypeError, ValueError):
                    logging.warning(f"Reference '{category}'[{i}] is not numeric, skipping")
                    skipped += 1
                    continue
                if arr.ndim != 1 or arr.shape[0] != embedding_size:
                    logging.warning(
                        f"Reference '{category}'[{i}] has size {arr.size} != expected {embedding_size}, skipping"
                    )
                    skipped += 1
                    continue
                if not np.all(np.isfinite(arr)):
                    logging.warning(f"Reference '{category}'[{i}] contains non-finite values, skipping")
                    skipped += 1
                    continue
                valid.append(arr)

            if valid:
                table[str(category)] = np.stack(valid, axis=0)
            else:
                logging.warning(f"Reference category '{category}' has no valid embeddings, dropped")

        result = cls(table, embedding_size=embedding_size)
        logging.info(
            f"Loaded {result.category_count} categories, {result.embedding_count} total embeddings"
            + (f" ({skipped} skipped)" if skipped else "")
        )
        for category, matrix in result.items():
            logging.debug(f"  {category}: {matrix.shape[0]} embeddings")
        return result

    @property
    def categories(self) -> List[str]:
        return list(self._embeddings.keys())

    @property
    def category_count(self) -> int:
        return len(self._embeddings)

    @property
    def embedding_count(self) -> int:
        return sum(m.shape[0] for m in self._embeddings.values())

    @property
    def is_loaded(self) -> bool:
        return self.category_count > 0

    def items(self) -> Iterator[Tuple[str, np.ndarray]]:
        return iter(self._embeddings.items())

    def __getitem__(self, category: str) -> np.ndarray:
        return self._embeddings[category]

    def __contains__(self, category: object) -> bool:
        return category in self._embeddings

    def __len__(self) -> int:
        return len(self._embeddings)


def load_reference_table(path: str, embedding_size: int = DEFAULT_EMBEDDING_SIZE) -> ReferenceTable:
    """
    Load reference embeddings from a JSON file.

    Raises:
        DataLoadError: If the file cannot be read, is not valid JSON, or is
            not a JSON object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise DataLoadError(f"Cannot read reference embeddings {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise DataLoadError(f"Reference embeddings {path} is not UTF-8 text: {e}") from e
    except json.JSONDecodeError as e:
        raise DataLoadError(f"Invalid JSON in reference embeddings {path}: {e}") from e

    if not isinstance(data, dict):
        raise DataLoadError(f"Reference embeddings {path} must be a JSON object, got {type(data).__name__}")

    return ReferenceTable.from_mapping(data, embedding_size=embedding_size)
