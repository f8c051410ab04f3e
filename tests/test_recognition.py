"""
Tests for recognizer preprocessing, reference loading, matching and the
embedding extractor.
"""

import json

import numpy as np
import pytest

from inference.errors import DataLoadError, DegenerateInputError
from models.config import MatchingConfig, RecognizerConfig
from models.detection import BoundingBox
from models.recognition import UNKNOWN_CATEGORY
from recognition.matcher import EmbeddingMatcher, find_best_match
from recognition.preprocess import (
    crop_region,
    preprocess_for_recognizer,
    resize_and_center_crop,
    standardize,
)
from recognition.recognizer import EmbeddingExtractor
from recognition.reference import ReferenceTable, load_reference_table

from fakes import make_session


def unit(*values):
    v = np.asarray(values, dtype=np.float32)
    return v / np.linalg.norm(v)


def vector_with_similarity(query: np.ndarray, similarity: float) -> np.ndarray:
    """Unit vector whose cosine similarity to the (unit) query is exact."""
    orthogonal = np.zeros_like(query)
    orthogonal[np.argmin(np.abs(query))] = 1.0
    orthogonal -= orthogonal.dot(query) * query
    orthogonal /= np.linalg.norm(orthogonal)
    return similarity * query + np.sqrt(1 - similarity ** 2) * orthogonal


class TestCropRegion:
    def test_crop_copies_region(self):
        image = (np.arange(10 * 20 * 3) % 251).astype(np.uint8).reshape(10, 20, 3)
        crop = crop_region(image, BoundingBox(2.7, 1.2, 8.9, 6.5))

        assert crop.shape == (5, 6, 3)
        np.testing.assert_array_equal(crop, image[1:6, 2:8])
        crop[:] = 0
        assert image[1, 2].any()

    def test_clamped_to_image(self):
        image = np.zeros((10, 20, 3), dtype=np.uint8)
        crop = crop_region(image, BoundingBox(-5, -5, 100, 100))
        assert crop.shape == (10, 20, 3)

    def test_zero_area(self):
        image = np.zeros((10, 20, 3), dtype=np.uint8)
        with pytest.raises(DegenerateInputError):
            crop_region(image, BoundingBox(20, 0, 20, 10))
        with pytest.raises(DegenerateInputError):
            crop_region(image, BoundingBox(5.2, 5.1, 5.9, 5.8))


class TestRecognizerPreprocess:
    def test_resize_and_center_crop_shape(self):
        image = np.zeros((100, 60, 3), dtype=np.uint8)
        assert resize_and_center_crop(image, 224, 32).shape == (224, 224, 3)

    def test_center_crop_removes_border(self):
        # The dark band scales to under 16 rows, which the center crop removes
        image = np.full((100, 100, 3), 255, dtype=np.uint8)
        image[:3, :] = 0
        cropped = resize_and_center_crop(image, 224, 32)
        assert cropped[0, 112, 0] == 255

    def test_standardize_values(self):
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        image[..., 0] = 255
        tensor = standardize(image, mean=(0.5, 0.5, 0.5), std=(0.5, 0.5, 0.5))
        assert tensor.shape == (1, 3, 2, 2)
        assert tensor.dtype == np.float32
        np.testing.assert_allclose(tensor[0, 0], 1.0)
        np.testing.assert_allclose(tensor[0, 1], -1.0)

    def test_preprocess_for_recognizer(self):
        image = np.full((50, 80, 3), 127, dtype=np.uint8)
        tensor = preprocess_for_recognizer(image)
        assert tensor.shape == (1, 3, 224, 224)
        expected = (127 / 255 - 0.498) / 0.502
        np.testing.assert_allclose(tensor, expected, atol=1e-2)

    def test_empty_crop(self):
        with pytest.raises(DegenerateInputError):
            preprocess_for_recognizer(np.zeros((0, 10, 3), dtype=np.uint8))


class TestReferenceTable:
    def test_load(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "cat_a": [[1.0, 0.0, 0.0, 0.0], [0.9, 0.1, 0.0, 0.0]],
            "cat_b": [[0.0, 1.0, 0.0, 0.0]],
        }))

        table = load_reference_table(str(path), embedding_size=4)

        assert table.categories == ["cat_a", "cat_b"]
        assert table.category_count == 2
        assert table.embedding_count == 3
        assert table["cat_a"].shape == (2, 4)
        assert table["cat_a"].dtype == np.float32
        assert "cat_b" in table
        assert table.is_loaded

    def test_malformed_entries_skipped(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "good": [[1, 2, 3, 4], [1, 2, 3]],
            "not_list": "oops",
            "non_numeric": [["a", "b", "c", "d"]],
            "all_bad": [[1, 2]],
        }))

        table = load_reference_table(str(path), embedding_size=4)

        assert table.categories == ["good"]
        assert table.embedding_count == 1

    def test_empty_document_is_valid(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{}")
        table = load_reference_table(str(path), embedding_size=4)
        assert table.category_count == 0
        assert not table.is_loaded

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataLoadError):
            load_reference_table(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{not json")
        with pytest.raises(DataLoadError):
            load_reference_table(str(path))

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_bytes(b'{"a": [[1.0, \xff\xfe]]}')
        with pytest.raises(DataLoadError):
            load_reference_table(str(path))

    def test_empty_category_dropped(self):
        table = ReferenceTable({"empty": [], "a": [unit(1, 0, 0, 0)]}, embedding_size=4)
        assert table.categories == ["a"]
        assert not ReferenceTable({"empty": []}, embedding_size=4).is_loaded

    def test_single_vector_is_one_row(self):
        table = ReferenceTable({"a": unit(1, 0, 0, 0)}, embedding_size=4)
        assert table["a"].shape == (1, 4)
        assert table.embedding_count == 1

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("[[1, 2, 3]]")
        with pytest.raises(DataLoadError):
            load_reference_table(str(path))

    def test_read_only(self):
        table = ReferenceTable.from_mapping({"a": [[1.0, 0.0]]}, embedding_size=2)
        with pytest.raises(ValueError):
            table["a"][0, 0] = 5.0
        with pytest.raises(TypeError):
            table._embeddings["b"] = np.zeros((1, 2))


class TestFindBestMatch:
    def test_match_above_threshold(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({"cat_a": [vector_with_similarity(query, 0.95)]}, embedding_size=4)

        result = find_best_match(query, table, threshold=0.75)

        assert result.is_match
        assert result.category == "cat_a"
        assert result.similarity == pytest.approx(0.95, abs=1e-4)
        assert result.label == "cat_a"

    def test_no_match_below_threshold(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({"cat_b": [vector_with_similarity(query, 0.50)]}, embedding_size=4)

        result = find_best_match(query, table, threshold=0.75)

        assert not result.is_match
        assert result.category is None
        assert result.similarity == pytest.approx(0.50, abs=1e-4)
        assert result.label == UNKNOWN_CATEGORY

    def test_empty_table(self):
        result = find_best_match(unit(1, 0, 0, 0), ReferenceTable({}, embedding_size=4))
        assert not result.is_match
        assert result.similarity == 0.0

    def test_table_with_only_empty_category(self):
        result = find_best_match(np.ones(4), ReferenceTable({"a": []}, embedding_size=4))
        assert not result.is_match
        assert result.category is None

    def test_no_table(self):
        result = find_best_match(unit(1, 0, 0, 0), None)
        assert not result.is_match
        assert result.similarity == 0.0

    def test_best_across_categories(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({
            "low": [vector_with_similarity(query, 0.6)],
            "high": [vector_with_similarity(query, 0.9), vector_with_similarity(query, 0.8)],
            "mid": [vector_with_similarity(query, 0.85)],
        }, embedding_size=4)

        result = find_best_match(query, table, threshold=0.75, early_stop=None)

        assert result.category == "high"
        assert result.similarity == pytest.approx(0.9, abs=1e-4)
        assert result.comparisons == 4
        assert not result.early_stopped

    def test_early_stop(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({
            "first": [vector_with_similarity(query, 0.995)],
            "second": [query.copy()],
        }, embedding_size=4)

        stopped = find_best_match(query, table, threshold=0.75, early_stop=0.99)
        exhaustive = find_best_match(query, table, threshold=0.75, early_stop=None)

        assert stopped.early_stopped
        assert stopped.category == "first"
        assert stopped.comparisons == 1
        assert exhaustive.category == "second"
        assert exhaustive.comparisons == 2

    def test_negative_similarity_never_wins(self):
        query = unit(1, 0, 0, 0)
        table = ReferenceTable({"opposite": [-query]}, embedding_size=4)
        result = find_best_match(query, table, threshold=-1.0)
        assert result.similarity == 0.0
        assert result.category is None
        assert not result.is_match

    def test_zero_norm_reference_counted_as_anomaly(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({
            "zero": [np.zeros(4, dtype=np.float32)],
            "real": [vector_with_similarity(query, 0.9)],
        }, embedding_size=4)

        result = find_best_match(query, table, threshold=0.75)

        assert result.anomalies == 1
        assert result.category == "real"

    def test_zero_norm_query(self):
        table = ReferenceTable({"a": [unit(1, 0, 0, 0)]}, embedding_size=4)
        result = find_best_match(np.zeros(4), table)
        assert not result.is_match
        assert result.similarity == 0.0
        assert result.anomalies == 1


class TestEmbeddingMatcher:
    def test_uses_configured_thresholds(self):
        query = unit(1, 2, 3, 4)
        table = ReferenceTable({"a": [vector_with_similarity(query, 0.8)]}, embedding_size=4)

        strict = EmbeddingMatcher(table, MatchingConfig(threshold=0.85))
        lenient = EmbeddingMatcher(table, MatchingConfig(threshold=0.75))

        assert not strict.match(query).is_match
        assert lenient.match(query).is_match

    def test_is_loaded(self):
        assert not EmbeddingMatcher(None, MatchingConfig()).is_loaded
        assert not EmbeddingMatcher(ReferenceTable({}), MatchingConfig()).is_loaded


class TestEmbeddingExtractor:
    def test_extract_flattens_output(self):
        session = make_session("recognizer", fn=lambda tensor: np.ones((1, 8), dtype=np.float32))
        session.initialize()
        extractor = EmbeddingExtractor(session, RecognizerConfig(input_size=16, crop_padding=4, embedding_size=8))

        embedding = extractor.extract(np.zeros((30, 20, 3), dtype=np.uint8))

        assert embedding.shape == (8,)
        assert embedding.dtype == np.float32

    def test_model_receives_preprocessed_tensor(self):
        seen = {}

        def model(tensor):
            seen["shape"] = tensor.shape
            return np.zeros((1, 4), dtype=np.float32)

        session = make_session("recognizer", fn=model)
        session.initialize()
        EmbeddingExtractor(session, RecognizerConfig(input_size=16, crop_padding=4, embedding_size=4)).extract(
            np.zeros((30, 20, 3), dtype=np.uint8)
        )
        assert seen["shape"] == (1, 3, 16, 16)
