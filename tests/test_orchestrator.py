"""
Tests for the per-frame inference pipeline and its readiness policies.
"""

import numpy as np
import pytest

from models.recognition import FrameStatus, UNKNOWN_CATEGORY
from pipeline.orchestrator import InferencePipeline
from recognition.reference import ReferenceTable

from fakes import detector_output, make_session, mean_color_embedding, small_config


WIDTH, HEIGHT = 128, 64
RED_BOX = (10.0, 10.0, 50.0, 54.0)
BLUE_BOX = (70.0, 10.0, 110.0, 54.0)


@pytest.fixture
def image():
    """Gray image with a red and a blue card, each slightly larger than its box."""
    img = np.full((HEIGHT, WIDTH, 3), 128, dtype=np.uint8)
    img[8:56, 8:52] = (255, 0, 0)
    img[8:56, 68:112] = (0, 0, 255)
    return img


@pytest.fixture
def reference_table():
    return ReferenceTable({
        "red": [np.array([1.0, -1.0, -1.0, 0.0])],
        "blue": [np.array([-1.0, -1.0, 1.0, 0.0])],
    }, embedding_size=4)


def build_pipeline(boxes, confidences, reference_table, detector_fn=None, recognizer_fn=None,
                   recognizer_fail=False, initialize=True):
    config = small_config()
    output = detector_output(boxes, confidences, WIDTH, HEIGHT, config.detector.input_size)
    detector = make_session("detector", fn=detector_fn or (lambda tensor: output))
    recognizer = make_session(
        "recognizer",
        fn=recognizer_fn or mean_color_embedding,
        fail=recognizer_fail,
    )
    pipeline = InferencePipeline(detector, recognizer, reference_table, config)
    if initialize:
        pipeline.initialize()
    return pipeline


class TestPipelineStatus:
    def test_ready(self, reference_table):
        pipeline = build_pipeline([], [], reference_table)
        status = pipeline.status()
        assert status.detection_ready
        assert status.recognition_ready
        assert status.category_count == 2
        assert status.embedding_count == 2
        assert "detector: ready" in status.status_text()

    def test_not_initialized(self, reference_table):
        pipeline = build_pipeline([], [], reference_table, initialize=False)
        status = pipeline.status()
        assert not status.detection_ready
        assert not status.recognition_ready


class TestProcess:
    def test_detects_and_recognizes(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX, BLUE_BOX], [0.95, 0.9], reference_table)

        result = pipeline.process(image, frame_index=7, rotation=90)

        assert result.status == FrameStatus.OK
        assert result.frame_index == 7
        assert result.rotation == 90
        assert result.image_size == (WIDTH, HEIGHT)
        assert result.recognition_enabled
        assert [r.category for r in result.results] == ["red", "blue"]
        assert all(r.is_match for r in result.results)
        assert result.results[0].detection_confidence == pytest.approx(0.95)
        np.testing.assert_allclose(result.results[0].bbox.as_tuple(), RED_BOX, atol=1e-2)
        assert result.timings.total_ms >= result.timings.detection_ms

    def test_input_image_untouched(self, image, reference_table):
        original = image.copy()
        build_pipeline([RED_BOX], [0.95], reference_table).process(image)
        np.testing.assert_array_equal(image, original)

    def test_empty_frame(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX], [0.2], reference_table)
        result = pipeline.process(image)
        assert result.status == FrameStatus.EMPTY
        assert result.count == 0

    def test_skipped_when_detector_not_ready(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX], [0.95], reference_table, initialize=False)

        result = pipeline.process(image)

        assert result.status == FrameStatus.SKIPPED
        assert result.results == ()
        assert pipeline.detector_session._backend.loads == []

    def test_detection_only_without_reference(self, image):
        pipeline = build_pipeline([RED_BOX], [0.95], None)

        result = pipeline.process(image)

        assert result.status == FrameStatus.OK
        assert not result.recognition_enabled
        assert result.count == 1
        assert result.results[0].category == UNKNOWN_CATEGORY
        assert not result.results[0].is_match
        assert result.timings.recognition_ms == 0.0

    def test_boxes_outside_image_dropped_in_both_modes(self, image, reference_table):
        offscreen = (WIDTH + 20.0, 10.0, WIDTH + 60.0, 54.0)
        for table in (None, reference_table):
            result = build_pipeline([RED_BOX, offscreen], [0.95, 0.9], table).process(image)
            assert result.status == FrameStatus.OK
            assert result.count == 1

    def test_detection_only_when_recognizer_failed(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX], [0.95], reference_table, recognizer_fail=True)

        result = pipeline.process(image)

        assert not pipeline.status().recognition_ready
        assert not result.recognition_enabled
        assert result.count == 1
        assert result.results[0].category == UNKNOWN_CATEGORY

    def test_detection_only_with_empty_table(self, image):
        pipeline = build_pipeline([RED_BOX], [0.95], ReferenceTable({}, embedding_size=4))
        assert not pipeline.process(image).recognition_enabled

    def test_unknown_below_threshold(self, image):
        table = ReferenceTable({"green": [np.array([-1.0, 1.0, -1.0, 0.0])]}, embedding_size=4)
        pipeline = build_pipeline([RED_BOX], [0.95], table)

        result = pipeline.process(image)

        assert result.recognition_enabled
        assert result.results[0].category == UNKNOWN_CATEGORY
        assert not result.results[0].is_match

    def test_degenerate_crop_skips_detection(self, image, reference_table):
        # Second box lies entirely right of the image and clamps to zero width
        pipeline = build_pipeline([RED_BOX, (140.0, 10.0, 170.0, 50.0)], [0.95, 0.9], reference_table)

        result = pipeline.process(image)

        assert result.status == FrameStatus.OK
        assert result.count == 1
        assert result.results[0].category == "red"

    def test_detector_failure_fails_frame(self, image, reference_table):
        def broken(tensor):
            raise RuntimeError("detector exploded")

        pipeline = build_pipeline([], [], reference_table, detector_fn=broken)

        result = pipeline.process(image, frame_index=3)

        assert result.status == FrameStatus.FAILED
        assert result.results == ()
        assert "detector exploded" in result.error
        assert result.frame_index == 3

    def test_recognizer_failure_fails_frame(self, image, reference_table):
        def broken(tensor):
            raise RuntimeError("recognizer exploded")

        pipeline = build_pipeline([RED_BOX], [0.95], reference_table, recognizer_fn=broken)

        result = pipeline.process(image)

        assert result.status == FrameStatus.FAILED
        assert result.results == ()

    def test_recovers_after_failure(self, image, reference_table):
        calls = {"n": 0}
        good = detector_output([RED_BOX], [0.95], WIDTH, HEIGHT, 64)

        def flaky(tensor):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")
            return good

        pipeline = build_pipeline([], [], reference_table, detector_fn=flaky)

        assert pipeline.process(image).status == FrameStatus.FAILED
        assert pipeline.process(image).status == FrameStatus.OK

    def test_set_reference_table_enables_recognition(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX], [0.95], None)
        assert not pipeline.process(image).recognition_enabled

        pipeline.set_reference_table(reference_table)

        result = pipeline.process(image)
        assert result.recognition_enabled
        assert result.results[0].category == "red"

    def test_close_releases_sessions(self, image, reference_table):
        pipeline = build_pipeline([RED_BOX], [0.95], reference_table)
        pipeline.close()
        assert pipeline.process(image).status == FrameStatus.SKIPPED

    def test_to_dict(self, image, reference_table):
        result = build_pipeline([RED_BOX], [0.95], reference_table).process(image)
        d = result.to_dict()
        assert d["status"] == "ok"
        assert d["results"][0]["category"] == "red"
        assert d["image_size"] == [WIDTH, HEIGHT]
