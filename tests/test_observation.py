"""
Tests for observation layer.
"""

from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest

from observation.base import ObservationConfig
from observation.image_source import ImageFileSource, ImageFileSourceConfig, list_images
from observation.opencv_source import OpenCVSource, OpenCVSourceConfig

from fakes import MockObservationSource


def write_rgb(path, rgb):
    assert cv2.imwrite(str(path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))


class TestObservationConfig:
    def test_default_config(self):
        config = ObservationConfig()
        assert config.source_id == "default"
        assert config.resolution is None
        assert config.fps is None
        assert config.rotation == 0

    def test_custom_config(self):
        config = ObservationConfig(
            source_id="cam-01",
            resolution=(1920, 1080),
            fps=30,
            rotation=90,
            metadata={"location": "desk"},
        )
        assert config.source_id == "cam-01"
        assert config.resolution == (1920, 1080)
        assert config.rotation == 90
        assert config.metadata["location"] == "desk"


class TestMockSource:
    def test_source_lifecycle(self):
        frames = [np.zeros((100, 100, 3), dtype=np.uint8) for _ in range(3)]
        source = MockObservationSource(ObservationConfig(source_id="test"), frames)

        assert not source.is_open
        source.open()
        assert source.is_open

        fd = source.read()
        assert fd.source == "test"
        assert fd.frame_index == 1
        assert source.frame_index == 1

        source.close()
        assert not source.is_open

    def test_context_manager_and_iteration(self):
        frames = [np.ones((10, 10, 3), dtype=np.uint8) * i for i in range(5)]

        with MockObservationSource(ObservationConfig(), frames) as source:
            indices = [fd.frame_index for fd in source]

        assert indices == [1, 2, 3, 4, 5]
        assert not source.is_open

    def test_iterate_without_open(self):
        source = MockObservationSource(ObservationConfig(), [])
        with pytest.raises(RuntimeError):
            list(source)


class TestOpenCVSourceConfig:
    def test_from_camera_config(self):
        camera_cfg = {
            "device_id": "videos/cards.mp4",
            "resolution": [1280, 720],
            "fps": 30,
            "rotation": 90,
        }
        config = OpenCVSourceConfig.from_camera_config(camera_cfg, source_id="desk-cam")

        assert config.source_id == "desk-cam"
        assert config.device_id == "videos/cards.mp4"
        assert config.resolution == (1280, 720)
        assert config.fps == 30
        assert config.rotation == 90

    def test_defaults(self):
        config = OpenCVSourceConfig.from_camera_config({})
        assert config.device_id == 0
        assert config.resolution is None
        assert config.rotation == 0


class TestOpenCVSource:
    def _capture(self, frames):
        cap = MagicMock()
        cap.isOpened.return_value = True
        cap.read.side_effect = [(True, f) for f in frames] + [(False, None)]
        return cap

    def test_reads_rgb_frames_with_rotation(self):
        bgr = np.zeros((4, 6, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blue in BGR order
        cap = self._capture([bgr])

        with patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=0, rotation=180))
            source.open()
            fd = source.read()
            assert source.read() is None
            source.close()

        assert fd.frame[0, 0].tolist() == [0, 0, 255]
        assert (fd.width, fd.height) == (6, 4)
        assert fd.rotation == 180
        assert fd.frame_index == 1
        cap.release.assert_called_once()

    def test_sets_camera_properties(self):
        cap = self._capture([])
        with patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=1, resolution=(640, 480), fps=15))
            source.open()
            source.close()

        cap.set.assert_any_call(cv2.CAP_PROP_FRAME_WIDTH, 640)
        cap.set.assert_any_call(cv2.CAP_PROP_FRAME_HEIGHT, 480)
        cap.set.assert_any_call(cv2.CAP_PROP_FPS, 15)

    def test_open_failure(self):
        cap = MagicMock()
        cap.isOpened.return_value = False
        with patch("observation.opencv_source.cv2.VideoCapture", return_value=cap):
            source = OpenCVSource(OpenCVSourceConfig(device_id=3, max_retries=1))
            with pytest.raises(RuntimeError):
                source.open()


class TestImageFileSource:
    def test_reads_directory_in_order_as_rgb(self, tmp_path):
        red = np.zeros((8, 10, 3), dtype=np.uint8)
        red[..., 0] = 255
        write_rgb(tmp_path / "b.png", red)
        write_rgb(tmp_path / "a.png", np.zeros((5, 5, 3), dtype=np.uint8))
        (tmp_path / "notes.txt").write_text("not an image")

        source = ImageFileSource(ImageFileSourceConfig(paths=[str(tmp_path)], rotation=90))
        assert [p.endswith(n) for p, n in zip(source.files, ["a.png", "b.png"])] == [True, True]

        with source:
            frames = list(source)

        assert len(frames) == 2
        assert frames[1].frame[0, 0].tolist() == [255, 0, 0]
        assert frames[1].source.endswith("b.png")
        assert frames[1].rotation == 90
        assert [f.frame_index for f in frames] == [1, 2]
        assert source.is_finite

    def test_skips_unreadable_files(self, tmp_path):
        bad = tmp_path / "broken.jpg"
        bad.write_bytes(b"not a jpeg")
        good = tmp_path / "good.png"
        write_rgb(good, np.zeros((4, 4, 3), dtype=np.uint8))

        with ImageFileSource(ImageFileSourceConfig(paths=[str(bad), str(good)])) as source:
            frames = list(source)

        assert len(frames) == 1
        assert frames[0].source == str(good)

    def test_no_files(self, tmp_path):
        source = ImageFileSource(ImageFileSourceConfig(paths=[str(tmp_path)]))
        with pytest.raises(RuntimeError):
            source.open()

    def test_list_images_single_file(self, tmp_path):
        assert list_images(str(tmp_path / "x.jpg")) == [str(tmp_path / "x.jpg")]
