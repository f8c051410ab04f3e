"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
detector:
  model_path: "models/yolo11n.onnx"
  input_size: 640
  conf_threshold: 0.80
  iou_threshold: 0.45

recognizer:
  model_path: "models/efficientnet_lite0_1280d.onnx"
  embedding_size: 1280

matching:
  reference_path: "data/data.json"
  threshold: 0.75
  early_stop_threshold: 0.99

camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "detector": {
            "model_path": "models/yolo11n.onnx",
            "input_size": 640,
            "conf_threshold": 0.8,
            "iou_threshold": 0.45,
            "class_names": ["card"],
        },
        "recognizer": {
            "model_path": "models/efficientnet_lite0_1280d.onnx",
            "input_size": 224,
            "crop_padding": 32,
            "mean": [0.498, 0.498, 0.498],
            "std": [0.502, 0.502, 0.502],
            "embedding_size": 1280,
        },
        "matching": {
            "reference_path": "data/data.json",
            "threshold": 0.75,
            "early_stop_threshold": 0.99,
        },
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
            "rotation": 0,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
