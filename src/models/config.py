"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


DEFAULT_ACCELERATED_PROVIDERS = [
    "CUDAExecutionProvider",
    "CoreMLExecutionProvider",
    "NnapiExecutionProvider",
]


@dataclass
class DetectorConfig:
    """Object detector configuration."""
    model_path: str = "models/yolo11n.onnx"
    input_name: str = "images"
    input_size: int = 640
    conf_threshold: float = 0.80
    iou_threshold: float = 0.45
    class_names: List[str] = field(default_factory=lambda: ["card"])
    class_agnostic: bool = True
    use_acceleration: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectorConfig":
        return cls(
            model_path=d.get("model_path", "models/yolo11n.onnx"),
            input_name=d.get("input_name", "images"),
            input_size=d.get("input_size", 640),
            conf_threshold=d.get("conf_threshold", 0.80),
            iou_threshold=d.get("iou_threshold", 0.45),
            class_names=d.get("class_names", ["card"]),
            class_agnostic=d.get("class_agnostic", True),
            use_acceleration=d.get("use_acceleration", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_path": self.model_path,
            "input_name": self.input_name,
            "input_size": self.input_size,
            "conf_threshold": self.conf_threshold,
            "iou_threshold": self.iou_threshold,
            "class_names": self.class_names,
            "class_agnostic": self.class_agnostic,
            "use_acceleration": self.use_acceleration,
        }


@dataclass
class RecognizerConfig:
    """Embedding model configuration."""
    model_path: str = "models/efficientnet_lite0_1280d.onnx"
    input_name: str = "input"
    input_size: int = 224
    crop_padding: int = 32
    mean: Tuple[float, float, float] = (0.498, 0.498, 0.498)
    std: Tuple[float, float, float] = (0.502, 0.502, 0.502)
    embedding_size: int = 1280
    use_acceleration: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RecognizerConfig":
        return cls(
            model_path=d.get("model_path", "models/efficientnet_lite0_1280d.onnx"),
            input_name=d.get("input_name", "input"),
            input_size=d.get("input_size", 224),
            crop_padding=d.get("crop_padding", 32),
            mean=tuple(d.get("mean", (0.498, 0.498, 0.498))),
            std=tuple(d.get("std", (0.502, 0.502, 0.502))),
            embedding_size=d.get("embedding_size", 1280),
            use_acceleration=d.get("use_acceleration", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_path": self.model_path,
            "input_name": self.input_name,
            "input_size": self.input_size,
            "crop_padding": self.crop_padding,
            "mean": list(self.mean),
            "std": list(self.std),
            "embedding_size": self.embedding_size,
            "use_acceleration": self.use_acceleration,
        }


@dataclass
class MatchingConfig:
    """Reference table and matching thresholds."""
    reference_path: str = "data/data.json"
    threshold: float = 0.75
    # None disables early stop (exhaustive scan)
    early_stop_threshold: Optional[float] = 0.99

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MatchingConfig":
        return cls(
            reference_path=d.get("reference_path", "data/data.json"),
            threshold=d.get("threshold", 0.75),
            early_stop_threshold=d.get("early_stop_threshold", 0.99),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference_path": self.reference_path,
            "threshold": self.threshold,
            "early_stop_threshold": self.early_stop_threshold,
        }


@dataclass
class RuntimeConfig:
    """Inference runtime environment settings."""
    accelerated_providers: List[str] = field(
        default_factory=lambda: list(DEFAULT_ACCELERATED_PROVIDERS)
    )
    intra_op_threads: int = 0
    log_severity: int = 3

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RuntimeConfig":
        return cls(
            accelerated_providers=d.get("accelerated_providers", list(DEFAULT_ACCELERATED_PROVIDERS)),
            intra_op_threads=d.get("intra_op_threads", 0),
            log_severity=d.get("log_severity", 3),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accelerated_providers": self.accelerated_providers,
            "intra_op_threads": self.intra_op_threads,
            "log_severity": self.log_severity,
        }


@dataclass
class CameraConfig:
    """Frame source configuration."""
    device_id: Any = 0
    resolution: List[int] = field(default_factory=lambda: [1280, 720])
    fps: int = 30
    rotation: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [1280, 720]),
            fps=d.get("fps", 30),
            rotation=d.get("rotation", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "rotation": self.rotation,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    recognizer: RecognizerConfig = field(default_factory=RecognizerConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    log_path: str = "logs/card_recognition.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            detector=DetectorConfig.from_dict(d.get("detector", {}) or {}),
            recognizer=RecognizerConfig.from_dict(d.get("recognizer", {}) or {}),
            matching=MatchingConfig.from_dict(d.get("matching", {}) or {}),
            runtime=RuntimeConfig.from_dict(d.get("runtime", {}) or {}),
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            log_path=d.get("log_path", "logs/card_recognition.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging)."""
        return {
            "detector": self.detector.to_dict(),
            "recognizer": self.recognizer.to_dict(),
            "matching": self.matching.to_dict(),
            "runtime": self.runtime.to_dict(),
            "camera": self.camera.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
