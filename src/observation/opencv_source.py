"""
Camera and video file capture through cv2.VideoCapture.

device_id is either a camera index (int) or a path to a video file (str).
Captured BGR frames are handed on as RGB.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import cv2

from .base import Grab, ObservationConfig, ObservationSource


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Attributes:
        device_id: Camera index or video file path.
        buffer_size: Driver-side frame buffer for cameras; 1 keeps latency low.
        max_retries: Open attempts before giving up.
    """
    device_id: Union[int, str] = 0
    buffer_size: int = 1
    max_retries: int = 3

    @classmethod
    def from_camera_config(cls, camera_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """Build from the `camera` section of config.yaml."""
        resolution = camera_cfg.get("resolution")
        return cls(
            source_id=source_id,
            device_id=camera_cfg.get("device_id", 0),
            resolution=tuple(resolution) if resolution else None,
            fps=camera_cfg.get("fps"),
            rotation=camera_cfg.get("rotation", 0) or 0,
            buffer_size=camera_cfg.get("buffer_size", 1),
            max_retries=camera_cfg.get("max_retries", 3),
        )


class OpenCVSource(ObservationSource):
    """
    Frame source backed by cv2.VideoCapture.

    Example:
        source = OpenCVSource(OpenCVSourceConfig(device_id=0, resolution=(1280, 720)))
        source.open()
        frame_data = source.read()
        source.close()
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._capture_config = config
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def device_id(self) -> Union[int, str]:
        return self._capture_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    @property
    def is_finite(self) -> bool:
        return self.is_file

    def _open(self) -> None:
        attempts = max(1, self._capture_config.max_retries)
        for attempt in range(1, attempts + 1):
            cap = cv2.VideoCapture(self.device_id)
            if cap.isOpened():
                self._cap = cap
                break
            cap.release()
            if attempt == attempts:
                raise RuntimeError(f"Failed to open device {self.device_id} after {attempts} attempts")
            backoff = min(2 ** attempt, 10)
            logging.warning(
                f"Failed to open device {self.device_id} (attempt {attempt}/{attempts}), "
                f"retrying in {backoff}s"
            )
            time.sleep(backoff)

        if isinstance(self.device_id, int):
            self._apply_camera_settings()
        logging.info(f"Capture opened: source_id={self.source_id}, device={self.device_id}")

    def _apply_camera_settings(self) -> None:
        cfg = self._capture_config
        if cfg.resolution:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.resolution[0])
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.resolution[1])
        if cfg.fps:
            self._cap.set(cv2.CAP_PROP_FPS, cfg.fps)
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)
        logging.info(
            f"Camera settings: {self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)}x"
            f"{self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)} @ {self._cap.get(cv2.CAP_PROP_FPS)} fps"
        )

    def _grab(self) -> Optional[Grab]:
        if self._cap is None:
            return None
        ok, bgr = self._cap.read()
        if not ok or bgr is None:
            if self.is_file:
                logging.info(f"End of video: {self.device_id}")
            else:
                logging.warning("Camera returned no frame")
            return None
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB), self.source_id

    def _release(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logging.info(f"Capture released: source_id={self.source_id}")
