"""
Card detector: letterbox -> detector session -> decode + NMS.
"""

from __future__ import annotations

import logging
import time
from typing import List

import numpy as np

from inference.session import ModelSession
from models.config import DetectorConfig
from models.detection import Detection

from .postprocess import postprocess
from .preprocess import preprocess_for_detector


class CardDetector:
    """Detector returning detections in original-image pixel space."""

    def __init__(self, session: ModelSession, cfg: DetectorConfig):
        self.session = session
        self.cfg = cfg

    @property
    def is_ready(self) -> bool:
        return self.session.is_ready

    def detect(self, image: np.ndarray) -> List[Detection]:
        """
        Detect objects in an (H, W, 3) uint8 RGB image.

        Raises:
            DegenerateInputError: If the image has a zero dimension.
            InferenceExecutionError: If the model run or decoding fails.
        """
        start = time.perf_counter()
        tensor, info = preprocess_for_detector(image, self.cfg.input_size)
        preprocess_ms = (time.perf_counter() - start) * 1000.0

        t0 = time.perf_counter()
        output = self.session.run(tensor)
        inference_ms = (time.perf_counter() - t0) * 1000.0

        t0 = time.perf_counter()
        detections = postprocess(
            output,
            info,
            conf_threshold=self.cfg.conf_threshold,
            iou_threshold=self.cfg.iou_threshold,
            class_names=self.cfg.class_names,
            class_agnostic=self.cfg.class_agnostic,
        )
        postprocess_ms = (time.perf_counter() - t0) * 1000.0

        logging.debug(
            f"Detector: preprocess={preprocess_ms:.1f}ms inference={inference_ms:.1f}ms "
            f"postprocess={postprocess_ms:.1f}ms detections={len(detections)}"
        )
        for i, det in enumerate(detections):
            logging.debug(
                f"Detection {i}: {det.class_name}, conf={det.confidence:.3f}, "
                f"bbox={tuple(round(v, 1) for v in det.bbox.as_tuple())}"
            )
        return detections
