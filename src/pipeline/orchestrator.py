"""
Per-frame inference pipeline.

InferencePipeline owns the detector and recognizer sessions and the
reference table, and turns one image into one FrameResult:

    letterbox -> detector -> decode/NMS -> per box: crop -> recognizer -> match

Readiness policy:
- Detector not ready: the frame is skipped, no inference runs.
- Recognizer not ready or no reference table: detection still runs, the
  recognition stage is disabled for the whole frame (never run partially).

Failures are frame-scoped: degenerate crops skip one detection, anything
else abandons the frame with an empty FAILED result.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import numpy as np

from detection.detector import CardDetector
from inference.errors import DegenerateInputError
from inference.session import ModelSession
from models.config import Config
from models.detection import Detection
from models.recognition import (
    FrameResult,
    FrameStatus,
    FrameTimings,
    MatchResult,
    RecognitionResult,
)
from models.status import PipelineStatus
from recognition.matcher import EmbeddingMatcher
from recognition.preprocess import crop_region
from recognition.recognizer import EmbeddingExtractor
from recognition.reference import ReferenceTable


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class InferencePipeline:
    """
    Detection-to-recognition pipeline for single frames.

    Not reentrant: callers must not run process() concurrently (the
    FrameDispatcher guarantees at most one frame in flight).

    Example:
        pipeline = InferencePipeline(detector_session, recognizer_session, table, config)
        pipeline.initialize()
        result = pipeline.process(image)
    """

    def __init__(
        self,
        detector_session: ModelSession,
        recognizer_session: ModelSession,
        reference_table: Optional[ReferenceTable],
        config: Config,
    ):
        self.config = config
        self.detector_session = detector_session
        self.recognizer_session = recognizer_session
        self.detector = CardDetector(detector_session, config.detector)
        self.extractor = EmbeddingExtractor(recognizer_session, config.recognizer)
        self.matcher = EmbeddingMatcher(reference_table, config.matching)

    @property
    def reference_table(self) -> Optional[ReferenceTable]:
        return self.matcher.table

    def set_reference_table(self, table: Optional[ReferenceTable]) -> None:
        """Swap in a (re)loaded table; takes effect from the next frame."""
        self.matcher = EmbeddingMatcher(table, self.config.matching)

    def initialize(self) -> PipelineStatus:
        """Initialize both sessions; idempotent. Returns the readiness snapshot."""
        self.detector_session.initialize()
        self.recognizer_session.initialize()
        status = self.status()
        logging.info(f"Pipeline status: {status.status_text()}")
        return status

    def status(self) -> PipelineStatus:
        table = self.matcher.table
        return PipelineStatus(
            detector=self.detector_session.status(),
            recognizer=self.recognizer_session.status(),
            reference_loaded=self.matcher.is_loaded,
            category_count=table.category_count if table is not None else 0,
            embedding_count=table.embedding_count if table is not None else 0,
        )

    @property
    def recognition_enabled(self) -> bool:
        return self.recognizer_session.is_ready and self.matcher.is_loaded

    def process(self, image: np.ndarray, frame_index: int = 0, rotation: int = 0) -> FrameResult:
        """
        Run the full pipeline on one (H, W, 3) uint8 RGB image.

        Never raises; failures are reported through FrameResult.status.
        """
        height, width = image.shape[:2]
        base = dict(frame_index=frame_index, image_size=(width, height), rotation=rotation)

        if not self.detector.is_ready:
            logging.debug(f"Frame {frame_index} skipped: detector not ready")
            return FrameResult(status=FrameStatus.SKIPPED, **base)

        recognize = self.recognition_enabled
        start = time.perf_counter()
        try:
            t0 = time.perf_counter()
            detections = self.detector.detect(image)
            detection_ms = _elapsed_ms(t0)

            t0 = time.perf_counter()
            if recognize and detections:
                results = self._recognize(image, detections)
            else:
                results = [RecognitionResult(detection=d) for d in detections]
            recognition_ms = _elapsed_ms(t0) if recognize and detections else 0.0
        except Exception as e:
            logging.error(f"Error processing frame {frame_index}: {e}")
            return FrameResult(
                status=FrameStatus.FAILED,
                recognition_enabled=recognize,
                timings=FrameTimings(total_ms=_elapsed_ms(start)),
                error=str(e),
                **base,
            )

        timings = FrameTimings(
            detection_ms=detection_ms,
            recognition_ms=recognition_ms,
            total_ms=_elapsed_ms(start),
        )
        status = FrameStatus.OK if detections else FrameStatus.EMPTY
        logging.debug(
            f"Frame {frame_index}: detected {len(detections)} in {detection_ms:.1f}ms, "
            f"recognized {sum(r.is_match for r in results)} in {recognition_ms:.1f}ms"
        )
        return FrameResult(
            results=tuple(results),
            status=status,
            recognition_enabled=recognize,
            timings=timings,
            **base,
        )

    def _recognize(self, image: np.ndarray, detections: List[Detection]) -> List[RecognitionResult]:
        results: List[RecognitionResult] = []
        for det in detections:
            try:
                crop = crop_region(image, det.bbox)
                embedding = self.extractor.extract(crop)
            except DegenerateInputError as e:
                logging.debug(f"Skipping detection {det.bbox.as_tuple()}: {e}")
                continue

            match: MatchResult = self.matcher.match(embedding)
            results.append(RecognitionResult(detection=det, match=match))
            logging.debug(
                f"Recognized: {match.label} (det={det.confidence:.3f}, rec={match.similarity:.3f})"
            )
        return results

    def close(self) -> None:
        self.detector_session.close()
        self.recognizer_session.close()
