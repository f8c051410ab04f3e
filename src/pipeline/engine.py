"""
Pipeline engine for the card recognition system.

This module owns the capture loop: frames are read from an ObservationSource
and offered to the FrameDispatcher, which drops them while a previous frame
is still in flight. Results reach presentation code through callbacks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import cv2

from models.frame import FrameData
from models.recognition import FrameResult
from observation import ObservationSource
from pipeline.dispatcher import FrameDispatcher
from pipeline.overlay import draw_results


@dataclass
class EngineConfig:
    """
    Configuration for the pipeline engine.

    Attributes:
        max_consecutive_failures: Max frame read failures before stopping.
        stats_log_interval: Seconds between status log messages.
        retry_delay: Seconds to wait after a failed read on a live source.
        display: Enable cv2 display window.
        max_frames: Stop after this many frames have been read (None = no limit).
    """
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0
    retry_delay: float = 0.5
    display: bool = False
    max_frames: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EngineConfig":
        return cls(
            max_consecutive_failures=d.get("max_consecutive_failures", 10),
            stats_log_interval=d.get("stats_log_interval", 60.0),
            retry_delay=d.get("retry_delay", 0.5),
            display=d.get("display", False),
            max_frames=d.get("max_frames"),
        )


@dataclass
class EngineStats:
    """Runtime statistics for the engine."""
    frames_read: int = 0
    frames_submitted: int = 0
    start_time: float = field(default_factory=time.time)
    last_stats_log_time: float = field(default_factory=time.time)
    consecutive_failures: int = 0


class PipelineEngine:
    """
    Capture loop feeding a FrameDispatcher.

    Example:
        source = OpenCVSource(OpenCVSourceConfig(device_id=0))
        dispatcher = FrameDispatcher(pipeline)
        engine = PipelineEngine(source, dispatcher, EngineConfig())
        engine.run()
    """

    def __init__(
        self,
        source: ObservationSource,
        dispatcher: FrameDispatcher,
        config: Optional[EngineConfig] = None,
    ):
        self.source = source
        self.dispatcher = dispatcher
        self.config = config or EngineConfig()
        self.stats = EngineStats()
        self._running = False
        self._last_frame: Optional[FrameData] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self) -> None:
        """
        Run the main capture loop.

        Opens the observation source, submits frames until stopped or
        exhausted, waits for the in-flight frame, then closes resources.
        """
        self._running = True
        self.stats = EngineStats()

        try:
            self.source.open()
            logging.info(f"Pipeline started: source={self.source.source_id}")

            while self._running:
                frame_data = self.source.read()

                if frame_data is None:
                    if self.source.is_finite:
                        logging.info("Source exhausted")
                        break
                    self.stats.consecutive_failures += 1
                    if self.stats.consecutive_failures >= self.config.max_consecutive_failures:
                        logging.error(
                            f"Too many consecutive failures ({self.stats.consecutive_failures}), stopping"
                        )
                        break
                    logging.warning(
                        f"Frame read failed ({self.stats.consecutive_failures}/"
                        f"{self.config.max_consecutive_failures})"
                    )
                    time.sleep(self.config.retry_delay)
                    continue

                self.stats.consecutive_failures = 0
                self.stats.frames_read += 1
                self._last_frame = frame_data

                # Finite sources are replayed without drops
                if self.source.is_finite:
                    self.dispatcher.wait_idle()
                if self.dispatcher.submit(frame_data):
                    self.stats.frames_submitted += 1

                if self.config.display:
                    if not self._handle_display():
                        break  # User pressed 'q'

                self._handle_periodic_tasks()

                if self.config.max_frames is not None and self.stats.frames_read >= self.config.max_frames:
                    break

        except KeyboardInterrupt:
            logging.info("Pipeline interrupted by user")
        except Exception as e:
            logging.error(f"Pipeline error: {e}")
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Signal the engine to stop after the current frame."""
        self._running = False

    def _handle_display(self) -> bool:
        """
        Show the latest frame with the latest published result.

        Returns False if user pressed 'q' to quit.
        """
        frame_data = self._last_frame
        result: Optional[FrameResult] = self.dispatcher.latest_result
        image = frame_data.frame
        if result is not None:
            image = draw_results(image, result)
        cv2.imshow("Card Recognition", cv2.cvtColor(image, cv2.COLOR_RGB2BGR))
        key = cv2.waitKey(1) & 0xFF
        return key != ord('q')

    def _handle_periodic_tasks(self) -> None:
        now = time.time()
        if now - self.stats.last_stats_log_time >= self.config.stats_log_interval:
            elapsed = max(now - self.stats.start_time, 1e-6)
            logging.info(
                f"Pipeline stats: read={self.stats.frames_read}, "
                f"processed={self.dispatcher.processed_frames}, "
                f"dropped={self.dispatcher.dropped_frames}, "
                f"fps={self.dispatcher.processed_frames / elapsed:.1f}"
            )
            self.stats.last_stats_log_time = now

    def _cleanup(self) -> None:
        self._running = False

        self.dispatcher.wait_idle()

        try:
            self.source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")

        if self.config.display:
            cv2.destroyAllWindows()

        logging.info(
            f"Pipeline stopped: read={self.stats.frames_read}, "
            f"processed={self.dispatcher.processed_frames}, "
            f"dropped={self.dispatcher.dropped_frames}"
        )


def create_engine_from_config(
    config: Dict[str, Any],
    dispatcher: FrameDispatcher,
    source: Optional[ObservationSource] = None,
    display: bool = False,
) -> PipelineEngine:
    """
    Factory function to create a PipelineEngine from the raw config dict.

    Args:
        config: Full application config dict.
        dispatcher: FrameDispatcher wrapping the inference pipeline.
        source: Frame source; defaults to an OpenCVSource built from the
            camera section.
        display: Enable display window.
    """
    if source is None:
        from observation import OpenCVSource, OpenCVSourceConfig

        camera_cfg = config.get("camera", {}) or {}
        source = OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg, source_id="main-camera"))

    engine_cfg = EngineConfig.from_dict(config.get("engine", {}) or {})
    engine_cfg.display = display or engine_cfg.display
    return PipelineEngine(source, dispatcher, engine_cfg)
