"""
Frame dispatcher with at-most-one-in-flight backpressure.

Frames arrive from the capture side at their own rate. submit() sets a
processing gate and hands the frame to a single worker thread; any frame
submitted while the gate is set is dropped, not queued. When the frame's
pipeline run completes (success or failure) its FrameResult is published to
the registered callbacks and only then is the gate cleared.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from models.frame import FrameData
from models.recognition import FrameResult, FrameStatus


ResultCallback = Callable[[FrameResult], None]


class FrameDispatcher:
    """
    Runs a pipeline on a single worker context, dropping frames while busy.

    The pipeline only needs a process(image, frame_index, rotation) method
    returning a FrameResult.

    Example:
        dispatcher = FrameDispatcher(pipeline)
        dispatcher.add_callback(lambda result: print(result.count))
        for frame_data in source:
            dispatcher.submit(frame_data)
        dispatcher.shutdown()
    """

    def __init__(self, pipeline):
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipeline")
        self._lock = threading.Lock()
        self._busy = False
        self._idle = threading.Event()
        self._idle.set()
        self._callbacks: List[ResultCallback] = []
        self._latest: Optional[FrameResult] = None
        self._submitted = 0
        self._processed = 0
        self._dropped = 0
        self._closed = False

    def add_callback(self, callback: ResultCallback) -> None:
        """
        Register a presentation callback, called once per completed frame.

        Callbacks run on the worker thread; presentation code is responsible
        for hopping onto its own thread if it needs one.
        """
        self._callbacks.append(callback)

    @property
    def busy(self) -> bool:
        """Whether a frame is currently in flight."""
        with self._lock:
            return self._busy

    @property
    def latest_result(self) -> Optional[FrameResult]:
        return self._latest

    @property
    def processed_frames(self) -> int:
        return self._processed

    @property
    def dropped_frames(self) -> int:
        return self._dropped

    @property
    def submitted_frames(self) -> int:
        return self._submitted

    def submit(self, frame_data: FrameData) -> bool:
        """
        Offer a frame to the pipeline.

        Returns:
            True if the frame was accepted, False if it was dropped because
            another frame is in flight or the dispatcher is shut down.
        """
        with self._lock:
            if self._closed or self._busy:
                self._dropped += 1
                return False
            self._busy = True
            self._idle.clear()
            self._submitted += 1

        try:
            self._executor.submit(self._run, frame_data)
        except RuntimeError as e:
            logging.warning(f"Dispatcher rejected frame {frame_data.frame_index}: {e}")
            self._release()
            return False
        return True

    def _run(self, frame_data: FrameData) -> None:
        try:
            try:
                result = self.pipeline.process(
                    frame_data.frame,
                    frame_index=frame_data.frame_index,
                    rotation=frame_data.rotation,
                )
            except Exception as e:
                logging.error(f"Pipeline error on frame {frame_data.frame_index}: {e}")
                result = FrameResult(
                    frame_index=frame_data.frame_index,
                    image_size=(frame_data.width, frame_data.height),
                    rotation=frame_data.rotation,
                    status=FrameStatus.FAILED,
                    error=str(e),
                )
            self._publish(result)
        finally:
            self._release()

    def _publish(self, result: FrameResult) -> None:
        self._latest = result
        self._processed += 1
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logging.warning(f"Callback error: {e}")

    def _release(self) -> None:
        with self._lock:
            self._busy = False
            self._idle.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no frame is in flight. Returns False on timeout."""
        return self._idle.wait(timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting frames; optionally wait for the in-flight one."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
