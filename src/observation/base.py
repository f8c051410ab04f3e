"""
Frame sources for the card recognition pipeline.

A source produces RGB images (cameras, video files, still images) and the
base class turns them into numbered FrameData. Rotation is attached as
metadata only; nothing here rotates pixels.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np

from models.frame import FrameData


# (RGB image, origin label) as returned by ObservationSource._grab
Grab = Tuple[np.ndarray, str]


@dataclass
class ObservationConfig:
    """
    Settings shared by all frame sources.

    Attributes:
        source_id: Name reported in FrameData.source (e.g. "camera").
        resolution: Requested (width, height); None keeps the device default.
        fps: Requested frame rate; None keeps the device default.
        rotation: Clockwise degrees (0/90/180/270) the display should apply.
        metadata: Free-form extra settings.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None
    rotation: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Base class for frame sources.

    Subclasses implement _open, _grab and _release; open/read/close handle
    state and frame numbering. Frame indices start at 1 after every open().

    Usage:
        with ImageFileSource(config) as source:
            for frame_data in source:
                pipeline.process(frame_data.frame, frame_data.frame_index)
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Index of the last frame returned by read()."""
        return self._frame_index

    @property
    def is_finite(self) -> bool:
        """Whether a None from read() means the input is used up (files) rather than a glitch (cameras)."""
        return False

    def open(self) -> None:
        """
        Acquire the underlying device or files. No-op if already open.

        Raises:
            RuntimeError: If the source cannot be opened.
        """
        if self._is_open:
            return
        self._open()
        self._frame_index = 0
        self._is_open = True

    def read(self) -> Optional[FrameData]:
        """Next frame as RGB FrameData, or None when nothing is available."""
        if not self._is_open:
            return None
        grabbed = self._grab()
        if grabbed is None:
            return None

        image, origin = grabbed
        self._frame_index += 1
        return FrameData.from_numpy(
            image,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=origin,
            rotation=self._config.rotation,
        )

    def close(self) -> None:
        """Release resources. Safe to call more than once."""
        self._release()
        self._is_open = False

    @abstractmethod
    def _open(self) -> None:
        ...

    @abstractmethod
    def _grab(self) -> Optional[Grab]:
        """Return the next (RGB image, origin) pair, or None."""
        ...

    @abstractmethod
    def _release(self) -> None:
        ...

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")
        frame_data = self.read()
        while frame_data is not None:
            yield frame_data
            frame_data = self.read()
