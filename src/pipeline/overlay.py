"""
Result overlay rendering for the CLI and tools.

Draws on a copy of an RGB image; the pipeline core never draws.
"""

from __future__ import annotations

import cv2
import numpy as np

from models.recognition import FrameResult


# Colors (RGB)
COLOR_MATCH = (0, 200, 0)
COLOR_UNKNOWN = (255, 165, 0)
COLOR_TEXT = (255, 255, 255)


def format_label(result) -> str:
    """'category det% rec%' label for one RecognitionResult."""
    return (
        f"{result.category} "
        f"{result.detection_confidence * 100:.0f}% / {result.similarity * 100:.0f}%"
    )


def draw_results(image: np.ndarray, frame_result: FrameResult) -> np.ndarray:
    """Return a copy of image with boxes, labels and timings drawn on it."""
    canvas = image.copy()
    font = cv2.FONT_HERSHEY_SIMPLEX

    for result in frame_result.results:
        x1, y1, x2, y2 = result.bbox.as_int_tuple()
        color = COLOR_MATCH if result.is_match else COLOR_UNKNOWN
        cv2.rectangle(canvas, (x1, y1), (x2, y2), color, 2)

        label = format_label(result)
        (tw, th), _ = cv2.getTextSize(label, font, 0.5, 1)
        top = max(th + 6, y1)
        cv2.rectangle(canvas, (x1, top - th - 6), (x1 + tw + 4, top), color, -1)
        cv2.putText(canvas, label, (x1 + 2, top - 4), font, 0.5, COLOR_TEXT, 1)

    timings = frame_result.timings
    summary = (
        f"det {timings.detection_ms:.0f}ms  rec {timings.recognition_ms:.0f}ms  "
        f"n={frame_result.count}"
    )
    cv2.putText(canvas, summary, (8, 20), font, 0.6, COLOR_TEXT, 2)
    return canvas
