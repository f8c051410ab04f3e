"""
Geometry and vector helpers.

Small pure functions shared by the detection postprocessor, NMS and the
embedding matcher. Boxes are (x1, y1, x2, y2) in pixel coordinates.
"""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np


Box = Tuple[float, float, float, float]


def xywh_to_xyxy(cx: float, cy: float, w: float, h: float) -> Box:
    """Convert a center/size box to corner form."""
    return (cx - w / 2.0, cy - h / 2.0, cx + w / 2.0, cy + h / 2.0)


def xywh_to_xyxy_array(xywh: np.ndarray) -> np.ndarray:
    """
    Vectorised center/size to corner conversion.

    Args:
        xywh: Array of shape (N, 4) with [cx, cy, w, h] rows.

    Returns:
        Array of shape (N, 4) with [x1, y1, x2, y2] rows.
    """
    xywh = np.asarray(xywh, dtype=np.float32)
    out = np.empty_like(xywh)
    half_w = xywh[:, 2] / 2.0
    half_h = xywh[:, 3] / 2.0
    out[:, 0] = xywh[:, 0] - half_w
    out[:, 1] = xywh[:, 1] - half_h
    out[:, 2] = xywh[:, 0] + half_w
    out[:, 3] = xywh[:, 1] + half_h
    return out


def box_area(box: Sequence[float]) -> float:
    return max(0.0, float(box[2]) - float(box[0])) * max(0.0, float(box[3]) - float(box[1]))


def iou(box1: Sequence[float], box2: Sequence[float]) -> float:
    """
    Intersection over union of two corner-form boxes.

    Union is area1 + area2 - intersection. A non-positive union (two
    zero-area boxes) yields 0.0.
    """
    x1 = max(float(box1[0]), float(box2[0]))
    y1 = max(float(box1[1]), float(box2[1]))
    x2 = min(float(box1[2]), float(box2[2]))
    y2 = min(float(box1[3]), float(box2[3]))

    intersection = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    area1 = (float(box1[2]) - float(box1[0])) * (float(box1[3]) - float(box1[1]))
    area2 = (float(box2[2]) - float(box2[0])) * (float(box2[3]) - float(box2[1]))
    union = area1 + area2 - intersection

    if union <= 0:
        return 0.0
    return intersection / union


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """IoU of one box against an (N, 4) array, same rules as iou()."""
    boxes = np.asarray(boxes, dtype=np.float64)
    if boxes.size == 0:
        return np.zeros((0,), dtype=np.float64)

    x1 = np.maximum(box[0], boxes[:, 0])
    y1 = np.maximum(box[1], boxes[:, 1])
    x2 = np.minimum(box[2], boxes[:, 2])
    y2 = np.minimum(box[3], boxes[:, 3])

    intersection = np.clip(x2 - x1, 0.0, None) * np.clip(y2 - y1, 0.0, None)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - intersection

    out = np.zeros_like(intersection)
    valid = union > 0
    out[valid] = intersection[valid] / union[valid]
    return out


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity in [-1, 1].

    Returns 0.0 (never NaN) when either vector has zero norm or the lengths
    differ; both cases are logged as anomalies.
    """
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    if a.shape != b.shape:
        logging.warning(f"Embedding size mismatch: {a.shape[0]} vs {b.shape[0]}")
        return 0.0

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        logging.warning("Zero norm detected in cosine similarity")
        return 0.0

    similarity = float(np.dot(a, b)) / (norm_a * norm_b)
    return float(min(1.0, max(-1.0, similarity)))
