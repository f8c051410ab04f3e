"""
Non-maximum suppression.

Greedy NMS over Detection objects: sort by confidence (stable, descending),
keep the best remaining detection, drop everything overlapping it by more
than the IoU threshold, repeat.
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np

from algorithms.geometry import iou_one_to_many
from models.detection import Detection, detections_to_numpy


def nms(detections: List[Detection], iou_threshold: float) -> List[Detection]:
    """
    Class-agnostic non-maximum suppression.

    Args:
        detections: Candidate detections in any order.
        iou_threshold: Remaining boxes with IoU strictly greater than this
            against a kept box are suppressed.

    Returns:
        Kept detections, highest confidence first. Ties keep input order.
    """
    if not detections:
        return []

    arr = detections_to_numpy(detections)
    boxes = arr[:, :4].astype(np.float64)
    order = np.argsort(-arr[:, 4], kind="stable")

    keep: List[int] = []
    while order.size > 0:
        best = int(order[0])
        keep.append(best)
        rest = order[1:]
        if rest.size == 0:
            break
        overlaps = iou_one_to_many(boxes[best], boxes[rest])
        order = rest[overlaps <= iou_threshold]

    return [detections[i] for i in keep]


def batched_nms(detections: List[Detection], iou_threshold: float) -> List[Detection]:
    """
    Per-class NMS: boxes only suppress boxes of the same class_id.

    Survivors of all classes are merged and re-sorted by confidence
    (descending, stable).
    """
    by_class: Dict[int, List[Detection]] = {}
    for det in detections:
        by_class.setdefault(det.class_id, []).append(det)

    kept: List[Detection] = []
    for class_dets in by_class.values():
        kept.extend(nms(class_dets, iou_threshold))

    return sorted(kept, key=lambda d: d.confidence, reverse=True)
