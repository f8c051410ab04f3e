"""
Detector output decoding.

The detector emits a (1, 4 + C, N) tensor: for each of N proposals the box
as (cx, cy, w, h) in letterboxed input space followed by C class scores.
Decoding filters by confidence, converts to corners, undoes the letterbox,
clamps to the original image and applies NMS.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from algorithms.geometry import xywh_to_xyxy_array
from algorithms.nms import batched_nms, nms
from inference.errors import InferenceExecutionError
from models.detection import Detection

from .preprocess import LetterboxInfo, compute_letterbox


def _as_proposals(output: np.ndarray) -> np.ndarray:
    """Reshape raw output to (4 + C, N)."""
    arr = np.asarray(output, dtype=np.float32)
    if arr.ndim == 3:
        if arr.shape[0] != 1:
            raise InferenceExecutionError(f"Expected batch size 1, got output shape {arr.shape}")
        arr = arr[0]
    if arr.ndim != 2 or arr.shape[0] < 5:
        raise InferenceExecutionError(f"Unexpected detector output shape {np.shape(output)}")
    return arr


def decode_predictions(
    output: np.ndarray,
    info: LetterboxInfo,
    conf_threshold: float,
    class_names: Optional[Sequence[str]] = None,
) -> List[Detection]:
    """
    Decode raw detector output into Detections in original-image pixels.

    Args:
        output: Raw output of shape (1, 4 + C, N) or (4 + C, N).
        info: Letterbox geometry from preprocessing.
        conf_threshold: Proposals with confidence below this are discarded.
        class_names: Names indexed by class id.

    Returns:
        Detections in proposal order (no NMS applied). Boxes with no area
        left after clamping to the image are dropped.
    """
    proposals = _as_proposals(output)
    scores = proposals[4:, :]
    if scores.shape[0] == 1:
        confidences = scores[0]
        class_ids = np.zeros(confidences.shape, dtype=np.int64)
    else:
        class_ids = np.argmax(scores, axis=0)
        confidences = scores[class_ids, np.arange(scores.shape[1])]

    keep = confidences >= conf_threshold
    if not np.any(keep):
        return []

    boxes = xywh_to_xyxy_array(proposals[:4, keep].T)

    # Recompute the geometry from the original size exactly as preprocessing did
    geometry = compute_letterbox(info.original_width, info.original_height, info.size)
    boxes[:, 0], boxes[:, 1] = geometry.to_original(boxes[:, 0], boxes[:, 1])
    boxes[:, 2], boxes[:, 3] = geometry.to_original(boxes[:, 2], boxes[:, 3])
    boxes[:, [0, 2]] = np.clip(boxes[:, [0, 2]], 0.0, float(geometry.original_width))
    boxes[:, [1, 3]] = np.clip(boxes[:, [1, 3]], 0.0, float(geometry.original_height))

    # Boxes lying entirely outside the image collapse to zero width or height
    visible = (boxes[:, 2] > boxes[:, 0]) & (boxes[:, 3] > boxes[:, 1])
    if not np.all(visible):
        logging.debug(f"Dropped {int(np.sum(~visible))} proposal(s) outside the image")

    names = list(class_names or [])
    detections: List[Detection] = []
    for (x1, y1, x2, y2), conf, cls in zip(boxes[visible], confidences[keep][visible], class_ids[keep][visible]):
        class_id = int(cls)
        detections.append(
            Detection.from_xyxy(
                float(x1),
                float(y1),
                float(x2),
                float(y2),
                confidence=float(conf),
                class_id=class_id,
                class_name=names[class_id] if class_id < len(names) else str(class_id),
            )
        )
    return detections


def postprocess(
    output: np.ndarray,
    info: LetterboxInfo,
    conf_threshold: float = 0.25,
    iou_threshold: float = 0.45,
    class_names: Optional[Sequence[str]] = None,
    class_agnostic: bool = True,
) -> List[Detection]:
    """
    Decode detector output and apply NMS.

    Args:
        class_agnostic: Global NMS across classes when True, per-class NMS
            otherwise.

    Returns:
        Detections in NMS survival order, highest confidence first.
    """
    candidates = decode_predictions(output, info, conf_threshold, class_names)
    if class_agnostic:
        kept = nms(candidates, iou_threshold)
    else:
        kept = batched_nms(candidates, iou_threshold)

    logging.debug(f"Postprocess: {len(candidates)} candidates -> {len(kept)} after NMS")
    return kept
