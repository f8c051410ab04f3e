"""
Card Recognition - Detection Module

Letterbox preprocessing, detector output decoding and the card detector.
"""

from .detector import CardDetector
from .preprocess import LetterboxInfo, compute_letterbox, preprocess_for_detector
from .postprocess import decode_predictions, postprocess

__all__ = [
    'CardDetector',
    'LetterboxInfo',
    'compute_letterbox',
    'preprocess_for_detector',
    'decode_predictions',
    'postprocess',
]
