"""
Challenge evaluators.

Each evaluator is a pure function of the frames and face boxes it is handed
plus fixed thresholds. Capturing the samples and spacing them in time is the
sequence controller's job.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import Config
from .face_locator import is_valid_frame
from .models.results import FaceBox

logger = logging.getLogger(__name__)

Region = Tuple[int, int, int, int]  # x, y, width, height

# Eye band: starts 25% down the face box and spans 25% of its height
EYE_BAND_TOP = 0.25
EYE_BAND_HEIGHT = 0.25
# Mouth band: from 65% to 90% down the face box
MOUTH_BAND_TOP = 0.65
MOUTH_BAND_HEIGHT = 0.25


def _band(box: FaceBox, top: float, height: float,
          frame_width: int, frame_height: int) -> Optional[Region]:
    x0 = max(0, int(np.floor(box.x)))
    y0 = max(0, int(np.floor(box.y + box.height * top)))
    x1 = min(frame_width, x0 + int(np.floor(box.width)))
    y1 = min(frame_height, y0 + int(np.floor(box.height * height)))
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1 - x0, y1 - y0


def eye_band(box: FaceBox, frame_width: int, frame_height: int) -> Optional[Region]:
    """Horizontal band over the eyes/eyelids, clipped to the frame; None if empty."""
    return _band(box, EYE_BAND_TOP, EYE_BAND_HEIGHT, frame_width, frame_height)


def mouth_band(box: FaceBox, frame_width: int, frame_height: int) -> Optional[Region]:
    return _band(box, MOUTH_BAND_TOP, MOUTH_BAND_HEIGHT, frame_width, frame_height)


def changed_fraction(frame_a: np.ndarray, frame_b: np.ndarray, region: Region,
                     noise_floor: float = Config.PIXEL_NOISE_FLOOR) -> float:
    """
    Fraction of pixels in ``region`` whose mean absolute R, G, B difference
    between the two frames exceeds ``noise_floor``.

    Missing or mismatched frames count as no change.
    """
    if not (is_valid_frame(frame_a) and is_valid_frame(frame_b)) or frame_a.shape != frame_b.shape:
        return 0.0

    x, y, w, h = region
    a = frame_a[y:y + h, x:x + w, :3].astype(np.int16)
    b = frame_b[y:y + h, x:x + w, :3].astype(np.int16)
    if a.size == 0:
        return 0.0

    diff = np.abs(a - b).mean(axis=2)
    return float(np.count_nonzero(diff > noise_floor)) / diff.size


def blink_score(frames: Sequence[np.ndarray], box: FaceBox,
                noise_floor: float = Config.PIXEL_NOISE_FLOOR) -> Optional[float]:
    """
    Peak eye-band change across consecutive samples.

    Args:
        frames: samples in capture order (three for the default schedule)
        box: face box found in the first sample

    Returns:
        The largest changed-pixel fraction between consecutive samples, or
        None when no eye band can be extracted.
    """
    if not frames or box is None or not is_valid_frame(frames[0]):
        return None
    height, width = frames[0].shape[:2]
    region = eye_band(box, width, height)
    if region is None:
        return None

    scores = [changed_fraction(a, b, region, noise_floor) for a, b in zip(frames, frames[1:])]
    return max(scores) if scores else 0.0


def evaluate_blink(frames: Sequence[np.ndarray], box: Optional[FaceBox],
                   noise_floor: float = Config.PIXEL_NOISE_FLOOR,
                   change_ratio: float = Config.BLINK_CHANGE_RATIO) -> bool:
    """Eyelid motion shows up as a short spike of pixel change inside the eye band."""
    score = blink_score(frames, box, noise_floor)
    if score is None:
        return False
    logger.debug(f"Blink eye-band score={score:.3f}, threshold={change_ratio}")
    return score > change_ratio


def evaluate_blink_coarse(box_a: Optional[FaceBox], box_b: Optional[FaceBox],
                          min_delta: float = Config.BLINK_BOX_DELTA_PX) -> bool:
    """Coarse blink: the face box changes size by more than ``min_delta`` pixels."""
    if box_a is None or box_b is None:
        return False
    delta = abs(box_b.width - box_a.width) + abs(box_b.height - box_a.height)
    return delta > min_delta


def evaluate_turn(box_a: Optional[FaceBox], box_b: Optional[FaceBox], direction: str,
                  threshold: float = Config.MOVEMENT_THRESHOLD_PX) -> bool:
    """
    Horizontal head movement between two samples.

    Args:
        direction: 'left' (dx < -threshold) or 'right' (dx > threshold)
    """
    if box_a is None or box_b is None:
        return False
    dx = box_b.x - box_a.x
    if direction == 'left':
        return dx < -threshold
    if direction == 'right':
        return dx > threshold
    raise ValueError(f"Unknown direction: {direction}")


def evaluate_smile(frame_a: np.ndarray, frame_b: np.ndarray,
                   box_a: Optional[FaceBox], box_b: Optional[FaceBox],
                   noise_floor: float = Config.PIXEL_NOISE_FLOOR,
                   change_ratio: float = Config.SMILE_CHANGE_RATIO) -> bool:
    # Both samples need a face, otherwise a frame swap could pass as a smile
    if box_a is None or box_b is None or not is_valid_frame(frame_a):
        return False
    height, width = frame_a.shape[:2]
    region = mouth_band(box_a, width, height)
    if region is None:
        return False
    score = changed_fraction(frame_a, frame_b, region, noise_floor)
    logger.debug(f"Smile mouth-band score={score:.3f}, threshold={change_ratio}")
    return score > change_ratio
