import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .config import Config
from .exceptions import DetectorUnavailableError
from .models.results import FaceBox, SupportedCapabilities

logger = logging.getLogger(__name__)

# The platform detector is optional; without it every frame goes through the heuristic.
try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = hasattr(mp, "solutions") and hasattr(mp.solutions, "face_detection")
except ImportError as e:
    mp = None
    MEDIAPIPE_AVAILABLE = False
    logger.warning(f"MediaPipe not available: {e}. Falling back to the luminance heuristic.")

SUPPORTED = SupportedCapabilities(face_detector=MEDIAPIPE_AVAILABLE)

# Central region: 60% x 60%, 20% in from every edge
CENTER_OFFSET = 0.2
CENTER_SIZE = 0.6


def is_valid_frame(frame: Any) -> bool:
    """True for a non-empty (H, W, C>=3) pixel array."""
    return (isinstance(frame, np.ndarray) and frame.ndim == 3 and frame.shape[2] >= 3
            and frame.shape[0] > 0 and frame.shape[1] > 0)


def clip_box(box: FaceBox, frame_width: int, frame_height: int) -> Optional[FaceBox]:
    """Clip a box into frame bounds; None when nothing of it remains."""
    x0 = max(0, int(np.floor(box.x)))
    y0 = max(0, int(np.floor(box.y)))
    x1 = min(frame_width, int(np.floor(box.x + box.width)))
    y1 = min(frame_height, int(np.floor(box.y + box.height)))
    if x1 <= x0 or y1 <= y0:
        return None
    return FaceBox(x0, y0, x1 - x0, y1 - y0)


def central_region(frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
    cx = int(frame_width * CENTER_OFFSET)
    cy = int(frame_height * CENTER_OFFSET)
    cw = int(frame_width * CENTER_SIZE)
    ch = int(frame_height * CENTER_SIZE)
    return cx, cy, cw, ch


def luminance_variances(frame: np.ndarray) -> Tuple[float, List[float]]:
    """
    Luminance variance of the central region and of the surrounding strips.

    Luminance is the plain average of R, G and B. The four strips (top and
    bottom across the full width, left and right beside the central rows)
    do not overlap and together cover everything outside the central region.
    Empty strips are left out.

    Returns:
        (central variance, list of edge variances)
    """
    height, width = frame.shape[:2]
    luminance = frame[..., :3].astype(np.float64).mean(axis=2)
    cx, cy, cw, ch = central_region(width, height)

    center = luminance[cy:cy + ch, cx:cx + cw]
    strips = [
        luminance[:cy, :],
        luminance[cy + ch:, :],
        luminance[cy:cy + ch, :cx],
        luminance[cy:cy + ch, cx + cw:],
    ]
    edge_variances = [float(np.var(strip)) for strip in strips if strip.size > 0]
    return float(np.var(center)), edge_variances


def contrast_exceeds(central_variance: float, edge_variances: List[float], ratio: float) -> bool:
    """Strict comparison: a central variance equal to ratio * mean edge variance is not a face."""
    if not edge_variances:
        return False
    return central_variance > ratio * (sum(edge_variances) / len(edge_variances))


class FaceLocator(ABC):
    """Locates at most one face in an RGBA frame."""

    @abstractmethod
    def locate(self, frame: np.ndarray) -> Optional[FaceBox]:
        """
        Args:
            frame: (H, W, 4) RGBA pixel array

        Returns:
            A FaceBox fully inside the frame, or None. Never raises.
        """
        pass

    def close(self) -> None:
        """Release detector resources, if any."""
        pass


class HeuristicFaceLocator(FaceLocator):
    """
    Face presence from local contrast: a face in the middle of the frame has a
    higher luminance variance than the flat background around it.
    """

    def __init__(self, contrast_ratio: float = Config.CONTRAST_RATIO):
        self.contrast_ratio = contrast_ratio

    def locate(self, frame: np.ndarray) -> Optional[FaceBox]:
        if not is_valid_frame(frame):
            return None

        height, width = frame.shape[:2]
        cx, cy, cw, ch = central_region(width, height)
        if cw == 0 or ch == 0:
            return None

        central_variance, edge_variances = luminance_variances(frame)
        if not contrast_exceeds(central_variance, edge_variances, self.contrast_ratio):
            return None
        return FaceBox(cx, cy, cw, ch)


class DetectorFaceLocator(FaceLocator):
    """
    Delegates to a platform detector and falls back to another locator when
    the detector is missing, fails, or finds nothing.
    """

    def __init__(self, detector, fallback: FaceLocator = None):
        self.detector = detector
        self.fallback = fallback or HeuristicFaceLocator()

    def locate(self, frame: np.ndarray) -> Optional[FaceBox]:
        if not is_valid_frame(frame):
            return None

        height, width = frame.shape[:2]
        try:
            detections = self.detector.detect(frame)
            box = clip_box(_to_face_box(detections[0]["bounding_box"]), width, height) if detections else None
        except Exception as e:
            # DetectorUnavailable: never surfaced to the sequence
            logger.debug(f"Face detector failed, using fallback: {e}")
            box = None

        if box is not None:
            return box
        return self.fallback.locate(frame)

    def close(self) -> None:
        close = getattr(self.detector, "close", None)
        if close is not None:
            close()


def _to_face_box(value: Any) -> FaceBox:
    if isinstance(value, FaceBox):
        return value
    if isinstance(value, dict):
        return FaceBox(value["x"], value["y"], value["width"], value["height"])
    x, y, width, height = value
    return FaceBox(x, y, width, height)


class MediaPipeFaceDetector:
    """
    Platform detector backed by MediaPipe Face Detection.

    ``detect`` follows the detector capability contract: a list of
    ``{"bounding_box": FaceBox}`` in pixel coordinates, best match first.
    """

    def __init__(self, config: Config = None):
        self.config = config or Config()
        self.face_detection = None

    def load_model(self) -> None:
        if self.face_detection is not None:
            return
        if not MEDIAPIPE_AVAILABLE:
            raise DetectorUnavailableError("mediapipe face_detection is not installed")

        detection_config = self.config.get_mediapipe_face_detection_config()
        self.face_detection = mp.solutions.face_detection.FaceDetection(
            model_selection=detection_config['model_selection'],
            min_detection_confidence=detection_config['min_detection_confidence']
        )
        logger.info("MediaPipe Face Detection model loaded")

    def detect(self, image: np.ndarray) -> List[Dict[str, FaceBox]]:
        self.load_model()

        h, w = image.shape[:2]
        rgb_image = np.ascontiguousarray(image[..., :3])
        results = self.face_detection.process(rgb_image)
        if not results.detections:
            return []

        detections = sorted(results.detections, key=lambda d: d.score[0], reverse=True)
        faces = []
        for detection in detections:
            bbox = detection.location_data.relative_bounding_box
            box = clip_box(FaceBox(int(bbox.xmin * w), int(bbox.ymin * h),
                                   int(bbox.width * w), int(bbox.height * h)), w, h)
            if box is not None:
                faces.append({"bounding_box": box})
        return faces

    def close(self) -> None:
        if self.face_detection is not None:
            self.face_detection.close()
            self.face_detection = None


def create_face_locator(config: Config = None,
                        capabilities: SupportedCapabilities = SUPPORTED) -> FaceLocator:
    """
    Pick the locator strategy once, from the capability flag.

    Each call builds a fresh locator, so concurrent runs never share detector state.
    """
    config = config or Config()
    heuristic = HeuristicFaceLocator(config.CONTRAST_RATIO)
    if capabilities.face_detector:
        return DetectorFaceLocator(MediaPipeFaceDetector(config), heuristic)
    return heuristic
