from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import face_frame, flat_frame

from proof_of_life import face_locator
from proof_of_life.exceptions import DetectorUnavailableError
from proof_of_life.face_locator import (
    DetectorFaceLocator,
    HeuristicFaceLocator,
    MediaPipeFaceDetector,
    contrast_exceeds,
    create_face_locator,
    luminance_variances,
)
from proof_of_life.models.results import FaceBox, SupportedCapabilities


def checkerboard_frame(center_amplitude, edge_amplitude, size=100):
    """Checkerboard everywhere; the central region uses a different amplitude."""
    yy, xx = np.mgrid[0:size, 0:size]
    pattern = ((yy + xx) % 2).astype(np.uint8)
    luminance = pattern * edge_amplitude
    lo, hi = int(size * 0.2), int(size * 0.2) + int(size * 0.6)
    luminance[lo:hi, lo:hi] = pattern[lo:hi, lo:hi] * center_amplitude
    frame = np.zeros((size, size, 4), dtype=np.uint8)
    frame[..., :3] = luminance[..., None]
    frame[..., 3] = 255
    return frame


# --- Heuristic locator ---

def test_flat_frame_has_no_face():
    assert HeuristicFaceLocator().locate(flat_frame()) is None


def test_high_contrast_center_is_a_face():
    box = HeuristicFaceLocator().locate(face_frame(100, 100))

    assert box == FaceBox(20, 20, 60, 60)


def test_face_box_for_vga_frame():
    box = HeuristicFaceLocator().locate(face_frame(640, 480))

    assert box == FaceBox(128, 96, 384, 288)
    assert box.fits(640, 480)


def test_strips_do_not_overlap_and_cover_the_border():
    frame = checkerboard_frame(40, 20)

    central, edges = luminance_variances(frame)

    assert central == 400.0
    assert edges == [100.0, 100.0, 100.0, 100.0]


def test_variance_exactly_at_ratio_is_not_a_face():
    # central 400 == 4.0 * mean edge 100: strict comparison rejects it
    frame = checkerboard_frame(40, 20)

    assert HeuristicFaceLocator(contrast_ratio=4.0).locate(frame) is None
    assert HeuristicFaceLocator(contrast_ratio=3.99).locate(frame) == FaceBox(20, 20, 60, 60)


@pytest.mark.parametrize("central, edges, ratio, expected", [
    (125.0, [100.0, 100.0, 100.0, 100.0], 1.25, False),
    (125.5, [100.0, 100.0, 100.0, 100.0], 1.25, True),
    (0.0, [0.0, 0.0, 0.0, 0.0], 1.15, False),
    (1.0, [0.0, 0.0, 0.0, 0.0], 1.15, True),
    (500.0, [], 1.15, False),
])
def test_contrast_threshold_is_strict(central, edges, ratio, expected):
    assert contrast_exceeds(central, edges, ratio) is expected


def test_heuristic_is_deterministic():
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, size=(120, 160, 4), dtype=np.uint8)
    locator = HeuristicFaceLocator()

    results = [locator.locate(frame) for _ in range(5)]

    assert all(result == results[0] for result in results)


@pytest.mark.parametrize("shape", [(1, 1, 4), (5, 7, 4), (3, 640, 4), (480, 640, 4), (101, 37, 4)])
def test_located_box_is_inside_frame(shape):
    rng = np.random.default_rng(shape[0] * shape[1])
    frame = rng.integers(0, 256, size=shape, dtype=np.uint8)
    frame[shape[0] // 4:3 * shape[0] // 4, shape[1] // 4:3 * shape[1] // 4] = 0

    box = HeuristicFaceLocator().locate(frame)

    assert box is None or box.fits(shape[1], shape[0])


@pytest.mark.parametrize("frame", [
    None,
    np.zeros((0, 0, 4), dtype=np.uint8),
    np.zeros((10, 0, 4), dtype=np.uint8),
    np.zeros((10, 10), dtype=np.uint8),
    "not a frame",
])
def test_malformed_frames_yield_none(frame):
    assert HeuristicFaceLocator().locate(frame) is None
    assert DetectorFaceLocator(MagicMock()).locate(frame) is None


# --- Detector strategy ---

def test_detector_result_is_used():
    detector = MagicMock()
    detector.detect.return_value = [{"bounding_box": FaceBox(10, 12, 50, 40)}]

    box = DetectorFaceLocator(detector).locate(flat_frame())

    assert box == FaceBox(10, 12, 50, 40)


def test_detector_box_is_clipped_to_frame():
    detector = MagicMock()
    detector.detect.return_value = [{"bounding_box": {"x": -10, "y": 90, "width": 50, "height": 50}}]

    box = DetectorFaceLocator(detector).locate(flat_frame(100, 100))

    assert box == FaceBox(0, 90, 40, 10)


@pytest.mark.parametrize("outcome", [
    RuntimeError("detector crashed"),
    DetectorUnavailableError("not installed"),
    [],
    None,
    [{"confidence": 0.9}],
])
def test_detector_failures_fall_back_to_heuristic(outcome):
    detector = MagicMock()
    if isinstance(outcome, Exception):
        detector.detect.side_effect = outcome
    else:
        detector.detect.return_value = outcome
    locator = DetectorFaceLocator(detector, HeuristicFaceLocator())

    assert locator.locate(face_frame()) == FaceBox(20, 20, 60, 60)
    assert locator.locate(flat_frame()) is None


def test_mediapipe_detector_without_mediapipe_falls_back():
    with patch.object(face_locator, "MEDIAPIPE_AVAILABLE", False):
        detector = MediaPipeFaceDetector()
        with pytest.raises(DetectorUnavailableError):
            detector.detect(flat_frame())

        locator = DetectorFaceLocator(detector)
        assert locator.locate(face_frame()) == FaceBox(20, 20, 60, 60)


def test_mediapipe_detections_are_converted_to_pixel_boxes():
    detection = MagicMock()
    detection.score = [0.9]
    bbox = detection.location_data.relative_bounding_box
    bbox.xmin, bbox.ymin, bbox.width, bbox.height = 0.25, 0.1, 0.5, 0.5
    detector = MediaPipeFaceDetector()
    detector.face_detection = MagicMock()
    detector.face_detection.process.return_value.detections = [detection]

    faces = detector.detect(flat_frame(200, 100))

    assert faces == [{"bounding_box": FaceBox(50, 10, 100, 50)}]


def test_strategy_is_selected_from_capability_flag(config):
    heuristic = create_face_locator(config, SupportedCapabilities(face_detector=False))
    detecting = create_face_locator(config, SupportedCapabilities(face_detector=True))

    assert isinstance(heuristic, HeuristicFaceLocator)
    assert isinstance(detecting, DetectorFaceLocator)
    assert isinstance(detecting.detector, MediaPipeFaceDetector)
    # Model loading is deferred to the first detection
    assert detecting.detector.face_detection is None
