import pytest

from conftest import flat_frame

from proof_of_life.active_checker import (
    changed_fraction,
    evaluate_blink,
    evaluate_blink_coarse,
    evaluate_smile,
    evaluate_turn,
    eye_band,
    mouth_band,
)
from proof_of_life.models.results import FaceBox

BOX = FaceBox(40, 40, 120, 120)  # eye band: x 40..160, y 70..100


def blink_frames(changed_rows=30, delta=100):
    """Three 200x200 samples; the second one changes ``changed_rows`` rows of the eye band."""
    frames = [flat_frame(200, 200, value=60) for _ in range(3)]
    frames[1][70:70 + changed_rows, 40:160, :3] += delta
    return frames


# --- Regions ---

def test_eye_band_position():
    assert eye_band(BOX, 200, 200) == (40, 70, 120, 30)


def test_eye_band_is_clipped_to_frame():
    assert eye_band(FaceBox(150, 150, 100, 100), 200, 200) == (150, 175, 50, 25)


def test_degenerate_box_has_no_eye_band():
    assert eye_band(FaceBox(10, 10, 3, 3), 100, 100) is None


def test_mouth_band_position():
    assert mouth_band(BOX, 200, 200) == (40, 118, 120, 30)


# --- Blink ---

def test_blink_detected_on_eye_band_spike():
    assert evaluate_blink(blink_frames(), BOX) is True


def test_identical_frames_are_not_a_blink():
    frames = [flat_frame(200, 200, value=60) for _ in range(3)]

    assert evaluate_blink(frames, BOX) is False


def test_blink_spike_between_second_and_third_sample():
    frames = blink_frames()
    frames[1], frames[2] = frames[0].copy(), frames[1]

    assert evaluate_blink(frames, BOX) is True


@pytest.mark.parametrize("changed_rows, expected", [
    (1, False),   # 3.3% of the band
    (2, True),    # 6.7%
    (30, True),
])
def test_blink_change_ratio(changed_rows, expected):
    assert evaluate_blink(blink_frames(changed_rows=changed_rows), BOX) is expected


@pytest.mark.parametrize("delta, expected", [(18, False), (19, True)])
def test_blink_noise_floor_is_strict(delta, expected):
    assert evaluate_blink(blink_frames(delta=delta), BOX) is expected


def test_change_outside_eye_band_is_ignored():
    frames = [flat_frame(200, 200, value=60) for _ in range(3)]
    frames[1][130:160, 40:160, :3] += 100

    assert evaluate_blink(frames, BOX) is False


def test_blink_needs_a_face_box():
    assert evaluate_blink(blink_frames(), None) is False


def test_missing_sample_counts_as_no_change():
    frames = blink_frames()
    frames[1] = None

    assert evaluate_blink(frames, BOX) is False


def test_changed_fraction_ignores_mismatched_frames():
    assert changed_fraction(flat_frame(10, 10), flat_frame(20, 10), (0, 0, 5, 5)) == 0.0


@pytest.mark.parametrize("second, expected", [
    (FaceBox(100, 50, 204, 203), True),
    (FaceBox(100, 50, 203, 203), False),
    (FaceBox(100, 50, 193, 200), True),
    (None, False),
])
def test_coarse_blink_uses_box_size_delta(second, expected):
    assert evaluate_blink_coarse(FaceBox(100, 50, 200, 200), second) is expected


# --- Head turns ---

def test_turn_scenario_left_not_right():
    before, after = FaceBox(100, 50, 200, 200), FaceBox(80, 50, 200, 200)

    assert evaluate_turn(before, after, 'left') is True
    assert evaluate_turn(before, after, 'right') is False


@pytest.mark.parametrize("dx, left, right", [
    (-10, False, False),
    (10, False, False),
    (-11, True, False),
    (11, False, True),
    (0, False, False),
])
def test_turn_threshold_is_strict(dx, left, right):
    before, after = FaceBox(100, 50, 200, 200), FaceBox(100 + dx, 50, 200, 200)

    assert evaluate_turn(before, after, 'left') is left
    assert evaluate_turn(before, after, 'right') is right


@pytest.mark.parametrize("before, after", [
    (None, FaceBox(80, 50, 200, 200)),
    (FaceBox(100, 50, 200, 200), None),
    (None, None),
])
def test_turn_needs_both_boxes(before, after):
    assert evaluate_turn(before, after, 'left') is False
    assert evaluate_turn(before, after, 'right') is False


def test_turn_rejects_unknown_direction():
    with pytest.raises(ValueError):
        evaluate_turn(FaceBox(0, 0, 10, 10), FaceBox(20, 0, 10, 10), 'up')


# --- Smile ---

def test_smile_detected_on_mouth_change():
    before = flat_frame(200, 200, value=60)
    after = before.copy()
    after[118:148, 40:160, :3] += 80

    assert evaluate_smile(before, after, BOX, BOX) is True


def test_smile_without_mouth_change_fails():
    frame = flat_frame(200, 200, value=60)

    assert evaluate_smile(frame, frame.copy(), BOX, BOX) is False


@pytest.mark.parametrize("box_a, box_b", [(None, BOX), (BOX, None)])
def test_smile_fails_outright_without_face(box_a, box_b):
    before = flat_frame(200, 200, value=60)
    after = before.copy()
    after[118:148, 40:160, :3] += 80

    assert evaluate_smile(before, after, box_a, box_b) is False
