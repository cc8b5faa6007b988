import numpy as np
import pytest

from huescope.vision.color_conversion import (
    reference_grayscale,
    reference_hsv,
    to_grayscale,
    to_hsv,
)
from huescope.vision.frame_compare import mean_squared_error

from conftest import make_frame


@pytest.fixture
def random_frame():
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)


def test_grayscale_shape_and_dtype(random_frame):
    gray = to_grayscale(random_frame)
    assert gray.shape == random_frame.shape[:2]
    assert gray.dtype == np.uint8


def test_grayscale_weights():
    frame = make_frame(2, 2, (0, 0, 255))
    assert int(to_grayscale(frame)[0, 0]) == 76  # round(0.299 * 255)

    frame = make_frame(2, 2, (0, 255, 0))
    assert int(to_grayscale(frame)[0, 0]) == 150  # round(0.587 * 255)

    frame = make_frame(2, 2, (255, 255, 255))
    assert int(to_grayscale(frame)[0, 0]) == 255


def test_grayscale_close_to_opencv(random_frame):
    ours = to_grayscale(random_frame).astype(np.int32)
    ref = reference_grayscale(random_frame).astype(np.int32)
    assert np.abs(ours - ref).max() <= 1
    assert mean_squared_error(to_grayscale(random_frame), reference_grayscale(random_frame)) < 1.0


def test_hsv_shape_and_ranges(random_frame):
    hsv = to_hsv(random_frame)
    assert hsv.shape == random_frame.shape
    assert hsv.dtype == np.uint8
    assert hsv[..., 0].max() <= 179


@pytest.mark.parametrize(
    "bgr, expected_hue",
    [
        ((0, 0, 255), 0),     # red
        ((0, 255, 255), 30),  # yellow
        ((0, 255, 0), 60),    # green
        ((255, 255, 0), 90),  # cyan
        ((255, 0, 0), 120),   # blue
        ((255, 0, 255), 150), # magenta
    ],
)
def test_hsv_saturated_colors(bgr, expected_hue):
    hsv = to_hsv(make_frame(3, 3, bgr))
    h, s, v = (int(c) for c in hsv[1, 1])
    assert h == expected_hue
    assert s == 255
    assert v == 255


def test_hsv_gray_has_no_hue_or_saturation():
    hsv = to_hsv(make_frame(4, 4, (128, 128, 128)))
    assert np.all(hsv[..., 0] == 0)
    assert np.all(hsv[..., 1] == 0)
    assert np.all(np.abs(hsv[..., 2].astype(int) - 128) <= 1)


def test_hsv_black_is_all_zero():
    hsv = to_hsv(make_frame(4, 4, (0, 0, 0)))
    assert not hsv.any()


def test_hsv_near_wraparound_stays_in_range():
    # Slightly more blue than green with red as max: hue just below 360 degrees.
    hsv = to_hsv(make_frame(2, 2, (3, 0, 255)))
    assert 175 <= int(hsv[0, 0, 0]) <= 179


def test_hsv_close_to_opencv(palette_frame):
    ours = to_hsv(palette_frame).astype(np.int32)
    ref = reference_hsv(palette_frame).astype(np.int32)
    assert np.abs(ours - ref).max() <= 1


@pytest.mark.parametrize(
    "bad",
    [
        None,
        np.zeros((0, 0, 3), dtype=np.uint8),
        np.zeros((4, 4), dtype=np.uint8),
        np.zeros((4, 4, 4), dtype=np.uint8),
        np.zeros((4, 4, 3), dtype=np.float32),
    ],
)
def test_invalid_input_returns_empty(bad):
    assert to_grayscale(bad).size == 0
    assert to_hsv(bad).size == 0


def test_conversion_does_not_mutate_input(random_frame):
    before = random_frame.copy()
    to_grayscale(random_frame)
    to_hsv(random_frame)
    assert np.array_equal(before, random_frame)
