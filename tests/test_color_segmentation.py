import numpy as np
import pytest

from huescope.vision.color_conversion import reference_hsv
from huescope.vision.color_segmentation import (
    DEFAULT_COLOR_RANGES,
    ColorSegmenter,
    coverage_percent,
    detect_objects,
    draw_detections,
    threshold_range,
)
from huescope.vision.vision_types import ColorRange, VisionFailure

from conftest import BLUE, RED, make_frame


@pytest.fixture
def segmenter():
    return ColorSegmenter()


def _range(name):
    return next(cr for cr in DEFAULT_COLOR_RANGES if cr.name == name)


def test_default_table():
    names = [cr.name for cr in DEFAULT_COLOR_RANGES]
    assert names == ["Blue", "Red-low", "Red-high", "Green"]
    assert _range("Red-low").family == _range("Red-high").family == "Red"
    assert _range("Blue").family == "Blue"


def test_families_keep_table_order(segmenter):
    assert segmenter.families == ("Blue", "Red", "Green")
    assert segmenter.display_color("Red") == (0, 0, 255)


def test_empty_table_rejected():
    with pytest.raises(ValueError):
        ColorSegmenter(ranges=())


def test_threshold_exact_pixel():
    hsv = np.zeros((10, 12, 3), dtype=np.uint8)
    hsv[5, 7] = (60, 200, 150)
    exact = ColorRange("probe", (60, 200, 150), (60, 200, 150), (0, 0, 0))

    mask = threshold_range(hsv, exact)
    assert mask.shape == (10, 12)
    assert mask[5, 7] == 255
    assert np.count_nonzero(mask) == 1


def test_threshold_bounds_are_inclusive():
    hsv = np.zeros((1, 3, 3), dtype=np.uint8)
    hsv[0, 0] = (100, 50, 50)
    hsv[0, 1] = (140, 255, 255)
    hsv[0, 2] = (141, 255, 255)
    mask = threshold_range(hsv, _range("Blue"))
    assert mask.tolist() == [[255, 255, 0]]


def test_segment_block(segmenter, blue_square_frame):
    hsv = reference_hsv(blue_square_frame)
    mask = segmenter.segment_by_range(hsv, _range("Blue"))

    assert mask.shape == (80, 80)
    assert mask.dtype == np.uint8
    assert set(np.unique(mask)) <= {0, 255}
    assert np.all(mask[25:45, 25:45] == 255)
    assert not mask[:15].any()
    assert not mask[:, 55:].any()


def test_opening_removes_isolated_specks(segmenter):
    frame = make_frame()
    frame[10, 10] = BLUE
    frame[60, 61] = BLUE
    mask = segmenter.segment_by_range(reference_hsv(frame), _range("Blue"))
    assert not mask.any()


def test_closing_fills_small_holes(segmenter, blue_square_frame):
    blue_square_frame[35, 35] = (0, 0, 0)
    mask = segmenter.segment_by_range(reference_hsv(blue_square_frame), _range("Blue"))
    assert mask[35, 35] == 255


def test_segment_invalid_input(segmenter):
    assert segmenter.segment_by_range(np.zeros((5, 5), dtype=np.uint8), _range("Blue")).size == 0
    assert segmenter.segment_red(np.zeros((0, 0, 3), dtype=np.uint8)).size == 0


def test_segment_red_covers_both_ends_of_hue(segmenter):
    frame = make_frame(60, 100)
    frame[15:45, 10:40] = RED            # hue 0
    frame[15:45, 60:90] = (42, 0, 255)   # hue ~175
    hsv = reference_hsv(frame)
    assert hsv[30, 75, 0] >= 170

    mask = segmenter.segment_red(hsv)
    assert mask[30, 25] == 255
    assert mask[30, 75] == 255
    assert mask[30, 50] == 0


def test_segment_red_falls_back_to_surviving_half(segmenter, monkeypatch):
    frame = make_frame()
    frame[20:50, 20:50] = RED
    hsv = reference_hsv(frame)
    original = segmenter.segment_by_range

    def flaky(hsv_in, color_range):
        if color_range.name == "Red-high":
            return np.empty((0, 0), dtype=np.uint8)
        return original(hsv_in, color_range)

    monkeypatch.setattr(segmenter, "segment_by_range", flaky)
    mask = segmenter.segment_red(hsv)
    assert mask.shape == (80, 80)
    assert mask[35, 35] == 255


def test_segment_color_unknown_is_empty(segmenter, blue_square_frame):
    assert segmenter.segment_color(reference_hsv(blue_square_frame), "Purple").size == 0


def test_kernel_size_is_configurable():
    assert ColorSegmenter(kernel_size=5).kernel.shape == (5, 5)
    assert ColorSegmenter(kernel_size=4).kernel.shape == (5, 5)
    assert ColorSegmenter(kernel_size=7).kernel.shape == (7, 7)


def test_detect_objects_area_floor():
    frame = make_frame(200, 200)
    mask = np.zeros((200, 200), dtype=np.uint8)
    mask[150:160, 150:160] = 255   # 100 px
    mask[40:60, 50:80] = 255       # 600 px
    before = mask.copy()

    result = detect_objects(frame, mask, BLUE, min_area=500)

    assert result.ok
    assert len(result.objects) == 1
    x, y, w, h = result.objects[0].bbox
    assert x <= 50 and y <= 40
    assert x + w >= 80 and y + h >= 60
    assert result.objects[0].area > 500
    assert np.array_equal(mask, before)


def test_detect_objects_ignores_holes():
    frame = make_frame(100, 100)
    mask = np.zeros((100, 100), dtype=np.uint8)
    mask[10:90, 10:90] = 255
    mask[30:70, 30:70] = 0
    result = detect_objects(frame, mask, BLUE)
    assert len(result.objects) == 1


def test_coverage_percent():
    frame = make_frame(20, 30)
    full = np.full((20, 30), 255, dtype=np.uint8)
    empty = np.zeros((20, 30), dtype=np.uint8)
    half = empty.copy()
    half[:10] = 255

    assert detect_objects(frame, full, BLUE).coverage == 100.0
    assert detect_objects(frame, empty, BLUE).coverage == 0.0
    assert detect_objects(frame, half, BLUE).coverage == pytest.approx(50.0)
    assert coverage_percent(full) == 100.0
    assert coverage_percent(empty) == 0.0


def test_detect_objects_shape_mismatch():
    result = detect_objects(make_frame(20, 20), np.zeros((10, 10), dtype=np.uint8), BLUE)
    assert result.failure == VisionFailure.SHAPE_MISMATCH
    assert result.objects == []


def test_detect_objects_invalid_mask():
    result = detect_objects(make_frame(20, 20), np.zeros((0, 0), dtype=np.uint8), BLUE)
    assert result.failure == VisionFailure.INVALID_FORMAT


def test_draw_detections_leaves_frame_untouched(blue_square_frame):
    mask = np.zeros((80, 80), dtype=np.uint8)
    mask[20:50, 20:50] = 255
    result = detect_objects(blue_square_frame, mask, (0, 255, 0))
    before = blue_square_frame.copy()

    out = draw_detections(blue_square_frame, result, label="Blue")

    assert out.shape == blue_square_frame.shape
    assert np.array_equal(before, blue_square_frame)
    assert not np.array_equal(out, blue_square_frame)
