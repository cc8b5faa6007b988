from __future__ import annotations

import logging
from typing import List, Sequence

import cv2
import numpy as np

from huescope.vision.vision_types import HUE_BINS, HueHistogram, HuePeak, U8, VisionFailure
from huescope.vision.vision_utils import is_bgr_u8

logger = logging.getLogger(__name__)

PEAK_THRESHOLD = 15.0
DEFAULT_TOP_N = 3

CANVAS_HEIGHT = 200
CANVAS_WIDTH = HUE_BINS
CANVAS_BG = (255, 255, 255)
BAR_COLOR = (230, 150, 30)
LABEL_COLOR = (0, 0, 0)
LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
LABEL_SCALE = 0.4
TEXT_SCALE = 0.45
TEXT_LINE_STEP = 15

# (upper bound inclusive, name), checked in order after the red wraparound.
_HUE_BANDS = (
    (25, "orange"),
    (35, "yellow"),
    (85, "green"),
    (100, "cyan"),
    (140, "blue"),
)


def placeholder_histogram() -> HueHistogram:
    zeros = np.zeros(HUE_BINS, dtype=np.float32)
    return HueHistogram(raw=zeros, normalized=zeros.copy(), ok=False)


def build_hue_histogram(hsv: np.ndarray) -> HueHistogram:
    """
    Count hue values (channel 0, 0..179) into 180 buckets.

    Both the raw counts and a min-max normalized [0, 255] copy are returned:
    peaks must be found on the raw counts, the normalized copy is for drawing.
    """
    if not is_bgr_u8(hsv):
        logger.warning("build_hue_histogram: %s", VisionFailure.INVALID_FORMAT.value)
        return placeholder_histogram()

    try:
        hist = cv2.calcHist([hsv], [0], None, [HUE_BINS], [0, HUE_BINS])
        normalized = cv2.normalize(hist, None, 0, 255, cv2.NORM_MINMAX)
    except cv2.error as exc:
        logger.warning("build_hue_histogram: %s (%s)", VisionFailure.PROCESSING_FAULT.value, exc)
        return placeholder_histogram()

    return HueHistogram(
        raw=hist.reshape(-1).astype(np.float32),
        normalized=normalized.reshape(-1).astype(np.float32),
    )


def find_dominant_peaks(
    raw: Sequence[float],
    top_n: int = DEFAULT_TOP_N,
    threshold: float = PEAK_THRESHOLD,
) -> List[HuePeak]:
    """
    Ranked local maxima of a raw hue histogram.

    Bucket i is a peak iff it is strictly greater than both neighbours and
    than ``threshold``. Buckets 0 and 179 have only one neighbour and are
    never reported. Ties keep ascending hue order.
    """
    values = np.asarray(raw, dtype=np.float64).reshape(-1)
    if top_n <= 0 or values.size < 3:
        return []

    peaks: List[HuePeak] = []
    for i in range(1, values.size - 1):
        prev, curr, nxt = values[i - 1], values[i], values[i + 1]
        if curr > prev and curr > nxt and curr > threshold:
            peaks.append(HuePeak(hue=i, magnitude=float(curr)))

    peaks.sort(key=lambda p: p.magnitude, reverse=True)
    return peaks[:top_n]


def hue_to_color_name(h: int) -> str:
    if h <= 10 or h >= 170:
        return "red"
    for upper, name in _HUE_BANDS:
        if h <= upper:
            return name
    return "violet"


def describe_peaks(peaks: Sequence[HuePeak]) -> List[str]:
    return [f"H={p.hue} -> {hue_to_color_name(p.hue)}" for p in peaks]


def render_histogram(hist: HueHistogram) -> np.ndarray:
    """
    Draw the normalized histogram on a 200x180 BGR canvas.

    One vertical line per hue bucket, height clamped to the canvas, with
    "H:0" / "H:179" axis labels. A failed histogram renders as a blank canvas.
    """
    canvas = np.full((CANVAS_HEIGHT, CANVAS_WIDTH, 3), CANVAS_BG, dtype=U8)
    if not hist.ok:
        return canvas

    for i, val in enumerate(hist.normalized[:CANVAS_WIDTH]):
        bin_val = int(round(float(val)))
        bin_val = min(max(bin_val, 0), CANVAS_HEIGHT)
        if bin_val == 0:
            continue
        cv2.line(canvas, (i, CANVAS_HEIGHT), (i, CANVAS_HEIGHT - bin_val), BAR_COLOR, 1)

    cv2.putText(canvas, "H:0", (5, 195), LABEL_FONT, LABEL_SCALE, LABEL_COLOR, 1)
    cv2.putText(canvas, "H:179", (140, 195), LABEL_FONT, LABEL_SCALE, LABEL_COLOR, 1)
    return canvas


def annotate_histogram(canvas: np.ndarray, peaks: Sequence[HuePeak]) -> np.ndarray:
    # cv2.putText ignores newlines, so each peak gets its own row.
    out = canvas.copy()
    lines = ["Dominant:"] + describe_peaks(peaks)
    for row, text in enumerate(lines):
        y = 20 + row * TEXT_LINE_STEP
        cv2.putText(out, text, (5, y), LABEL_FONT, TEXT_SCALE, LABEL_COLOR, 1)
    return out


__all__ = [
    "DEFAULT_TOP_N",
    "PEAK_THRESHOLD",
    "annotate_histogram",
    "build_hue_histogram",
    "describe_peaks",
    "find_dominant_peaks",
    "hue_to_color_name",
    "placeholder_histogram",
    "render_histogram",
]
