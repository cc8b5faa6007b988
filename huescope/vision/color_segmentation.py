from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from huescope.vision.vision_types import (
    BGRColor,
    ColorRange,
    DetectedObject,
    DetectionResult,
    U8,
    VisionFailure,
)
from huescope.vision.vision_utils import empty_frame, is_bgr_u8, is_empty, is_mask_u8

logger = logging.getLogger(__name__)

MORPH_KERNEL = 5
MIN_OBJECT_AREA = 500.0

# Tuned for indoor lighting on a generic webcam.
DEFAULT_COLOR_RANGES: Tuple[ColorRange, ...] = (
    ColorRange("Blue", (100, 50, 50), (140, 255, 255), (255, 0, 0)),
    ColorRange("Red-low", (0, 50, 50), (10, 255, 255), (0, 0, 255), family="Red"),
    ColorRange("Red-high", (170, 50, 50), (180, 255, 255), (0, 0, 255), family="Red"),
    ColorRange("Green", (35, 50, 50), (85, 255, 255), (0, 255, 0)),
)


def threshold_range(hsv: np.ndarray, color_range: ColorRange) -> np.ndarray:
    """Raw 0/255 membership mask, bounds inclusive on all three channels."""
    if not is_bgr_u8(hsv):
        logger.warning("threshold_range(%s): %s", color_range.name, VisionFailure.INVALID_FORMAT.value)
        return empty_frame()

    lower = np.array(color_range.lower_hsv, dtype=np.int32).clip(0, 255).astype(U8)
    upper = np.array(color_range.upper_hsv, dtype=np.int32).clip(0, 255).astype(U8)
    try:
        return cv2.inRange(hsv, lower, upper)
    except cv2.error as exc:
        logger.warning("threshold_range(%s): %s (%s)", color_range.name, VisionFailure.PROCESSING_FAULT.value, exc)
        return empty_frame()


class ColorSegmenter:
    """
    Per-color binary masks from an HSV frame.

    The range table is fixed at construction. Masks are refined with a
    closing (fills holes inside blobs) followed by an opening (drops specks
    around them), always in that order.
    """

    def __init__(
        self,
        ranges: Iterable[ColorRange] = DEFAULT_COLOR_RANGES,
        kernel_size: int = MORPH_KERNEL,
    ) -> None:
        self.ranges: Tuple[ColorRange, ...] = tuple(ranges)
        if not self.ranges:
            raise ValueError("ColorSegmenter needs at least one color range.")

        k = max(1, int(kernel_size))
        if k % 2 == 0:
            k += 1  # keep kernel odd for symmetry
        self.kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (k, k))

    @property
    def families(self) -> Tuple[str, ...]:
        seen = []
        for cr in self.ranges:
            if cr.family not in seen:
                seen.append(cr.family)
        return tuple(seen)

    def ranges_for(self, family: str) -> Tuple[ColorRange, ...]:
        return tuple(cr for cr in self.ranges if cr.family == family)

    def get_range(self, name: str) -> Optional[ColorRange]:
        for cr in self.ranges:
            if cr.name == name:
                return cr
        return None

    def display_color(self, family: str) -> BGRColor:
        subs = self.ranges_for(family)
        return subs[0].display_color if subs else (255, 255, 255)

    def refine_mask(self, mask: np.ndarray) -> np.ndarray:
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, self.kernel)
        return cv2.morphologyEx(mask, cv2.MORPH_OPEN, self.kernel)

    def segment_by_range(self, hsv: np.ndarray, color_range: ColorRange) -> np.ndarray:
        mask = threshold_range(hsv, color_range)
        if is_empty(mask):
            return mask
        try:
            return self.refine_mask(mask)
        except cv2.error as exc:
            logger.warning("segment_by_range(%s): %s (%s)", color_range.name, VisionFailure.PROCESSING_FAULT.value, exc)
            return empty_frame()

    def segment_family(self, hsv: np.ndarray, family: str) -> np.ndarray:
        """
        OR together the masks of every sub-range in ``family``.

        A sub-range that failed is skipped, so one good half of a wrapped
        color still yields a mask. Empty only if every sub-range failed.
        """
        combined: Optional[np.ndarray] = None
        for cr in self.ranges_for(family):
            mask = self.segment_by_range(hsv, cr)
            if is_empty(mask):
                continue
            combined = mask if combined is None else cv2.bitwise_or(combined, mask)
        if combined is None:
            return empty_frame()
        return combined

    def segment_red(self, hsv: np.ndarray) -> np.ndarray:
        # Hue is circular: red sits at both ends of [0, 179].
        return self.segment_family(hsv, "Red")

    def segment_color(self, hsv: np.ndarray, family: str) -> np.ndarray:
        if not self.ranges_for(family):
            logger.warning("segment_color: unknown color %r", family)
            return empty_frame()
        return self.segment_family(hsv, family)


def coverage_percent(mask: np.ndarray) -> float:
    if not is_mask_u8(mask):
        return 0.0
    return 100.0 * float(np.count_nonzero(mask == 255)) / float(mask.size)


def detect_objects(
    frame: np.ndarray,
    mask: np.ndarray,
    draw_color: BGRColor,
    min_area: float = MIN_OBJECT_AREA,
) -> DetectionResult:
    """
    External contours of ``mask`` whose area exceeds ``min_area``.

    Holes inside regions are ignored. The caller's mask is never modified.
    Coverage is the share of 255-valued mask pixels over the frame size.
    """
    if not is_bgr_u8(frame) or not is_mask_u8(mask):
        return DetectionResult(draw_color=draw_color, failure=VisionFailure.INVALID_FORMAT)
    if mask.shape != frame.shape[:2]:
        logger.warning(
            "detect_objects: %s mask %s vs frame %s",
            VisionFailure.SHAPE_MISMATCH.value, mask.shape, frame.shape,
        )
        return DetectionResult(draw_color=draw_color, failure=VisionFailure.SHAPE_MISMATCH)

    coverage = coverage_percent(mask)

    try:
        contours, _ = cv2.findContours(mask.copy(), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    except cv2.error as exc:
        logger.warning("detect_objects: %s (%s)", VisionFailure.PROCESSING_FAULT.value, exc)
        return DetectionResult(coverage=coverage, draw_color=draw_color, failure=VisionFailure.PROCESSING_FAULT)

    objects = []
    for contour in contours:
        area = float(cv2.contourArea(contour))
        if area <= float(min_area):
            continue
        x, y, bw, bh = cv2.boundingRect(contour)
        objects.append(DetectedObject(contour=contour, bbox=(int(x), int(y), int(bw), int(bh)), area=area))

    return DetectionResult(objects=objects, coverage=coverage, draw_color=draw_color)


def draw_detections(frame: np.ndarray, result: DetectionResult, label: str = "") -> np.ndarray:
    """Overlay contours, bounding boxes and the coverage caption on a copy of ``frame``."""
    if not is_bgr_u8(frame):
        return empty_frame()

    out = frame.copy()
    color = tuple(int(c) for c in result.draw_color)
    if not result.ok:
        return out

    if result.objects:
        cv2.drawContours(out, [obj.contour for obj in result.objects], -1, color, 2)
    for obj in result.objects:
        x, y, bw, bh = obj.bbox
        cv2.rectangle(out, (x, y), (x + bw, y + bh), color, 1)
        cv2.putText(out, "Object", (x, max(y - 10, 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 2)

    if label:
        caption = f"{label}: {int(result.coverage)}%"
        cv2.putText(out, caption, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
    return out


__all__ = [
    "ColorSegmenter",
    "DEFAULT_COLOR_RANGES",
    "MIN_OBJECT_AREA",
    "MORPH_KERNEL",
    "coverage_percent",
    "detect_objects",
    "draw_detections",
    "threshold_range",
]
