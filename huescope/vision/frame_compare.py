from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from huescope.vision.color_conversion import (
    reference_grayscale,
    reference_hsv,
    to_grayscale,
    to_hsv,
)
from huescope.vision.vision_types import VisionFailure
from huescope.vision.vision_utils import is_bgr_u8, is_empty

logger = logging.getLogger(__name__)

MSE_FAILED = -1.0


def mean_squared_error(a: np.ndarray, b: np.ndarray) -> float:
    """
    Mean of squared per-sample differences between two frames.

    Multi-channel frames are compared as a flat sequence of samples.
    Returns MSE_FAILED (-1.0) if either frame is empty or the frames differ
    in size, channel count or dtype.
    """
    if is_empty(a) or is_empty(b):
        logger.debug("mean_squared_error: %s (empty frame)", VisionFailure.INVALID_FORMAT.value)
        return MSE_FAILED
    if a.shape != b.shape or a.dtype != b.dtype:
        logger.debug(
            "mean_squared_error: %s %s/%s vs %s/%s",
            VisionFailure.SHAPE_MISMATCH.value, a.shape, a.dtype, b.shape, b.dtype,
        )
        return MSE_FAILED

    diff = a.astype(np.float64) - b.astype(np.float64)
    return float(np.mean(diff * diff))


@dataclass(frozen=True, slots=True)
class ConversionReport:
    """MSE of the manual converters against the OpenCV reference."""
    gray_mse: float
    hsv_mse: float

    @property
    def ok(self) -> bool:
        return self.gray_mse >= 0.0 and self.hsv_mse >= 0.0


def compare_with_reference(img_bgr: np.ndarray) -> ConversionReport:
    if not is_bgr_u8(img_bgr):
        return ConversionReport(MSE_FAILED, MSE_FAILED)

    gray_mse = mean_squared_error(reference_grayscale(img_bgr), to_grayscale(img_bgr))
    hsv_mse = mean_squared_error(reference_hsv(img_bgr), to_hsv(img_bgr))
    return ConversionReport(gray_mse=gray_mse, hsv_mse=hsv_mse)


__all__ = ["ConversionReport", "MSE_FAILED", "compare_with_reference", "mean_squared_error"]
