"""
Pixel-wise BGR -> grayscale and BGR -> HSV conversion.

The manual converters reproduce OpenCV's conventions (BT.601 luma weights,
half-scale hue in [0, 179]) with plain numpy arithmetic so they can be checked
against ``cv2.cvtColor`` with ``frame_compare.mean_squared_error``.
"""
from __future__ import annotations

import logging

import cv2
import numpy as np

from huescope.vision.vision_types import U8, VisionFailure
from huescope.vision.vision_utils import empty_frame, is_bgr_u8

logger = logging.getLogger(__name__)

# BT.601 luma weights in BGR order.
GRAY_WEIGHTS = (0.114, 0.587, 0.299)

# Below this, delta/max are treated as zero (gray and black pixels).
EPS = np.float32(1e-4)


def to_grayscale(img_bgr: np.ndarray) -> np.ndarray:
    if not is_bgr_u8(img_bgr):
        logger.warning("to_grayscale: %s input %s", VisionFailure.INVALID_FORMAT.value, _describe(img_bgr))
        return empty_frame()

    wb, wg, wr = GRAY_WEIGHTS
    bgr = img_bgr.astype(np.float64)
    gray = wb * bgr[..., 0] + wg * bgr[..., 1] + wr * bgr[..., 2]
    # floor(x + 0.5) rather than np.rint so .5 always rounds up.
    gray = np.floor(gray + 0.5)
    return np.clip(gray, 0, 255).astype(U8)


def to_hsv(img_bgr: np.ndarray) -> np.ndarray:
    """
    Convert a BGR uint8 frame to HSV with H in [0, 179] and S, V in [0, 255].

    Hue is computed in degrees per the max channel, wrapped into [0, 360) and
    halved. Gray pixels (delta <= 1e-4) get hue 0 and black pixels
    (max <= 1e-4) get saturation 0, so neither case divides by zero.
    """
    if not is_bgr_u8(img_bgr):
        logger.warning("to_hsv: %s input %s", VisionFailure.INVALID_FORMAT.value, _describe(img_bgr))
        return empty_frame()

    norm = img_bgr.astype(np.float32) / np.float32(255.0)
    b, g, r = norm[..., 0], norm[..., 1], norm[..., 2]

    max_val = np.maximum(np.maximum(r, g), b)
    min_val = np.minimum(np.minimum(r, g), b)
    delta = max_val - min_val

    chromatic = delta > EPS
    safe_delta = np.where(chromatic, delta, np.float32(1.0))

    # Branch priority matters for ties: R first, then G, then B.
    h_r = np.float32(60.0) * np.fmod((g - b) / safe_delta, np.float32(6.0))
    h_g = np.float32(60.0) * ((b - r) / safe_delta + np.float32(2.0))
    h_b = np.float32(60.0) * ((r - g) / safe_delta + np.float32(4.0))
    hue = np.where(max_val == r, h_r, np.where(max_val == g, h_g, h_b))
    hue = np.where(chromatic, hue, np.float32(0.0))
    hue = np.where(hue < 0, hue + np.float32(360.0), hue)
    hue = np.clip(hue / np.float32(2.0), 0.0, 179.0)

    lit = max_val > EPS
    safe_max = np.where(lit, max_val, np.float32(1.0))
    sat = np.where(lit, (delta / safe_max) * np.float32(255.0), np.float32(0.0))
    sat = np.minimum(sat, np.float32(255.0))

    val = np.minimum(max_val * np.float32(255.0), np.float32(255.0))

    # Truncation on store, like a C cast to unsigned char.
    hsv = np.empty(img_bgr.shape, dtype=U8)
    hsv[..., 0] = hue.astype(U8)
    hsv[..., 1] = sat.astype(U8)
    hsv[..., 2] = val.astype(U8)
    return hsv


def reference_grayscale(img_bgr: np.ndarray) -> np.ndarray:
    if not is_bgr_u8(img_bgr):
        return empty_frame()
    return cv2.cvtColor(img_bgr, cv2.COLOR_BGR2GRAY)


def reference_hsv(img_bgr: np.ndarray) -> np.ndarray:
    if not is_bgr_u8(img_bgr):
        return empty_frame()
    return cv2.cvtColor(img_bgr, cv2.COLOR_BGR2HSV)


def _describe(img) -> str:
    if img is None:
        return "None"
    return f"shape={getattr(img, 'shape', None)} dtype={getattr(img, 'dtype', None)}"


__all__ = [
    "GRAY_WEIGHTS",
    "reference_grayscale",
    "reference_hsv",
    "to_grayscale",
    "to_hsv",
]
