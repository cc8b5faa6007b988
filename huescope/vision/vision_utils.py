from __future__ import annotations

import base64
from typing import Optional

import cv2
import numpy as np

from huescope.vision.vision_types import U8


def empty_frame() -> np.ndarray:
    """The empty result every vision operation returns on failure."""
    return np.empty((0, 0), dtype=U8)


def is_empty(frame: Optional[np.ndarray]) -> bool:
    return frame is None or frame.size == 0


def is_bgr_u8(img: Optional[np.ndarray]) -> bool:
    # 3-channel 8-bit is the only color layout the pipeline accepts.
    if is_empty(img):
        return False
    return img.ndim == 3 and img.shape[2] == 3 and img.dtype == U8


def is_mask_u8(mask: Optional[np.ndarray]) -> bool:
    if is_empty(mask):
        return False
    return mask.ndim == 2 and mask.dtype == U8


def decode_image_bytes(data: bytes) -> Optional[np.ndarray]:
    """Decode encoded image bytes into an OpenCV BGR uint8 image, or None."""
    if not data:
        return None
    img = cv2.imdecode(np.frombuffer(data, dtype=U8), cv2.IMREAD_COLOR)
    return img


def encode_png_base64(img: np.ndarray) -> Optional[str]:
    if is_empty(img):
        return None
    ok, png = cv2.imencode(".png", img)
    if not ok:
        return None
    return base64.b64encode(png.tobytes()).decode("ascii")


__all__ = [
    "decode_image_bytes",
    "empty_frame",
    "encode_png_base64",
    "is_bgr_u8",
    "is_empty",
    "is_mask_u8",
]
