from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

U8 = np.uint8
HSVTriple = Tuple[int, int, int]
BGRColor = Tuple[int, int, int]
BBox = Tuple[int, int, int, int]  # (x, y, w, h)

HUE_BINS = 180


class VisionFailure(str, Enum):
    """Reason an operation degraded to an empty/placeholder result."""
    INVALID_FORMAT = "invalid_format"
    SHAPE_MISMATCH = "shape_mismatch"
    PROCESSING_FAULT = "processing_fault"


@dataclass(frozen=True, slots=True)
class ColorRange:
    """Inclusive HSV bounds for one named color (or one sub-range of it)."""
    name: str
    lower_hsv: HSVTriple
    upper_hsv: HSVTriple
    display_color: BGRColor
    # Sub-ranges of a wrapped color (red) share a family.
    family: str = ""

    def __post_init__(self) -> None:
        if not self.family:
            object.__setattr__(self, "family", self.name)


@dataclass(frozen=True, slots=True)
class HuePeak:
    hue: int
    magnitude: float

    @property
    def color_name(self) -> str:
        from huescope.vision.hue_histogram import hue_to_color_name

        return hue_to_color_name(self.hue)


@dataclass(frozen=True, slots=True)
class HueHistogram:
    """Raw bucket counts plus their [0, 255] min-max normalized copy."""
    raw: np.ndarray
    normalized: np.ndarray
    ok: bool = True


@dataclass(frozen=True, slots=True)
class DetectedObject:
    contour: np.ndarray
    bbox: BBox
    area: float


@dataclass(slots=True)
class DetectionResult:
    objects: List[DetectedObject] = field(default_factory=list)
    coverage: float = 0.0
    draw_color: BGRColor = (0, 255, 0)
    failure: Optional[VisionFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


__all__ = [
    "BBox",
    "BGRColor",
    "ColorRange",
    "DetectedObject",
    "DetectionResult",
    "HSVTriple",
    "HUE_BINS",
    "HueHistogram",
    "HuePeak",
    "U8",
    "VisionFailure",
]
