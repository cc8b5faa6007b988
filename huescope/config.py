import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from huescope.vision.color_segmentation import DEFAULT_COLOR_RANGES, MIN_OBJECT_AREA, MORPH_KERNEL
from huescope.vision.hue_histogram import DEFAULT_TOP_N, PEAK_THRESHOLD
from huescope.vision.vision_types import ColorRange

logger = logging.getLogger(__name__)

ENV_CAMERA_INDEX = "HUESCOPE_CAMERA_INDEX"
ENV_COLORS_PATH = "HUESCOPE_COLORS"


@dataclass(frozen=True)
class CameraConfig:
    index: int = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    jpeg_quality: int = 80


@dataclass(frozen=True)
class AnalysisConfig:
    top_n: int = DEFAULT_TOP_N
    peak_threshold: float = PEAK_THRESHOLD
    morph_kernel: int = MORPH_KERNEL
    min_area: float = MIN_OBJECT_AREA
    # Manual-vs-OpenCV conversion check period, in processed frames (0 = off).
    reference_check_interval: int = 30
    use_manual_conversion: bool = False
    default_color: str = "Blue"


@dataclass(frozen=True)
class Settings:
    camera: CameraConfig = field(default_factory=CameraConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    color_ranges: Tuple[ColorRange, ...] = DEFAULT_COLOR_RANGES


def _triple(value: Any, key: str) -> Tuple[int, int, int]:
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ValueError(f"'{key}' must be a list of 3 integers, got {value!r}.")
    return tuple(int(v) for v in value)  # type: ignore[return-value]


def color_range_from_dict(data: Dict[str, Any]) -> ColorRange:
    name = data.get("name")
    if not name or not isinstance(name, str):
        raise ValueError("Color range is missing 'name'.")
    return ColorRange(
        name=name,
        lower_hsv=_triple(data.get("lower_hsv"), "lower_hsv"),
        upper_hsv=_triple(data.get("upper_hsv"), "upper_hsv"),
        display_color=_triple(data.get("display_color", (255, 255, 255)), "display_color"),
        family=str(data.get("family") or ""),
    )


def color_range_to_dict(cr: ColorRange) -> Dict[str, Any]:
    return {
        "name": cr.name,
        "family": cr.family,
        "lower_hsv": list(cr.lower_hsv),
        "upper_hsv": list(cr.upper_hsv),
        "display_color": list(cr.display_color),
    }


def load_color_ranges(path: Optional[Path]) -> Tuple[ColorRange, ...]:
    # Fail-safe load: a missing or malformed file falls back to the built-in table.
    if path is None:
        return DEFAULT_COLOR_RANGES
    try:
        with Path(path).open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, list) or not data:
            raise ValueError("expected a non-empty JSON list")
        return tuple(color_range_from_dict(item) for item in data)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.warning("Falling back to default color ranges (%s: %s)", path, exc)
        return DEFAULT_COLOR_RANGES


def load_settings(env: Optional[Dict[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    camera = CameraConfig()
    raw_index = env.get(ENV_CAMERA_INDEX)
    if raw_index:
        try:
            camera = CameraConfig(index=int(raw_index))
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", ENV_CAMERA_INDEX, raw_index)

    colors_path = env.get(ENV_COLORS_PATH)
    ranges = load_color_ranges(Path(colors_path) if colors_path else None)

    analysis = AnalysisConfig()
    if analysis.default_color not in {cr.family for cr in ranges}:
        analysis = AnalysisConfig(default_color=ranges[0].family)

    return Settings(camera=camera, analysis=analysis, color_ranges=ranges)
