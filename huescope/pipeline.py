"""
Frame-by-frame analysis: conversion -> hue histogram -> color segmentation.

Everything here is synchronous. ``run`` checks its stop event once per frame,
never inside a conversion or morphology pass.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

import numpy as np

from huescope.config import AnalysisConfig
from huescope.vision.color_conversion import (
    reference_grayscale,
    reference_hsv,
    to_grayscale,
    to_hsv,
)
from huescope.vision.color_segmentation import ColorSegmenter, detect_objects, draw_detections
from huescope.vision.frame_compare import ConversionReport, compare_with_reference
from huescope.vision.hue_histogram import (
    annotate_histogram,
    build_hue_histogram,
    find_dominant_peaks,
    render_histogram,
)
from huescope.vision.vision_types import DetectionResult, HueHistogram, HuePeak, VisionFailure
from huescope.vision.vision_utils import is_bgr_u8, is_empty

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> np.ndarray: ...


@dataclass
class FrameAnalysis:
    index: int
    frame: np.ndarray
    gray: np.ndarray
    hsv: np.ndarray
    histogram: HueHistogram
    peaks: List[HuePeak]
    color: str
    mask: np.ndarray
    detection: DetectionResult
    report: Optional[ConversionReport] = None

    def histogram_image(self) -> np.ndarray:
        return annotate_histogram(render_histogram(self.histogram), self.peaks)

    def result_image(self) -> np.ndarray:
        if is_empty(self.mask):
            return self.frame.copy()
        return draw_detections(self.frame, self.detection, label=self.color)


@dataclass
class FrameAnalyzer:
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    segmenter: Optional[ColorSegmenter] = None
    active_color: str = ""
    frames_processed: int = 0

    def __post_init__(self) -> None:
        if self.segmenter is None:
            self.segmenter = ColorSegmenter(kernel_size=self.config.morph_kernel)
        if not self.active_color:
            self.active_color = self.config.default_color
        self.select_color(self.active_color)

    def select_color(self, family: str) -> None:
        if family not in self.segmenter.families:
            raise ValueError(
                f"Unknown color {family!r}; expected one of {', '.join(self.segmenter.families)}."
            )
        if family != self.active_color:
            logger.info("Active color -> %s", family)
        self.active_color = family

    def convert(self, frame: np.ndarray):
        if self.config.use_manual_conversion:
            return to_grayscale(frame), to_hsv(frame)
        return reference_grayscale(frame), reference_hsv(frame)

    def process(self, frame: np.ndarray) -> Optional[FrameAnalysis]:
        # Empty or malformed frames are skipped, not fatal.
        if not is_bgr_u8(frame):
            return None

        gray, hsv = self.convert(frame)
        if is_empty(hsv):
            return None

        self.frames_processed += 1
        index = self.frames_processed

        histogram = build_hue_histogram(hsv)
        peaks = find_dominant_peaks(
            histogram.raw, top_n=self.config.top_n, threshold=self.config.peak_threshold
        )

        color = self.active_color
        mask = self.segmenter.segment_color(hsv, color)
        draw_color = self.segmenter.display_color(color)
        if is_empty(mask):
            detection = DetectionResult(draw_color=draw_color, failure=VisionFailure.PROCESSING_FAULT)
        else:
            detection = detect_objects(frame, mask, draw_color, min_area=self.config.min_area)

        report = None
        interval = self.config.reference_check_interval
        if interval > 0 and index % interval == 0:
            report = compare_with_reference(frame)
            logger.info("[Frame %d] MSE gray: %.4f, MSE HSV: %.4f", index, report.gray_mse, report.hsv_mse)

        return FrameAnalysis(
            index=index,
            frame=frame,
            gray=gray,
            hsv=hsv,
            histogram=histogram,
            peaks=peaks,
            color=color,
            mask=mask,
            detection=detection,
            report=report,
        )


def run(
    analyzer: FrameAnalyzer,
    source: FrameSource,
    stop_event: threading.Event,
    sink: Callable[[FrameAnalysis], None],
    max_frames: Optional[int] = None,
    idle_wait: float = 0.01,
) -> int:
    """
    Pull frames from ``source`` until ``stop_event`` is set.

    Returns the number of analyses handed to ``sink``. Empty frames from the
    source are skipped; ``max_frames`` bounds the number of reads.
    """
    delivered = 0
    reads = 0
    while not stop_event.is_set():
        if max_frames is not None and reads >= max_frames:
            break
        frame = source.read()
        reads += 1

        analysis = analyzer.process(frame)
        if analysis is None:
            # Source hiccup; back off briefly instead of spinning.
            stop_event.wait(idle_wait)
            continue

        sink(analysis)
        delivered += 1
    return delivered
