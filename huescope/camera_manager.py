import logging
import os
import threading
import time
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from huescope.config import CameraConfig
from huescope.pipeline import run
from huescope.vision.vision_utils import empty_frame

logger = logging.getLogger(__name__)


class CameraStream:
    """
    Synchronous frame source over ``cv2.VideoCapture``.

    ``read`` never raises: a closed device or a failed grab returns an empty
    frame, which the analysis loop skips.
    """

    def __init__(self, cfg: CameraConfig) -> None:
        self.cfg = cfg
        self.capture: Optional[cv2.VideoCapture] = None

    def start(self) -> bool:
        if self.capture is not None:
            return True

        backend = cv2.CAP_DSHOW if os.name == "nt" else 0
        capture = cv2.VideoCapture(self.cfg.index, backend)
        if not capture.isOpened():
            capture.release()
            logger.warning("Camera %d could not be opened", self.cfg.index)
            return False

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.cfg.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.cfg.height)
        capture.set(cv2.CAP_PROP_FPS, self.cfg.fps)
        self.capture = capture
        logger.info("Camera %d opened", self.cfg.index)
        return True

    def is_open(self) -> bool:
        return self.capture is not None and self.capture.isOpened()

    def read(self) -> np.ndarray:
        if self.capture is None:
            return empty_frame()
        ok, frame = self.capture.read()
        if not ok or frame is None:
            return empty_frame()
        return frame

    def stop(self) -> None:
        if self.capture is not None:
            self.capture.release()
            self.capture = None


VIEWS = ("original", "gray", "hsv", "mask", "result", "histogram")


class AnalysisRunner:
    """
    Runs the synchronous analysis loop on a background thread and publishes
    the latest JPEG of each view for the MJPEG endpoint.

    The loop itself is single-threaded; the lock only guards the published
    outputs read by request handlers.
    """

    def __init__(self, analyzer, source, jpeg_quality: int = 80) -> None:
        self.analyzer = analyzer
        self.source = source
        self.jpeg_quality = int(jpeg_quality)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._jpeg_cond = threading.Condition(self._lock)
        self._latest: Dict[str, bytes] = {}
        self._latest_analysis = None
        self._seq = 0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="AnalysisLoop", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def select_color(self, family: str) -> None:
        with self._lock:
            self.analyzer.select_color(family)

    def latest_analysis(self):
        with self._lock:
            return self._latest_analysis

    def wait_for_jpeg(self, view: str, last_seq: int, timeout: float) -> Tuple[Optional[bytes], int]:
        # Blocks until a newer frame than last_seq is published or timeout.
        deadline = time.monotonic() + max(float(timeout), 0.0)
        with self._lock:
            while True:
                jpeg = self._latest.get(view)
                if jpeg is not None and self._seq != last_seq:
                    return jpeg, self._seq
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return jpeg, self._seq
                self._jpeg_cond.wait(timeout=remaining)

    def publish(self, analysis) -> None:
        images = {
            "original": analysis.frame,
            "gray": analysis.gray,
            "hsv": analysis.hsv,
            "mask": analysis.mask,
            "result": analysis.result_image(),
            "histogram": analysis.histogram_image(),
        }
        params = [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality]
        encoded: Dict[str, bytes] = {}
        for view, img in images.items():
            if img is None or img.size == 0:
                continue
            ok, buf = cv2.imencode(".jpg", img, params)
            if ok:
                encoded[view] = buf.tobytes()

        with self._lock:
            self._latest.update(encoded)
            self._latest_analysis = analysis
            self._seq += 1
            self._jpeg_cond.notify_all()

    def _run(self) -> None:
        logger.info("Analysis loop started")
        try:
            run(self.analyzer, self.source, self._stop, self.publish)
        finally:
            logger.info("Analysis loop stopped")
