import asyncio
from typing import Optional

import cv2
from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from huescope.camera_manager import VIEWS
from huescope.config import color_range_to_dict
from huescope.pipeline import FrameAnalysis, FrameAnalyzer
from huescope.vision.frame_compare import compare_with_reference
from huescope.vision.vision_utils import decode_image_bytes, encode_png_base64

router = APIRouter()


class ColorSelection(BaseModel):
    color: str


def _analysis_payload(analysis: FrameAnalysis) -> dict:
    # API-friendly view of one analysis; images are base64 PNGs.
    det = analysis.detection
    h, w = analysis.frame.shape[:2]
    payload = {
        "width": int(w),
        "height": int(h),
        "color": analysis.color,
        "coverage": float(det.coverage),
        "failure": det.failure.value if det.failure else None,
        "objects": [
            {
                "bbox": list(obj.bbox),
                "area": obj.area,
                "contour": obj.contour.reshape(-1, 2).tolist(),
            }
            for obj in det.objects
        ],
        "peaks": [
            {"hue": p.hue, "magnitude": p.magnitude, "color_name": p.color_name}
            for p in analysis.peaks
        ],
    }

    images = {
        "gray": analysis.gray,
        "hsv": analysis.hsv,
        "mask": analysis.mask,
        "result": analysis.result_image(),
        "histogram": analysis.histogram_image(),
    }
    encoded = {}
    for name, img in images.items():
        encoded[name] = encode_png_base64(img)
    payload["images"] = encoded
    return payload


@router.get("/api/status")
def status(request: Request):
    # "ready" is controlled by the lifespan startup sequence (camera init).
    runner = getattr(request.app.state, "runner", None)
    return {
        "ready": bool(getattr(request.app.state, "ready", False)),
        "streaming": bool(runner and runner.is_running()),
        "color": request.app.state.analyzer.active_color,
    }


@router.get("/api/colors")
def colors(request: Request):
    analyzer: FrameAnalyzer = request.app.state.analyzer
    return {
        "active": analyzer.active_color,
        "families": list(analyzer.segmenter.families),
        "ranges": [color_range_to_dict(cr) for cr in analyzer.segmenter.ranges],
    }


@router.post("/api/color")
def select_color(payload: ColorSelection, request: Request):
    runner = getattr(request.app.state, "runner", None)
    try:
        if runner is not None:
            runner.select_color(payload.color)
        else:
            request.app.state.analyzer.select_color(payload.color)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "color": payload.color}


@router.post("/api/analyze")
async def analyze(
    request: Request,
    file: UploadFile = File(...),
    color: Optional[str] = Query(default=None),
):
    data = await file.read()
    image = decode_image_bytes(data)
    if image is None:
        raise HTTPException(status_code=400, detail="Invalid image")

    live: FrameAnalyzer = request.app.state.analyzer
    # Uploads get their own analyzer so they never disturb the live loop's state.
    try:
        analyzer = FrameAnalyzer(
            config=live.config,
            segmenter=live.segmenter,
            active_color=color or live.active_color,
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    analysis = await asyncio.to_thread(analyzer.process, image)
    if analysis is None:
        raise HTTPException(status_code=400, detail="Expected a 3-channel 8-bit color image")

    payload = _analysis_payload(analysis)
    report = compare_with_reference(image)
    payload["mse"] = {"gray": report.gray_mse, "hsv": report.hsv_mse}
    return JSONResponse(payload)


@router.get("/api/histogram.png")
def histogram_png(request: Request):
    runner = getattr(request.app.state, "runner", None)
    analysis = runner.latest_analysis() if runner else None
    if analysis is None:
        raise HTTPException(status_code=503, detail="No live analysis available")

    ok, png = cv2.imencode(".png", analysis.histogram_image())
    if not ok:
        raise HTTPException(status_code=500, detail="Failed to encode histogram")
    return Response(content=png.tobytes(), media_type="image/png")


# -----------------------------
# Streaming MJPEG
# -----------------------------
BOUNDARY = "frame"


@router.get("/api/stream/{view}", include_in_schema=False)
async def stream_view(view: str, request: Request):
    if view not in VIEWS:
        raise HTTPException(status_code=404, detail="Unknown view")
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(status_code=503, detail="Live analysis not running")

    async def gen():
        last_seq = -1
        while True:
            if await request.is_disconnected():
                break

            # wait_for_jpeg is blocking (condition-based), so it must run off the event loop.
            jpeg, seq = await asyncio.to_thread(runner.wait_for_jpeg, view, last_seq, 0.5)
            if jpeg is None or seq == last_seq:
                await asyncio.sleep(0.005)
                continue

            last_seq = seq
            yield (
                f"--{BOUNDARY}\r\n"
                "Content-Type: image/jpeg\r\n"
                f"Content-Length: {len(jpeg)}\r\n\r\n"
            ).encode("utf-8") + jpeg + b"\r\n"

    return StreamingResponse(
        gen(),
        media_type=f"multipart/x-mixed-replace; boundary={BOUNDARY}",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate",
            "Pragma": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
