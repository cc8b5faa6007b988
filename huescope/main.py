import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from huescope.api import router
from huescope.config import Settings, load_settings
from huescope.core.lifespan import lifespan
from huescope.pipeline import FrameAnalyzer
from huescope.vision.color_segmentation import ColorSegmenter


def create_app(settings: Optional[Settings] = None, start_camera: bool = True) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(title="huescope", lifespan=lifespan)
    app.state.settings = settings
    app.state.start_camera = start_camera
    app.state.ready = not start_camera
    app.state.runner = None

    # The color table is fixed for the app's lifetime and shared read-only.
    segmenter = ColorSegmenter(settings.color_ranges, kernel_size=settings.analysis.morph_kernel)
    app.state.analyzer = FrameAnalyzer(config=settings.analysis, segmenter=segmenter)

    app.include_router(router)

    @app.get("/.well-known/appspecific/com.chrome.devtools.json", include_in_schema=False)
    def chrome_devtools_manifest():
        # Some Chrome tooling probes for this path; returning {} avoids noisy 404s in dev.
        return JSONResponse({})

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
