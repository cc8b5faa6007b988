import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from huescope.camera_manager import AnalysisRunner, CameraStream

logger = logging.getLogger(__name__)


async def _init_camera(app: FastAPI) -> None:
    # Exposed readiness flag used by the API to signal operational state
    app.state.ready = False
    settings = app.state.settings

    camera = CameraStream(settings.camera)
    app.state.camera = camera

    # Opening a device can block for seconds on some drivers.
    opened = await asyncio.to_thread(camera.start)
    if not opened:
        # Uploads keep working without a camera; only streaming is unavailable.
        logger.warning("Camera %d unavailable; live analysis disabled", settings.camera.index)
        app.state.ready = True
        return

    runner = AnalysisRunner(app.state.analyzer, camera, jpeg_quality=settings.camera.jpeg_quality)
    runner.start()
    app.state.runner = runner
    app.state.ready = True
    logger.info("Camera ready -> state.ready = True")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application is starting up...")
    app.state.ready = False
    app.state.runner = None
    app.state.camera = None

    cam_task = None
    if app.state.start_camera:
        # Camera initialization runs in the background to avoid blocking startup.
        cam_task = asyncio.create_task(_init_camera(app))
    else:
        app.state.ready = True

    try:
        yield
    finally:
        logger.info("Shutting down...")
        app.state.ready = False

        if cam_task is not None:
            # Ensure background initialization does not outlive the application
            cam_task.cancel()
            try:
                await cam_task
            except asyncio.CancelledError:
                pass

        runner = getattr(app.state, "runner", None)
        if runner:
            runner.stop()
        camera = getattr(app.state, "camera", None)
        if camera:
            camera.stop()

        logger.info("Backend stopped")
