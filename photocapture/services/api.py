import base64
import binascii
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from pathlib import Path

import cv2
import numpy as np
from fastapi import FastAPI
from dotenv import load_dotenv

from photocapture.services.models import (
    CaptureSummaryOut, StatusResponse, CaptureRequestIn, CaptureResponse,
    CompositeRequest, CompositeResponse,
)
from photocapture.services.status_store import StatusStore
from photocapture.orchestrator.capture_service import CaptureService
from photocapture.orchestrator.contracts import Location, PhotoSettings
from photocapture.imaging.compositor import MatteCompositor, srgb_profile
from photocapture.adapters.camera.mock_camera import MockCamera
from photocapture.adapters.camera.cv2_camera import CV2Camera
from photocapture.adapters.library.memory_library import MemoryAssetLibrary
from photocapture.adapters.library.directory_library import DirectoryAssetLibrary
from photocapture.adapters.library.http_library import HttpAssetLibrary

load_dotenv(dotenv_path="photocapture/.env", override=False)

app = FastAPI(title="photocapture")

status = StatusStore()

# Asset library: LIBRARY_ADAPTER = memory | directory | http  (default: memory)
library_adapter = os.getenv("LIBRARY_ADAPTER", "memory").lower()
if library_adapter == "http":
    library_url = os.getenv("LIBRARY_HTTP_BASE_URL", "http://127.0.0.1:9100")
    library = HttpAssetLibrary(status, base_url=library_url)
    status.log(f"library adapter: http -> {library_url}")
elif library_adapter == "directory":
    library_dir = os.getenv("LIBRARY_DIR", "photocapture_library")
    library = DirectoryAssetLibrary(status, library_dir)
    status.log(f"library adapter: directory -> {library_dir}")
else:
    library = MemoryAssetLibrary(status)
    status.log("library adapter: memory")

# Camera driver: CAMERA_ADAPTER = mock | cv2  (default: mock)
camera_adapter = os.getenv("CAMERA_ADAPTER", "mock").lower()
if camera_adapter == "cv2":
    camera = CV2Camera(status)
else:
    _image_path = os.getenv("MOCK_CAMERA_IMAGE")
    _image_bytes = Path(_image_path).read_bytes() if _image_path and os.path.isfile(_image_path) else None
    camera = MockCamera(status, image_bytes=_image_bytes)
status.log(f"camera adapter: {type(camera).__name__}")

# COMPOSITOR_WORKERS=0 composites inline on the driver's event thread
compositor_workers = int(os.getenv("COMPOSITOR_WORKERS", "0"))
compositor_pool = (
    ThreadPoolExecutor(max_workers=compositor_workers, thread_name_prefix="compositor")
    if compositor_workers > 0 else None
)
compositor = MatteCompositor(status)

CAPTURE_TIMEOUT_S = float(os.getenv("CAPTURE_TIMEOUT_S", "30"))

service = CaptureService(
    camera=camera, library=library, status_store=status,
    compositor=compositor, compositor_pool=compositor_pool,
)


def _summary_out(summary) -> CaptureSummaryOut:
    return CaptureSummaryOut(**asdict(summary))


@app.get("/status", response_model=StatusResponse)
def get_status():
    last = status.last_capture
    return StatusResponse(
        live_captures_in_progress=status.live_captures_in_progress,
        processing=status.processing,
        flash_count=status.flash_count,
        in_progress=service.in_progress(),
        last_capture=_summary_out(last) if last else None,
        logs=status.snapshot_logs(),
    )


@app.post("/capture", response_model=CaptureResponse)
def capture(req: CaptureRequestIn):
    """Run one capture on the configured driver and wait for it to finalize."""
    settings = PhotoSettings(
        processed_file_type=req.processed_file_type,
        live_photo_enabled=req.live_photo,
        portrait_matte_enabled=req.portrait_matte,
        enabled_matte_types=tuple(req.matte_types),
    )
    location = None
    if req.latitude is not None and req.longitude is not None:
        location = Location(latitude=req.latitude, longitude=req.longitude, altitude=req.altitude)

    processor = service.capture_photo(settings, location=location)
    finished = processor.wait(CAPTURE_TIMEOUT_S)
    if not finished:
        status.log(f"CAPTURE {settings.unique_id}: not finalized after {CAPTURE_TIMEOUT_S}s")
    summary = processor.summary()
    return CaptureResponse(ok=finished and summary.saved is True, finished=finished, summary=_summary_out(summary))


@app.get("/captures")
def list_captures():
    return {"in_progress": service.in_progress()}


@app.post("/composite", response_model=CompositeResponse)
def composite(req: CompositeRequest):
    """Composite an uploaded image + matte pair, outside of any capture."""
    try:
        image_bytes = base64.b64decode(req.image)
        matte_bytes = base64.b64decode(req.matte)
    except (binascii.Error, ValueError) as e:
        status.log(f"COMPOSITE decode error: {e}")
        return CompositeResponse(ok=False, error="base64 decode failed")
    if not image_bytes or not matte_bytes:
        return CompositeResponse(ok=False, error="empty image or matte")

    # sensor frame; req.orientation is applied by the compositor
    image = cv2.imdecode(np.frombuffer(image_bytes, dtype=np.uint8),
                         cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    matte = cv2.imdecode(np.frombuffer(matte_bytes, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None or matte is None:
        status.log("COMPOSITE: image or matte could not be decoded")
        return CompositeResponse(ok=False, error="image decode failed")

    result = compositor.composite(image, matte, req.matte_type, req.orientation)
    if result is None:
        return CompositeResponse(ok=False, error="composite skipped, see /status logs")
    status.log(f"COMPOSITE {req.matte_type}: {result.kind} ({len(result.data)} bytes)")
    return CompositeResponse(ok=True, kind=result.kind, image=base64.b64encode(result.data).decode("ascii"))


@app.get("/health")
def health():
    """Check connectivity to all collaborators."""
    checks = {"api": True, "camera_adapter": type(camera).__name__, "library_adapter": library_adapter}

    if library_adapter == "http":
        try:
            library.get_status()
            checks["library_reachable"] = True
        except Exception as e:
            checks["library_reachable"] = False
            checks["library_error"] = str(e)
    else:
        checks["library_reachable"] = True

    checks["srgb_profile"] = srgb_profile() is not None
    checks["compositor_workers"] = compositor_workers
    checks["all_ok"] = checks["api"] and checks["library_reachable"] and checks["srgb_profile"]
    return checks
