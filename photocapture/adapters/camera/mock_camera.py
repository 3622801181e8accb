"""
Mock camera driver for dev runs and tests.

Produces a deterministic synthetic frame (or a caller-supplied image), mattes
at half the photo resolution, and an optional placeholder companion clip,
then plays the capture events in driver order. `fail_stage` injects a
driver error at "photo", "movie" or "capture".
"""
import os
import tempfile

import cv2
import numpy as np

from photocapture.adapters.camera.base import CameraAdapter
from photocapture.orchestrator.contracts import (
    GLASSES, HAIR, SKIN, TEETH, SEGMENTATION_MATTE_TYPES,
    CapturedPhoto, ResolvedPhotoSettings, TimeRange,
)

FRAME_W, FRAME_H = 640, 480
MATTE_DIVISOR = 2
MOVIE_DURATION_S = 3.0
MOVIE_DISPLAY_TIME_S = 1.5
_MOVIE_PLACEHOLDER = b"\x00\x00\x00\x14ftypqt  \x00\x00\x00\x00qt  "


def synthetic_frame(width: int = FRAME_W, height: int = FRAME_H) -> np.ndarray:
    """Gradient backdrop with a face-like ellipse and a hair band (BGR)."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[..., 0] = np.linspace(0, 255, width).astype(np.uint8)[None, :]
    img[..., 1] = np.linspace(0, 255, height).astype(np.uint8)[:, None]
    img[..., 2] = 96
    cx, cy = width // 2, height // 2
    cv2.ellipse(img, (cx, cy), (width // 6, height // 4), 0, 0, 360, (80, 140, 210), -1)
    cv2.ellipse(img, (cx, cy - height // 5), (width // 5, height // 10), 0, 180, 360, (30, 30, 40), -1)
    return img


def synthetic_mattes(width: int, height: int, portrait: bool, matte_types) -> tuple:
    """Return (portrait_matte | None, {type: matte}) at width x height."""
    cx, cy = width // 2, height // 2
    face_axes = (width // 6, height // 4)

    def blank():
        return np.zeros((height, width), dtype=np.uint8)

    portrait_matte = None
    if portrait:
        portrait_matte = blank()
        cv2.ellipse(portrait_matte, (cx, cy), (face_axes[0] + width // 20, face_axes[1] + height // 10),
                    0, 0, 360, 255, -1)
        portrait_matte = cv2.GaussianBlur(portrait_matte, (15, 15), 0)

    mattes = {}
    for matte_type in matte_types:
        if matte_type not in SEGMENTATION_MATTE_TYPES:
            continue
        m = blank()
        if matte_type == SKIN:
            cv2.ellipse(m, (cx, cy), face_axes, 0, 0, 360, 255, -1)
        elif matte_type == HAIR:
            cv2.ellipse(m, (cx, cy - height // 5), (width // 5, height // 10), 0, 180, 360, 255, -1)
        elif matte_type == TEETH:
            cv2.rectangle(m, (cx - width // 30, cy + height // 8), (cx + width // 30, cy + height // 7), 255, -1)
        elif matte_type == GLASSES:
            for dx in (-width // 14, width // 14):
                cv2.circle(m, (cx + dx, cy - height // 20), max(2, width // 24), 255, 2)
        mattes[matte_type] = m
    return portrait_matte, mattes


class MockCamera(CameraAdapter):
    def __init__(self, status_store, image_bytes: bytes | None = None, orientation: int | None = None,
                 processing_time: tuple[float, float] = (0.2, 0.3), fail_stage: str | None = None,
                 movie_dir: str | None = None):
        self.status = status_store
        self.image_bytes = image_bytes
        self.orientation = orientation
        self.processing_time = processing_time
        self.fail_stage = fail_stage
        self.movie_dir = movie_dir or tempfile.gettempdir()

    def _frame(self) -> np.ndarray:
        if self.image_bytes:
            frame = cv2.imdecode(np.frombuffer(self.image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
            if frame is not None:
                return frame
            self.status.log("mock_camera: could not decode supplied image, using synthetic frame")
        return synthetic_frame()

    def _write_movie(self, unique_id: str) -> str:
        path = os.path.join(self.movie_dir, f"live-{unique_id}.mov")
        with open(path, "wb") as f:
            f.write(_MOVIE_PLACEHOLDER)
        return path

    def _photo(self, frame: np.ndarray, settings) -> CapturedPhoto:
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 90])
        h, w = frame.shape[:2]
        portrait, mattes = synthetic_mattes(
            max(1, w // MATTE_DIVISOR), max(1, h // MATTE_DIVISOR),
            settings.portrait_matte_enabled, settings.enabled_matte_types,
        )
        metadata = {"Orientation": self.orientation} if self.orientation else {}
        return CapturedPhoto(
            file_data=bytes(buf) if ok else None,
            metadata=metadata,
            portrait_effects_matte=portrait,
            segmentation_mattes=mattes,
        )

    def _injected(self, stage: str):
        if self.fail_stage == stage:
            return RuntimeError(f"mock_camera: injected {stage} error")
        return None

    def capture_photo(self, settings, delegate):
        frame = self._frame()
        h, w = frame.shape[:2]
        live = settings.live_photo_enabled
        resolved = ResolvedPhotoSettings(
            unique_id=settings.unique_id,
            photo_dimensions=(w, h),
            live_photo_movie_dimensions=(w, h) if live else (0, 0),
            processing_time_range=TimeRange(*self.processing_time),
        )
        self.status.log(f"mock_camera: capture {settings.unique_id} {w}x{h} live={live}")

        delegate.on_capture_will_begin(resolved)
        delegate.on_will_capture(resolved)

        movie_path = self._write_movie(settings.unique_id) if live else None
        if movie_path:
            delegate.on_live_movie_eventually_at(movie_path, resolved)

        photo_error = self._injected("photo")
        photo = None if photo_error else self._photo(frame, settings)
        delegate.on_photo_processed(photo, error=photo_error, enabled_matte_types=settings.enabled_matte_types)

        if movie_path:
            movie_error = self._injected("movie")
            if movie_error:
                os.remove(movie_path)
            delegate.on_live_movie_finished(movie_path, MOVIE_DURATION_S, MOVIE_DISPLAY_TIME_S,
                                            resolved, error=movie_error)

        delegate.on_capture_finished(resolved, error=self._injected("capture"))
