"""
OpenCV webcam capture driver.
CAMERA_INDEX env var (default 0) selects the webcam device.
Webcams provide neither mattes nor companion clips, so those events never fire.
"""
import os

import cv2

from photocapture.adapters.camera.base import CameraAdapter
from photocapture.orchestrator.contracts import CapturedPhoto, ResolvedPhotoSettings, TimeRange


class CV2Camera(CameraAdapter):
    def __init__(self, status_store, index: int | None = None):
        self.status = status_store
        self._index = index if index is not None else int(os.getenv("CAMERA_INDEX", "0"))
        self._cap = None

    def _open(self):
        if self._cap is None or not self._cap.isOpened():
            self._cap = cv2.VideoCapture(self._index)
            if not self._cap.isOpened():
                self.status.log(f"cv2_camera: failed to open device {self._index}")

    def _grab_jpeg(self) -> tuple[bytes | None, tuple[int, int]]:
        self._open()
        if self._cap is None or not self._cap.isOpened():
            return None, (0, 0)
        ret, frame = self._cap.read()
        if not ret or frame is None:
            self.status.log("cv2_camera: frame capture failed")
            return None, (0, 0)
        ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 85])
        h, w = frame.shape[:2]
        return (bytes(buf) if ok else None), (w, h)

    def capture_photo(self, settings, delegate):
        resolved = ResolvedPhotoSettings(unique_id=settings.unique_id, processing_time_range=TimeRange(0.0, 0.1))
        delegate.on_capture_will_begin(resolved)
        delegate.on_will_capture(resolved)

        data, dims = self._grab_jpeg()
        resolved = ResolvedPhotoSettings(
            unique_id=settings.unique_id,
            photo_dimensions=dims,
            processing_time_range=resolved.processing_time_range,
        )
        if data is None:
            err = RuntimeError(f"cv2_camera: no frame from device {self._index}")
            delegate.on_photo_processed(None, error=err)
            delegate.on_capture_finished(resolved, error=err)
            return

        delegate.on_photo_processed(CapturedPhoto(file_data=data), enabled_matte_types=())
        delegate.on_capture_finished(resolved)

    def release(self):
        if self._cap and self._cap.isOpened():
            self._cap.release()
            self._cap = None
