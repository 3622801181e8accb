import functools
import threading
from typing import Optional

from photocapture.orchestrator.contracts import Location, PhotoSettings, ResolvedPhotoSettings
from photocapture.orchestrator.state_machine import PhotoCaptureProcessor


class CaptureService:
    """Starts captures on a camera driver and keeps each processor alive until it completes.

    Several captures may be in flight at once; each gets its own processor and
    the only shared state here is the in-progress table.
    """

    def __init__(self, camera, library, status_store, compositor=None, compositor_pool=None):
        self.camera = camera
        self.library = library
        self.status = status_store
        self.compositor = compositor
        self.compositor_pool = compositor_pool
        self._in_progress: dict[str, PhotoCaptureProcessor] = {}
        self._lock = threading.Lock()

    def capture_photo(self, settings: PhotoSettings, location: Optional[Location] = None) -> PhotoCaptureProcessor:
        processor = PhotoCaptureProcessor(
            settings,
            self.library,
            self.status,
            will_capture_photo_animation=self._on_will_capture,
            live_photo_capture_handler=functools.partial(self.status.set_live_capture, settings.unique_id),
            photo_processing_handler=functools.partial(self.status.set_processing, settings.unique_id),
            completion_handler=self._on_complete,
            compositor=self.compositor,
            compositor_pool=self.compositor_pool,
        )
        processor.location = location
        with self._lock:
            self._in_progress[settings.unique_id] = processor
        self.status.log(
            f"capture_service: start {settings.unique_id}"
            f" live={settings.live_photo_enabled} portrait={settings.portrait_matte_enabled}"
            f" mattes={list(settings.enabled_matte_types)}"
        )
        try:
            self.camera.capture_photo(settings, processor)
        except Exception as e:
            # Driver died mid-capture: close the request through the capture-error path
            self.status.log(f"capture_service: driver raised on {settings.unique_id}: {type(e).__name__}: {e}")
            processor.on_capture_finished(ResolvedPhotoSettings(unique_id=settings.unique_id), error=e)
        return processor

    def in_progress(self) -> list[str]:
        with self._lock:
            return list(self._in_progress)

    # ── Hooks ───────────────────────────────────────────────────────────────

    def _on_will_capture(self):
        self.status.flash()

    def _on_complete(self, processor: PhotoCaptureProcessor):
        with self._lock:
            self._in_progress.pop(processor.unique_id, None)
        self.status.clear_capture(processor.unique_id)
        summary = processor.summary()
        self.status.record_capture(summary)
        self.status.log(
            f"capture_service: done {summary.unique_id} saved={summary.saved}"
            f" errors={summary.error_codes} dt={summary.duration_ms}ms"
        )
