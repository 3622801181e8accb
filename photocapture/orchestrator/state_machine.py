import os
import threading
import time
from enum import IntEnum
from typing import Optional

from photocapture.adapters.library.base import AuthorizationStatus
from photocapture.imaging.compositor import MatteCompositor
from photocapture.orchestrator import errors
from photocapture.orchestrator.contracts import (
    PORTRAIT, AssetCreationRequest, AssetResource, CaptureSummary, CapturedPhoto,
    Location, MatteComposite, PhotoSettings, ResolvedPhotoSettings,
)

# Show the processing indicator when the driver expects to take longer than this
SLOW_PROCESSING_S = 1.0


class CaptureState(IntEnum):
    CREATED = 0
    AWAITING_CAPTURE = 1
    AWAITING_PROCESSING = 2
    AWAITING_PERSISTENCE = 3
    FINALIZED = 4


class PhotoCaptureProcessor:
    """
    Tracks one shutter action from the driver's first callback to completion.

    The driver delivers the six on_* events one at a time for a request; the
    processor is the only writer of its own fields. completion_handler fires
    exactly once, from _finalize(), on whichever thread runs the last step
    (the driver's for early exits, the library's after a save attempt).
    No error escapes: each one is logged, recorded in `errors` and handled
    according to errors.POLICY.
    """

    def __init__(self, settings: PhotoSettings, library, status_store, *,
                 will_capture_photo_animation, live_photo_capture_handler,
                 photo_processing_handler, completion_handler,
                 compositor: Optional[MatteCompositor] = None, compositor_pool=None):
        self.settings = settings
        self.library = library
        self.status = status_store
        self.compositor = compositor or MatteCompositor(status_store)
        self.compositor_pool = compositor_pool

        self._will_capture_photo_animation = will_capture_photo_animation
        self._live_photo_capture_handler = live_photo_capture_handler
        self._photo_processing_handler = photo_processing_handler
        self._completion_handler = completion_handler

        self.state = CaptureState.CREATED
        self.photo_data: Optional[bytes] = None
        self.companion_movie_path: Optional[str] = None
        self.portrait_matte: Optional[MatteComposite] = None
        self.segmentation_mattes: list[MatteComposite] = []
        self.max_processing_time: Optional[float] = None
        self.location: Optional[Location] = None  # set by the caller before finish
        self.saved: Optional[bool] = None
        self.errors: list[tuple[str, str]] = []

        self._photo_seen = False
        self._finish_seen = False
        self._finalizing = False
        self._finalize_lock = threading.Lock()
        self._done = threading.Event()
        self._t0 = time.time()
        self._t_done: Optional[float] = None

    @property
    def unique_id(self) -> str:
        return self.settings.unique_id

    @property
    def portrait_matte_data(self) -> Optional[bytes]:
        return self.portrait_matte.data if self.portrait_matte else None

    @property
    def segmentation_matte_data(self) -> list[bytes]:
        return [m.data for m in self.segmentation_mattes]

    # ── Bookkeeping ─────────────────────────────────────────────────────────

    def _log(self, msg: str):
        self.status.log(f"capture[{self.unique_id}]: {msg}")

    def _report(self, code: str, detail: str) -> str:
        action = errors.policy_for(code)
        self._log(f"{code} -> {action}: {detail}")
        if not self._finalizing:
            self.errors.append((code, detail))
        return action

    def _accept(self, event: str) -> bool:
        if self._finalizing or self._finish_seen:
            self._report(errors.ERR_PROTOCOL, f"{event} after capture finished, ignored")
            return False
        return True

    def _advance(self, state: CaptureState):
        if state > self.state:
            self.state = state

    # ── Driver events ───────────────────────────────────────────────────────

    def on_capture_will_begin(self, resolved: ResolvedPhotoSettings):
        if not self._accept("capture_will_begin"):
            return
        self._advance(CaptureState.AWAITING_CAPTURE)
        if resolved.expects_live_movie:
            self._live_photo_capture_handler(True)
        if resolved.processing_time_range is not None:
            self.max_processing_time = resolved.processing_time_range.end

    def on_will_capture(self, resolved: ResolvedPhotoSettings):
        if not self._accept("will_capture"):
            return
        self._advance(CaptureState.AWAITING_PROCESSING)
        self._will_capture_photo_animation()
        if self.max_processing_time is not None and self.max_processing_time > SLOW_PROCESSING_S:
            self._photo_processing_handler(True)

    def on_photo_processed(self, photo: Optional[CapturedPhoto], error: Optional[Exception] = None,
                           enabled_matte_types=()):
        if not self._accept("photo_processed"):
            return
        if self._photo_seen:
            self._report(errors.ERR_PROTOCOL, "duplicate photo_processed, ignored")
            return
        self._photo_seen = True
        self._photo_processing_handler(False)

        if error is not None or photo is None:
            self._report(errors.ERR_PHOTO, f"error capturing photo: {error}")
            return

        self._advance(CaptureState.AWAITING_PERSISTENCE)
        self.photo_data = photo.file_data_representation()
        self._log(f"photo processed ({len(self.photo_data or b'')} bytes)")

        # A portrait matte only exists when the driver detected a face
        jobs = []
        if photo.portrait_effects_matte is not None:
            jobs.append((PORTRAIT, photo.portrait_effects_matte))
        for matte_type in enabled_matte_types:
            matte = photo.segmentation_matte(matte_type)
            if matte is None:
                self._report(errors.ERR_MATTE, f"{matte_type}: no matte in payload")
                continue
            jobs.append((matte_type, matte))
        if not jobs:
            return

        results = self._composite_all(photo.pixel_data(), jobs, photo.orientation)
        for (matte_type, _), result in zip(jobs, results):
            if result is None:
                self._report(errors.ERR_MATTE, f"{matte_type}: composite failed")
            elif matte_type == PORTRAIT:
                self.portrait_matte = result
            else:
                self.segmentation_mattes.append(result)

    def on_live_movie_eventually_at(self, path: str, resolved: ResolvedPhotoSettings):
        if not self._accept("live_movie_eventually_at"):
            return
        self._live_photo_capture_handler(False)

    def on_live_movie_finished(self, path: str, duration: float, display_time: float,
                               resolved: ResolvedPhotoSettings, error: Optional[Exception] = None):
        if not self._accept("live_movie_finished"):
            return
        if error is not None:
            self._report(errors.ERR_MOVIE, f"error processing companion movie: {error}")
            return
        if self.companion_movie_path is not None:
            self._report(errors.ERR_PROTOCOL, f"companion movie already recorded, ignoring {path}")
            return
        self.companion_movie_path = str(path)
        self._log(f"companion movie at {path} ({duration:.2f}s)")

    def on_capture_finished(self, resolved: ResolvedPhotoSettings, error: Optional[Exception] = None):
        if not self._accept("capture_finished"):
            return
        self._finish_seen = True

        if error is not None:
            self._report(errors.ERR_CAPTURE, f"error capturing photo: {error}")
            self._finalize()
            return

        if self.photo_data is None:
            self._report(errors.ERR_NO_PHOTO_DATA, "no photo data resource")
            self._finalize()
            return

        self._log("requesting library authorization")
        try:
            self.library.request_authorization(self._on_authorization)
        except Exception as e:
            self._report(errors.ERR_PERSISTENCE, f"authorization request raised {type(e).__name__}: {e}")
            self._finalize()

    # ── Persistence ─────────────────────────────────────────────────────────

    def _creation_requests(self) -> list[AssetCreationRequest]:
        primary = AssetCreationRequest(location=self.location)
        primary.add_resource(AssetResource(
            resource_type="photo",
            data=self.photo_data,
            uniform_type_identifier=self.settings.processed_file_type,
        ))
        if self.companion_movie_path is not None:
            primary.add_resource(AssetResource(
                resource_type="paired_video",
                file_path=self.companion_movie_path,
                should_move_file=True,
            ))

        requests = [primary]
        auxiliary = ([self.portrait_matte] if self.portrait_matte else []) + self.segmentation_mattes
        for composite in auxiliary:
            req = AssetCreationRequest()
            req.add_resource(AssetResource(
                resource_type="photo",
                data=composite.data,
                uniform_type_identifier="public.png",
            ))
            requests.append(req)
        return requests

    def _on_authorization(self, auth):
        if auth != AuthorizationStatus.AUTHORIZED:
            self._report(errors.ERR_NOT_AUTHORIZED, f"library authorization {getattr(auth, 'value', auth)}")
            self._finalize()
            return
        requests = self._creation_requests()
        self._log(f"saving {len(requests)} asset(s)")
        try:
            self.library.perform_changes(requests, self._on_changes_performed)
        except Exception as e:
            self._report(errors.ERR_PERSISTENCE, f"save raised {type(e).__name__}: {e}")
            self._finalize()

    def _on_changes_performed(self, success: bool, error: Optional[Exception]):
        if success and error is None:
            self.saved = True
            self._log("saved to library")
        else:
            self.saved = False
            self._report(errors.ERR_PERSISTENCE, f"error saving to library: {error}")
        self._finalize()

    # ── Compositing ─────────────────────────────────────────────────────────

    def _composite_one(self, pixels, matte, matte_type: str, orientation):
        try:
            return self.compositor.composite(pixels, matte, matte_type, orientation)
        except Exception as e:
            self._log(f"compositor raised on {matte_type}: {type(e).__name__}: {e}")
            return None

    def _composite_all(self, pixels, jobs, orientation) -> list[Optional[MatteComposite]]:
        """Run every composite; results come back in job order."""
        if self.compositor_pool is None:
            return [self._composite_one(pixels, matte, t, orientation) for t, matte in jobs]
        futures = [
            self.compositor_pool.submit(self._composite_one, pixels, matte, t, orientation)
            for t, matte in jobs
        ]
        return [f.result() for f in futures]

    # ── Finalize ────────────────────────────────────────────────────────────

    def _finalize(self):
        with self._finalize_lock:
            if self._finalizing:
                return
            self._finalizing = True

        path = self.companion_movie_path
        if path and os.path.exists(path):
            try:
                os.remove(path)
                self._log(f"removed companion movie {path}")
            except OSError as e:
                self.errors.append((errors.ERR_CLEANUP, str(e)))
                self._log(f"{errors.ERR_CLEANUP} -> {errors.policy_for(errors.ERR_CLEANUP)}: "
                          f"could not remove file at {path}: {e}")

        self.state = CaptureState.FINALIZED
        self._t_done = time.time()
        self._log(f"finalized saved={self.saved}")
        try:
            self._completion_handler(self)
        finally:
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until completion has fired. Returns False on timeout."""
        return self._done.wait(timeout)

    @property
    def finalized(self) -> bool:
        return self.state is CaptureState.FINALIZED

    def summary(self) -> CaptureSummary:
        end = self._t_done or time.time()
        return CaptureSummary(
            unique_id=self.unique_id,
            state=self.state.name.lower(),
            saved=self.saved,
            photo_bytes=len(self.photo_data or b""),
            has_companion_movie=self.companion_movie_path is not None,
            portrait_kind=self.portrait_matte.kind if self.portrait_matte else None,
            segmentation_count=len(self.segmentation_mattes),
            error_codes=[code for code, _ in self.errors],
            duration_ms=int((end - self._t0) * 1000),
        )
