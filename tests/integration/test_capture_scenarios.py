"""
End-to-end captures: CaptureService driving a camera adapter into a library.
"""
import io
import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from PIL import Image

from photocapture.adapters.camera.base import CameraAdapter
from photocapture.adapters.camera.mock_camera import MockCamera
from photocapture.adapters.library.directory_library import DirectoryAssetLibrary
from photocapture.adapters.library.memory_library import MemoryAssetLibrary
from photocapture.imaging.compositor import META_KIND
from photocapture.orchestrator import errors
from photocapture.orchestrator.capture_service import CaptureService
from photocapture.orchestrator.contracts import (
    CapturedPhoto, Location, PhotoSettings, ResolvedPhotoSettings, TimeRange,
)


class HalfBrokenCamera(CameraAdapter):
    """Delivers a hair matte that composites and a skin matte with no pixels."""

    def __init__(self, jpeg: bytes, matte: np.ndarray):
        self.jpeg = jpeg
        self.matte = matte

    def capture_photo(self, settings, delegate):
        resolved = ResolvedPhotoSettings(settings.unique_id, (160, 120), (0, 0), TimeRange(0.1, 0.2))
        delegate.on_capture_will_begin(resolved)
        delegate.on_will_capture(resolved)
        photo = CapturedPhoto(
            file_data=self.jpeg,
            segmentation_mattes={"hair": self.matte, "skin": np.zeros((0, 0), dtype=np.uint8)},
        )
        delegate.on_photo_processed(photo, enabled_matte_types=settings.enabled_matte_types)
        delegate.on_capture_finished(resolved)

    def release(self):
        pass


class CrashingCamera(CameraAdapter):
    """Raises once the shutter fired on a slow, live capture."""

    def capture_photo(self, settings, delegate):
        resolved = ResolvedPhotoSettings(settings.unique_id, (160, 120), (160, 120), TimeRange(1.0, 1.0))
        delegate.on_capture_will_begin(resolved)
        delegate.on_will_capture(resolved)
        raise RuntimeError("driver crashed")

    def release(self):
        pass


@pytest.fixture
def movie_dir(tmp_path):
    d = tmp_path / "movies"
    d.mkdir()
    return d


@pytest.fixture
def make_service(status, library, movie_dir):
    def _make(camera=None, library_override=None, **camera_kwargs):
        camera_kwargs.setdefault("movie_dir", str(movie_dir))
        camera = camera or MockCamera(status, **camera_kwargs)
        return CaptureService(camera, library_override or library, status)
    return _make


def _kind_of(png: bytes) -> str:
    return Image.open(io.BytesIO(png)).text[META_KIND]


@pytest.mark.integration
class TestScenarios:
    def test_plain_photo(self, make_service, library, status):
        service = make_service()
        p = service.capture_photo(PhotoSettings())
        assert p.wait(5.0)
        assert p.saved is True
        assert len(library.assets) == 1
        assert library.resources_of_type("paired_video") == []
        assert status.last_capture.unique_id == p.unique_id
        assert service.in_progress() == []
        assert status.flash_count == 1

    def test_portrait_photo(self, make_service, library):
        p = make_service().capture_photo(PhotoSettings(portrait_matte_enabled=True))
        assert p.wait(5.0)
        photos = library.resources_of_type("photo")
        assert len(photos) == 2
        assert photos[0].uniform_type_identifier == "public.jpeg"
        assert photos[1].uniform_type_identifier == "public.png"
        assert _kind_of(photos[1].data) == "blended"
        size = Image.open(io.BytesIO(photos[1].data)).size
        assert size == (640, 480)

    def test_capture_error_saves_nothing(self, make_service, library, status):
        p = make_service(fail_stage="capture").capture_photo(PhotoSettings(portrait_matte_enabled=True))
        assert p.wait(5.0)
        assert p.finalized
        assert library.authorization_requests == 0
        assert library.assets == []
        assert status.last_capture.error_codes == [errors.ERR_CAPTURE]

    def test_partial_segmentation(self, make_service, library, jpeg_bytes, sample_matte):
        camera = HalfBrokenCamera(jpeg_bytes, sample_matte)
        p = make_service(camera=camera).capture_photo(PhotoSettings(enabled_matte_types=("hair", "skin")))
        assert p.wait(5.0)
        assert len(p.segmentation_mattes) == 1
        assert p.segmentation_mattes[0].matte_type == "hair"
        assert len(library.resources_of_type("photo")) == 2
        assert p.saved is True

    def test_photo_error_finalizes_without_save(self, make_service, library, status):
        p = make_service(fail_stage="photo").capture_photo(PhotoSettings())
        assert p.wait(5.0)
        assert library.assets == []
        assert status.last_capture.error_codes == [errors.ERR_PHOTO, errors.ERR_NO_PHOTO_DATA]
        assert status.processing is False


@pytest.mark.integration
class TestDriverFailure:
    def test_raising_driver_still_completes(self, make_service, library, status):
        service = make_service(camera=CrashingCamera())
        p = service.capture_photo(PhotoSettings(live_photo_enabled=True))
        assert p.wait(0)
        assert p.finalized
        assert service.in_progress() == []
        assert status.last_capture.error_codes == [errors.ERR_CAPTURE]
        assert status.processing is False
        assert status.live_captures_in_progress == 0
        assert library.authorization_requests == 0

    def test_unwritable_movie_dir(self, make_service, status, tmp_path):
        service = make_service(movie_dir=str(tmp_path / "does-not-exist"))
        p = service.capture_photo(PhotoSettings(live_photo_enabled=True))
        assert p.wait(0)
        assert service.in_progress() == []
        assert status.last_capture.error_codes == [errors.ERR_CAPTURE]
        assert any("driver raised" in line for line in status.logs)


@pytest.mark.integration
class TestLivePhoto:
    def test_clip_moved_into_library(self, make_service, library, status, movie_dir):
        p = make_service().capture_photo(PhotoSettings(live_photo_enabled=True), Location(10.0, 20.0))
        assert p.wait(5.0)
        videos = library.resources_of_type("paired_video")
        assert len(videos) == 1
        assert videos[0].data.startswith(b"\x00\x00\x00\x14ftyp")
        assert library.assets[0].location == Location(10.0, 20.0)
        assert os.listdir(movie_dir) == []
        assert status.live_captures_in_progress == 0

    def test_clip_error_degrades_to_still(self, make_service, library, status, movie_dir):
        p = make_service(fail_stage="movie").capture_photo(PhotoSettings(live_photo_enabled=True))
        assert p.wait(5.0)
        assert p.saved is True
        assert library.resources_of_type("paired_video") == []
        assert status.last_capture.error_codes == [errors.ERR_MOVIE]
        assert os.listdir(movie_dir) == []

    def test_clip_removed_when_denied(self, make_service, status, movie_dir):
        denied = MemoryAssetLibrary(status, authorized=False)
        p = make_service(library_override=denied).capture_photo(PhotoSettings(live_photo_enabled=True))
        assert p.wait(5.0)
        assert p.companion_movie_path is not None
        assert os.listdir(movie_dir) == []


@pytest.mark.integration
class TestDirectoryBackedCapture:
    def test_everything_lands_on_disk(self, make_service, status, tmp_path, movie_dir):
        lib = DirectoryAssetLibrary(status, tmp_path / "library")
        settings = PhotoSettings(live_photo_enabled=True, portrait_matte_enabled=True,
                                 enabled_matte_types=("hair", "glasses"))
        p = make_service(library_override=lib).capture_photo(settings, Location(1.0, 2.0))
        assert p.wait(5.0)
        assert p.saved is True
        assets = lib.list_assets()
        assert len(assets) == 4
        files = sorted(r["file"] for a in assets for r in a["resources"])
        assert files == ["paired_video_1.mov", "photo_0.jpg", "photo_0.png", "photo_0.png", "photo_0.png"]
        assert os.listdir(movie_dir) == []


@pytest.mark.integration
class TestConcurrentCaptures:
    def test_captures_do_not_interfere(self, status, library, movie_dir):
        with ThreadPoolExecutor(max_workers=4, thread_name_prefix="compositor") as pool:
            service = CaptureService(MockCamera(status, movie_dir=str(movie_dir)), library, status,
                                     compositor_pool=pool)
            settings = [
                PhotoSettings(live_photo_enabled=i % 2 == 0, portrait_matte_enabled=True,
                              enabled_matte_types=("skin",))
                for i in range(6)
            ]
            with ThreadPoolExecutor(max_workers=6) as shutter:
                processors = list(shutter.map(service.capture_photo, settings))

        assert all(p.wait(5.0) for p in processors)
        assert all(p.saved is True for p in processors)
        assert service.in_progress() == []
        assert len({p.unique_id for p in processors}) == 6
        assert len(library.resources_of_type("photo")) == 6 * 3
        assert len(library.resources_of_type("paired_video")) == 3
        assert os.listdir(movie_dir) == []
