"""
Shared fixtures for all tests.

Provides sample images/mattes, a status store, an in-memory library and a
factory for PhotoCaptureProcessor wired to recording hooks.
"""
import threading

import cv2
import numpy as np
import pytest

from photocapture.adapters.library.memory_library import MemoryAssetLibrary
from photocapture.orchestrator.contracts import (
    CapturedPhoto, PhotoSettings, ResolvedPhotoSettings, TimeRange,
)
from photocapture.orchestrator.state_machine import PhotoCaptureProcessor
from photocapture.services.status_store import StatusStore


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def sample_image():
    """Random BGR image, 160x120."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 255, (120, 160, 3), dtype=np.uint8)


@pytest.fixture(scope="session")
def sample_matte():
    """Half-resolution matte with a filled rectangle."""
    m = np.zeros((60, 80), dtype=np.uint8)
    m[15:45, 20:60] = 255
    return m


@pytest.fixture(scope="session")
def jpeg_bytes(sample_image):
    ok, buf = cv2.imencode(".jpg", sample_image)
    assert ok
    return bytes(buf)


@pytest.fixture
def make_photo(jpeg_bytes, sample_matte):
    def _make(portrait: bool = False, mattes: dict | None = None, orientation: int | None = None,
              file_data: bytes | None = None):
        return CapturedPhoto(
            file_data=file_data if file_data is not None else jpeg_bytes,
            metadata={"Orientation": orientation} if orientation else {},
            portrait_effects_matte=sample_matte if portrait else None,
            segmentation_mattes=mattes or {},
        )
    return _make


# =============================================================================
# Capture Fixtures
# =============================================================================

@pytest.fixture
def status():
    return StatusStore()


@pytest.fixture
def library(status):
    return MemoryAssetLibrary(status)


class HookRecorder:
    def __init__(self):
        self.flashes = 0
        self.live = []
        self.processing = []
        self.completions = []
        self.completion_threads = []

    def will_capture(self):
        self.flashes += 1

    def live_capture(self, active):
        self.live.append(active)

    def processing_changed(self, active):
        self.processing.append(active)

    def complete(self, processor):
        self.completions.append(processor)
        self.completion_threads.append(threading.current_thread())


@pytest.fixture
def hooks():
    return HookRecorder()


@pytest.fixture
def make_processor(status, library, hooks):
    def _make(settings: PhotoSettings | None = None, library_override=None, **kwargs):
        return PhotoCaptureProcessor(
            settings or PhotoSettings(),
            library_override if library_override is not None else library,
            status,
            will_capture_photo_animation=hooks.will_capture,
            live_photo_capture_handler=hooks.live_capture,
            photo_processing_handler=hooks.processing_changed,
            completion_handler=hooks.complete,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_resolved():
    def _make(unique_id: str = "test", live: bool = False, processing: tuple | None = (0.2, 0.3)):
        return ResolvedPhotoSettings(
            unique_id=unique_id,
            photo_dimensions=(160, 120),
            live_photo_movie_dimensions=(1920, 1080) if live else (0, 0),
            processing_time_range=TimeRange(*processing) if processing else None,
        )
    return _make
