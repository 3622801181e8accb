"""
HTTP surface tests against the FastAPI app with the mock camera and the
in-memory library.
"""
import base64
import io
import os

os.environ.setdefault("CAMERA_ADAPTER", "mock")
os.environ.setdefault("LIBRARY_ADAPTER", "memory")
os.environ.setdefault("COMPOSITOR_WORKERS", "0")

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from photocapture.services import api


@pytest.fixture(scope="module")
def client():
    return TestClient(api.app)


def _b64_png(img: np.ndarray) -> str:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return base64.b64encode(bytes(buf)).decode("ascii")


@pytest.mark.integration
class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["all_ok"] is True
        assert body["camera_adapter"] == "MockCamera"
        assert body["library_adapter"] == "memory"


@pytest.mark.integration
class TestCaptureEndpoint:
    def test_portrait_capture(self, client):
        body = client.post("/capture", json={"portrait_matte": True}).json()
        assert body["ok"] is True
        assert body["finished"] is True
        assert body["summary"]["portrait_kind"] == "blended"
        assert body["summary"]["state"] == "finalized"

    def test_segmentation_capture(self, client):
        body = client.post("/capture", json={"portrait_matte": False, "matte_types": ["hair", "teeth", "sky"]}).json()
        assert body["ok"] is True
        assert body["summary"]["segmentation_count"] == 2
        assert body["summary"]["error_codes"] == ["MATTE_SKIPPED"]

    def test_live_capture_with_location(self, client):
        before = len(api.library.assets)
        body = client.post("/capture", json={"live_photo": True, "latitude": 48.85, "longitude": 2.35}).json()
        assert body["summary"]["has_companion_movie"] is True
        primary = api.library.assets[before]
        assert primary.location.latitude == 48.85
        assert [r.resource_type for r in primary.resources][-1] == "paired_video"

    def test_status_reflects_last_capture(self, client):
        done = client.post("/capture", json={}).json()
        body = client.get("/status").json()
        assert body["last_capture"]["unique_id"] == done["summary"]["unique_id"]
        assert body["processing"] is False
        assert body["live_captures_in_progress"] == 0
        assert body["flash_count"] >= 1
        assert any("capture_service: done" in line for line in body["logs"])

    def test_nothing_left_in_progress(self, client):
        client.post("/capture", json={})
        assert client.get("/captures").json() == {"in_progress": []}


@pytest.mark.integration
class TestCompositeEndpoint:
    def test_blended(self, client):
        image = np.full((120, 160, 3), 200, dtype=np.uint8)
        matte = np.zeros((60, 80), dtype=np.uint8)
        matte[15:45, 20:60] = 255
        body = client.post("/composite", json={
            "image": _b64_png(image), "matte": _b64_png(matte), "matte_type": "portrait",
        }).json()
        assert body["ok"] is True
        assert body["kind"] == "blended"
        assert base64.b64decode(body["image"]).startswith(b"\x89PNG")

    def test_rotated(self, client):
        image = np.full((120, 160, 3), 200, dtype=np.uint8)
        matte = np.full((60, 80), 255, dtype=np.uint8)
        body = client.post("/composite", json={
            "image": _b64_png(image), "matte": _b64_png(matte), "orientation": 6,
        }).json()
        out = cv2.imdecode(np.frombuffer(base64.b64decode(body["image"]), dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        assert out.shape[:2] == (160, 120)

    def test_exif_tagged_upload_rotated_once(self, client):
        rgb = np.full((120, 160, 3), 200, dtype=np.uint8)
        exif = Image.Exif()
        exif[0x0112] = 6
        buf = io.BytesIO()
        Image.fromarray(rgb).save(buf, format="JPEG", exif=exif)
        matte = np.full((60, 80), 255, dtype=np.uint8)
        body = client.post("/composite", json={
            "image": base64.b64encode(buf.getvalue()).decode("ascii"),
            "matte": _b64_png(matte),
            "orientation": 6,
        }).json()
        assert body["ok"] is True
        out = cv2.imdecode(np.frombuffer(base64.b64decode(body["image"]), dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        assert out.shape[:2] == (160, 120)

    def test_unsupported_type(self, client):
        image = np.full((20, 20, 3), 10, dtype=np.uint8)
        body = client.post("/composite", json={
            "image": _b64_png(image), "matte": _b64_png(image[..., 0]), "matte_type": "sky",
        }).json()
        assert body["ok"] is False
        assert body["image"] is None

    def test_undecodable_payload(self, client):
        body = client.post("/composite", json={"image": "aGVsbG8=", "matte": "aGVsbG8="}).json()
        assert body == {"ok": False, "kind": None, "image": None, "error": "image decode failed"}
