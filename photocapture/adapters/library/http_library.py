"""
HTTP adapter for a remote asset store.

Contract (see scripts/fake_library_server.py):
  GET  /authorization  -> {"status": "authorized" | "denied"}
  POST /assets         {"assets": [{"location": {...} | null,
                                    "resources": [{"type", "uti", "data": base64}]}]}
                       -> {"ok": true, "asset_ids": [...]}  (or {"ok": false, "error": "..."})
"""
import base64
import os
from dataclasses import asdict

import httpx

from photocapture.adapters.library.base import AssetLibrary, AuthorizationStatus


class HttpAssetLibrary(AssetLibrary):
    def __init__(self, status_store, base_url: str = "http://127.0.0.1:9100", timeout: float = 30.0):
        self.status = status_store
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        self.status.log(f"http_library: POST {path}")
        resp = httpx.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok", True):
            raise RuntimeError(f"asset store error on {path}: {data.get('error', 'unknown')}")
        return data

    def _get(self, path: str) -> dict:
        url = f"{self.base_url}{path}"
        resp = httpx.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_status(self) -> dict:
        return self._get("/status")

    def request_authorization(self, handler):
        try:
            data = self._get("/authorization")
            ok = data.get("status") == AuthorizationStatus.AUTHORIZED.value
        except httpx.HTTPError as e:
            self.status.log(f"http_library: authorization check failed: {e}")
            ok = False
        handler(AuthorizationStatus.AUTHORIZED if ok else AuthorizationStatus.DENIED)

    def perform_changes(self, requests, completion):
        moved: list[str] = []
        try:
            assets = []
            for req in requests:
                resources = []
                for res in req.resources:
                    data = res.data
                    if res.file_path is not None:
                        with open(res.file_path, "rb") as f:
                            data = f.read()
                        if res.should_move_file:
                            moved.append(res.file_path)
                    resources.append({
                        "type": res.resource_type,
                        "uti": res.uniform_type_identifier,
                        "data": base64.b64encode(data).decode("ascii"),
                    })
                assets.append({
                    "location": asdict(req.location) if req.location else None,
                    "resources": resources,
                })
            result = self._post("/assets", {"assets": assets})
        except (httpx.HTTPError, RuntimeError, OSError) as e:
            self.status.log(f"http_library: save failed: {e}")
            completion(False, e)
            return

        for path in moved:
            try:
                os.remove(path)
            except OSError as e:
                self.status.log(f"http_library: could not remove uploaded source {path}: {e}")
        self.status.log(f"http_library: saved {result.get('asset_ids', [])}")
        completion(True, None)
