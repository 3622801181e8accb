"""
Fake asset store for testing HttpAssetLibrary without a real photo library.

Simulates the remote store on port 9100. Assets are kept in memory.
Set FAKE_LIBRARY_DENY=1 to answer every authorization check with "denied".

Usage:
    python photocapture/scripts/fake_library_server.py
"""

import base64
import os
import uuid
import uvicorn
from fastapi import FastAPI, Request

app = FastAPI(title="fake-library-server")

ASSETS: list[dict] = []


@app.get("/authorization")
async def authorization():
    denied = os.getenv("FAKE_LIBRARY_DENY", "0") == "1"
    return {"status": "denied" if denied else "authorized"}


@app.post("/assets")
async def create_assets(request: Request):
    body = await request.json()
    ids = []
    for asset in body.get("assets", []):
        asset_id = uuid.uuid4().hex[:8]
        sizes = [len(base64.b64decode(r.get("data", ""))) for r in asset.get("resources", [])]
        kinds = [r.get("type") for r in asset.get("resources", [])]
        print(f"[library] asset {asset_id}: {list(zip(kinds, sizes))} location={asset.get('location')}")
        ASSETS.append({"asset_id": asset_id, "resources": kinds, "bytes": sizes, "location": asset.get("location")})
        ids.append(asset_id)
    return {"ok": True, "asset_ids": ids}


@app.get("/assets")
async def list_assets():
    return {"count": len(ASSETS), "assets": ASSETS}


@app.get("/status")
async def status():
    return {"ok": True, "assets": len(ASSETS)}


if __name__ == "__main__":
    print("Fake library server starting on http://localhost:9100")
    uvicorn.run(app, host="0.0.0.0", port=9100)
