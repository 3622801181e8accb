"""
Asset library backed by a local directory.

Layout: <root>/<asset_id>/{photo_0.jpg, paired_video_1.mov, asset.json}
A change set is written into a hidden staging directory first and each asset
directory is renamed into place only after every file was written.
"""
import json
import os
import shutil
import tempfile
import uuid
from dataclasses import asdict
from pathlib import Path

from photocapture.adapters.library.base import AssetLibrary, AuthorizationStatus

_EXT_BY_UTI = {
    "public.jpeg": ".jpg",
    "public.png": ".png",
    "public.heic": ".heic",
    "public.heif": ".heif",
    "com.apple.quicktime-movie": ".mov",
}

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _extension_for(res) -> str:
    if res.uniform_type_identifier in _EXT_BY_UTI:
        return _EXT_BY_UTI[res.uniform_type_identifier]
    if res.resource_type == "paired_video":
        return Path(res.file_path).suffix or ".mov"
    if res.data is not None and res.data.startswith(_PNG_MAGIC):
        return ".png"
    return ".bin"


class DirectoryAssetLibrary(AssetLibrary):
    def __init__(self, status_store, root: str | Path):
        self.status = status_store
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def request_authorization(self, handler):
        ok = os.access(self.root, os.W_OK)
        st = AuthorizationStatus.AUTHORIZED if ok else AuthorizationStatus.DENIED
        self.status.log(f"directory_library: authorization {st.value} ({self.root})")
        handler(st)

    def perform_changes(self, requests, completion):
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.root))
        moved_sources: list[str] = []
        asset_ids: list[str] = []
        try:
            for req in requests:
                asset_id = uuid.uuid4().hex[:8]
                asset_dir = staging / asset_id
                asset_dir.mkdir()
                meta = {
                    "asset_id": asset_id,
                    "location": asdict(req.location) if req.location else None,
                    "resources": [],
                }
                for i, res in enumerate(req.resources):
                    name = f"{res.resource_type}_{i}{_extension_for(res)}"
                    if res.data is not None:
                        (asset_dir / name).write_bytes(res.data)
                    else:
                        shutil.copyfile(res.file_path, asset_dir / name)
                        if res.should_move_file:
                            moved_sources.append(res.file_path)
                    meta["resources"].append({
                        "type": res.resource_type,
                        "file": name,
                        "uti": res.uniform_type_identifier,
                    })
                (asset_dir / "asset.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
                asset_ids.append(asset_id)

            for asset_id in asset_ids:
                os.replace(staging / asset_id, self.root / asset_id)
        except OSError as e:
            for asset_id in asset_ids:
                shutil.rmtree(self.root / asset_id, ignore_errors=True)
            self.status.log(f"directory_library: save failed: {e}")
            completion(False, e)
            return
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        for path in moved_sources:
            try:
                os.remove(path)
            except OSError as e:
                self.status.log(f"directory_library: could not remove moved source {path}: {e}")
        self.status.log(f"directory_library: saved {asset_ids}")
        completion(True, None)

    def list_assets(self) -> list[dict]:
        out = []
        for meta_path in sorted(self.root.glob("*/asset.json")):
            out.append(json.loads(meta_path.read_text(encoding="utf-8")))
        return out
