"""In-memory asset library for tests and the default dev server setup."""
import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional

from photocapture.adapters.library.base import AssetLibrary, AuthorizationStatus
from photocapture.orchestrator.contracts import AssetResource, Location


@dataclass
class StoredAsset:
    asset_id: str
    location: Optional[Location] = None
    resources: list[AssetResource] = field(default_factory=list)


class MemoryAssetLibrary(AssetLibrary):
    def __init__(self, status_store, authorized: bool = True, fail_with: Exception | None = None,
                 deliver_on_thread: bool = False):
        self.status = status_store
        self.authorized = authorized
        self.fail_with = fail_with
        self.deliver_on_thread = deliver_on_thread
        self.assets: list[StoredAsset] = []
        self.change_sets = 0
        self.authorization_requests = 0
        self._lock = threading.Lock()

    def _deliver(self, fn, *args):
        if self.deliver_on_thread:
            threading.Thread(target=fn, args=args, daemon=True).start()
        else:
            fn(*args)

    def request_authorization(self, handler):
        self.authorization_requests += 1
        st = AuthorizationStatus.AUTHORIZED if self.authorized else AuthorizationStatus.DENIED
        self.status.log(f"memory_library: authorization {st.value}")
        self._deliver(handler, st)

    def perform_changes(self, requests, completion):
        self.change_sets += 1
        if self.fail_with is not None:
            self.status.log(f"memory_library: save failed: {self.fail_with}")
            self._deliver(completion, False, self.fail_with)
            return

        staged: list[StoredAsset] = []
        to_remove: list[str] = []
        try:
            for req in requests:
                asset = StoredAsset(asset_id=uuid.uuid4().hex[:8], location=req.location)
                for res in req.resources:
                    data = res.data
                    if res.file_path is not None:
                        with open(res.file_path, "rb") as f:
                            data = f.read()
                        if res.should_move_file:
                            to_remove.append(res.file_path)
                    asset.resources.append(AssetResource(
                        resource_type=res.resource_type,
                        data=data,
                        uniform_type_identifier=res.uniform_type_identifier,
                    ))
                staged.append(asset)
        except OSError as e:
            self.status.log(f"memory_library: save failed: {e}")
            self._deliver(completion, False, e)
            return

        for path in to_remove:
            os.remove(path)
        with self._lock:
            self.assets.extend(staged)
        self.status.log(f"memory_library: saved {len(staged)} asset(s)")
        self._deliver(completion, True, None)

    def resources_of_type(self, resource_type: str) -> list[AssetResource]:
        with self._lock:
            return [r for a in self.assets for r in a.resources if r.resource_type == resource_type]
