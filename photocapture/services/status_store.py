import threading
from dataclasses import dataclass, field
from typing import Optional, List, Set

from photocapture.orchestrator.contracts import CaptureSummary

MAX_LOGS = 200


@dataclass
class StatusStore:
    live_captures: Set[str] = field(default_factory=set)         # ids recording a companion clip
    processing_captures: Set[str] = field(default_factory=set)   # ids showing "processing is slow"
    flash_count: int = 0              # one per about-to-capture notification
    last_capture: Optional[CaptureSummary] = None
    logs: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def log(self, msg: str):
        with self._lock:
            self.logs.append(msg)
            if len(self.logs) > MAX_LOGS:
                self.logs = self.logs[-MAX_LOGS:]

    @property
    def live_captures_in_progress(self) -> int:
        with self._lock:
            return len(self.live_captures)

    @property
    def processing(self) -> bool:
        with self._lock:
            return bool(self.processing_captures)

    def set_live_capture(self, unique_id: str, active: bool):
        with self._lock:
            if active:
                self.live_captures.add(unique_id)
            else:
                self.live_captures.discard(unique_id)

    def set_processing(self, unique_id: str, active: bool):
        with self._lock:
            if active:
                self.processing_captures.add(unique_id)
            else:
                self.processing_captures.discard(unique_id)

    def clear_capture(self, unique_id: str):
        """Drop every indicator a finished capture may have left raised."""
        with self._lock:
            self.live_captures.discard(unique_id)
            self.processing_captures.discard(unique_id)

    def flash(self):
        with self._lock:
            self.flash_count += 1

    def record_capture(self, summary: CaptureSummary):
        self.last_capture = summary

    def snapshot_logs(self) -> List[str]:
        with self._lock:
            return list(self.logs)
