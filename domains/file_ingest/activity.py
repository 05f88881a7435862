"""Bounded, newest-first log of finished transfers."""

import threading
from collections import deque
from typing import Deque, List, Optional

from app.models.schemas import ActivityEntry, FileCategory, UploadResult
from app.utils.helpers import now_iso


MAX_ACTIVITY_LOG = 50


class ActivityLog:
    """Ring buffer of ``ActivityEntry`` records; oldest entries fall off."""

    def __init__(self, capacity: int = MAX_ACTIVITY_LOG):
        self.capacity = capacity
        self._entries: Deque[ActivityEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, entry: ActivityEntry) -> ActivityEntry:
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def record_result(self, result: UploadResult, category: Optional[FileCategory] = None) -> ActivityEntry:
        """Append the terminal outcome of a transfer."""
        return self.record(
            ActivityEntry(
                filename=result.filename,
                status=result.status,
                error=result.error,
                timestamp=now_iso(),
                category=category,
            )
        )

    def snapshot(self) -> List[ActivityEntry]:
        """Copy of the log, newest first."""
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
