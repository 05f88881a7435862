"""
Observer notifications emitted by the sync pipeline.

The pipeline does not know how events are rendered; it only calls
``emit(name, payload)`` on whatever sink it was given.
"""

import threading
from collections import deque
from typing import Any, Deque, List, Optional, Protocol, Tuple


SYNC_STATUS_CHANGED = "sync-status-changed"
SYNC_ACTIVITY = "sync-activity"
FILE_DETECTED = "file-detected"
INGESTION_PROGRESS = "ingestion-progress"
INGESTION_COMPLETE = "ingestion-complete"


class EventSink(Protocol):
    def emit(self, event: str, payload: Any) -> None:
        ...


class NullSink:
    """Discards every event."""

    def emit(self, event: str, payload: Any) -> None:
        return None


class RecordingSink:
    """Keeps the most recent events in memory for polling observers."""

    def __init__(self, maxlen: int = 500):
        self._events: Deque[Tuple[str, Any]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            self._events.append((event, payload))

    def events(self, name: Optional[str] = None) -> List[Tuple[str, Any]]:
        """Recorded events, oldest first, optionally filtered by name."""
        with self._lock:
            return [(e, p) for e, p in self._events if name is None or e == name]

    def drain(self) -> List[Tuple[str, Any]]:
        """Return and forget everything recorded so far."""
        with self._lock:
            drained = list(self._events)
            self._events.clear()
        return drained
