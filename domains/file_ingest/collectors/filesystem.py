"""
File system watcher for the File Ingestion domain.

Monitors the watched folder for file changes and hands debounced
``WatchEvent`` objects to a sink. Uses watchdog library for cross-platform
file system event monitoring.

Backends often report a burst of events for a single logical write, so raw
events are queued and a dedicated thread filters and debounces them before
anything reaches the sink.
"""

import queue
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from app.models.schemas import WatchEvent, WatchEventKind
from app.utils.helpers import get_file_extension
from domains.file_ingest.errors import WatchSetupError


DEBOUNCE_MS = 500

SUPPORTED_EXTENSIONS = {
    "json", "csv", "txt", "md", "js", "ts", "jsx", "tsx", "pdf", "png", "jpg", "jpeg", "gif",
    "svg", "html", "xml", "yaml", "yml", "toml", "log", "doc", "docx", "xls", "xlsx", "ppt",
    "pptx", "rtf",
}

RAW_KIND_MAP = {
    "created": WatchEventKind.CREATED,
    "modified": WatchEventKind.MODIFIED,
}

RawEvent = Tuple[str, str, bool]


class SinkClosed(Exception):
    """Raised by a sink that no longer accepts events."""


WatchSink = Callable[[WatchEvent], None]


def is_supported(path: Path) -> bool:
    """Check if the file extension is one the pipeline cares about."""
    return get_file_extension(path) in SUPPORTED_EXTENSIONS


class RawEventHandler(FileSystemEventHandler):
    """Watchdog handler that forwards every event to the debounce queue."""

    def __init__(self, raw_events: "queue.Queue[RawEvent]", stopped: threading.Event):
        """
        Initialize event handler.

        Args:
            raw_events: Queue drained by the debounce thread
            stopped: Set once the debounce stage has exited
        """
        super().__init__()
        self.raw_events = raw_events
        self.stopped = stopped

    def on_any_event(self, event: FileSystemEvent):
        """Queue every raw event; filtering happens on the debounce thread."""
        if self.stopped.is_set():
            return
        self.raw_events.put((event.event_type, str(event.src_path), event.is_directory))


class EventDebouncer:
    """Filter and debounce raw events into ``WatchEvent`` objects."""

    def __init__(
        self,
        sink: WatchSink,
        debounce_ms: int = DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sink = sink
        self.window = debounce_ms / 1000.0
        self.clock = clock
        self.last_seen: Dict[Path, float] = {}
        self._last_prune = clock()

    def process(self, event_type: str, src_path: str, is_directory: bool = False) -> Optional[WatchEvent]:
        """
        Decide whether a raw event becomes a ``WatchEvent``.

        Args:
            event_type: watchdog event type (created, modified, deleted, ...)
            src_path: Path reported by the backend
            is_directory: Whether the backend flagged the path as a directory

        Returns:
            WatchEvent to emit, or None if the event is dropped
        """
        path = Path(src_path)

        if not is_supported(path):
            return None

        # Only created/modified events count toward the debounce window
        kind = RAW_KIND_MAP.get(event_type)
        if kind is None:
            return None

        if is_directory or path.is_dir():
            return None

        now = self.clock()
        self.prune(now)

        last = self.last_seen.get(path)
        if last is not None and now - last < self.window:
            return None
        self.last_seen[path] = now

        return WatchEvent(kind=kind, path=path)

    def prune(self, now: float):
        """Forget paths whose debounce window has expired, at most once per window."""
        if now - self._last_prune < self.window:
            return
        self.last_seen = {p: t for p, t in self.last_seen.items() if now - t < self.window}
        self._last_prune = now

    def run(self, raw_events: "queue.Queue[RawEvent]", stop: threading.Event):
        """Drain ``raw_events`` until ``stop`` is set or the sink closes."""
        while not stop.is_set():
            try:
                raw = raw_events.get(timeout=0.1)
            except queue.Empty:
                continue

            event = self.process(*raw)
            if event is None:
                continue

            logger.debug(f"Watch event: {event.kind.value} {event.path}")

            try:
                self.sink(event)
            except SinkClosed:
                logger.error("Watch event sink closed")
                stop.set()
                return

        logger.info("Watcher debounce stage stopped")


class FolderWatcher:
    """Recursive watch on one folder; stopping the watcher ends monitoring."""

    def __init__(self, folder: Path, sink: WatchSink, debounce_ms: int = DEBOUNCE_MS):
        """
        Initialize folder watcher.

        Args:
            folder: Folder to watch recursively
            sink: Receives debounced events on the debounce thread
            debounce_ms: Minimum time between accepted events for a path
        """
        self.folder = Path(folder)
        self.raw_events: "queue.Queue[RawEvent]" = queue.Queue()
        self.stop_event = threading.Event()
        self.debouncer = EventDebouncer(sink, debounce_ms)
        self.event_handler = RawEventHandler(self.raw_events, self.stop_event)
        self.observer = Observer()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def start(cls, folder: Path, sink: WatchSink, debounce_ms: int = DEBOUNCE_MS) -> "FolderWatcher":
        """
        Start watching ``folder``.

        Raises:
            WatchSetupError: If the OS watch cannot be installed
        """
        watcher = cls(folder, sink, debounce_ms)
        watcher.start_watching()
        return watcher

    def start_watching(self):
        """Install the OS watch and start the debounce thread."""
        try:
            self.observer.schedule(self.event_handler, str(self.folder), recursive=True)
            self.observer.daemon = True
            self.observer.start()
        except Exception as e:
            raise WatchSetupError(f"Failed to watch folder {self.folder}: {e}") from e

        self._thread = threading.Thread(
            target=self.debouncer.run,
            args=(self.raw_events, self.stop_event),
            name="watch-debounce",
            daemon=True,
        )
        self._thread.start()
        logger.success(f"Watching folder: {self.folder}")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self.stop_event.is_set()

    def stop(self):
        """Stop the observer and the debounce thread."""
        self.stop_event.set()
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        logger.info(f"Stopped watching: {self.folder}")

    def __enter__(self) -> "FolderWatcher":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
