"""
Sync pipeline orchestrator for the File Ingestion domain.

Wires the folder watcher, classifier, uploader and progress poller together
and owns the state observers read: the activity log, the live progress map
and the most recent scan result.

One ``SyncPipeline`` is built per running application and handed to the API
layer. Transfers spawned by a watch session are detached: stopping the
session stops event intake, but transfers already running finish and are
still logged.
"""

import asyncio
import concurrent.futures
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from loguru import logger

from app.models.schemas import (
    ActivityEntry,
    FileCategory,
    FileProgress,
    FileRecommendation,
    ProgressResponse,
    ScanResult,
    SyncStatus,
    UploadResult,
    UploadStatus,
    WatchEvent,
)
from app.utils.config import Settings
from app.utils.helpers import normalise_path
from domains.file_ingest import events
from domains.file_ingest.activity import ActivityLog
from domains.file_ingest.classifier import classify_single
from domains.file_ingest.collectors.filesystem import FolderWatcher, SinkClosed, WatchSink
from domains.file_ingest.collectors.scanner import FolderScanner, count_files
from domains.file_ingest.errors import PipelineConfigError
from domains.file_ingest.events import EventSink, NullSink
from domains.file_ingest.processors.progress import FAILURE_STATUSES, SUCCESS_STATUSES, ProgressPoller
from domains.file_ingest.processors.uploader import Uploader


EVENT_QUEUE_SIZE = 256


@dataclass
class WatchSession:
    """State of one Watching period."""

    folder: Path
    events: "asyncio.Queue[WatchEvent]"
    stop: asyncio.Event
    closed: threading.Event
    watcher: Optional[FolderWatcher] = None
    task: Optional[asyncio.Task] = None


@dataclass
class _ProgressState:
    entries: Dict[str, FileProgress] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class SyncPipeline:
    """Folder watch → classify → upload → poll orchestrator."""

    def __init__(
        self,
        settings: Settings,
        uploader: Optional[Uploader] = None,
        poller: Optional[ProgressPoller] = None,
        scanner: Optional[FolderScanner] = None,
        sink: Optional[EventSink] = None,
    ):
        """
        Initialize sync pipeline.

        Args:
            settings: Initial configuration
            uploader: Transfer engine (built from settings if omitted)
            poller: Progress poller (built from settings if omitted)
            scanner: Folder scanner (built from settings if omitted)
            sink: Observer receiving pipeline events
        """
        self._settings = settings
        self._settings_lock = threading.Lock()

        self.uploader = uploader or Uploader.from_settings(settings)
        self.poller = poller or ProgressPoller.from_settings(self.uploader, settings)
        self.scanner = scanner or FolderScanner(settings.scan_max_depth, settings.scan_max_files)
        self.sink: EventSink = sink or NullSink()

        self.activity = ActivityLog(settings.activity_log_size)
        self._progress = _ProgressState()
        self.current_scan: Optional[ScanResult] = None

        self.watching = False
        self._session: Optional[WatchSession] = None
        self._tasks: Set[asyncio.Task] = set()

    # Configuration ------------------------------------------------------------------

    def get_settings(self) -> Settings:
        """Snapshot of the current configuration."""
        with self._settings_lock:
            return self._settings.model_copy()

    def update_settings(self, settings: Settings):
        """Replace the configuration used by subsequent operations."""
        with self._settings_lock:
            self._settings = settings
        logger.info("Sync configuration updated")

    # Watch sessions -----------------------------------------------------------------

    async def start_watching(self):
        """
        Start a watch session on the configured folder.

        Any previous session is torn down first.

        Raises:
            PipelineConfigError: If configuration is incomplete or the
                folder is missing
            WatchSetupError: If the OS watch cannot be installed
        """
        settings = self.get_settings()

        if not settings.is_configured():
            raise PipelineConfigError("App not configured. Set API URL, API key, and watched folder.")

        folder = normalise_path(settings.get_watched_folder())
        if not folder.exists():
            raise PipelineConfigError(f"Watched folder does not exist: {folder}")

        await self._teardown_session()
        self.watching = False

        loop = asyncio.get_running_loop()
        session = WatchSession(
            folder=folder,
            events=asyncio.Queue(maxsize=EVENT_QUEUE_SIZE),
            stop=asyncio.Event(),
            closed=threading.Event(),
        )

        session.watcher = await asyncio.to_thread(
            FolderWatcher.start, folder, self._make_watch_sink(loop, session), settings.debounce_ms
        )
        session.task = asyncio.create_task(self._process_events(session))

        self._session = session
        self.watching = True
        self.sink.emit(events.SYNC_STATUS_CHANGED, True)
        logger.success(f"Sync started for {folder}")

    async def stop_watching(self):
        """Stop consuming watch events. In-flight transfers keep running."""
        await self._teardown_session()
        self.watching = False
        self.sink.emit(events.SYNC_STATUS_CHANGED, False)

    async def _teardown_session(self):
        session, self._session = self._session, None
        if session is None:
            return

        session.closed.set()
        session.stop.set()
        if session.watcher is not None:
            await asyncio.to_thread(session.watcher.stop)
        if session.task is not None:
            await session.task

    def _make_watch_sink(self, loop: asyncio.AbstractEventLoop, session: WatchSession) -> WatchSink:
        """Blocking hand-off from the debounce thread onto the session queue."""

        def sink(event: WatchEvent):
            if session.closed.is_set():
                raise SinkClosed()
            try:
                future = asyncio.run_coroutine_threadsafe(session.events.put(event), loop)
            except RuntimeError as e:
                raise SinkClosed() from e

            while True:
                try:
                    future.result(timeout=0.5)
                    return
                except concurrent.futures.TimeoutError:
                    if session.closed.is_set():
                        future.cancel()
                        raise SinkClosed()
                except concurrent.futures.CancelledError as e:
                    raise SinkClosed() from e

        return sink

    async def _process_events(self, session: WatchSession):
        """Consume watch events in arrival order until the session stops."""
        stop_wait = asyncio.ensure_future(session.stop.wait())
        try:
            while True:
                next_event = asyncio.ensure_future(session.events.get())
                done, _ = await asyncio.wait(
                    {next_event, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if stop_wait in done:
                    next_event.cancel()
                    logger.info("Watcher stopped by user")
                    return

                try:
                    self.handle_watch_event(next_event.result(), session.folder)
                except Exception as e:
                    logger.error(f"Failed to handle watch event: {e}")
        finally:
            stop_wait.cancel()

    def handle_watch_event(self, event: WatchEvent, folder: Path) -> Optional[FileRecommendation]:
        """
        Classify a watch event and spawn its transfer if approved.

        Returns:
            The recommendation, or None if nothing was spawned
        """
        settings = self.get_settings()
        rec = classify_single(folder, event.path)

        logger.info(f"File event: {event.kind.value} {event.path}")
        self.sink.emit(events.FILE_DETECTED, {
            "kind": event.kind.value,
            "path": str(event.path),
            "category": rec.category.value,
            "should_ingest": rec.should_ingest,
        })

        if not rec.should_ingest:
            logger.debug(f"Skipping {rec.relative_path}: {rec.reason}")
            return None

        if not settings.auto_approve_watched:
            logger.info(f"{rec.relative_path} awaits approval (auto-approve disabled)")
            return None

        self._spawn(self._transfer_and_track(rec.absolute_path, settings, rec.category))
        return rec

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_transfers(self):
        """Wait for every detached transfer spawned so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Scan + approval ----------------------------------------------------------------

    async def scan_folder(self) -> ScanResult:
        """
        Scan the configured folder and keep the result for approval.

        Raises:
            PipelineConfigError: If no folder is configured
            ScanError: If the folder cannot be read
        """
        folder = self.get_settings().get_watched_folder()
        if folder is None:
            raise PipelineConfigError("No watched folder configured")

        result = await asyncio.to_thread(self.scanner.scan, folder)
        self.current_scan = result
        return result

    def _resolve_approved(self, approved_paths: List[str], root: Optional[Path]) -> List[FileRecommendation]:
        known: Dict[str, FileRecommendation] = {}
        if self.current_scan is not None:
            for rec in self.current_scan.recommended + self.current_scan.skipped:
                known[rec.relative_path] = rec

        base = normalise_path(root) if root is not None else None
        resolved = []
        for rel in approved_paths:
            rec = known.get(rel)
            if base is None:
                if rec is None:
                    logger.warning(f"Cannot resolve {rel}: no watched folder configured")
                    continue
            else:
                if rec is None:
                    rec = classify_single(base, normalise_path(base / rel))
                if not normalise_path(rec.absolute_path).is_relative_to(base):
                    logger.warning(f"Rejected {rel}: outside the watched folder")
                    continue
            resolved.append(rec)
        return resolved

    async def approve_and_ingest(self, approved_paths: List[str]) -> List[UploadResult]:
        """
        Upload and ingest the approved files, one task per file.

        Args:
            approved_paths: Paths relative to the watched folder, as found
                in the current scan result

        Returns:
            Final result for every file, in the order given
        """
        settings = self.get_settings()
        if not settings.api_url() or not settings.api_key:
            raise PipelineConfigError("App not configured. Set API URL and API key.")

        targets = self._resolve_approved(approved_paths, settings.get_watched_folder())
        self._reset_progress([FileProgress(filename=rec.absolute_path.name) for rec in targets])

        logger.info(f"Approved {len(targets)} files for ingestion")
        results = await asyncio.gather(*(
            self._transfer_and_track(rec.absolute_path, settings, rec.category)
            for rec in targets
        ))

        failed = sum(1 for r in results if r.status == UploadStatus.ERROR)
        self.sink.emit(events.INGESTION_COMPLETE, {"total": len(results), "failed": failed})
        logger.success(f"Ingestion batch complete: {len(results) - failed}/{len(results)} succeeded")
        return list(results)

    # Transfer + progress ------------------------------------------------------------

    async def _transfer_and_track(
        self,
        path: Path,
        settings: Settings,
        category: Optional[FileCategory] = None,
    ) -> UploadResult:
        """Upload one file, poll its ingestion, and log the outcome."""
        filename = path.name
        self._update_progress(filename, status="uploading")

        result = await self.uploader.upload_and_ingest(path, settings)

        if result.status == UploadStatus.ERROR:
            self._update_progress(filename, status="error", message=result.error)
        elif result.status == UploadStatus.UPLOADED:
            self._update_progress(filename, status="uploaded", percent=100.0)
        elif result.progress_id:
            self._update_progress(filename, status="ingesting", progress_id=result.progress_id)
            final = await self.poller.poll_until_terminal(
                result.progress_id,
                lambda progress: self._on_progress(filename, progress),
                settings,
            )
            result = self._apply_final_progress(result, final)

        self.activity.record_result(result, category)
        self.sink.emit(events.SYNC_ACTIVITY, result.model_dump(mode="json"))
        return result

    @staticmethod
    def _apply_final_progress(result: UploadResult, final: Optional[ProgressResponse]) -> UploadResult:
        if final is None:
            return result

        status = final.status.lower()
        if status in SUCCESS_STATUSES:
            return result.model_copy(update={"status": UploadStatus.DONE})
        if status in FAILURE_STATUSES:
            return result.model_copy(update={
                "status": UploadStatus.ERROR,
                "error": final.message or "Ingestion failed",
            })
        # Poll budget ran out: the job stays "ingesting"
        return result

    def _on_progress(self, filename: str, progress: ProgressResponse):
        self._update_progress(
            filename,
            status=progress.status,
            percent=progress.percent,
            message=progress.message,
            progress_id=progress.progress_id,
        )

    def _reset_progress(self, entries: List[FileProgress]):
        with self._progress.lock:
            self._progress.entries = {entry.filename: entry for entry in entries}
        self._emit_progress()

    def _update_progress(
        self,
        filename: str,
        status: str,
        percent: Optional[float] = None,
        message: Optional[str] = None,
        progress_id: Optional[str] = None,
    ):
        with self._progress.lock:
            current = self._progress.entries.get(filename)
            if current is None or status == "uploading":
                current = FileProgress(filename=filename, percent=0.0)
            elif progress_id and progress_id != current.progress_id:
                current = current.model_copy(update={"progress_id": progress_id, "percent": 0.0})

            if percent is None:
                new_percent = current.percent
            elif status.lower() in FAILURE_STATUSES:
                new_percent = percent
            else:
                new_percent = max(current.percent, percent)

            self._progress.entries[filename] = FileProgress(
                filename=filename,
                progress_id=progress_id or current.progress_id,
                status=status,
                percent=min(max(new_percent, 0.0), 100.0),
                message=message,
            )
        self._emit_progress()

    def _emit_progress(self):
        self.sink.emit(
            events.INGESTION_PROGRESS,
            [entry.model_dump(mode="json") for entry in self.get_ingestion_progress()],
        )

    # Observers ----------------------------------------------------------------------

    def get_ingestion_progress(self) -> List[FileProgress]:
        with self._progress.lock:
            return list(self._progress.entries.values())

    def get_recent_activity(self) -> List[ActivityEntry]:
        return self.activity.snapshot()

    def get_sync_status(self) -> SyncStatus:
        folder = self.get_settings().get_watched_folder()
        return SyncStatus(
            watching=self.watching,
            folder=str(folder) if folder else None,
            file_count=count_files(folder) if folder else 0,
            recent_activity=self.activity.snapshot(),
        )

    async def sync_status(self) -> SyncStatus:
        """``get_sync_status`` off the event loop, since the file count walks the folder."""
        return await asyncio.to_thread(self.get_sync_status)

    # Lifecycle ----------------------------------------------------------------------

    async def shutdown(self, wait: bool = False):
        """
        Stop watching and release the HTTP client.

        Args:
            wait: Let detached transfers finish instead of cancelling them
        """
        await self.stop_watching()

        if wait:
            await self.wait_for_transfers()
        else:
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await self.uploader.close()
        logger.info("Sync pipeline shut down")
