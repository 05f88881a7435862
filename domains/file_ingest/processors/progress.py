"""
Progress poller for triggered ingestion jobs.

Polls the status endpoint on a fixed interval until the job reports a
terminal status or the poll budget runs out. Transport failures are logged
and polling carries on; running out of budget leaves the job in its last
known state.
"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from app.models.schemas import ProgressResponse
from app.utils.config import Settings
from domains.file_ingest.errors import PollTimeout, TransferError
from domains.file_ingest.processors.uploader import Uploader


POLL_INTERVAL = 2.0  # seconds
MAX_POLLS = 120

SUCCESS_STATUSES = {"completed", "done"}
FAILURE_STATUSES = {"error", "failed"}
TERMINAL_STATUSES = SUCCESS_STATUSES | FAILURE_STATUSES

ProgressCallback = Callable[[ProgressResponse], None]


def is_terminal(status: str) -> bool:
    return status.lower() in TERMINAL_STATUSES


class ProgressPoller:
    """Poll an ingestion job to completion."""

    def __init__(
        self,
        uploader: Uploader,
        interval: float = POLL_INTERVAL,
        max_polls: int = MAX_POLLS,
        raise_on_timeout: bool = False,
    ):
        """
        Initialize progress poller.

        Args:
            uploader: Client used for the status requests
            interval: Seconds between polls
            max_polls: Poll budget per job
            raise_on_timeout: Raise ``PollTimeout`` instead of returning
                the last known state when the budget runs out
        """
        self.uploader = uploader
        self.interval = interval
        self.max_polls = max_polls
        self.raise_on_timeout = raise_on_timeout

    @classmethod
    def from_settings(cls, uploader: Uploader, settings: Settings) -> "ProgressPoller":
        return cls(
            uploader,
            interval=settings.poll_interval_seconds,
            max_polls=settings.max_polls,
        )

    async def poll_until_terminal(
        self,
        progress_id: str,
        on_update: ProgressCallback,
        settings: Settings,
    ) -> Optional[ProgressResponse]:
        """
        Poll ``progress_id`` until it finishes.

        Args:
            progress_id: Server-issued ingestion job id
            on_update: Called with every successful poll response
            settings: Configuration snapshot (base URL + auth)

        Returns:
            Last response seen, normalized to ``done``/100 on success, or
            None if no poll ever succeeded
        """
        last: Optional[ProgressResponse] = None

        for poll in range(self.max_polls):
            await asyncio.sleep(self.interval)

            try:
                progress = await self.uploader.poll_progress(settings, progress_id)
            except TransferError as e:
                logger.warning(f"Progress poll {poll + 1} for {progress_id} failed: {e}")
                continue

            last = progress
            on_update(progress)

            status = progress.status.lower()
            if status in SUCCESS_STATUSES:
                done = progress.model_copy(update={"status": "done", "percent": 100.0})
                on_update(done)
                logger.success(f"Ingestion {progress_id} completed")
                return done

            if status in FAILURE_STATUSES:
                logger.error(f"Ingestion {progress_id} failed: {progress.message}")
                return progress

        timeout = PollTimeout(
            f"Ingestion {progress_id} still {last.status if last else 'unknown'} "
            f"after {self.max_polls} polls"
        )
        if self.raise_on_timeout:
            raise timeout
        logger.warning(str(timeout))
        return last
