"""
Upload-and-ingest client for the remote ingestion service.

Provides:
- Presigned upload slot acquisition
- Direct object-store PUT of the file bytes
- Ingest trigger and progress lookups
- Per-call retry with exponential backoff
- A permit pool bounding simultaneous transfers
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, Type, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from app.models.schemas import (
    IngestTriggerResponse,
    ProgressResponse,
    UploadResult,
    UploadSlot,
    UploadStatus,
)
from app.utils.config import Settings
from app.utils.helpers import format_bytes, generate_uuid, guess_content_type
from domains.file_ingest.errors import NetworkError, RemoteProtocolError, TransferError


MAX_CONCURRENT_UPLOADS = 3
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5  # seconds, doubled after every failed attempt
DEFAULT_S3_BUCKET = "exemem-user-data"

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class Uploader:
    """Transfers files to the ingestion service, at most N at a time."""

    def __init__(
        self,
        max_concurrent: int = MAX_CONCURRENT_UPLOADS,
        timeout: float = 120.0,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
        default_bucket: str = DEFAULT_S3_BUCKET,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize uploader.

        Args:
            max_concurrent: Size of the transfer permit pool
            timeout: Per-request timeout in seconds
            retry_attempts: Attempts per remote call
            retry_base_delay: Delay before the first retry, in seconds
            default_bucket: Bucket sent to the ingest trigger when the
                upload slot does not name one
            client: Pre-built HTTP client (tests inject a mock transport)
        """
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.default_bucket = default_bucket

        # Permit accounting, read by status endpoints and tests
        self.in_flight = 0
        self.peak_in_flight = 0

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "Uploader":
        return cls(
            max_concurrent=settings.max_concurrent_uploads,
            timeout=settings.upload_timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay_ms / 1000.0,
            default_bucket=settings.default_s3_bucket,
            client=client,
        )

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def upload_and_ingest(self, file_path: Path, settings: Settings) -> UploadResult:
        """
        Upload a file and, if enabled, trigger its ingestion.

        Never raises: failures come back as a result with status ``error``.

        Args:
            file_path: File to transfer
            settings: Configuration snapshot for this transfer

        Returns:
            UploadResult with status ``uploaded``, ``ingesting`` or ``error``
        """
        file_path = Path(file_path)
        filename = file_path.name or "unknown"

        async with self.semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await self._try_upload_and_ingest(file_path, settings, filename)
            except Exception as e:
                logger.error(f"Upload failed for {filename}: {e}")
                return UploadResult(
                    filename=filename,
                    status=UploadStatus.ERROR,
                    error=str(e) or e.__class__.__name__,
                )
            finally:
                self.in_flight -= 1

    async def _try_upload_and_ingest(self, file_path: Path, settings: Settings, filename: str) -> UploadResult:
        # The slot is signed for this content type; the PUT must send the same one
        content_type = guess_content_type(file_path)

        slot = await self.with_retry(
            lambda: self.get_upload_slot(settings, filename, content_type)
        )

        try:
            file_bytes = await asyncio.to_thread(file_path.read_bytes)
        except OSError as e:
            raise TransferError(f"Failed to read file: {e}") from e

        await self.with_retry(
            lambda: self.upload_bytes(slot.upload_url, file_bytes, content_type)
        )
        logger.info(f"Uploaded {filename} ({format_bytes(len(file_bytes))}) -> {slot.s3_key}")

        if not settings.auto_ingest:
            return UploadResult(
                filename=filename,
                remote_key=slot.s3_key,
                status=UploadStatus.UPLOADED,
            )

        progress_id = generate_uuid()
        bucket = slot.s3_bucket or self.default_bucket

        ingest = await self.with_retry(
            lambda: self.trigger_ingest(settings, slot.s3_key, bucket, progress_id)
        )
        logger.info(f"Ingestion triggered for {filename} (progress {ingest.progress_id})")

        return UploadResult(
            filename=filename,
            remote_key=slot.s3_key,
            progress_id=ingest.progress_id,
            status=UploadStatus.INGESTING,
        )

    # Remote calls -----------------------------------------------------------------

    async def _send(self, action: str, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, mapping failures onto the transfer error types."""
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to {action}: {e}") from e

        if not response.is_success:
            raise RemoteProtocolError(
                f"{action[0].upper()}{action[1:]} failed ({response.status_code}): {response.text}"
            )
        return response

    @staticmethod
    def _parse(action: str, response: httpx.Response, model: Type[M]) -> M:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteProtocolError(f"Failed to parse {action} response: {e}") from e

    async def get_upload_slot(self, settings: Settings, filename: str, content_type: str) -> UploadSlot:
        """Request a presigned upload URL for ``filename``."""
        response = await self._send(
            "request presigned URL",
            "POST",
            f"{settings.api_url()}/api/ingestion/upload-url",
            headers=settings.auth_headers(),
            json={"filename": filename, "file_type": content_type},
        )
        return self._parse("presigned URL", response, UploadSlot)

    async def upload_bytes(self, upload_url: str, file_bytes: bytes, content_type: str):
        """PUT raw bytes to the presigned URL."""
        await self._send(
            "upload to object store",
            "PUT",
            upload_url,
            headers={"Content-Type": content_type},
            content=file_bytes,
        )

    async def trigger_ingest(
        self,
        settings: Settings,
        s3_key: str,
        s3_bucket: str,
        progress_id: str,
    ) -> IngestTriggerResponse:
        """Tell the service an uploaded object is ready for processing."""
        response = await self._send(
            "trigger ingestion",
            "POST",
            f"{settings.api_url()}/api/ingestion/ingest-s3",
            headers=settings.auth_headers(),
            json={"s3_key": s3_key, "s3_bucket": s3_bucket, "progress_id": progress_id},
        )
        return self._parse("ingestion", response, IngestTriggerResponse)

    async def poll_progress(self, settings: Settings, progress_id: str) -> ProgressResponse:
        """Fetch the current status of an ingestion job."""
        response = await self._send(
            "poll progress",
            "GET",
            f"{settings.api_url()}/api/ingestion/progress/{progress_id}",
            headers=settings.auth_headers(),
        )
        return self._parse("progress", response, ProgressResponse)

    # Retry --------------------------------------------------------------------------

    async def with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` with exponential backoff.

        Every transfer error is retried regardless of status code; only the
        last error is reported.

        Args:
            operation: Zero-argument coroutine factory

        Returns:
            Result of the first successful attempt

        Raises:
            TransferError: If every attempt failed
        """
        last_error: Optional[TransferError] = None

        for attempt in range(self.retry_attempts):
            try:
                return await operation()
            except TransferError as e:
                last_error = e
                if attempt < self.retry_attempts - 1:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay:.1f}s: {e}")
                    await asyncio.sleep(delay)

        raise TransferError(
            f"Failed after {self.retry_attempts} attempts: {last_error}"
        ) from last_error
