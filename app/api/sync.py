"""
Sync control endpoints.

Includes:
- Configuration snapshot and update
- Folder scan and approval-based ingestion
- Watch session start/stop
- Status, activity and progress feeds for observers
"""

from pathlib import Path
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel

from app.models.schemas import (
    ActivityEntry,
    FileProgress,
    OperationStatus,
    ScanResult,
    SyncStatus,
    UploadResult,
)
from app.utils.config import Environment
from domains.file_ingest.events import RecordingSink
from domains.file_ingest.pipeline import SyncPipeline

router = APIRouter()


class ConfigView(BaseModel):
    """Configuration as exposed to the UI (API key redacted)."""
    api_base_url: str
    api_key_set: bool
    watched_folder: Optional[str] = None
    auto_ingest: bool
    auto_approve_watched: bool
    environment: Environment
    user_hash: Optional[str] = None


class ConfigUpdate(BaseModel):
    """Partial configuration update."""
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    watched_folder: Optional[Path] = None
    auto_ingest: Optional[bool] = None
    auto_approve_watched: Optional[bool] = None
    environment: Optional[Environment] = None
    user_hash: Optional[str] = None


class ApproveRequest(BaseModel):
    """Files selected from the current scan result."""
    approved_paths: List[str]


class EventRecord(BaseModel):
    event: str
    payload: Any


def get_pipeline(request: Request) -> SyncPipeline:
    """Pipeline instance built by the application lifespan."""
    return request.app.state.pipeline


def _config_view(pipeline: SyncPipeline) -> ConfigView:
    settings = pipeline.get_settings()
    folder = settings.get_watched_folder()
    return ConfigView(
        api_base_url=settings.api_base_url,
        api_key_set=bool(settings.api_key),
        watched_folder=str(folder) if folder else None,
        auto_ingest=settings.auto_ingest,
        auto_approve_watched=settings.auto_approve_watched,
        environment=settings.environment,
        user_hash=settings.user_hash,
    )


@router.get("/config", response_model=ConfigView)
async def get_config(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Current configuration snapshot."""
    return _config_view(pipeline)


@router.put("/config", response_model=ConfigView)
async def update_config(update: ConfigUpdate, pipeline: SyncPipeline = Depends(get_pipeline)):
    """
    Update configuration in memory.

    Only fields present in the request are changed.
    """
    changes = update.model_dump(exclude_unset=True)
    pipeline.update_settings(pipeline.get_settings().model_copy(update=changes))
    logger.info(f"Config updated: {sorted(k for k in changes if k != 'api_key')}")
    return _config_view(pipeline)


@router.get("/status", response_model=SyncStatus)
async def get_sync_status(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Watching flag, folder, file count and recent activity."""
    return await pipeline.sync_status()


@router.get("/activity", response_model=List[ActivityEntry])
async def get_recent_activity(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Activity log, newest first."""
    return pipeline.get_recent_activity()


@router.get("/progress", response_model=List[FileProgress])
async def get_ingestion_progress(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Live per-file ingestion progress."""
    return pipeline.get_ingestion_progress()


@router.post("/scan", response_model=ScanResult)
async def scan_folder(pipeline: SyncPipeline = Depends(get_pipeline)):
    """
    Scan the watched folder and classify its files.

    Returns:
        Scan result used as input to ``/approve``
    """
    return await pipeline.scan_folder()


@router.post("/approve", response_model=List[UploadResult])
async def approve_and_ingest(request: ApproveRequest, pipeline: SyncPipeline = Depends(get_pipeline)):
    """
    Upload and ingest the approved files.

    Waits for the whole batch before responding.
    """
    return await pipeline.approve_and_ingest(request.approved_paths)


@router.post("/watch/start", response_model=OperationStatus)
async def start_watching(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Start watching the configured folder."""
    await pipeline.start_watching()
    return OperationStatus(status="watching", message="Folder watch started")


@router.post("/watch/stop", response_model=OperationStatus)
async def stop_watching(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Stop watching. Transfers already running are not cancelled."""
    await pipeline.stop_watching()
    return OperationStatus(status="stopped", message="Folder watch stopped")


@router.get("/events", response_model=List[EventRecord])
async def drain_events(pipeline: SyncPipeline = Depends(get_pipeline)):
    """Pipeline events recorded since the last call."""
    if not isinstance(pipeline.sink, RecordingSink):
        return []
    return [EventRecord(event=name, payload=payload) for name, payload in pipeline.sink.drain()]
