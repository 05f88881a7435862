"""
Pydantic models for the folder sync agent.

Shared data models across the application.
"""

from enum import Enum
from pathlib import Path
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# =====================================================
# Classification Models
# =====================================================

class FileCategory(str, Enum):
    """Heuristic file category."""
    PERSONAL_DATA = "personal_data"
    MEDIA = "media"
    CONFIG = "config"
    WEBSITE_SCAFFOLDING = "website_scaffolding"
    WORK = "work"
    UNKNOWN = "unknown"


class FileRecommendation(BaseModel):
    """Ingest/skip recommendation for a single file."""
    model_config = ConfigDict(frozen=True)

    relative_path: str
    absolute_path: Path
    should_ingest: bool
    category: FileCategory
    reason: str


class ScanSummary(BaseModel):
    """Per-category counts for a scan."""
    personal_data_count: int = 0
    media_count: int = 0
    config_count: int = 0
    website_scaffolding_count: int = 0
    work_count: int = 0
    unknown_count: int = 0


class ScanResult(BaseModel):
    """Result of a folder scan."""
    total_files: int
    recommended: List[FileRecommendation] = []
    skipped: List[FileRecommendation] = []
    summary: ScanSummary = Field(default_factory=ScanSummary)


# =====================================================
# Watcher Models
# =====================================================

class WatchEventKind(str, Enum):
    """Normalized filesystem change kind."""
    CREATED = "created"
    MODIFIED = "modified"


class WatchEvent(BaseModel):
    """Debounced filesystem change for a supported file."""
    model_config = ConfigDict(frozen=True)

    kind: WatchEventKind
    path: Path


# =====================================================
# Transfer Models
# =====================================================

class UploadStatus(str, Enum):
    """Lifecycle of a single file transfer."""
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    INGESTING = "ingesting"
    DONE = "done"
    ERROR = "error"


class UploadResult(BaseModel):
    """Outcome of an upload-and-ingest sequence."""
    filename: str
    remote_key: str = ""
    progress_id: Optional[str] = None
    status: UploadStatus
    error: Optional[str] = None


class UploadSlot(BaseModel):
    """Presigned upload target returned by the ingestion service."""
    upload_url: str
    s3_key: str
    s3_bucket: Optional[str] = None


class IngestTriggerResponse(BaseModel):
    """Response to an ingest trigger."""
    progress_id: str


class ProgressResponse(BaseModel):
    """Ingestion job status as reported by the service."""
    progress_id: str
    status: str
    percent: Optional[float] = None
    message: Optional[str] = None


class FileProgress(BaseModel):
    """Live progress entry for one file in an ingestion batch."""
    filename: str
    progress_id: Optional[str] = None
    status: str = "pending"
    percent: float = Field(default=0.0, ge=0.0, le=100.0)
    message: Optional[str] = None


# =====================================================
# Activity Models
# =====================================================

class ActivityEntry(BaseModel):
    """Completed transfer outcome shown in the activity feed."""
    filename: str
    status: UploadStatus
    error: Optional[str] = None
    timestamp: str
    category: Optional[FileCategory] = None


class SyncStatus(BaseModel):
    """Snapshot of the sync pipeline state."""
    watching: bool
    folder: Optional[str] = None
    file_count: int = 0
    recent_activity: List[ActivityEntry] = []


# =====================================================
# Response Models
# =====================================================

class OperationStatus(BaseModel):
    """Generic operation status."""
    status: str
    message: str


# =====================================================
# Query Models
# =====================================================

class RunQueryResponse(BaseModel):
    """Natural-language query results and the session to follow up in."""
    session_id: str
    results: List[Any] = []
    summary: Optional[str] = None


class ChatResponse(BaseModel):
    """Answer to a follow-up question within a query session."""
    answer: str
    context_used: bool = False


class SearchResponse(BaseModel):
    """Native index matches for a search term."""
    results: List[Any] = []
    count: int = 0
    term: str


class MutateResponse(BaseModel):
    """Outcome of a schema mutation."""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
