"""
Health check endpoint.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from datetime import datetime

from app.utils.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    configured: bool
    watching: bool
    uploads_in_flight: int
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - Sync configuration is complete
    """
    pipeline = request.app.state.pipeline
    configured = pipeline.get_settings().is_configured()

    return HealthResponse(
        status="healthy" if configured else "degraded",
        timestamp=datetime.now(),
        configured=configured,
        watching=pipeline.watching,
        uploads_in_flight=pipeline.uploader.in_flight,
        version=get_settings().api_version
    )
