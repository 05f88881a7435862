"""
Folder Sync Agent - Main FastAPI Application

Background agent that keeps a local folder mirrored into a hosted
knowledge store:
- Folder scan with ingest/skip recommendations
- Continuous watch of the folder for new and changed files
- Upload, ingest trigger and progress tracking
- Activity feed for the UI
- Query, search and mutation over the ingested data
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
import sys

from app.utils.config import get_settings
from app.api import health, query, sync
from domains.file_ingest.errors import FileIngestError, TransferError
from domains.file_ingest.events import RecordingSink
from domains.file_ingest.pipeline import SyncPipeline
from domains.knowledge_query.client import QueryClient


settings = get_settings()

# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level=settings.log_level.upper()
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting {settings.api_title} v{settings.api_version}")

    pipeline = SyncPipeline(get_settings(), sink=RecordingSink())
    app.state.pipeline = pipeline
    query_client = QueryClient.from_settings(pipeline.get_settings())
    app.state.query_client = query_client

    # Resume watching if the agent was already set up
    if pipeline.get_settings().is_configured():
        try:
            await pipeline.start_watching()
        except FileIngestError as e:
            logger.error(f"Failed to auto-start watcher: {e}")

    yield

    # Cleanup
    logger.info("Shutting down application...")
    await pipeline.shutdown()
    await query_client.close()
    logger.success("Application shut down complete")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Folder watch and ingestion agent",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TransferError)
async def transfer_exception_handler(request: Request, exc: TransferError):
    """Remote service unreachable or answered with an error."""
    logger.warning(f"{exc.__class__.__name__}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": exc.__class__.__name__, "detail": str(exc)}
    )


@app.exception_handler(FileIngestError)
async def file_ingest_exception_handler(request: Request, exc: FileIngestError):
    """Rejected sync operations (not configured, unreadable folder, ...)."""
    logger.warning(f"{exc.__class__.__name__}: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": exc.__class__.__name__, "detail": str(exc)}
    )


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.log_level == "DEBUG" else "An error occurred"
        }
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(sync.router, prefix="/sync", tags=["Sync"])
app.include_router(query.router, prefix="/query", tags=["Query"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Folder Sync Agent",
        "version": settings.api_version,
        "status": "operational",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
