"""
Configuration management for the folder sync agent.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_API_URL = "https://ygyu7ritx8.execute-api.us-west-2.amazonaws.com"
PROD_API_URL = "https://jdsx4ixk2i.execute-api.us-east-1.amazonaws.com"


class Environment(str, Enum):
    """Which ingestion backend to talk to."""
    DEV = "dev"
    PROD = "prod"
    CUSTOM = "custom"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Remote ingestion service
    api_base_url: str = ""
    api_key: str = ""
    user_hash: Optional[str] = None
    environment: Environment = Environment.CUSTOM

    # Sync behaviour
    watched_folder: Optional[Path] = None
    auto_ingest: bool = True
    auto_approve_watched: bool = True

    # API Configuration
    api_port: int = 8000
    log_level: str = "INFO"
    api_title: str = "Folder Sync Agent"
    api_version: str = "1.0.0"

    # Transfer Configuration
    max_concurrent_uploads: int = 3
    upload_timeout_seconds: float = 120.0
    retry_attempts: int = 3
    retry_base_delay_ms: int = 500
    default_s3_bucket: str = "exemem-user-data"

    # Progress polling
    poll_interval_seconds: float = 2.0
    max_polls: int = 120

    # Watcher / scanner
    debounce_ms: int = 500
    activity_log_size: int = 50
    scan_max_depth: int = 10
    scan_max_files: int = 5000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def api_url(self) -> str:
        """Resolve the base URL for the selected environment."""
        if self.environment == Environment.DEV:
            return DEV_API_URL
        if self.environment == Environment.PROD:
            return PROD_API_URL
        return self.api_base_url.rstrip('/')

    def is_configured(self) -> bool:
        """True when enough is set to start a watch session."""
        return bool(self.api_url()) and bool(self.api_key) and self.watched_folder is not None

    def auth_headers(self) -> Dict[str, str]:
        """Headers every call to the remote API carries."""
        headers = {"X-API-Key": self.api_key}
        if self.user_hash:
            headers["X-User-Hash"] = self.user_hash
        return headers

    def get_watched_folder(self) -> Optional[Path]:
        """Watched folder with ``~`` expanded."""
        if self.watched_folder is None:
            return None
        return Path(self.watched_folder).expanduser()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
