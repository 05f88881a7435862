"""
Helper utilities for the folder sync agent.

Common functions used across domains.
"""

import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4


DEFAULT_CONTENT_TYPE = "application/octet-stream"


def generate_uuid() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def get_file_extension(path: Path) -> str:
    """Get lower-cased file extension without dot."""
    return path.suffix.lstrip('.').lower()


def is_hidden(path: Path) -> bool:
    """Check if path is hidden (starts with dot)."""
    return path.name.startswith('.')


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""
    try:
        return path.expanduser().resolve()
    except (FileNotFoundError, RuntimeError):
        return path.expanduser().absolute()


def guess_content_type(path: Path) -> str:
    """
    Guess the MIME type of a file from its name.

    Args:
        path: File path

    Returns:
        MIME type, or ``application/octet-stream`` when unknown
    """
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


def format_bytes(bytes_count: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"
