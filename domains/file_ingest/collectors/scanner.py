"""
Folder scanner for the File Ingestion domain.

Walks the watched folder once, collects file paths and classifies them so
the user can review what will be ingested before the watcher takes over.
"""

import os
from pathlib import Path
from typing import List

from loguru import logger

from app.models.schemas import FileCategory, FileRecommendation, ScanResult, ScanSummary
from app.utils.helpers import is_hidden
from domains.file_ingest.classifier import classify
from domains.file_ingest.errors import ScanError


MAX_DEPTH = 10
MAX_FILES = 5000

SKIP_DIRS = {
    "node_modules",
    "__pycache__",
    ".git",
    ".svn",
    "target",
    "build",
    "dist",
    ".cache",
    "venv",
    ".venv",
}

_SUMMARY_FIELDS = {
    FileCategory.PERSONAL_DATA: "personal_data_count",
    FileCategory.MEDIA: "media_count",
    FileCategory.CONFIG: "config_count",
    FileCategory.WEBSITE_SCAFFOLDING: "website_scaffolding_count",
    FileCategory.WORK: "work_count",
    FileCategory.UNKNOWN: "unknown_count",
}


class FolderScanner:
    """Bounded recursive scan + classification of a folder."""

    def __init__(self, max_depth: int = MAX_DEPTH, max_files: int = MAX_FILES):
        """
        Initialize folder scanner.

        Args:
            max_depth: Deepest directory level to descend into (root is 0)
            max_files: Stop collecting once this many files are found
        """
        self.max_depth = max_depth
        self.max_files = max_files

    def collect_files(self, root: Path) -> List[str]:
        """
        Collect file paths under ``root``, relative to it.

        Traversal stops silently at the depth and file ceilings.

        Args:
            root: Directory to walk

        Returns:
            List of POSIX-style relative paths

        Raises:
            ScanError: If ``root`` itself cannot be read
        """
        files: List[str] = []

        try:
            entries = sorted(os.scandir(root), key=lambda e: e.name)
        except OSError as e:
            raise ScanError(f"Failed to read directory {root}: {e}") from e

        def _scan_recursive(current_entries, depth: int):
            """Depth-first walk helper."""
            for entry in current_entries:
                if len(files) >= self.max_files:
                    return

                path = Path(entry.path)
                if is_hidden(path):
                    continue

                if entry.is_dir():
                    if entry.name in SKIP_DIRS or depth + 1 > self.max_depth:
                        continue
                    try:
                        children = sorted(os.scandir(path), key=lambda e: e.name)
                    except OSError as e:
                        logger.warning(f"Skipping unreadable directory {path}: {e}")
                        continue
                    _scan_recursive(children, depth + 1)

                elif entry.is_file():
                    files.append(path.relative_to(root).as_posix())

        _scan_recursive(entries, 0)
        return files

    def scan(self, root: Path) -> ScanResult:
        """
        Scan ``root`` and classify every collected file.

        Args:
            root: Folder to scan

        Returns:
            ScanResult partitioned into recommended and skipped files

        Raises:
            ScanError: If ``root`` cannot be read
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanError(f"Not a readable directory: {root}")

        logger.info(f"Scanning {root}...")
        files = self.collect_files(root)
        recommendations = [classify(rel, root) for rel in files]

        recommended = [r for r in recommendations if r.should_ingest]
        skipped = [r for r in recommendations if not r.should_ingest]

        if len(files) >= self.max_files:
            logger.warning(f"Scan of {root} stopped at the {self.max_files} file limit")

        logger.success(
            f"Scanned {len(files)} files in {root}: "
            f"{len(recommended)} recommended, {len(skipped)} skipped"
        )

        return ScanResult(
            total_files=len(files),
            recommended=recommended,
            skipped=skipped,
            summary=build_summary(recommendations),
        )


def build_summary(recommendations: List[FileRecommendation]) -> ScanSummary:
    """Count recommendations per category."""
    summary = ScanSummary()
    for rec in recommendations:
        field = _SUMMARY_FIELDS.get(rec.category, "unknown_count")
        setattr(summary, field, getattr(summary, field) + 1)
    return summary


def count_files(folder: Path) -> int:
    """
    Count regular files under ``folder``.

    Returns 0 if the folder is missing or unreadable.
    """
    folder = Path(folder)
    if not folder.is_dir():
        return 0

    count = 0
    for _, _, filenames in os.walk(folder):
        count += len(filenames)
    return count
