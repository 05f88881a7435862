"""
Heuristic file classifier for the File Ingestion domain.

Maps a path relative to the watched folder onto a category and an
ingest/skip recommendation. Classification looks only at the path string.

Rules are evaluated in order and the first match wins, so scaffolding and
config rules shadow the data rules even when the extension would otherwise
look like user data (e.g. ``node_modules/react/index.js``).
"""

from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Callable, Optional, Sequence

from loguru import logger

from app.models.schemas import FileCategory, FileRecommendation


SCAFFOLDING_MARKERS = ("node_modules", "twemoji", "/assets/", "runtime.", "modules.")
FONT_EXTENSIONS = {"woff", "woff2", "eot", "ttf"}

CONFIG_MARKERS = (".config", "config/")
CONFIG_EXTENSIONS = {"env", "ini", "yaml", "yml"}

MEDIA_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "mp4", "mp3", "wav"}
MEDIA_EXCLUDE_MARKERS = ("twemoji", "/assets/")

PERSONAL_DATA_EXTENSIONS = {"json", "csv", "txt", "md", "doc", "docx", "pdf", "js"}
PERSONAL_DATA_MARKERS = ("data/", "export", "backup")


@dataclass(frozen=True)
class PathFacts:
    """Lower-cased path and extension the rules are evaluated against."""

    lower: str
    extension: str

    @classmethod
    def from_path(cls, relative_path: str) -> "PathFacts":
        # Normalise Windows separators so the "/assets/" style markers match
        lower = relative_path.replace("\\", "/").lower()
        extension = PurePath(lower).suffix.lstrip(".")
        return cls(lower=lower, extension=extension)


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the ordered rule list."""

    category: FileCategory
    should_ingest: bool
    reason: str
    matches: Callable[[PathFacts], bool]


def is_website_scaffolding(facts: PathFacts) -> bool:
    if any(marker in facts.lower for marker in SCAFFOLDING_MARKERS):
        return True
    if facts.extension in FONT_EXTENSIONS:
        return True
    return facts.extension == "svg" and "emoji" in facts.lower


def is_config(facts: PathFacts) -> bool:
    if any(segment.startswith(".") for segment in facts.lower.split("/") if segment):
        return True
    if any(marker in facts.lower for marker in CONFIG_MARKERS):
        return True
    return facts.extension in CONFIG_EXTENSIONS


def is_media(facts: PathFacts) -> bool:
    if facts.extension not in MEDIA_EXTENSIONS:
        return False
    return not any(marker in facts.lower for marker in MEDIA_EXCLUDE_MARKERS)


def is_personal_data(facts: PathFacts) -> bool:
    if facts.extension in PERSONAL_DATA_EXTENSIONS:
        return True
    return any(marker in facts.lower for marker in PERSONAL_DATA_MARKERS)


CLASSIFICATION_RULES: Sequence[ClassificationRule] = (
    ClassificationRule(
        FileCategory.WEBSITE_SCAFFOLDING, False,
        "Appears to be website/app scaffolding", is_website_scaffolding,
    ),
    ClassificationRule(
        FileCategory.CONFIG, False,
        "Appears to be configuration file", is_config,
    ),
    ClassificationRule(
        FileCategory.MEDIA, True,
        "User media file", is_media,
    ),
    ClassificationRule(
        FileCategory.PERSONAL_DATA, True,
        "Potential personal data file", is_personal_data,
    ),
)

FALLBACK_RULE = ClassificationRule(
    FileCategory.UNKNOWN, False, "Unknown file type", lambda facts: True,
)


def match_rule(
    relative_path: str,
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
) -> ClassificationRule:
    """Return the first rule matching ``relative_path``."""
    facts = PathFacts.from_path(relative_path)
    for rule in rules:
        if rule.matches(facts):
            return rule
    return FALLBACK_RULE


def classify(relative_path: str, root: Optional[Path] = None) -> FileRecommendation:
    """
    Classify a file path.

    Args:
        relative_path: Path relative to the watched folder
        root: Watched folder, used to build ``absolute_path``

    Returns:
        Recommendation for the file
    """
    rule = match_rule(relative_path)
    absolute = (root / relative_path) if root is not None else Path(relative_path)

    return FileRecommendation(
        relative_path=relative_path,
        absolute_path=absolute,
        should_ingest=rule.should_ingest,
        category=rule.category,
        reason=rule.reason,
    )


def classify_single(root: Path, absolute_path: Path) -> FileRecommendation:
    """
    Classify one file seen by the watcher.

    Falls back to the bare filename when ``absolute_path`` is not under
    ``root``. Never raises.

    Args:
        root: Watched folder
        absolute_path: File reported by the watcher

    Returns:
        Recommendation for the file
    """
    try:
        relative = absolute_path.relative_to(root).as_posix()
    except ValueError:
        relative = absolute_path.name or "unknown"
        logger.debug(f"{absolute_path} is outside {root}, classifying by name")

    try:
        rec = classify(relative)
    except Exception as e:
        logger.warning(f"Could not classify {absolute_path}: {e}")
        return FileRecommendation(
            relative_path=str(absolute_path),
            absolute_path=absolute_path,
            should_ingest=False,
            category=FileCategory.UNKNOWN,
            reason="Could not classify",
        )

    return rec.model_copy(update={"absolute_path": absolute_path})
