"""
Helper utilities for Tidyloads.

Common functions used across the application and the ingest domain.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

# Suffixes browsers leave on files that are still being written
TEMPORARY_SUFFIXES = (".tmp", ".download", ".crdownload", ".part")


def configure_logging(level: str = "INFO") -> None:
    """Route loguru output to stdout with the standard format."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level.upper())


def generate_uuid() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""

    try:
        return path.expanduser().resolve()
    except (FileNotFoundError, RuntimeError):
        return path.expanduser().absolute()


def is_hidden(path: Path) -> bool:
    """Check if path is hidden (starts with dot)."""
    return path.name.startswith('.')


def is_temporary_download(path: Path) -> bool:
    """Check if path looks like a partial or in-flight download."""
    name = path.name
    return name.endswith(TEMPORARY_SUFFIXES) or '.part.' in name


def get_file_extension(path: Path) -> str:
    """Get lowercase file extension without dot."""
    return path.suffix.lstrip('.').lower()


def is_relative_to(path: Path, parent: Path) -> bool:
    """``Path.is_relative_to`` that tolerates unrelated drives and anchors."""
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True


def dump_json_atomic(path: Path, payload: Any) -> None:
    """Persist ``payload`` as prettified JSON, replacing ``path`` atomically."""

    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


def load_json(path: Optional[Path], default: Any = None) -> Any:
    """
    Load JSON from ``path``.

    Missing files return ``default``. Corrupt files are logged and also
    return ``default`` so a damaged state file never blocks startup.
    """
    if path is None or not path.exists():
        return default

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return default
