"""
Inbox listing policy shared by every scan kind.

Only immediate children are considered. Directories, dotfiles, partial
downloads and files without an extension never reach the classifier.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List

from loguru import logger

from tidyloads.utils.helpers import get_file_extension, is_hidden, is_temporary_download


@dataclass(slots=True, frozen=True)
class InboxEntry:
    """A listed inbox file eligible for classification."""

    path: Path
    name: str
    extension: str
    modified: float


def should_skip(path: Path) -> bool:
    """
    Check if an inbox child is excluded from classification.

    Args:
        path: Immediate child of the inbox

    Returns:
        True if the entry should be ignored
    """
    if is_hidden(path) or is_temporary_download(path):
        return True

    if not get_file_extension(path):
        return True

    return False


def list_inbox(inbox: Path) -> List[InboxEntry]:
    """
    List eligible inbox files, newest first.

    Raises:
        OSError: The inbox itself cannot be listed
    """
    entries: List[InboxEntry] = []

    for child in inbox.iterdir():
        if should_skip(child):
            logger.debug(f"Skipping system/temp file: {child.name}")
            continue

        try:
            if not child.is_file():
                continue
            modified = child.stat().st_mtime
        except OSError:
            # Vanished between listing and stat
            continue

        entries.append(
            InboxEntry(
                path=child,
                name=child.name,
                extension=get_file_extension(child),
                modified=modified,
            )
        )

    entries.sort(key=lambda e: e.modified, reverse=True)
    return entries
