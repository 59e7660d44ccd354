"""
Activity history.

Every outcome of the ingest engine lands here: moves, tracking, errors,
reverts. The log is newest-first, capped, and optionally persisted as JSON.
An entry superseded by a later outcome for the same file is removed.
"""

from __future__ import annotations

import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from tidyloads.utils.helpers import dump_json_atomic, generate_uuid, load_json, utc_now


class LogAction(str, Enum):
    """What happened to a file."""

    MOVED = "Moved"
    TRACKED = "Tracked"
    CLEANED = "Cleaned"
    ERROR = "Error"
    MOUNTED = "Mounted"
    LAUNCHED = "Launched"
    PENDING = "Pending"
    REVERTED = "Reverted"


class LogEntry(BaseModel):
    """Single activity log record."""
    id: str = Field(default_factory=generate_uuid)
    timestamp: datetime = Field(default_factory=utc_now)
    file_name: str
    category: str
    action: LogAction
    source_path: str
    destination_path: Optional[str] = None
    details: Optional[str] = None


Subscriber = Callable[[LogEntry], None]


class ActivityLog:
    """Log sink with query and subscription support."""

    def __init__(self, path: Optional[Path] = None, max_entries: int = 1000):
        self.path = path
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: List[LogEntry] = []
        self._subscribers: List[Subscriber] = []
        self._load()

    def append(self, entry: LogEntry) -> LogEntry:
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.max_entries:]
            self._save()
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(entry)
            except Exception as e:
                logger.warning(f"Activity log subscriber failed: {e}")

        return entry

    def record(self, action: LogAction, file_name: str, category: str, source_path: str,
               destination_path: Optional[str] = None, details: Optional[str] = None) -> LogEntry:
        """Build and append an entry in one call."""
        return self.append(LogEntry(
            file_name=file_name,
            category=category,
            action=action,
            source_path=source_path,
            destination_path=destination_path,
            details=details,
        ))

    def query(self, predicate: Callable[[LogEntry], bool]) -> List[LogEntry]:
        return [e for e in self.entries() if predicate(e)]

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries[:limit] if limit is not None else entries

    def remove(self, entry_id: str) -> bool:
        """Drop the entry with ``entry_id``; False if it is not in the log."""
        return self.remove_where(lambda e: e.id == entry_id) > 0

    def remove_where(self, predicate: Callable[[LogEntry], bool]) -> int:
        """
        Drop every entry matching ``predicate``.

        Used when a later outcome supersedes an earlier one, e.g. a Pending
        entry once the file has been moved.

        Returns:
            Number of entries removed
        """
        with self._lock:
            kept = [e for e in self._entries if not predicate(e)]
            removed = len(self._entries) - len(kept)
            if removed:
                self._entries = kept
                self._save()
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._save()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for new entries; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _load(self) -> None:
        for item in load_json(self.path, default=[]):
            try:
                self._entries.append(LogEntry.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed activity entry: {e}")
        del self._entries[self.max_entries:]

    def _save(self) -> None:
        if self.path is None:
            return
        dump_json_atomic(self.path, [e.model_dump(mode="json") for e in self._entries])
