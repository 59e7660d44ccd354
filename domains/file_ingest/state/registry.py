"""
Idempotency ledger for observed inbox files.

Keeps exactly one FileRecord per absolute source path. Mutations happen on the
organizer's processing lane; readers get copies and never hold the lock for
longer than a dict copy.
"""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from loguru import logger

from domains.file_ingest.processors.router import Category
from domains.file_ingest.state.records import FileRecord, FileState
from tidyloads.utils.helpers import dump_json_atomic, get_file_extension, load_json, utc_now

PathLike = Union[str, Path]


class FileRegistry:
    """Per-path state machine backing duplicate suppression."""

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = state_file
        self._lock = threading.RLock()
        self._records: Dict[str, FileRecord] = {}
        self._load()

    # Queries -------------------------------------------------------------------------

    def get(self, path: PathLike) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(str(path))

    def has_record(self, path: PathLike) -> bool:
        with self._lock:
            return str(path) in self._records

    def is_live(self, path: PathLike) -> bool:
        record = self.get(path)
        return record is not None and record.is_live

    def query(self, predicate: Callable[[FileRecord], bool]) -> List[FileRecord]:
        """Records matching ``predicate``, most recently updated first."""
        matches = [r for r in self.snapshot() if predicate(r)]
        return sorted(matches, key=lambda r: r.updated_at, reverse=True)

    def snapshot(self) -> List[FileRecord]:
        with self._lock:
            return list(self._records.values())

    def pending(self) -> List[FileRecord]:
        return self.query(lambda r: r.state is FileState.PENDING)

    def moved(self) -> List[FileRecord]:
        return self.query(lambda r: r.state is FileState.MOVED)

    def recent_moves(self, minutes: int = 30) -> List[FileRecord]:
        cutoff = utc_now() - timedelta(minutes=minutes)
        return self.query(lambda r: r.state is FileState.MOVED and r.updated_at > cutoff)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # Transitions ---------------------------------------------------------------------

    def record_pending(self, path: PathLike, category: Category) -> bool:
        """
        Insert a Pending record unless a live record already exists.

        Returns:
            True if a record was inserted
        """
        key = str(path)
        with self._lock:
            existing = self._records.get(key)
            if existing is not None and existing.is_live:
                return False

            self._records[key] = self._fresh(key, category, FileState.PENDING)
            self._save()
            return True

    def record_tracked(self, path: PathLike, category: Category = Category.INSTALLER) -> FileRecord:
        return self._replace(path, category, FileState.TRACKED)

    def record_moved(self, path: PathLike, category: Category, destination: PathLike) -> FileRecord:
        return self._replace(path, category, FileState.MOVED, destination_path=str(destination), error=None)

    def record_cleaned(self, path: PathLike, category: Category, destination: PathLike) -> FileRecord:
        return self._replace(path, category, FileState.CLEANED, destination_path=str(destination), error=None)

    def record_error(self, path: PathLike, category: Category, error: str) -> FileRecord:
        return self._replace(path, category, FileState.ERROR, error=error)

    def record_reverted(self, moved: FileRecord, restored_path: PathLike) -> FileRecord:
        """
        Destroy the Moved record and create a Reverted record at ``restored_path``.

        The restored path differs from the original source when a same-named
        file arrived in the inbox in the meantime.
        """
        key = str(restored_path)
        with self._lock:
            self._records.pop(moved.path, None)
            record = FileRecord(
                path=key,
                name=Path(key).name,
                extension=moved.extension,
                category=moved.category,
                state=FileState.REVERTED,
                discovered_at=moved.discovered_at,
                destination_path=moved.destination_path,
            )
            self._records[key] = record
            self._save()
            return record

    def discard(self, path: PathLike) -> Optional[FileRecord]:
        with self._lock:
            removed = self._records.pop(str(path), None)
            if removed is not None:
                self._save()
            return removed

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._save()

    # Helpers -------------------------------------------------------------------------

    def _replace(self, path: PathLike, category: Category, state: FileState, **changes) -> FileRecord:
        key = str(path)
        with self._lock:
            existing = self._records.get(key)
            if existing is None:
                record = self._fresh(key, category, state, **changes)
            else:
                record = existing.transition(state, category=category, **changes)
            self._records[key] = record
            self._save()
            return record

    @staticmethod
    def _fresh(key: str, category: Category, state: FileState, **changes) -> FileRecord:
        path = Path(key)
        return FileRecord(
            path=key,
            name=path.name,
            extension=get_file_extension(path),
            category=category,
            state=state,
            **changes,
        )

    def _load(self) -> None:
        payload = load_json(self.state_file, default=[])
        for item in payload:
            try:
                record = FileRecord.from_json(item)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed registry entry: {e}")
                continue
            self._records[record.path] = record

        if self._records:
            logger.info(f"Loaded {len(self._records)} registry records from {self.state_file}")

    def _save(self) -> None:
        if self.state_file is None:
            return
        ordered = sorted(self._records.values(), key=lambda r: r.path)
        dump_json_atomic(self.state_file, [r.as_json_ready() for r in ordered])
