"""
Installer lifecycle tracking.

Disk images, packages and app bundles are not moved on arrival. They are
tracked until an external signal shows they were used (volume mounted,
application launched) or until they sit unused past the cleanup cutoff.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

from loguru import logger

from domains.file_ingest.processors.router import Category
from domains.file_ingest.state.activity_log import ActivityLog, LogAction
from domains.file_ingest.state.records import InstallerEntry, InstallerKind
from tidyloads.utils.helpers import dump_json_atomic, load_json, utc_now

PathLike = Union[str, Path]


class InstallerLifecycleTracker:
    """Owns every InstallerEntry."""

    def __init__(self, activity_log: ActivityLog, state_file: Optional[Path] = None):
        self.activity_log = activity_log
        self.state_file = state_file
        self._lock = threading.RLock()
        self._entries: Dict[str, InstallerEntry] = {}
        self._load()

    def track(self, path: PathLike, name: str, kind: InstallerKind,
              first_seen: Optional[datetime] = None) -> InstallerEntry:
        """Create or overwrite the entry for ``path`` and log it."""
        entry = InstallerEntry(path=str(path), name=name, kind=kind, first_seen=first_seen or utc_now())
        with self._lock:
            self._entries[entry.path] = entry
            self._save()

        logger.info(f"Tracking installer: {name} ({kind.value})")
        self.activity_log.record(
            LogAction.TRACKED,
            file_name=name,
            category=Category.INSTALLER.value,
            source_path=entry.path,
            details="Installer tracked for monitoring",
        )
        return entry

    def mark_used(self, path: PathLike, when: Optional[datetime] = None) -> bool:
        """
        Flip the used flag for ``path``.

        Returns:
            True if the entry changed; False for unknown or already-used paths
        """
        with self._lock:
            entry = self._entries.get(str(path))
            if entry is None or entry.used:
                return False

            entry.used = True
            entry.used_at = when or utc_now()
            self._save()

        logger.info(f"Installer used: {entry.name}")
        return True

    def remove(self, path: PathLike) -> Optional[InstallerEntry]:
        with self._lock:
            removed = self._entries.pop(str(path), None)
            if removed is not None:
                self._save()
        return removed

    def get(self, path: PathLike) -> Optional[InstallerEntry]:
        with self._lock:
            entry = self._entries.get(str(path))
            return _copy(entry) if entry else None

    def entries(self) -> List[InstallerEntry]:
        with self._lock:
            return [_copy(e) for e in self._entries.values()]

    def find_unused(self, kind: InstallerKind, name: Optional[str] = None) -> List[InstallerEntry]:
        """Unused entries of ``kind``, optionally restricted to a file name."""
        return [
            e for e in self.entries()
            if e.kind is kind and not e.used and (name is None or e.name == name)
        ]

    def sweep_unused(self, older_than_days: int, now: Optional[datetime] = None) -> List[InstallerEntry]:
        """Unused entries first seen before the cutoff. Does not mutate state."""
        cutoff = (now or utc_now()) - timedelta(days=older_than_days)
        return [e for e in self.entries() if not e.used and e.first_seen < cutoff]

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return str(path) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _load(self) -> None:
        for item in load_json(self.state_file, default=[]):
            try:
                entry = InstallerEntry.from_json(item)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed installer entry: {e}")
                continue
            self._entries[entry.path] = entry

    def _save(self) -> None:
        if self.state_file is None:
            return
        ordered = sorted(self._entries.values(), key=lambda e: e.path)
        dump_json_atomic(self.state_file, [e.as_json_ready() for e in ordered])


def _copy(entry: InstallerEntry) -> InstallerEntry:
    return InstallerEntry(
        path=entry.path,
        name=entry.name,
        kind=entry.kind,
        first_seen=entry.first_seen,
        used=entry.used,
        used_at=entry.used_at,
    )
