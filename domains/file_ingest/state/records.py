"""Per-file and per-installer state kept by the ingest engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from domains.file_ingest.processors.router import Category
from tidyloads.utils.helpers import utc_now


class FileState(str, Enum):
    """Lifecycle of a FileRecord."""

    PENDING = "pending"
    TRACKED = "tracked"
    MOVED = "moved"
    CLEANED = "cleaned"
    REVERTED = "reverted"
    ERROR = "error"

    @property
    def is_live(self) -> bool:
        """Live records take part in duplicate suppression."""
        return self in LIVE_STATES


LIVE_STATES = frozenset({FileState.PENDING, FileState.TRACKED, FileState.MOVED})


@dataclass(slots=True, frozen=True)
class FileRecord:
    """One observed inbox path and what has happened to it."""

    path: str
    name: str
    extension: str
    category: Category
    state: FileState
    discovered_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    destination_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.state.is_live

    def transition(self, state: FileState, **changes: Any) -> FileRecord:
        """Copy of this record in ``state``, keeping its discovery time."""
        changes.setdefault("updated_at", utc_now())
        return replace(self, state=state, **changes)

    def as_json_ready(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "extension": self.extension,
            "category": self.category.value,
            "state": self.state.value,
            "discovered_at": self.discovered_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "destination_path": self.destination_path,
            "error": self.error,
        }

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> FileRecord:
        return cls(
            path=payload["path"],
            name=payload["name"],
            extension=payload["extension"],
            category=Category(payload["category"]),
            state=FileState(payload["state"]),
            discovered_at=datetime.fromisoformat(payload["discovered_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
            destination_path=payload.get("destination_path"),
            error=payload.get("error"),
        )


class InstallerKind(str, Enum):
    """Installer artifacts tracked through first use."""

    DISK_IMAGE = "dmg"
    PACKAGE = "pkg"
    APPLICATION = "app"

    @classmethod
    def from_extension(cls, extension: str) -> Optional[InstallerKind]:
        ext = extension.lstrip('.').lower()
        for kind in cls:
            if kind.value == ext:
                return kind
        return None


@dataclass(slots=True)
class InstallerEntry:
    """Tracked installer; ``used`` only ever goes from False to True."""

    path: str
    name: str
    kind: InstallerKind
    first_seen: datetime = field(default_factory=utc_now)
    used: bool = False
    used_at: Optional[datetime] = None

    def as_json_ready(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "kind": self.kind.value,
            "first_seen": self.first_seen.isoformat(),
            "used": self.used,
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> InstallerEntry:
        used_at = payload.get("used_at")
        return cls(
            path=payload["path"],
            name=payload["name"],
            kind=InstallerKind(payload["kind"]),
            first_seen=datetime.fromisoformat(payload["first_seen"]),
            used=bool(payload.get("used", False)),
            used_at=datetime.fromisoformat(used_at) if used_at else None,
        )
