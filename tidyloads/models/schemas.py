"""
Pydantic models for the Tidyloads API.

Response and request shapes shared across routers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domains.file_ingest.state.records import FileRecord, InstallerEntry


# =====================================================
# Registry Models
# =====================================================

class FileRecordModel(BaseModel):
    """Registry record for one inbox path."""
    path: str
    name: str
    extension: str
    category: str
    state: str
    discovered_at: datetime
    updated_at: datetime
    destination_path: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileRecordModel":
        return cls(
            path=record.path,
            name=record.name,
            extension=record.extension,
            category=record.category.value,
            state=record.state.value,
            discovered_at=record.discovered_at,
            updated_at=record.updated_at,
            destination_path=record.destination_path,
            error=record.error,
        )


class InstallerModel(BaseModel):
    """Tracked installer."""
    path: str
    name: str
    kind: str
    first_seen: datetime
    used: bool
    used_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: InstallerEntry) -> "InstallerModel":
        return cls(
            path=entry.path,
            name=entry.name,
            kind=entry.kind.value,
            first_seen=entry.first_seen,
            used=entry.used,
            used_at=entry.used_at,
        )


class StatusResponse(BaseModel):
    """Organizer status snapshot."""
    monitoring: bool
    inbox: str
    pending_count: int
    recent_moves_count: int
    moved_count: int
    tracked_installers: int
    last_error: Optional[str] = None


# =====================================================
# Request Models
# =====================================================

class PathRequest(BaseModel):
    """Request naming a single file by absolute path."""
    path: str


class OptionalPathRequest(BaseModel):
    """Request that applies to one path, or to everything when omitted."""
    path: Optional[str] = None


class PreferencesUpdate(BaseModel):
    """Partial preferences update; unset fields are left alone."""
    enabled: Optional[bool] = None
    clean_installers_immediately: Optional[bool] = None
    clean_after_first_use: Optional[bool] = None
    auto_clean_unused_installers: Optional[bool] = None
    auto_clean_days: Optional[int] = Field(default=None, ge=1)
    confirm_before_moving: Optional[bool] = None


# =====================================================
# Response Models
# =====================================================

class OperationStatus(BaseModel):
    """Generic operation status."""
    status: str
    message: str
    details: Optional[Dict[str, Any]] = None


class PathsResponse(BaseModel):
    """Paths produced by a batch operation."""
    count: int
    paths: List[str] = []
