"""
Organizer control endpoints.

Includes:
- Monitoring start/stop and status
- Manual scans and pending organization
- Reverting moves
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from loguru import logger

from domains.file_ingest.service import InboxOrganizer
from tidyloads.api.deps import get_organizer, wait_for
from tidyloads.models.schemas import (
    FileRecordModel,
    OperationStatus,
    OptionalPathRequest,
    PathRequest,
    PathsResponse,
    StatusResponse,
)

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
async def get_status(organizer: InboxOrganizer = Depends(get_organizer)):
    """Snapshot of monitoring state and registry counts."""
    return StatusResponse(**organizer.status())


@router.post("/start", response_model=OperationStatus)
def start_monitoring(organizer: InboxOrganizer = Depends(get_organizer)):
    """Start watching the inbox."""
    if organizer.start_monitoring():
        return OperationStatus(status="monitoring", message=f"Watching {organizer.inbox}")

    return OperationStatus(
        status="stopped",
        message="Failed to start monitoring",
        details={"error": organizer.last_error}
    )


@router.post("/stop", response_model=OperationStatus)
def stop_monitoring(organizer: InboxOrganizer = Depends(get_organizer)):
    """Stop watching the inbox."""
    organizer.stop_monitoring()
    return OperationStatus(status="stopped", message="Monitoring stopped")


@router.post("/scan", response_model=OperationStatus)
def scan_now(organizer: InboxOrganizer = Depends(get_organizer)):
    """
    Classify and move every unresolved inbox file immediately.

    Returns:
        Number of files handled
    """
    logger.info("Manual scan triggered")
    handled = wait_for(organizer.organize_existing())
    return OperationStatus(
        status="completed",
        message=f"Organized {handled} files",
        details={"handled": handled}
    )


@router.post("/refresh", response_model=OperationStatus)
def refresh(organizer: InboxOrganizer = Depends(get_organizer)):
    """Rescan for pending files and flag moved files that disappeared."""
    counts = wait_for(organizer.refresh())
    return OperationStatus(status="completed", message="Inbox refreshed", details=counts)


@router.get("/pending", response_model=List[FileRecordModel])
async def list_pending(organizer: InboxOrganizer = Depends(get_organizer)):
    return [FileRecordModel.from_record(r) for r in organizer.pending_files]


@router.get("/moves", response_model=List[FileRecordModel])
async def list_moves(recent: bool = False, organizer: InboxOrganizer = Depends(get_organizer)):
    """All moved files, or only those within the recent window."""
    records = organizer.recent_moves if recent else organizer.all_moved_files
    return [FileRecordModel.from_record(r) for r in records]


@router.post("/pending/organize", response_model=PathsResponse)
def organize_pending(
    request: Optional[OptionalPathRequest] = None,
    organizer: InboxOrganizer = Depends(get_organizer),
):
    """Organize one pending file, or all of them when no path is given."""
    if request is not None and request.path:
        final = wait_for(organizer.organize_pending(request.path))
        paths = [final] if final else []
    else:
        paths = wait_for(organizer.organize_all_pending())

    return PathsResponse(count=len(paths), paths=[str(p) for p in paths])


@router.post("/revert", response_model=PathsResponse)
def revert_file(request: PathRequest, organizer: InboxOrganizer = Depends(get_organizer)):
    """Move one file back into the inbox."""
    restored = wait_for(organizer.revert(request.path))
    return PathsResponse(count=1, paths=[str(restored)])


@router.post("/revert/recent", response_model=PathsResponse)
def revert_recent(minutes: Optional[int] = None, organizer: InboxOrganizer = Depends(get_organizer)):
    """Revert every move inside the recent window (default 30 minutes)."""
    restored = wait_for(organizer.revert_recent(minutes))
    return PathsResponse(count=len(restored), paths=[str(p) for p in restored])


@router.post("/revert/all", response_model=PathsResponse)
def revert_all(organizer: InboxOrganizer = Depends(get_organizer)):
    """Revert every file that has ever been moved."""
    restored = wait_for(organizer.revert_all())
    return PathsResponse(count=len(restored), paths=[str(p) for p in restored])
