"""
Activity log endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from domains.file_ingest.service import InboxOrganizer
from domains.file_ingest.state.activity_log import LogAction, LogEntry
from tidyloads.api.deps import get_organizer
from tidyloads.models.schemas import OperationStatus

router = APIRouter()


@router.get("", response_model=List[LogEntry])
async def list_activity(
    limit: int = Query(default=100, ge=1, le=1000),
    action: Optional[LogAction] = None,
    organizer: InboxOrganizer = Depends(get_organizer),
):
    """
    Recent activity, newest first.

    Args:
        limit: Maximum entries to return
        action: Only entries with this action
    """
    if action is None:
        return organizer.activity_log.entries(limit)
    return organizer.activity_log.query(lambda e: e.action is action)[:limit]


@router.delete("", response_model=OperationStatus)
async def clear_activity(organizer: InboxOrganizer = Depends(get_organizer)):
    """Clear the activity history. Registry state is untouched."""
    organizer.activity_log.clear()
    return OperationStatus(status="completed", message="Activity log cleared")
