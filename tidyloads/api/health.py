"""
Health check endpoint.
"""

import os
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from domains.file_ingest.service import InboxOrganizer
from tidyloads.api.deps import get_organizer
from tidyloads.utils.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    monitoring: bool
    inbox_accessible: bool
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(organizer: InboxOrganizer = Depends(get_organizer)):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - Inbox is readable and writable
    - Watcher is subscribed
    """
    settings = get_settings()
    inbox_accessible = organizer.inbox.is_dir() and os.access(organizer.inbox, os.R_OK | os.W_OK)
    healthy = inbox_accessible and organizer.is_monitoring

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(),
        monitoring=organizer.is_monitoring,
        inbox_accessible=inbox_accessible,
        version=settings.api_version
    )
