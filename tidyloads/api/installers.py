"""
Installer lifecycle endpoints.

External agents (udisks hooks, desktop launchers) push mount and launch
signals here; they are correlated with tracked installers on the lane.
"""

from typing import List

from fastapi import APIRouter, Depends
from loguru import logger

from domains.file_ingest.service import InboxOrganizer
from tidyloads.api.deps import get_organizer, wait_for
from tidyloads.models.schemas import InstallerModel, OperationStatus, PathRequest, PathsResponse

router = APIRouter()


@router.get("", response_model=List[InstallerModel])
async def list_installers(organizer: InboxOrganizer = Depends(get_organizer)):
    return [InstallerModel.from_entry(e) for e in organizer.tracked_installers]


@router.post("/mounted", response_model=OperationStatus)
def volume_mounted(request: PathRequest, organizer: InboxOrganizer = Depends(get_organizer)):
    """Signal that the disk image at ``path`` was mounted."""
    logger.info(f"Volume mounted: {request.path}")
    matched = wait_for(organizer.volume_mounted(request.path))
    return OperationStatus(
        status="matched" if matched else "ignored",
        message=f"Mount of {request.path} {'recorded' if matched else 'did not match a tracked installer'}"
    )


@router.post("/launched", response_model=OperationStatus)
def application_launched(request: PathRequest, organizer: InboxOrganizer = Depends(get_organizer)):
    """Signal that the application bundle at ``path`` was launched."""
    logger.info(f"Application launched: {request.path}")
    matched = wait_for(organizer.application_launched(request.path))
    return OperationStatus(
        status="matched" if matched else "ignored",
        message=f"Launch of {request.path} {'recorded' if matched else 'did not match a tracked installer'}"
    )


@router.post("/cleanup", response_model=PathsResponse)
def cleanup_unused(organizer: InboxOrganizer = Depends(get_organizer)):
    """Run the unused-installer sweep now."""
    cleaned = wait_for(organizer.perform_periodic_cleanup())
    return PathsResponse(count=len(cleaned), paths=[str(p) for p in cleaned])
