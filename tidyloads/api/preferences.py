"""
Preference endpoints.

Writes go through the same store the engine reads at every decision point,
so changes apply to the next scan without a restart.
"""

from fastapi import APIRouter, Depends

from domains.file_ingest.collaborators import Preferences
from domains.file_ingest.service import InboxOrganizer
from tidyloads.api.deps import get_organizer, parse_category
from tidyloads.models.schemas import PathRequest, PreferencesUpdate

router = APIRouter()


@router.get("", response_model=Preferences)
async def get_preferences(organizer: InboxOrganizer = Depends(get_organizer)):
    return organizer.preferences.get()


@router.patch("", response_model=Preferences)
async def update_preferences(update: PreferencesUpdate, organizer: InboxOrganizer = Depends(get_organizer)):
    return organizer.preferences.update(**update.model_dump(exclude_none=True))


@router.post("/reset", response_model=Preferences)
async def reset_preferences(organizer: InboxOrganizer = Depends(get_organizer)):
    return organizer.preferences.reset_all()


@router.put("/destinations/{category}", response_model=Preferences)
async def set_destination(category: str, request: PathRequest, organizer: InboxOrganizer = Depends(get_organizer)):
    """Override the destination directory for ``category``."""
    return organizer.preferences.set_custom_destination(parse_category(category), request.path)


@router.delete("/destinations/{category}", response_model=Preferences)
async def reset_destination(category: str, organizer: InboxOrganizer = Depends(get_organizer)):
    return organizer.preferences.reset_destination(parse_category(category))
