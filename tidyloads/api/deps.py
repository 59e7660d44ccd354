"""
Shared router dependencies.

The organizer is built once by the application lifespan and handed to
routers through ``app.state``.
"""

from concurrent.futures import Future, TimeoutError
from typing import Any

from fastapi import HTTPException, Request

from domains.file_ingest.errors import DestinationFileMissing, OrganizerError, RecordNotFound
from domains.file_ingest.processors.router import Category
from domains.file_ingest.service import InboxOrganizer

# Seconds a request waits for its turn on the processing lane
LANE_TIMEOUT = 60.0


def get_organizer(request: Request) -> InboxOrganizer:
    """Organizer instance owned by the running application."""
    return request.app.state.organizer


def wait_for(future: Future) -> Any:
    """
    Block until a lane task finishes and translate engine errors to HTTP.

    Raises:
        HTTPException: 404 for unknown records, 410 when a moved file is gone,
            409 for other engine failures,
            504 when the lane does not answer in time
    """
    try:
        return future.result(timeout=LANE_TIMEOUT)
    except TimeoutError:
        raise HTTPException(status_code=504, detail="Processing lane busy")
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DestinationFileMissing as e:
        raise HTTPException(status_code=410, detail=str(e))
    except OrganizerError as e:
        raise HTTPException(status_code=409, detail=str(e))


def parse_category(value: str) -> Category:
    """Path parameter to Category, 422 when unknown."""
    try:
        return Category.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
