"""
Failure taxonomy for the ingest engine.

None of these ever escape the processing lane: the service catches them per
file, records them, and carries on with the rest of the batch.
"""

from pathlib import Path
from typing import Optional


class OrganizerError(Exception):
    """Base class for ingest failures."""


class DestinationUnavailable(OrganizerError):
    """Destination directory could not be created or accessed."""

    def __init__(self, directory: Path, reason: str, hint: Optional[str] = None):
        self.directory = directory
        self.reason = reason
        self.hint = hint
        super().__init__(f"Destination {directory} unavailable: {reason}")

    @property
    def details(self) -> str:
        return self.hint or self.reason


class SourceVanished(OrganizerError):
    """File disappeared between discovery and move."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Source no longer exists: {path}")


class MoveFailed(OrganizerError):
    """Underlying move failed for a reason other than the above."""

    def __init__(self, source: Path, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.source = source
        self.cause = cause
        super().__init__(message or f"Failed to move {source}: {cause}")


class NameResolutionExhausted(MoveFailed):
    """No free ``name_N`` variant within the configured attempt limit."""

    def __init__(self, candidate: Path, attempts: int):
        self.attempts = attempts
        super().__init__(
            candidate,
            message=f"No unique name for {candidate.name} after {attempts} attempts",
        )


class DestinationFileMissing(OrganizerError):
    """Revert target no longer exists at its recorded destination."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"File no longer exists at destination: {path}")


class WatchSetupFailed(OrganizerError):
    """Inbox directory could not be opened for observation."""

    def __init__(self, directory: Path, cause: Optional[BaseException] = None):
        self.directory = directory
        self.cause = cause
        super().__init__(f"Failed to watch {directory}: {cause}")


class RecordNotFound(OrganizerError):
    """No registry record in the state an operation requires."""

    def __init__(self, path: Path, expected: str):
        self.path = path
        self.expected = expected
        super().__init__(f"No {expected} record for {path}")
