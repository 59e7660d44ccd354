"""
Move engine: the only code that changes the filesystem.

Moves inbox files into their category destination with collision-safe names,
moves them back on revert, and reports every outcome to the activity log and
the registry.
"""

from __future__ import annotations

import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from loguru import logger

from domains.file_ingest.collaborators import (
    AlwaysProceed,
    ConfirmationSource,
    Decision,
    DirectoryAccess,
    LogNotifier,
    Notifier,
    PreferencesStore,
)
from domains.file_ingest.errors import (
    DestinationFileMissing,
    DestinationUnavailable,
    MoveFailed,
    OrganizerError,
    RecordNotFound,
    SourceVanished,
)
from domains.file_ingest.processors.naming import DEFAULT_MAX_ATTEMPTS, resolve_unique_path
from domains.file_ingest.processors.router import Category
from domains.file_ingest.state.activity_log import ActivityLog, LogAction
from domains.file_ingest.state.installers import InstallerLifecycleTracker
from domains.file_ingest.state.records import FileRecord, FileState
from domains.file_ingest.state.registry import FileRegistry
from tidyloads.utils.helpers import is_relative_to

# Folders a sandboxed process typically needs explicit permission for
PROTECTED_DIRECTORIES = ("~/Documents", "~/Pictures", "~/Movies", "~/Music")


def protected_folder_hint(directory: Path, category: Category) -> Optional[str]:
    """Remediation hint when ``directory`` lies under a protected user folder."""
    for protected in PROTECTED_DIRECTORIES:
        if is_relative_to(directory, Path(protected).expanduser()):
            return (
                f"Cannot access system folder {protected}. "
                f"Choose a custom destination for {category.value} in preferences."
            )
    return None


class MoveEngine:
    """Stateless mover; locks are per destination directory only."""

    def __init__(
        self,
        inbox: Path,
        preferences: PreferencesStore,
        registry: FileRegistry,
        installers: InstallerLifecycleTracker,
        activity_log: ActivityLog,
        permissions: Optional[DirectoryAccess] = None,
        confirmation: Optional[ConfirmationSource] = None,
        notifier: Optional[Notifier] = None,
        max_unique_suffix: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    ):
        self.inbox = inbox
        self.preferences = preferences
        self.registry = registry
        self.installers = installers
        self.activity_log = activity_log
        self.permissions = permissions or DirectoryAccess()
        self.confirmation = confirmation or AlwaysProceed()
        self.notifier = notifier or LogNotifier()
        self.max_unique_suffix = max_unique_suffix

        self._guard = threading.Lock()
        self._dir_locks: Dict[str, threading.Lock] = {}

    # Public API ----------------------------------------------------------------------

    def move(self, source: Path, category: Category) -> Path:
        """
        Move ``source`` into the destination for ``category``.

        Returns:
            Final path of the moved file

        Raises:
            DestinationUnavailable: Destination directory not creatable
            SourceVanished: Source disappeared before the move
            MoveFailed: Any other failure of the move itself; the file is left
                Pending so the next pending organization retries it
        """
        source = Path(source)
        try:
            final = self._move(source, category)
        except SourceVanished:
            logger.debug(f"Source vanished before move: {source}")
            raise
        except OrganizerError as e:
            logger.error(f"Failed to move {source.name}: {e}")
            if isinstance(e, DestinationUnavailable):
                details = e.details
                self.registry.record_error(source, category, details)
            else:
                details = str(e)
                self.registry.record_pending(source, category)
            self.activity_log.record(
                LogAction.ERROR,
                file_name=source.name,
                category=category.value,
                source_path=str(source),
                details=details,
            )
            raise

        logger.success(f"Moved {source.name} -> {final}")
        self.registry.record_moved(source, category, final)
        self.activity_log.remove_where(
            lambda e: e.action is LogAction.PENDING and e.source_path == str(source)
        )
        self.activity_log.record(
            LogAction.MOVED,
            file_name=source.name,
            category=category.value,
            source_path=str(source),
            destination_path=str(final),
        )

        if category is Category.INSTALLER:
            self.installers.remove(source)
            self.notifier.notify(
                "Installer Cleaned",
                f"{source.name} has been moved to {final.parent.name}",
            )

        return final

    def move_with_confirmation(self, source: Path, category: Category) -> Optional[Path]:
        """
        Confirmation gate for moves triggered by new-file detection.

        Returns:
            Final path, or None if the user chose to skip the file
        """
        source = Path(source)
        if self.preferences.get().confirm_before_moving:
            destination = self.preferences.destination_for(category)
            decision = self.confirmation.ask(source.name, category, destination)

            if decision is Decision.SKIP:
                logger.info(f"User skipped moving file: {source.name}")
                return None
            if decision is Decision.PROCEED_ALWAYS:
                logger.info("Move confirmation disabled by user")
                self.preferences.update(confirm_before_moving=False)

        return self.move(source, category)

    def revert(self, record: FileRecord) -> Path:
        """
        Move a previously moved file back into the inbox.

        Returns:
            Path the file was restored to

        Raises:
            RecordNotFound: ``record`` is not a Moved record
            DestinationFileMissing: The moved file is no longer where it was put
            MoveFailed: The move back failed
        """
        if record.state is not FileState.MOVED or not record.destination_path:
            raise RecordNotFound(Path(record.path), FileState.MOVED.value)

        current = Path(record.destination_path)
        try:
            restored = self._move_back(current, record)
        except OrganizerError as e:
            logger.error(f"Failed to revert {record.name}: {e}")
            if isinstance(e, DestinationFileMissing):
                self.registry.record_error(record.path, record.category, f"Failed to revert: {e}")
            self.activity_log.record(
                LogAction.ERROR,
                file_name=record.name,
                category=record.category.value,
                source_path=str(current),
                details=f"Failed to revert: {e}",
            )
            raise

        logger.success(f"Reverted {record.name} -> {restored}")
        self.registry.record_reverted(record, restored)
        self.activity_log.remove_where(
            lambda e: e.action is LogAction.MOVED
            and e.source_path == record.path
            and e.destination_path == record.destination_path
        )
        self.activity_log.record(
            LogAction.REVERTED,
            file_name=record.name,
            category=record.category.value,
            source_path=str(current),
            destination_path=str(restored),
            details="Moved back to inbox",
        )
        return restored

    def ensure_destinations(self) -> None:
        """Create every category destination, logging the ones that fail."""
        for category in Category:
            directory = self.preferences.destination_for(category)
            try:
                self._prepare_directory(directory, category)
            except DestinationUnavailable as e:
                logger.warning(f"Could not create folder {directory}: {e.reason}")
                if e.hint:
                    self.activity_log.record(
                        LogAction.ERROR,
                        file_name="System Folder Access",
                        category=category.value,
                        source_path=str(directory),
                        details=e.hint,
                    )
            else:
                logger.debug(f"Destination ready: {directory}")

    # Helpers -------------------------------------------------------------------------

    def _move(self, source: Path, category: Category) -> Path:
        directory = self.preferences.destination_for(category)

        with self.permissions.access(directory), self._locked(directory):
            self._prepare_directory(directory, category)

            if not source.exists():
                raise SourceVanished(source)

            final = resolve_unique_path(directory / source.name, self.max_unique_suffix)
            self._transfer(source, final)
            return final

    def _move_back(self, current: Path, record: FileRecord) -> Path:
        if not current.exists():
            raise DestinationFileMissing(current)

        def held_by_other(path: Path) -> bool:
            # A free inbox path can still key another file's live record
            return str(path) != record.path and self.registry.is_live(path)

        with self.permissions.access(self.inbox), self._locked(self.inbox):
            target = resolve_unique_path(self.inbox / record.name, self.max_unique_suffix, held_by_other)
            try:
                self._transfer(current, target)
            except SourceVanished as e:
                raise DestinationFileMissing(current) from e
            return target

    def _prepare_directory(self, directory: Path, category: Category) -> None:
        hint = protected_folder_hint(directory, category)
        if not self.permissions.can_access(directory):
            raise DestinationUnavailable(directory, "access not granted", hint)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DestinationUnavailable(directory, str(e), hint) from e

    @staticmethod
    def _transfer(source: Path, target: Path) -> None:
        try:
            shutil.move(str(source), str(target))
        except FileNotFoundError as e:
            raise SourceVanished(source) from e
        except OSError as e:
            raise MoveFailed(source, e) from e

    @contextmanager
    def _locked(self, directory: Path) -> Iterator[None]:
        key = str(directory)
        with self._guard:
            lock = self._dir_locks.setdefault(key, threading.Lock())
        with lock:
            yield
