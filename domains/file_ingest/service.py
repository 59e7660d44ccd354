"""
Inbox organizer service.

One instance per watched inbox. It owns the registry, the installer tracker,
the move engine and the watcher, and runs every scan, manual request and OS
lifecycle signal on a single serialized lane so that registry updates and
filesystem moves never interleave.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from loguru import logger

from domains.file_ingest.collaborators import (
    ConfirmationSource,
    DesktopNotifier,
    DirectoryAccess,
    LogNotifier,
    Notifier,
    PreferencesStore,
)
from domains.file_ingest.collectors.inbox_watcher import InboxWatcher
from domains.file_ingest.collectors.scanner import InboxEntry, list_inbox
from domains.file_ingest.errors import OrganizerError, RecordNotFound, SourceVanished, WatchSetupFailed
from domains.file_ingest.processors.mover import MoveEngine
from domains.file_ingest.processors.naming import DEFAULT_MAX_ATTEMPTS
from domains.file_ingest.processors.router import Category, ExtensionTable
from domains.file_ingest.state.activity_log import ActivityLog, LogAction
from domains.file_ingest.state.installers import InstallerLifecycleTracker
from domains.file_ingest.state.records import FileRecord, FileState, InstallerEntry, InstallerKind
from domains.file_ingest.state.registry import FileRegistry
from tidyloads.utils.config import Settings
from tidyloads.utils.helpers import normalise_path

PathLike = Union[str, Path]


class InboxOrganizer:
    """Watch-classify-move-track engine for a single inbox directory."""

    def __init__(
        self,
        inbox: Path,
        preferences: Optional[PreferencesStore] = None,
        activity_log: Optional[ActivityLog] = None,
        registry: Optional[FileRegistry] = None,
        installers: Optional[InstallerLifecycleTracker] = None,
        permissions: Optional[DirectoryAccess] = None,
        confirmation: Optional[ConfirmationSource] = None,
        notifier: Optional[Notifier] = None,
        extensions: Optional[ExtensionTable] = None,
        settle_delay: float = 0.5,
        backup_interval: float = 10.0,
        cleanup_interval: float = 3600.0,
        recent_window_minutes: int = 30,
        max_unique_suffix: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    ):
        self.inbox = normalise_path(Path(inbox))
        self.preferences = preferences or PreferencesStore(self.inbox)
        self.activity_log = activity_log or ActivityLog()
        self.registry = registry or FileRegistry()
        self.installers = installers or InstallerLifecycleTracker(self.activity_log)
        self.extensions = extensions or ExtensionTable()
        self.recent_window_minutes = recent_window_minutes

        self.mover = MoveEngine(
            inbox=self.inbox,
            preferences=self.preferences,
            registry=self.registry,
            installers=self.installers,
            activity_log=self.activity_log,
            permissions=permissions,
            confirmation=confirmation,
            notifier=notifier,
            max_unique_suffix=max_unique_suffix,
        )

        self.watcher = InboxWatcher(
            self.inbox,
            on_change=self.scan_new_files,
            on_backup_tick=self.scan_pending_files,
            on_cleanup_tick=self.perform_periodic_cleanup,
            settle_delay=settle_delay,
            backup_interval=backup_interval,
            cleanup_interval=cleanup_interval,
        )

        self._lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inbox-lane")
        self._state_lock = threading.Lock()
        self._last_error: Optional[str] = None
        self._closed = False

        logger.info(f"Inbox organizer initialized for {self.inbox}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        confirmation: Optional[ConfirmationSource] = None,
        notifier: Optional[Notifier] = None,
    ) -> "InboxOrganizer":
        """Build an organizer with state persisted under ``settings.state_dir``."""
        inbox = normalise_path(settings.get_inbox_dir())
        activity_log = ActivityLog(settings.activity_log_file, max_entries=settings.max_log_entries)

        if notifier is None:
            notifier = DesktopNotifier() if settings.notifications == "desktop" else LogNotifier()

        return cls(
            inbox=inbox,
            preferences=PreferencesStore(inbox, settings.preferences_file),
            activity_log=activity_log,
            registry=FileRegistry(settings.registry_file),
            installers=InstallerLifecycleTracker(activity_log, settings.installers_file),
            confirmation=confirmation,
            notifier=notifier,
            settle_delay=settings.settle_delay,
            backup_interval=settings.backup_scan_interval,
            cleanup_interval=settings.cleanup_interval,
            recent_window_minutes=settings.recent_window_minutes,
            max_unique_suffix=settings.max_unique_suffix,
        )

    def __enter__(self) -> "InboxOrganizer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    # Monitoring ----------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self.watcher.running

    def start_monitoring(self) -> bool:
        """
        Subscribe to the inbox and start the periodic timers.

        Returns:
            True if monitoring is active; False if setup failed (reported)
        """
        if self.watcher.running:
            logger.debug("Already monitoring, skipping")
            return True

        logger.info(f"Starting monitoring of {self.inbox}")
        try:
            self.watcher.start()
        except WatchSetupFailed as e:
            self._report(e)
            return False

        # Existing files are only marked pending, never moved on startup
        self._submit(self._prepare_monitoring)
        return True

    def stop_monitoring(self) -> None:
        """Stop the watcher; a move already running on the lane completes normally."""
        self.watcher.stop()

    def shutdown(self, wait: bool = True) -> None:
        """Stop monitoring and drain the lane."""
        self.stop_monitoring()
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        self._lane.shutdown(wait=wait)
        logger.info("Inbox organizer shut down")

    # Lane entry points ---------------------------------------------------------------

    def scan_new_files(self) -> Future:
        """Auto-organize files the registry has never seen."""
        return self._submit(self._process_new_files)

    def scan_pending_files(self) -> Future:
        """Mark files without a live record as pending. Never moves."""
        return self._submit(self._process_pending_files)

    def organize_existing(self) -> Future:
        """Manual "scan now": classify and move every unresolved inbox file."""
        return self._submit(self._organize_existing)

    def organize_pending(self, path: PathLike) -> Future:
        return self._submit(self._organize_pending, self._key(path))

    def organize_all_pending(self) -> Future:
        return self._submit(self._organize_all_pending)

    def revert(self, path: PathLike) -> Future:
        """Move the file recorded as moved from ``path`` back into the inbox."""
        return self._submit(self._revert, self._key(path))

    def revert_recent(self, minutes: Optional[int] = None) -> Future:
        window = self.recent_window_minutes if minutes is None else minutes
        return self._submit(lambda: self._revert_many(self.registry.recent_moves(window)))

    def revert_all(self) -> Future:
        return self._submit(lambda: self._revert_many(self.registry.moved()))

    def refresh(self) -> Future:
        """Rebuild pending state and flag moved files that vanished from their destination."""
        return self._submit(self._refresh)

    def volume_mounted(self, image_path: PathLike) -> Future:
        return self._submit(self._volume_mounted, self._key(image_path))

    def application_launched(self, bundle_path: PathLike) -> Future:
        return self._submit(self._application_launched, str(bundle_path))

    def perform_periodic_cleanup(self) -> Future:
        return self._submit(self._perform_periodic_cleanup)

    def reload_extensions(self, mapping: Optional[Mapping[Category, Sequence[str]]] = None) -> None:
        self.extensions.reload(mapping)

    # Snapshot reads ------------------------------------------------------------------

    @property
    def last_error(self) -> Optional[str]:
        with self._state_lock:
            return self._last_error

    @property
    def pending_files(self) -> List[FileRecord]:
        return self.registry.pending()

    @property
    def recent_moves(self) -> List[FileRecord]:
        return self.registry.recent_moves(self.recent_window_minutes)

    @property
    def all_moved_files(self) -> List[FileRecord]:
        return self.registry.moved()

    @property
    def tracked_installers(self) -> List[InstallerEntry]:
        return self.installers.entries()

    def status(self) -> Dict[str, Any]:
        return {
            "monitoring": self.is_monitoring,
            "inbox": str(self.inbox),
            "pending_count": len(self.pending_files),
            "recent_moves_count": len(self.recent_moves),
            "moved_count": len(self.all_moved_files),
            "tracked_installers": len(self.installers),
            "last_error": self.last_error,
        }

    # Lane bodies ---------------------------------------------------------------------

    def _prepare_monitoring(self) -> int:
        self.mover.ensure_destinations()
        return self._process_pending_files()

    def _process_new_files(self) -> int:
        if not self.preferences.get().enabled:
            logger.debug("Organizer disabled, ignoring inbox change")
            return 0

        handled = 0
        for entry in list_inbox(self.inbox):
            if self.registry.has_record(entry.path):
                continue
            logger.info(f"Auto-organizing new file: {entry.name}")
            if self._guarded(entry.path, self._auto_organize, entry, True):
                handled += 1
        return handled

    def _process_pending_files(self) -> int:
        marked = 0
        for entry in list_inbox(self.inbox):
            category = self.extensions.classify(entry.extension)
            if not self.registry.record_pending(entry.path, category):
                continue

            self.activity_log.record(
                LogAction.PENDING,
                file_name=entry.name,
                category=category.value,
                source_path=str(entry.path),
                details="File pending organization",
            )
            logger.debug(f"Marked as pending: {entry.name}")
            marked += 1
        return marked

    def _organize_existing(self) -> int:
        handled = 0
        entries = list_inbox(self.inbox)
        logger.info(f"Organizing {len(entries)} inbox files")

        for entry in entries:
            record = self.registry.get(entry.path)
            if record is not None and record.state in (FileState.MOVED, FileState.TRACKED):
                continue
            if self._guarded(entry.path, self._auto_organize, entry, False):
                handled += 1
        return handled

    def _auto_organize(self, entry: InboxEntry, confirm: bool) -> bool:
        category = self.extensions.classify(entry.extension)

        if category is Category.INSTALLER:
            self._handle_installer(entry, confirm)
            return True
        if confirm:
            return self.mover.move_with_confirmation(entry.path, category) is not None
        self.mover.move(entry.path, category)
        return True

    def _handle_installer(self, entry: InboxEntry, confirm: bool) -> None:
        kind = InstallerKind.from_extension(entry.extension)
        if kind is None:
            # Extension table was reloaded with a non-standard installer type
            kind = InstallerKind.PACKAGE

        self.installers.track(entry.path, entry.name, kind)
        self.registry.record_tracked(entry.path)

        if self.preferences.get().clean_installers_immediately:
            if confirm:
                self.mover.move_with_confirmation(entry.path, Category.INSTALLER)
            else:
                self.mover.move(entry.path, Category.INSTALLER)

    def _organize_pending(self, key: str) -> Optional[Path]:
        record = self.registry.get(key)
        if record is None or record.state is not FileState.PENDING:
            raise RecordNotFound(Path(key), FileState.PENDING.value)

        path = Path(key)
        category = self.extensions.classify_path(path) or record.category
        try:
            return self.mover.move(path, category)
        except SourceVanished:
            self.registry.discard(key)
            return None

    def _organize_all_pending(self) -> List[Path]:
        pending = self.registry.pending()
        logger.info(f"Organizing {len(pending)} pending files")

        moved = []
        for record in pending:
            final = self._guarded(record.path, self._organize_pending, record.path)
            if final:
                moved.append(final)
        return moved

    def _revert(self, key: str) -> Path:
        record = self.registry.get(key)
        if record is None or record.state is not FileState.MOVED:
            raise RecordNotFound(Path(key), FileState.MOVED.value)
        return self.mover.revert(record)

    def _revert_many(self, records: List[FileRecord]) -> List[Path]:
        logger.info(f"Reverting {len(records)} moved files")

        restored = []
        for record in records:
            path = self._guarded(record.path, self.mover.revert, record)
            if path:
                restored.append(path)
        return restored

    def _refresh(self) -> Dict[str, int]:
        logger.info(f"Refreshing {self.inbox}")
        for record in self.registry.pending():
            self.registry.discard(record.path)
        self.activity_log.remove_where(lambda e: e.action is LogAction.PENDING)

        pending = self._process_pending_files()

        missing = 0
        for record in self.registry.moved():
            if record.destination_path and Path(record.destination_path).exists():
                continue

            details = "File no longer exists at destination (possibly moved manually)"
            logger.warning(f"{details}: {record.name}")
            self.registry.record_error(record.path, record.category, details)
            self.activity_log.remove_where(
                lambda e, r=record: e.action is LogAction.MOVED
                and e.source_path == r.path
                and e.destination_path == r.destination_path
            )
            self.activity_log.record(
                LogAction.ERROR,
                file_name=record.name,
                category=record.category.value,
                source_path=record.path,
                destination_path=record.destination_path,
                details=details,
            )
            missing += 1

        for entry in self.installers.entries():
            if not Path(entry.path).exists():
                self._forget_installer(entry)

        return {"pending": pending, "missing": missing}

    def _volume_mounted(self, image_path: str) -> bool:
        entry = self.installers.get(image_path)
        if entry is None or entry.kind is not InstallerKind.DISK_IMAGE:
            logger.debug(f"Mounted volume does not match a tracked disk image: {image_path}")
            return False
        return self._installer_used(entry, LogAction.MOUNTED, "DMG mounted")

    def _application_launched(self, bundle_path: str) -> bool:
        bundle_name = Path(bundle_path).name
        used = False
        for entry in self.installers.find_unused(InstallerKind.APPLICATION, bundle_name):
            used = self._guarded(entry.path, self._installer_used, entry, LogAction.LAUNCHED, "App launched") or used
        return used

    def _installer_used(self, entry: InstallerEntry, action: LogAction, details: str) -> bool:
        if not self.installers.mark_used(entry.path):
            return False

        self.activity_log.record(
            action,
            file_name=entry.name,
            category=Category.INSTALLER.value,
            source_path=entry.path,
            details=details,
        )

        path = Path(entry.path)
        if self.preferences.get().clean_after_first_use and path.exists():
            try:
                self.mover.move(path, Category.INSTALLER)
            except SourceVanished:
                self._forget_installer(entry)
            except OrganizerError as e:
                self._report(e)
        return True

    def _perform_periodic_cleanup(self) -> List[Path]:
        prefs = self.preferences.get()
        if not prefs.auto_clean_unused_installers:
            return []

        cleaned = []
        for entry in self.installers.sweep_unused(prefs.auto_clean_days):
            final = self._guarded(entry.path, self._clean_installer, entry, prefs.auto_clean_days)
            if final:
                cleaned.append(final)

        if cleaned:
            logger.success(f"Auto-cleaned {len(cleaned)} unused installers")
        return cleaned

    def _clean_installer(self, entry: InstallerEntry, days: int) -> Optional[Path]:
        path = Path(entry.path)
        try:
            final = self.mover.move(path, Category.INSTALLER)
        except SourceVanished:
            self._forget_installer(entry)
            return None

        self.registry.record_cleaned(path, Category.INSTALLER, final)
        self.activity_log.record(
            LogAction.CLEANED,
            file_name=entry.name,
            category=Category.INSTALLER.value,
            source_path=entry.path,
            destination_path=str(final),
            details=f"Auto-cleaned after {days} days",
        )
        return final

    def _forget_installer(self, entry: InstallerEntry) -> None:
        logger.debug(f"Installer no longer present: {entry.name}")
        self.installers.remove(entry.path)
        record = self.registry.get(entry.path)
        if record is not None and record.state is FileState.TRACKED:
            self.registry.discard(entry.path)

    # Plumbing ------------------------------------------------------------------------

    @staticmethod
    def _key(path: PathLike) -> str:
        """Registry key for a caller-supplied path (``~`` and relative forms resolved)."""
        return str(normalise_path(Path(path)))

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        with self._state_lock:
            if self._closed:
                raise RuntimeError("Inbox organizer is shut down")
            return self._lane.submit(self._run, fn, *args)

    def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            self._report(e)
            raise

    def _guarded(self, path: PathLike, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one per-file step; failures are reported and never end the batch."""
        try:
            result = fn(*args)
        except SourceVanished:
            logger.debug(f"Dropped vanished file: {path}")
            return None
        except (OrganizerError, OSError) as e:
            self._report(e)
            return None
        return result

    def _report(self, error: BaseException) -> None:
        logger.error(f"{type(error).__name__}: {error}")
        with self._state_lock:
            self._last_error = str(error)
