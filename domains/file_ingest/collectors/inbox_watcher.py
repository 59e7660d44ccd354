"""
Inbox watcher for the file ingest domain.

Subscribes to directory-change notifications for the inbox and drives three
schedules: a settle-delayed scan after each burst of changes, a periodic
backup scan, and a periodic installer cleanup. The watcher only decides
*when* work happens; every callback is expected to hand its work to the
organizer's serialized lane.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from watchdog.events import DirModifiedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from domains.file_ingest.errors import WatchSetupFailed
from tidyloads.utils.helpers import is_hidden

Callback = Callable[[], None]


class InboxEventHandler(FileSystemEventHandler):
    """Coalesce raw change events into one callback per settle window."""

    def __init__(self, on_settled: Callback, settle_delay: float = 0.5):
        """
        Initialize event handler.

        Args:
            on_settled: Called once the inbox has been quiet for ``settle_delay``
            settle_delay: Seconds to wait for in-flight writes to finish
        """
        super().__init__()
        self.on_settled = on_settled
        self.settle_delay = settle_delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def on_any_event(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirModifiedEvent):
            # The inbox itself reports a modification for every child change
            return

        src = Path(str(event.src_path))
        if is_hidden(src) and not getattr(event, "dest_path", None):
            return

        logger.debug(f"Inbox event: {event.event_type} {event.src_path}")
        self.schedule()

    def schedule(self) -> None:
        """(Re)arm the settle timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.settle_delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self.on_settled()
        except Exception as e:
            logger.error(f"Settled-scan callback failed: {e}")


class PeriodicTimer:
    """Call ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callback, name: str):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}")


class InboxWatcher:
    """Owns the inbox subscription and both periodic timers."""

    def __init__(
        self,
        inbox: Path,
        on_change: Callback,
        on_backup_tick: Callback,
        on_cleanup_tick: Callback,
        settle_delay: float = 0.5,
        backup_interval: float = 10.0,
        cleanup_interval: float = 3600.0,
    ):
        self.inbox = inbox
        self.event_handler = InboxEventHandler(on_change, settle_delay)
        self.backup_timer = PeriodicTimer(backup_interval, on_backup_tick, "inbox-backup-scan")
        self.cleanup_timer = PeriodicTimer(cleanup_interval, on_cleanup_tick, "inbox-cleanup")
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """
        Subscribe to the inbox and start both timers.

        Raises:
            WatchSetupFailed: Inbox is missing or cannot be observed
        """
        with self._lock:
            if self._observer is not None:
                logger.debug("Already watching, skipping")
                return

            if not self.inbox.is_dir():
                raise WatchSetupFailed(self.inbox, FileNotFoundError(str(self.inbox)))

            observer = Observer()
            try:
                observer.schedule(self.event_handler, str(self.inbox), recursive=False)
                observer.daemon = True
                observer.start()
            except Exception as e:
                raise WatchSetupFailed(self.inbox, e) from e

            self._observer = observer
            self.backup_timer.start()
            self.cleanup_timer.start()

        logger.success(f"Started watching: {self.inbox}")

    def stop(self) -> None:
        """Cancel the subscription and timers. Safe to call repeatedly."""
        with self._lock:
            observer, self._observer = self._observer, None

        # Join the observer first so no late event re-arms the settle timer
        if observer is not None:
            observer.stop()
            observer.join()

        self.event_handler.cancel()
        self.backup_timer.stop()
        self.cleanup_timer.stop()

        if observer is not None:
            logger.info(f"Stopped watching: {self.inbox}")
