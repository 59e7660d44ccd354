"""
Collaborators the ingest engine consumes.

Preferences, directory access, move confirmation and desktop notifications
sit outside the engine. Each is a small interface with a default
implementation suitable for a headless daemon.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from domains.file_ingest.processors.router import Category
from tidyloads.utils.helpers import dump_json_atomic, is_relative_to, load_json


# =====================================================
# Configuration provider
# =====================================================

class Preferences(BaseModel):
    """User-facing toggles, read at every decision point."""
    enabled: bool = True
    clean_installers_immediately: bool = False
    clean_after_first_use: bool = True
    auto_clean_unused_installers: bool = True
    auto_clean_days: int = Field(default=7, ge=1)
    confirm_before_moving: bool = False
    custom_destinations: Dict[str, str] = Field(default_factory=dict)


class PreferencesStore:
    """JSON-file backed preferences, safe to read from any thread."""

    def __init__(self, inbox: Path, path: Optional[Path] = None, initial: Optional[Preferences] = None):
        self.inbox = inbox
        self.path = path
        self._lock = threading.Lock()
        self._prefs = initial or self._load()

    def get(self) -> Preferences:
        """Copy of the current preferences."""
        with self._lock:
            return self._prefs.model_copy(deep=True)

    def update(self, **changes) -> Preferences:
        """Apply ``changes``, validate, persist, and return the new preferences."""
        with self._lock:
            merged = self._prefs.model_dump()
            merged.update(changes)
            self._prefs = Preferences.model_validate(merged)
            self._save()
            logger.debug(f"Preferences updated: {sorted(changes)}")
            return self._prefs.model_copy(deep=True)

    def destination_for(self, category: Category) -> Path:
        """Override for ``category`` if set, else its folder inside the inbox."""
        override = self.get().custom_destinations.get(category.value)
        if override:
            return Path(override).expanduser()
        return self.inbox / category.folder_name

    def set_custom_destination(self, category: Category, path: str) -> Preferences:
        destinations = dict(self.get().custom_destinations)
        destinations[category.value] = path
        return self.update(custom_destinations=destinations)

    def reset_destination(self, category: Category) -> Preferences:
        destinations = dict(self.get().custom_destinations)
        destinations.pop(category.value, None)
        return self.update(custom_destinations=destinations)

    def reset_all(self) -> Preferences:
        with self._lock:
            self._prefs = Preferences()
            self._save()
            return self._prefs.model_copy(deep=True)

    def _load(self) -> Preferences:
        payload = load_json(self.path, default=None)
        if payload is None:
            return Preferences()
        try:
            return Preferences.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Invalid preferences in {self.path}, using defaults: {e}")
            return Preferences()

    def _save(self) -> None:
        if self.path is None:
            return
        dump_json_atomic(self.path, self._prefs.model_dump(mode="json"))


# =====================================================
# Permission capability
# =====================================================

class DirectoryAccess:
    """
    Read/write capability for destination directories.

    ``denied`` roots emulate folders the process has not been granted access
    to; everything else falls back to what the OS reports.
    """

    def __init__(self, denied: Iterable[Path] = ()):
        self.denied = [Path(p).expanduser() for p in denied]
        self._active: Dict[str, int] = {}
        self._lock = threading.Lock()

    def can_access(self, directory: Path) -> bool:
        directory = Path(directory).expanduser()
        if any(is_relative_to(directory, root) for root in self.denied):
            return False

        existing = directory
        while not existing.exists():
            if existing.parent == existing:
                return False
            existing = existing.parent

        return os.access(existing, os.R_OK | os.W_OK | os.X_OK)

    @contextmanager
    def access(self, directory: Path) -> Iterator[Path]:
        """Hold scoped access to ``directory`` for the duration of the block."""
        key = str(directory)
        with self._lock:
            self._active[key] = self._active.get(key, 0) + 1
        try:
            yield Path(directory)
        finally:
            with self._lock:
                remaining = self._active[key] - 1
                if remaining:
                    self._active[key] = remaining
                else:
                    del self._active[key]

    @property
    def active(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._active)


# =====================================================
# Confirmation decision source
# =====================================================

class Decision(str, Enum):
    """Answer to "move this file?"."""

    PROCEED = "proceed"
    SKIP = "skip"
    PROCEED_ALWAYS = "proceed_always"


class ConfirmationSource(Protocol):
    def ask(self, file_name: str, category: Category, destination: Path) -> Decision:
        ...


class AlwaysProceed:
    """Confirmation source for unattended runs."""

    def ask(self, file_name: str, category: Category, destination: Path) -> Decision:
        return Decision.PROCEED


class ConsoleConfirmation:
    """Prompt on the terminal; one question at a time."""

    CHOICES = {
        "m": Decision.PROCEED,
        "move": Decision.PROCEED,
        "s": Decision.SKIP,
        "skip": Decision.SKIP,
        "a": Decision.PROCEED_ALWAYS,
        "always": Decision.PROCEED_ALWAYS,
    }

    def __init__(self, prompt: Callable[[str], str] = input):
        self.prompt = prompt
        self._lock = threading.Lock()

    def ask(self, file_name: str, category: Category, destination: Path) -> Decision:
        question = f"Move '{file_name}' to {destination}? [m]ove / [s]kip / [a]lways: "
        with self._lock:
            try:
                answer = self.prompt(question).strip().lower()
            except EOFError:
                return Decision.SKIP
        return self.CHOICES.get(answer, Decision.SKIP)


# =====================================================
# Notification sink
# =====================================================

class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None:
        ...


class LogNotifier:
    """Notifications as log lines."""

    def notify(self, title: str, body: str) -> None:
        logger.info(f"{title}: {body}")


class DesktopNotifier:
    """Desktop notifications via ``notify-send``; logs when unavailable."""

    def __init__(self, command: str = "notify-send", timeout: float = 2.0):
        self.command = command
        self.timeout = timeout
        self.available = shutil.which(command) is not None

    def notify(self, title: str, body: str) -> None:
        if not self.available:
            logger.info(f"{title}: {body}")
            return

        try:
            subprocess.run(
                [self.command, title, body],
                capture_output=True, text=True, timeout=self.timeout, check=False
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Desktop notification failed: {e}")
