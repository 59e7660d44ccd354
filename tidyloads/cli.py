"""Command line entry point for the inbox organizer.

``tidyloads watch`` keeps the organizer running in the foreground until it
receives SIGINT or SIGTERM. The remaining subcommands run a single lane task
against the persisted state and exit, and ``serve`` starts the HTTP API.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from domains.file_ingest.collaborators import ConsoleConfirmation
from domains.file_ingest.service import InboxOrganizer
from tidyloads.utils.config import Settings, get_settings
from tidyloads.utils.helpers import configure_logging


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        prog="tidyloads",
        description="Route new Downloads files into category folders and track installers.",
    )
    parser.add_argument(
        "--inbox",
        type=Path,
        default=None,
        help="Directory to organize (default: INBOX_DIR or ~/Downloads).",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Where preferences, registry and activity history are kept.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO).",
    )

    sub = parser.add_subparsers(dest="command")

    watch = sub.add_parser("watch", help="Watch the inbox until interrupted (default).")
    watch.add_argument(
        "--confirm",
        action="store_true",
        help="Ask on the terminal before each automatic move.",
    )

    sub.add_parser("scan", help="Organize every unresolved inbox file now.")
    sub.add_parser("pending", help="Mark and list files waiting for organization.")
    sub.add_parser("organize-pending", help="Move every pending file.")

    revert = sub.add_parser("revert-recent", help="Move recently organized files back.")
    revert.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Window to revert (default: RECENT_WINDOW_MINUTES or 30).",
    )

    sub.add_parser("cleanup", help="Move unused installers older than the cutoff.")
    sub.add_parser("serve", help="Run the HTTP control API.")

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of the environment settings."""
    overrides = {}
    if args.inbox is not None:
        overrides["inbox_dir"] = args.inbox
    if args.state_dir is not None:
        overrides["state_dir"] = args.state_dir
    if args.log_level is not None:
        overrides["log_level"] = args.log_level

    return get_settings().model_copy(update=overrides)


def run_watch(organizer: InboxOrganizer) -> int:
    """Run until SIGINT/SIGTERM."""
    if not organizer.start_monitoring():
        logger.error(f"Could not start monitoring: {organizer.last_error}")
        return 1

    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    while not stop_event.is_set():
        stop_event.wait(1.0)

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    settings = build_settings(args)
    configure_logging(settings.log_level)

    command = args.command or "watch"

    if command == "serve":
        import uvicorn

        from tidyloads.main import create_app

        uvicorn.run(create_app(settings), host="127.0.0.1", port=settings.api_port,
                    log_level=settings.log_level.lower())
        return 0

    confirmation = ConsoleConfirmation() if getattr(args, "confirm", False) else None

    with InboxOrganizer.from_settings(settings, confirmation=confirmation) as organizer:
        if command == "watch":
            return run_watch(organizer)

        if command == "scan":
            handled = organizer.organize_existing().result()
            print(f"Organized {handled} files")
        elif command == "pending":
            organizer.scan_pending_files().result()
            for record in organizer.pending_files:
                print(f"{record.category.value:<10} {record.name}")
            print(f"{len(organizer.pending_files)} pending")
        elif command == "organize-pending":
            moved = organizer.organize_all_pending().result()
            print(f"Organized {len(moved)} pending files")
        elif command == "revert-recent":
            restored = organizer.revert_recent(args.minutes).result()
            for path in restored:
                print(path)
            print(f"Reverted {len(restored)} files")
        elif command == "cleanup":
            cleaned = organizer.perform_periodic_cleanup().result()
            print(f"Cleaned {len(cleaned)} unused installers")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
