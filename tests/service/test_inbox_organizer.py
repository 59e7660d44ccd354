"""
Service-level tests for the inbox organizer.

These run the full engine against a temporary inbox: real filesystem moves,
the serialized processing lane, and (for the monitoring tests) a live
watchdog observer.
"""

import shutil
import threading
import time
from datetime import timedelta
from pathlib import Path

import pytest

from domains.file_ingest.collaborators import Decision, DirectoryAccess, PreferencesStore
from domains.file_ingest.errors import RecordNotFound
from domains.file_ingest.processors.router import Category
from domains.file_ingest.service import InboxOrganizer
from domains.file_ingest.state.activity_log import LogAction
from domains.file_ingest.state.records import FileState, InstallerKind
from tidyloads.utils.config import Settings
from tidyloads.utils.helpers import normalise_path, utc_now


class FakeConfirmation:
    def __init__(self, decision):
        self.decision = decision
        self.asked = []

    def ask(self, file_name, category, destination):
        self.asked.append(file_name)
        return self.decision


@pytest.fixture
def inbox(tmp_path):
    directory = tmp_path / "Downloads"
    directory.mkdir()
    return normalise_path(directory)


@pytest.fixture
def make_organizer(inbox):
    created = []

    def _make(**kwargs):
        kwargs.setdefault("settle_delay", 0.05)
        kwargs.setdefault("backup_interval", 3600)
        kwargs.setdefault("cleanup_interval", 3600)
        organizer = InboxOrganizer(inbox, **kwargs)
        created.append(organizer)
        return organizer

    yield _make

    for organizer in created:
        organizer.shutdown()


@pytest.fixture
def organizer(make_organizer):
    return make_organizer()


def drop(directory: Path, name: str, content: str = "data") -> Path:
    path = directory / name
    path.write_text(content)
    return path


def wait_until(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def test_pending_file_is_organized_on_request(organizer, inbox):
    photo = drop(inbox, "photo.jpg")

    assert organizer.scan_pending_files().result(timeout=5) == 1
    assert [r.name for r in organizer.pending_files] == ["photo.jpg"]
    assert photo.exists()

    moved = organizer.organize_all_pending().result(timeout=5)

    assert moved == [inbox / "Images" / "photo.jpg"]
    assert organizer.pending_files == []
    assert len(organizer.all_moved_files) == 1
    actions = [e.action for e in organizer.activity_log.query(lambda e: e.source_path == str(photo))]
    assert actions == [LogAction.MOVED]


def test_repeated_pending_scans_keep_one_record(organizer, inbox):
    drop(inbox, "photo.jpg")

    organizer.scan_pending_files().result(timeout=5)
    assert organizer.scan_pending_files().result(timeout=5) == 0

    assert len(organizer.pending_files) == 1
    assert len(organizer.activity_log.query(lambda e: e.action is LogAction.PENDING)) == 1


def test_organize_pending_single_file(organizer, inbox):
    drop(inbox, "song.mp3")
    organizer.scan_pending_files().result(timeout=5)

    final = organizer.organize_pending(inbox / "song.mp3").result(timeout=5)
    assert final == inbox / "Music" / "song.mp3"

    with pytest.raises(RecordNotFound):
        organizer.organize_pending(inbox / "song.mp3").result(timeout=5)


def test_vanished_pending_file_is_dropped(organizer, inbox):
    drop(inbox, "gone.pdf")
    organizer.scan_pending_files().result(timeout=5)
    (inbox / "gone.pdf").unlink()

    assert organizer.organize_all_pending().result(timeout=5) == []
    assert organizer.registry.get(inbox / "gone.pdf") is None
    assert organizer.last_error is None


def test_new_files_are_moved_once(organizer, inbox):
    drop(inbox, "report.pdf")
    drop(inbox, "clip.mp4")
    drop(inbox, "notes")

    assert organizer.scan_new_files().result(timeout=5) == 2
    assert organizer.scan_new_files().result(timeout=5) == 0

    assert (inbox / "Documents" / "report.pdf").exists()
    assert (inbox / "Videos" / "clip.mp4").exists()
    assert (inbox / "notes").exists()


def test_unknown_extension_goes_to_misc(organizer, inbox):
    drop(inbox, "data.xyz")

    organizer.scan_new_files().result(timeout=5)

    assert (inbox / "Misc" / "data.xyz").exists()


def test_disabled_organizer_ignores_new_files(organizer, inbox):
    organizer.preferences.update(enabled=False)
    drop(inbox, "report.pdf")

    assert organizer.scan_new_files().result(timeout=5) == 0
    assert (inbox / "report.pdf").exists()


def test_confirmation_skip_leaves_file_unrecorded(make_organizer, inbox):
    confirmation = FakeConfirmation(Decision.SKIP)
    organizer = make_organizer(confirmation=confirmation)
    organizer.preferences.update(confirm_before_moving=True)
    drop(inbox, "report.pdf")

    assert organizer.scan_new_files().result(timeout=5) == 0

    assert (inbox / "report.pdf").exists()
    assert organizer.registry.get(inbox / "report.pdf") is None
    assert confirmation.asked == ["report.pdf"]


def test_manual_scan_bypasses_confirmation(make_organizer, inbox):
    confirmation = FakeConfirmation(Decision.SKIP)
    organizer = make_organizer(confirmation=confirmation)
    organizer.preferences.update(confirm_before_moving=True)
    drop(inbox, "report.pdf")
    organizer.scan_pending_files().result(timeout=5)

    assert organizer.organize_existing().result(timeout=5) == 1

    assert (inbox / "Documents" / "report.pdf").exists()
    assert confirmation.asked == []


def test_one_failure_does_not_abort_batch(make_organizer, inbox):
    organizer = make_organizer(permissions=DirectoryAccess(denied=[inbox / "Documents"]))
    drop(inbox, "a.pdf")
    drop(inbox, "b.jpg")

    assert organizer.organize_existing().result(timeout=5) == 1

    assert (inbox / "Images" / "b.jpg").exists()
    assert (inbox / "a.pdf").exists()
    assert organizer.registry.get(inbox / "a.pdf").state is FileState.ERROR
    assert "Documents" in organizer.last_error

    # Errored files become pending again on the next backup scan
    assert organizer.scan_pending_files().result(timeout=5) == 1
    assert organizer.registry.get(inbox / "a.pdf").state is FileState.PENDING


def test_failed_move_stays_pending_for_retry(organizer, inbox, monkeypatch):
    photo = drop(inbox, "photo.jpg")
    organizer.scan_pending_files().result(timeout=5)
    real_move = shutil.move

    def refuse(src, dst):
        raise PermissionError("operation not permitted")

    monkeypatch.setattr(shutil, "move", refuse)

    assert organizer.organize_all_pending().result(timeout=5) == []
    assert [r.name for r in organizer.pending_files] == ["photo.jpg"]
    assert "operation not permitted" in organizer.last_error
    assert organizer.activity_log.entries()[0].action is LogAction.ERROR

    monkeypatch.setattr(shutil, "move", real_move)

    assert organizer.organize_all_pending().result(timeout=5) == [inbox / "Images" / "photo.jpg"]
    assert not photo.exists()
    assert organizer.pending_files == []


def test_equivalent_request_paths_match_records(organizer, inbox, monkeypatch):
    organizer.preferences.update(clean_after_first_use=False)
    drop(inbox, "song.mp3")
    organizer.scan_pending_files().result(timeout=5)
    drop(inbox, "App.dmg")
    organizer.scan_new_files().result(timeout=5)
    (inbox / "Music").mkdir()

    indirect = inbox / "Music" / ".." / "song.mp3"
    assert organizer.organize_pending(indirect).result(timeout=5) == inbox / "Music" / "song.mp3"

    monkeypatch.chdir(inbox)
    assert organizer.volume_mounted("App.dmg").result(timeout=5) is True
    assert organizer.installers.get(inbox / "App.dmg").used is True

    assert organizer.revert("song.mp3").result(timeout=5) == inbox / "song.mp3"


def test_installer_is_tracked_not_moved(organizer, inbox):
    image = drop(inbox, "App.dmg")

    organizer.scan_new_files().result(timeout=5)

    assert image.exists()
    assert organizer.registry.get(image).state is FileState.TRACKED
    assert [e.name for e in organizer.tracked_installers] == ["App.dmg"]
    assert organizer.scan_pending_files().result(timeout=5) == 0


def test_installer_moved_immediately_when_configured(organizer, inbox):
    organizer.preferences.update(clean_installers_immediately=True)
    drop(inbox, "Tool.pkg")

    organizer.scan_new_files().result(timeout=5)

    assert (inbox / "Junk Installers" / "Tool.pkg").exists()
    assert organizer.tracked_installers == []


def test_mount_marks_used_once(organizer, inbox):
    organizer.preferences.update(clean_after_first_use=False)
    image = drop(inbox, "App.dmg")
    organizer.scan_new_files().result(timeout=5)

    assert organizer.volume_mounted(image).result(timeout=5) is True
    assert organizer.volume_mounted(image).result(timeout=5) is False
    assert organizer.volume_mounted(inbox / "Other.dmg").result(timeout=5) is False

    assert organizer.installers.get(image).used is True
    assert image.exists()
    assert len(organizer.activity_log.query(lambda e: e.action is LogAction.MOUNTED)) == 1


def test_mount_cleans_after_first_use(organizer, inbox):
    image = drop(inbox, "App.dmg")
    organizer.scan_new_files().result(timeout=5)

    assert organizer.volume_mounted(image).result(timeout=5) is True

    assert (inbox / "Junk Installers" / "App.dmg").exists()
    assert image not in organizer.installers
    assert organizer.registry.get(image).state is FileState.MOVED


def test_application_launch_matches_bundle_name(organizer, inbox):
    organizer.preferences.update(clean_after_first_use=False)
    bundle = inbox / "Tool.app"
    organizer.installers.track(bundle, "Tool.app", InstallerKind.APPLICATION)

    assert organizer.application_launched("/Applications/Tool.app").result(timeout=5) is True
    assert organizer.application_launched("/Applications/Other.app").result(timeout=5) is False
    assert organizer.installers.get(bundle).used is True


def test_periodic_cleanup_moves_stale_unused_installers(organizer, inbox):
    now = utc_now()
    old = drop(inbox, "old.dmg")
    fresh = drop(inbox, "fresh.dmg")
    organizer.installers.track(old, "old.dmg", InstallerKind.DISK_IMAGE, first_seen=now - timedelta(days=8))
    organizer.installers.track(fresh, "fresh.dmg", InstallerKind.DISK_IMAGE, first_seen=now - timedelta(days=6))

    cleaned = organizer.perform_periodic_cleanup().result(timeout=5)

    assert cleaned == [inbox / "Junk Installers" / "old.dmg"]
    assert fresh.exists()
    assert organizer.registry.get(old).state is FileState.CLEANED
    entry = organizer.activity_log.query(lambda e: e.action is LogAction.CLEANED)[0]
    assert entry.details == "Auto-cleaned after 7 days"


def test_periodic_cleanup_respects_toggle(organizer, inbox):
    organizer.preferences.update(auto_clean_unused_installers=False)
    old = drop(inbox, "old.dmg")
    organizer.installers.track(old, "old.dmg", InstallerKind.DISK_IMAGE, first_seen=utc_now() - timedelta(days=30))

    assert organizer.perform_periodic_cleanup().result(timeout=5) == []
    assert old.exists()


def test_revert_recent_restores_files(organizer, inbox):
    drop(inbox, "a.pdf")
    drop(inbox, "b.png")
    organizer.organize_existing().result(timeout=5)

    restored = organizer.revert_recent().result(timeout=5)

    assert sorted(p.name for p in restored) == ["a.pdf", "b.png"]
    assert (inbox / "a.pdf").exists()
    assert organizer.all_moved_files == []

    # Reverted files are not moved again by change detection
    assert organizer.scan_new_files().result(timeout=5) == 0


def test_revert_unknown_path_fails(organizer, inbox):
    with pytest.raises(RecordNotFound):
        organizer.revert(inbox / "never.pdf").result(timeout=5)
    assert organizer.last_error is not None


def test_refresh_flags_missing_destinations(organizer, inbox):
    drop(inbox, "a.pdf")
    organizer.organize_existing().result(timeout=5)
    (inbox / "Documents" / "a.pdf").unlink()
    drop(inbox, "b.png")

    result = organizer.refresh().result(timeout=5)

    assert result == {"pending": 1, "missing": 1}
    record = organizer.registry.get(inbox / "a.pdf")
    assert record.state is FileState.ERROR
    assert "possibly moved manually" in record.error
    actions = [e.action for e in organizer.activity_log.query(lambda e: e.file_name == "a.pdf")]
    assert actions == [LogAction.ERROR]


def test_refresh_does_not_duplicate_pending_entries(organizer, inbox):
    photo = drop(inbox, "photo.jpg")

    organizer.refresh().result(timeout=5)
    organizer.refresh().result(timeout=5)
    assert len(organizer.activity_log.query(lambda e: e.action is LogAction.PENDING)) == 1

    organizer.organize_all_pending().result(timeout=5)

    actions = [e.action for e in organizer.activity_log.query(lambda e: e.source_path == str(photo))]
    assert actions == [LogAction.MOVED]


def test_lane_serializes_concurrent_requests(organizer, inbox):
    for i in range(20):
        drop(inbox, f"doc{i}.pdf")

    futures = []
    threads = [
        threading.Thread(target=lambda: futures.append(organizer.organize_existing())),
        threading.Thread(target=lambda: futures.append(organizer.scan_new_files())),
        threading.Thread(target=lambda: futures.append(organizer.scan_pending_files())),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    for future in futures:
        future.result(timeout=10)

    names = sorted(p.name for p in (inbox / "Documents").iterdir())
    assert names == sorted(f"doc{i}.pdf" for i in range(20))
    assert len(organizer.all_moved_files) == 20


def test_shutdown_rejects_new_work(make_organizer):
    organizer = make_organizer()
    organizer.shutdown()

    with pytest.raises(RuntimeError):
        organizer.scan_new_files()


def test_start_monitoring_fails_for_missing_inbox(tmp_path):
    organizer = InboxOrganizer(tmp_path / "missing")
    try:
        assert organizer.start_monitoring() is False
        assert not organizer.is_monitoring
        assert "missing" in organizer.last_error
    finally:
        organizer.shutdown()


def test_monitoring_moves_new_downloads(organizer, inbox):
    existing = drop(inbox, "old.pdf")

    assert organizer.start_monitoring() is True
    assert organizer.start_monitoring() is True
    organizer.scan_pending_files().result(timeout=5)

    # Startup only marks existing files pending
    assert existing.exists()
    assert organizer.registry.get(existing).state is FileState.PENDING
    assert (inbox / "Images").is_dir()

    drop(inbox, "new.txt")
    assert wait_until(lambda: (inbox / "Documents" / "new.txt").exists())

    organizer.stop_monitoring()
    organizer.stop_monitoring()
    assert not organizer.is_monitoring


def test_from_settings_persists_state(tmp_path, inbox):
    settings = Settings(inbox_dir=inbox, state_dir=tmp_path / "state")
    drop(inbox, "a.pdf")

    with InboxOrganizer.from_settings(settings) as organizer:
        organizer.organize_existing().result(timeout=5)
        organizer.preferences.set_custom_destination(Category.IMAGE, str(tmp_path / "Pictures"))

    with InboxOrganizer.from_settings(settings) as organizer:
        assert [r.name for r in organizer.all_moved_files] == ["a.pdf"]
        assert organizer.preferences.destination_for(Category.IMAGE) == tmp_path / "Pictures"
        assert len(organizer.activity_log) == 1


def test_custom_destination_is_used(make_organizer, inbox, tmp_path):
    preferences = PreferencesStore(inbox)
    preferences.set_custom_destination(Category.IMAGE, str(tmp_path / "Pictures"))
    organizer = make_organizer(preferences=preferences)
    drop(inbox, "photo.jpg")

    organizer.scan_new_files().result(timeout=5)

    assert (tmp_path / "Pictures" / "photo.jpg").exists()
