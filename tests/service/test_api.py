"""HTTP control surface tests against a temporary inbox."""

import pytest
from fastapi.testclient import TestClient

from tidyloads.main import create_app
from tidyloads.utils.config import Settings
from tidyloads.utils.helpers import normalise_path


@pytest.fixture
def inbox(tmp_path):
    directory = tmp_path / "Downloads"
    directory.mkdir()
    return normalise_path(directory)


@pytest.fixture
def client(tmp_path, inbox):
    settings = Settings(inbox_dir=inbox, state_dir=tmp_path / "state", auto_start=False)
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def test_root_and_health(client, inbox):
    assert client.get("/").json()["inbox"] == str(inbox)

    body = client.get("/health").json()
    assert body["inbox_accessible"] is True
    assert body["monitoring"] is False
    assert body["status"] == "degraded"


def test_start_and_stop_monitoring(client):
    assert client.post("/organizer/start").json()["status"] == "monitoring"
    assert client.get("/organizer/status").json()["monitoring"] is True
    assert client.get("/health").json()["status"] == "healthy"

    assert client.post("/organizer/stop").json()["status"] == "stopped"
    assert client.get("/organizer/status").json()["monitoring"] is False


def test_pending_organize_and_revert(client, inbox):
    (inbox / "photo.jpg").write_text("jpg")

    refreshed = client.post("/organizer/refresh").json()
    assert refreshed["details"] == {"pending": 1, "missing": 0}

    pending = client.get("/organizer/pending").json()
    assert [p["name"] for p in pending] == ["photo.jpg"]
    assert pending[0]["category"] == "Images"

    organized = client.post("/organizer/pending/organize").json()
    assert organized["paths"] == [str(inbox / "Images" / "photo.jpg")]

    status = client.get("/organizer/status").json()
    assert status["pending_count"] == 0
    assert status["moved_count"] == 1
    assert len(client.get("/organizer/moves", params={"recent": True}).json()) == 1

    reverted = client.post("/organizer/revert", json={"path": str(inbox / "photo.jpg")})
    assert reverted.status_code == 200
    assert (inbox / "photo.jpg").exists()

    again = client.post("/organizer/revert", json={"path": str(inbox / "photo.jpg")})
    assert again.status_code == 404


def test_organize_single_pending_path(client, inbox):
    (inbox / "a.pdf").write_text("x")
    client.post("/organizer/refresh")

    response = client.post("/organizer/pending/organize", json={"path": str(inbox / "a.pdf")})
    assert response.json()["count"] == 1

    missing = client.post("/organizer/pending/organize", json={"path": str(inbox / "a.pdf")})
    assert missing.status_code == 404


def test_scan_and_revert_all(client, inbox):
    (inbox / "a.pdf").write_text("x")
    (inbox / "b.zip").write_text("x")

    scan = client.post("/organizer/scan").json()
    assert scan["details"] == {"handled": 2}
    assert (inbox / "Archives" / "b.zip").exists()

    reverted = client.post("/organizer/revert/all").json()
    assert reverted["count"] == 2
    assert client.post("/organizer/revert/recent", params={"minutes": 5}).json()["count"] == 0


def test_activity_history(client, inbox):
    (inbox / "a.pdf").write_text("x")
    client.post("/organizer/scan")

    entries = client.get("/activity").json()
    assert entries[0]["action"] == "Moved"
    assert entries[0]["file_name"] == "a.pdf"

    assert client.get("/activity", params={"action": "Error"}).json() == []

    client.delete("/activity")
    assert client.get("/activity").json() == []


def test_installer_signals(client, inbox):
    client.patch("/preferences", json={"clean_after_first_use": False})
    (inbox / "App.dmg").write_text("x")
    client.post("/organizer/scan")

    installers = client.get("/installers").json()
    assert [(i["name"], i["kind"], i["used"]) for i in installers] == [("App.dmg", "dmg", False)]

    mounted = client.post("/installers/mounted", json={"path": str(inbox / "App.dmg")}).json()
    assert mounted["status"] == "matched"
    assert client.post("/installers/mounted", json={"path": str(inbox / "App.dmg")}).json()["status"] == "ignored"
    assert client.post("/installers/launched", json={"path": "/Applications/Nope.app"}).json()["status"] == "ignored"

    assert client.get("/installers").json()[0]["used"] is True
    assert client.post("/installers/cleanup").json()["count"] == 0


def test_preferences_round_trip(client, tmp_path):
    updated = client.patch("/preferences", json={"confirm_before_moving": True, "auto_clean_days": 3}).json()
    assert updated["confirm_before_moving"] is True
    assert updated["auto_clean_days"] == 3
    assert updated["enabled"] is True

    assert client.patch("/preferences", json={"auto_clean_days": 0}).status_code == 422

    target = str(tmp_path / "Pictures")
    prefs = client.put("/preferences/destinations/images", json={"path": target}).json()
    assert prefs["custom_destinations"] == {"Images": target}

    assert client.put("/preferences/destinations/spreadsheets", json={"path": target}).status_code == 422

    prefs = client.delete("/preferences/destinations/Images").json()
    assert prefs["custom_destinations"] == {}

    assert client.post("/preferences/reset").json()["confirm_before_moving"] is False
