"""
Service-level test for the sync API.

Drives the FastAPI app end to end through its HTTP surface, with the
pipeline wired to the in-memory ingestion service:
- It covers the flow a UI follows: configure, scan, approve, then read the
  activity, progress and event feeds.
- It checks observable responses rather than pipeline internals.
"""

import pytest
from fastapi.testclient import TestClient

from app.main import app
from domains.file_ingest.events import RecordingSink
from domains.file_ingest.pipeline import SyncPipeline


@pytest.fixture
def watched_folder(tmp_path):
    folder = tmp_path / "vault"
    folder.mkdir()
    (folder / "report.pdf").write_bytes(b"%PDF-1.4")
    (folder / "photo.jpg").write_bytes(b"\xff\xd8")
    (folder / "settings.yaml").write_text("a: 1")
    (folder / "site" / "assets").mkdir(parents=True)
    (folder / "site" / "assets" / "logo.png").write_bytes(b"\x89PNG")
    return folder


@pytest.fixture
def client(fake_service, make_uploader, make_poller, make_settings, query_client, watched_folder):
    """Test client whose pipeline talks to the fake ingestion service."""
    with TestClient(app) as test_client:
        uploader = make_uploader()
        app.state.pipeline = SyncPipeline(
            make_settings(watched_folder=watched_folder),
            uploader=uploader,
            poller=make_poller(uploader),
            sink=RecordingSink(),
        )
        app.state.query_client = query_client
        yield test_client


def test_health_reports_configuration(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["configured"] is True
    assert body["watching"] is False
    assert body["uploads_in_flight"] == 0


def test_config_hides_api_key_and_accepts_partial_updates(client, tmp_path):
    body = client.get("/sync/config").json()
    assert body["api_key_set"] is True
    assert "api_key" not in body

    response = client.put("/sync/config", json={"auto_ingest": False, "user_hash": "u-1"})

    assert response.status_code == 200
    updated = response.json()
    assert updated["auto_ingest"] is False
    assert updated["user_hash"] == "u-1"
    assert updated["api_key_set"] is True
    assert updated["watched_folder"] == body["watched_folder"]


def test_scan_then_approve_story(client, fake_service, watched_folder):
    fake_service.progress_statuses = ["processing", "completed"]

    scan = client.post("/sync/scan").json()
    recommended = sorted(rec["relative_path"] for rec in scan["recommended"])
    assert scan["total_files"] == 4
    assert recommended == ["photo.jpg", "report.pdf"]
    assert scan["summary"]["config_count"] == 1
    assert scan["summary"]["website_scaffolding_count"] == 1

    results = client.post("/sync/approve", json={"approved_paths": ["report.pdf"]}).json()
    assert [r["status"] for r in results] == ["done"]

    activity = client.get("/sync/activity").json()
    assert activity[0]["filename"] == "report.pdf"
    assert activity[0]["status"] == "done"
    assert activity[0]["category"] == "personal_data"

    progress = client.get("/sync/progress").json()
    assert progress == [{
        "filename": "report.pdf",
        "progress_id": results[0]["progress_id"],
        "status": "done",
        "percent": 100.0,
        "message": None,
    }]

    status = client.get("/sync/status").json()
    assert status["file_count"] == 4
    assert status["recent_activity"][0]["filename"] == "report.pdf"

    names = [record["event"] for record in client.get("/sync/events").json()]
    assert "ingestion-progress" in names
    assert "sync-activity" in names
    assert names[-1] == "ingestion-complete"
    assert client.get("/sync/events").json() == []


def test_approve_ignores_paths_escaping_the_folder(client, fake_service, watched_folder):
    (watched_folder.parent / "secret.txt").write_text("private")

    response = client.post("/sync/approve", json={"approved_paths": ["../secret.txt"]})

    assert response.status_code == 200
    assert response.json() == []
    assert [r for r in fake_service.requests if r.method == "PUT"] == []


def test_watch_start_rejected_when_not_configured(client):
    client.put("/sync/config", json={"api_key": ""})

    response = client.post("/sync/watch/start")

    assert response.status_code == 400
    assert response.json()["error"] == "PipelineConfigError"
    assert client.get("/sync/status").json()["watching"] is False


def test_scan_of_missing_folder_is_a_client_error(client, tmp_path):
    client.put("/sync/config", json={"watched_folder": str(tmp_path / "nope")})

    response = client.post("/sync/scan")

    assert response.status_code == 400
    assert response.json()["error"] == "ScanError"


def test_watch_start_and_stop(client):
    pytest.importorskip("watchdog", reason="watchdog dependency is required for watcher tests")

    started = client.post("/sync/watch/start")
    assert started.status_code == 200
    assert started.json()["status"] == "watching"
    assert client.get("/health").json()["watching"] is True

    stopped = client.post("/sync/watch/stop")
    assert stopped.json()["status"] == "stopped"
    assert client.get("/sync/status").json()["watching"] is False

    changes = [
        record["payload"]
        for record in client.get("/sync/events").json()
        if record["event"] == "sync-status-changed"
    ]
    assert changes == [True, False]


def test_query_then_follow_up(client, fake_service):
    answer = client.post("/query/run", json={"query": "what did I upload?"})

    assert answer.status_code == 200
    session_id = answer.json()["session_id"]

    follow_up = client.post("/query/chat", json={"session_id": session_id, "question": "which folder?"})
    assert follow_up.json() == {"answer": "re: which folder?", "context_used": True}
    assert fake_service.requests_to("/llm-query/chat")[0].headers["X-API-Key"] == "test-key"


def test_mutate_forwards_schema_and_data(client):
    response = client.post(
        "/query/mutate",
        json={"schema": "Note", "operation": "update", "data": {"id": 1}},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"id": 1}


def test_query_backend_failure_is_a_bad_gateway(client, fake_service):
    fake_service.query_status = 503

    response = client.post("/query/search", json={"term": "invoice"})

    assert response.status_code == 502
    assert response.json()["error"] == "RemoteProtocolError"
