import json
from unittest.mock import patch

import pytest
from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient

from showrelay.jobs import COMPLETED, ERROR, PROCESSING, SONGS_CONFIRMED
from showrelay.server import create_app
from showrelay.worker import JobRunner


@pytest.fixture
def runner(settings):
    r = JobRunner(settings)
    yield r
    r.shutdown()


@pytest.fixture
def client(store, runner):
    with TestClient(create_app(store, runner)) as c:
        yield c


def test_health(client, make_job):
    make_job("j1")
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["counts"]["received"] == 1


def test_status_unknown_job(client):
    assert client.get("/api/status/nope").status_code == 404


def test_status_live_job(client, make_job):
    make_job("j1")
    body = client.get("/api/status/j1").json()
    assert body["job_id"] == "j1"
    assert body["status"] == "received"
    assert body["message"] == "File received"


def test_start_runs_job_and_status_moves_to_archive(client, make_job, runner):
    make_job("j1")
    resp = client.post("/api/jobs/j1/start")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "job_id": "j1"}
    assert runner.wait("j1", timeout=30)

    body = client.get("/api/status/j1").json()
    assert body["status"] == COMPLETED
    assert body["destinations"]["azuracast"]["success"] is True
    archived = client.get("/api/archive-status/j1").json()
    assert archived["archived"] is True
    assert archived["record"]["summary"]["title"] == "Test Episode"


def test_archive_status_not_archived(client, make_job):
    make_job("j1")
    assert client.get("/api/archive-status/j1").json() == {"archived": False}


def test_start_unknown_job(client):
    assert client.post("/api/jobs/nope/start").status_code == 404


@pytest.mark.parametrize("status", [PROCESSING, ERROR])
def test_start_refused_when_not_ready(client, make_job, store, status):
    make_job("j1")
    store.update("j1", status, status)
    assert client.post("/api/jobs/j1/start").status_code == 409


def test_start_waits_for_song_confirmation(client, make_job):
    make_job("j1", metadata={"title": "T", "owner": "O", "confirm_songs": True})
    assert client.post("/api/jobs/j1/start").status_code == 409


def test_confirm_songs_starts_job(client, make_job, runner, store):
    make_job("j1", tracklist=False, metadata={"title": "T", "owner": "O", "broadcast_date": "2025-05-11",
                                              "destinations": ["mixcloud"], "confirm_songs": True})
    resp = client.post("/api/jobs/j1/songs", json={"songs": [{"title": "One", "artist": "A"}]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["started"] is True
    assert body["status"]["status"] == SONGS_CONFIRMED
    assert runner.wait("j1", timeout=30)
    assert store.lookup("j1").status == COMPLETED


def test_confirm_songs_errors(client, make_job, store):
    assert client.post("/api/jobs/nope/songs", json={"songs": [{"title": "x", "artist": "y"}]}).status_code == 404
    make_job("j1")
    assert client.post("/api/jobs/j1/songs", json={"songs": []}).status_code == 400
    store.update("j1", PROCESSING, "busy")
    assert client.post("/api/jobs/j1/songs", json={"songs": [{"title": "x", "artist": "y"}]}).status_code == 409


def test_jobs_listing(client, make_job, store):
    make_job("a")
    make_job("b")
    store.update("b", ERROR, "broken")
    body = client.get("/api/jobs", params={"statuses": "error"}).json()
    assert body["counts"]["error"] == 1
    assert [j["job_id"] for j in body["recent"]] == ["b"]
    assert body["worker"]["isolation"] == "thread"


def test_status_events_stop_at_terminal_status(client, make_job, store):
    make_job("j1")
    store.update("j1", ERROR, "Audio file not found")
    resp = client.get("/api/status/j1/events", params={"poll_interval": 0.01})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = [json.loads(line[len("data: "):]) for line in resp.text.splitlines() if line.startswith("data: ")]
    assert [e["status"] for e in events] == [ERROR]


def test_status_events_unknown_job(client):
    resp = client.get("/api/status/nope/events")
    assert resp.text.strip() == 'data: {"job_id": "nope", "status": "unknown"}'


def test_start_accepts_job_with_malformed_list_fields(client, make_job, runner):
    make_job("j1", metadata={"title": "T", "owner": "O", "broadcast_date": "2025-05-11", "genres": 5, "destinations": 7})
    resp = client.post("/api/jobs/j1/start")
    assert resp.status_code == 200
    assert runner.wait("j1", timeout=30)


def test_status_events_look_up_off_the_event_loop(client, make_job, store):
    make_job("j1")
    store.update("j1", ERROR, "broken")
    with patch("showrelay.server.run_in_threadpool", wraps=run_in_threadpool) as threadpool:
        resp = client.get("/api/status/j1/events")
    assert resp.status_code == 200
    threadpool.assert_called_with(store.lookup, "j1")


def test_status_events_for_archived_job(client, make_job, runner):
    make_job("j1")
    client.post("/api/jobs/j1/start")
    assert runner.wait("j1", timeout=30)
    resp = client.get("/api/status/j1/events")
    events = [json.loads(line[len("data: "):]) for line in resp.text.splitlines() if line.startswith("data: ")]
    assert [e["status"] for e in events] == [COMPLETED]
