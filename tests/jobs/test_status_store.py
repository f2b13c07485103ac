import json
import threading
from pathlib import Path

import pytest

from showrelay.jobs import (
    COMPLETED,
    ERROR,
    PROCESSING,
    RECEIVED,
    SONGS_CONFIRMED,
    InvalidTransition,
    StatusStore,
)


def test_create_writes_received_status(store: StatusStore):
    record = store.create("abc")
    assert record.status == RECEIVED
    data = json.loads((store.received_dir / "abc" / "status.json").read_text())
    assert data["job_id"] == "abc"
    assert data["status"] == "received"
    assert data["message"] == "File received"
    assert data["timestamp"].endswith("Z")


def test_create_twice_is_refused(store: StatusStore):
    store.create("abc")
    with pytest.raises(InvalidTransition):
        store.create("abc")


def test_happy_path_transitions(store: StatusStore):
    store.create("abc")
    store.update("abc", PROCESSING, "Processing started")
    store.update("abc", PROCESSING, "Publishing", destinations={})
    record = store.update("abc", COMPLETED, "done", destinations={"mixcloud": {"success": True}})
    assert record.status == COMPLETED
    assert store.get("abc").destinations == {"mixcloud": {"success": True}}


def test_songs_confirmed_waypoint(store: StatusStore):
    store.create("abc")
    store.update("abc", SONGS_CONFIRMED, "3 songs confirmed")
    store.update("abc", PROCESSING, "Processing started")
    assert store.get("abc").status == PROCESSING


@pytest.mark.parametrize(
    "path",
    [
        [COMPLETED],
        [PROCESSING, RECEIVED],
        [PROCESSING, COMPLETED, ERROR],
        [ERROR, PROCESSING],
        [SONGS_CONFIRMED, COMPLETED],
    ],
)
def test_illegal_transitions_are_refused(store: StatusStore, path):
    store.create("abc")
    for status in path[:-1]:
        store.update("abc", status, status)
    with pytest.raises(InvalidTransition):
        store.update("abc", path[-1], "nope")


def test_error_can_be_requeued_manually(store: StatusStore):
    store.create("abc")
    store.update("abc", ERROR, "Audio file not found")
    assert store.update("abc", RECEIVED, "Retry requested").status == RECEIVED


def test_force_bypasses_lifecycle(store: StatusStore):
    store.create("abc")
    store.update("abc", PROCESSING, "started")
    assert store.update("abc", RECEIVED, "requeued", force=True).status == RECEIVED


def test_unknown_status_rejected(store: StatusStore):
    store.create("abc")
    with pytest.raises(ValueError):
        store.update("abc", "uploading", "x")


def test_destinations_carry_over_when_not_given(store: StatusStore):
    store.create("abc")
    store.update("abc", PROCESSING, "a", destinations={"azuracast": {"success": False}})
    store.update("abc", PROCESSING, "b")
    assert store.get("abc").destinations == {"azuracast": {"success": False}}


def test_write_leaves_no_temp_files(store: StatusStore):
    store.create("abc")
    for i in range(5):
        store.update("abc", PROCESSING, f"step {i}")
    assert sorted(p.name for p in (store.received_dir / "abc").iterdir()) == ["status.json"]


def test_concurrent_updates_never_produce_torn_reads(store: StatusStore):
    store.create("abc")
    store.update("abc", PROCESSING, "start")
    status_file = store.received_dir / "abc" / "status.json"
    stop = threading.Event()
    bad = []

    def reader():
        while not stop.is_set():
            try:
                json.loads(status_file.read_text())
            except json.JSONDecodeError as e:
                bad.append(e)

    t = threading.Thread(target=reader)
    t.start()
    try:
        for i in range(200):
            store.update("abc", PROCESSING, "x" * (i % 50), destinations={"n": {"i": i}})
    finally:
        stop.set()
        t.join()
    assert bad == []


def test_get_missing_and_corrupt(store: StatusStore):
    assert store.get("nope") is None
    job_dir = store.received_dir / "bad"
    job_dir.mkdir(parents=True)
    (job_dir / "status.json").write_text("{not json")
    assert store.get("bad") is None


def test_counts_and_recent_jobs(store: StatusStore):
    store.create("a")
    store.create("b")
    store.update("b", ERROR, "broken")
    counts = store.counts()
    assert counts["received"] == 1
    assert counts["error"] == 1
    assert counts["completed"] == 0
    recent = store.recent_jobs(limit=10, statuses=["error"])
    assert [r["job_id"] for r in recent] == ["b"]


def test_lookup_falls_back_to_archive(settings, archive_manager):
    year_dir = settings.archive_dir / "2025"
    year_dir.mkdir(parents=True)
    (year_dir / "2025-05-11_DJ_Show.json").write_text(json.dumps({
        "summary": {"job_id": "gone", "status": "completed", "message": "Processing completed", "processed_at": "2025-05-11T22:00:00Z"},
        "uploads": {"mixcloud": {"success": True}},
    }))
    store = StatusStore(settings.received_dir, archive_manager=archive_manager)
    record = store.lookup("gone")
    assert record.status == COMPLETED
    assert record.destinations == {"mixcloud": {"success": True}}
    assert store.archive_status("gone")["archived"] is True
    assert store.archive_status("other") == {"archived": False}
    assert store.lookup("other") is None


def test_wait_for_status_times_out(store: StatusStore):
    store.create("abc")
    assert store.wait_for_status("abc", timeout=0.05, poll_interval=0.01) is None
    store.update("abc", ERROR, "x")
    assert store.wait_for_status("abc", timeout=0.05, poll_interval=0.01).status == ERROR


def test_reset_stale_processing(store: StatusStore):
    store.create("old")
    store.update("old", PROCESSING, "started")
    status_file = store.received_dir / "old" / "status.json"
    data = json.loads(status_file.read_text())
    data["timestamp"] = "2020-01-01T00:00:00Z"
    status_file.write_text(json.dumps(data))
    store.workspace("old").claim_file.write_text("1\n")
    store.create("fresh")
    store.update("fresh", PROCESSING, "started")

    assert store.reset_stale_processing(max_age_seconds=60) == 1
    assert store.get("old").status == RECEIVED
    assert not store.workspace("old").claim_file.exists()
    assert store.get("fresh").status == PROCESSING
