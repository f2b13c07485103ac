"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from showrelay.config import Settings
from showrelay.jobs import JobInputs, JobMetadata, StatusStore, Track
from showrelay.organizers import ArchiveManager


def pytest_configure(config):
    # Filter deprecations from external libs we don't control
    config.addinivalue_line("filterwarnings", r"ignore:.*websockets\.legacy is deprecated.*:DeprecationWarning")
    config.addinivalue_line("filterwarnings", r"ignore:.*WebSocketServerProtocol is deprecated.*:DeprecationWarning")


SONGS = [
    {"title": "Opening", "artist": "Artist One"},
    {"title": "Middle", "artist": "Artist Two"},
    {"title": "Closing", "artist": "Artist Three"},
]

METADATA = {
    "title": "Test Episode",
    "owner": "DJ",
    "broadcast_date": "2025-05-11",
    "broadcast_time": "20:00:00",
    "genres": ["House", "Disco"],
    "description": "",
    "destinations": ["azuracast", "mixcloud"],
}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    s = Settings(
        received_dir=tmp_path / "received-files",
        archive_dir=tmp_path / "archive",
        isolation="thread",
        max_workers=2,
        poll_seconds=1,
    )
    s.ensure_dirs()
    return s


@pytest.fixture
def job_inputs(tmp_path: Path) -> JobInputs:
    audio = tmp_path / "show.mp3"
    audio.write_bytes(b"ID3" + b"\x00" * 64)
    return JobInputs(
        job_id="j1",
        metadata=JobMetadata.from_dict(METADATA),
        songs=[Track(**s) for s in SONGS],
        audio_path=audio,
    )


@pytest.fixture
def archive_manager(settings: Settings) -> ArchiveManager:
    return ArchiveManager(settings.archive_dir, settings.received_dir)


@pytest.fixture
def store(settings: Settings, archive_manager: ArchiveManager) -> StatusStore:
    return StatusStore(settings.received_dir, archive_manager=archive_manager)


@pytest.fixture
def make_job(store: StatusStore):
    """Lay out a job directory the way intake leaves it."""

    def _make(
        job_id: str = "j1",
        metadata: Optional[Dict[str, Any]] = None,
        songs: Optional[List[Dict[str, str]]] = None,
        tracklist: bool = True,
        audio: bool = True,
        artwork: bool = True,
        status: bool = True,
    ) -> Path:
        job_dir = store.received_dir / job_id
        job_dir.mkdir(parents=True)
        if audio:
            (job_dir / "audio.mp3").write_bytes(b"ID3" + b"\x00" * 128)
        if artwork:
            (job_dir / "artwork.jpg").write_bytes(b"\xff\xd8\xff\xe0")
        if tracklist:
            (job_dir / "tracklist.json").write_text(json.dumps({"songs": songs if songs is not None else SONGS}))
        (job_dir / "metadata.json").write_text(json.dumps(metadata if metadata is not None else METADATA))
        if status:
            store.create(job_id)
        return job_dir

    return _make
