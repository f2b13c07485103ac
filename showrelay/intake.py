"""Populate job working directories the way the upload front end does."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .jobs import ALLOWED_TRANSITIONS, SONGS_CONFIRMED, InputError, InvalidTransition, StatusRecord, StatusStore, Track
from .jobs.workspace import JobWorkspace
from .storage import write_json_atomic

logger = logging.getLogger("relay.intake")


def create_job(
    store: StatusStore,
    audio: Path,
    tracklist: Optional[Path],
    metadata: Dict[str, Any],
    artwork: Optional[Path] = None,
    job_id: Optional[str] = None,
) -> str:
    """Copy the submitted files into a new working directory and mark the job received.

    Args:
        store: Status store rooted at the received directory
        audio: Recording to publish
        tracklist: Raw tracklist file; may be None when songs are confirmed later
        metadata: Submission metadata (title, owner, broadcast date/time, ...)
        artwork: Optional cover image
        job_id: Explicit id; a UUID4 is generated otherwise

    Returns:
        The job id
    """
    job_id = job_id or str(uuid.uuid4())
    workspace = JobWorkspace(store.received_dir, job_id)
    if workspace.exists():
        raise InputError(f"Job directory already exists: {workspace.path}")

    audio = Path(audio)
    if not audio.is_file():
        raise InputError(f"Audio file not found: {audio}")
    workspace.path.mkdir(parents=True)
    shutil.copy2(audio, workspace.path / f"audio{audio.suffix.lower()}")
    if tracklist is not None:
        tracklist = Path(tracklist)
        shutil.copy2(tracklist, workspace.path / f"tracklist{tracklist.suffix.lower()}")
    if artwork is not None:
        artwork = Path(artwork)
        shutil.copy2(artwork, workspace.path / f"artwork{artwork.suffix.lower()}")
    write_json_atomic(workspace.metadata_file, dict(metadata))

    store.create(job_id, "File received")
    logger.info(f"Received job {job_id} ({audio.name})")
    return job_id


def confirm_songs(store: StatusStore, job_id: str, songs: Iterable[Dict[str, Any]]) -> StatusRecord:
    """Store the human-confirmed tracklist and move the job to songs_confirmed."""
    tracks: List[Track] = []
    for song in songs:
        title = str(song.get("title") or "").strip()
        artist = str(song.get("artist") or "").strip()
        if title or artist:
            tracks.append(Track(title=title, artist=artist))
    if not tracks:
        raise InputError("No songs given")
    workspace = store.workspace(job_id)
    current = store.get(job_id)
    if current is None:
        raise InputError(f"Job not found: {job_id}")
    if SONGS_CONFIRMED not in ALLOWED_TRANSITIONS.get(current.status, ()):
        raise InvalidTransition(f"Job {job_id}: cannot confirm songs while {current.status}")
    workspace.save_songs(tracks)
    return store.update(job_id, SONGS_CONFIRMED, f"{len(tracks)} songs confirmed")
