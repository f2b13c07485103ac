"""Working-directory layout of a received job.

received-files/<job_id>/
    audio.<ext>        required
    artwork.<ext>      optional
    tracklist.<ext>    raw tracklist as submitted
    songs.json         confirmed or normalized songs
    metadata.json      submission metadata
    status.json        lifecycle record
    .claim             held while an orchestrator owns the job
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from ..storage import read_json, write_json_atomic
from .models import JobMetadata, Track


STATUS_FILE = "status.json"
METADATA_FILE = "metadata.json"
SONGS_FILE = "songs.json"
CLAIM_FILE = ".claim"


class InputError(Exception):
    """A required job input is missing or unusable."""


class JobClaimed(Exception):
    """Another orchestrator already holds the job, or its directory is gone."""


class JobWorkspace:
    def __init__(self, received_dir: Path, job_id: str):
        self.received_dir = Path(received_dir)
        self.job_id = job_id
        self.path = self.received_dir / job_id

    @property
    def status_file(self) -> Path:
        return self.path / STATUS_FILE

    @property
    def metadata_file(self) -> Path:
        return self.path / METADATA_FILE

    @property
    def songs_file(self) -> Path:
        return self.path / SONGS_FILE

    @property
    def claim_file(self) -> Path:
        return self.path / CLAIM_FILE

    def exists(self) -> bool:
        return self.path.is_dir()

    def _find(self, stem: str) -> Optional[Path]:
        if not self.exists():
            return None
        for candidate in sorted(self.path.glob(f"{stem}.*")):
            if candidate.is_file():
                return candidate
        return None

    @property
    def audio_file(self) -> Optional[Path]:
        return self._find("audio")

    @property
    def artwork_file(self) -> Optional[Path]:
        return self._find("artwork")

    @property
    def tracklist_file(self) -> Optional[Path]:
        return self._find("tracklist")

    def verify_inputs(self) -> None:
        """Raise InputError naming the first missing input."""
        if not self.exists():
            raise InputError(f"Job directory not found: {self.path}")
        audio = self.audio_file
        if audio is None:
            raise InputError("Audio file not found")
        if audio.stat().st_size == 0:
            raise InputError("Audio file is empty")
        if not self.metadata_file.is_file():
            raise InputError("Metadata file not found")
        if self.tracklist_file is None and not self.songs_file.is_file():
            raise InputError("Tracklist file not found")

    def load_metadata(self) -> JobMetadata:
        try:
            with open(self.metadata_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InputError(f"Invalid metadata format: {e}") from e
        if not isinstance(data, dict):
            raise InputError("Invalid metadata format: expected an object")
        return JobMetadata.from_dict(data)

    def load_songs(self) -> Optional[List[Track]]:
        data = read_json(self.songs_file)
        if data is None:
            return None
        if isinstance(data, dict):
            data = data.get("songs", [])
        return [Track(title=str(s.get("title", "")), artist=str(s.get("artist", ""))) for s in data if isinstance(s, dict)]

    def save_songs(self, songs: List[Track]) -> Path:
        return write_json_atomic(self.songs_file, {"songs": [s.to_dict() for s in songs]})

    def transient_assets(self) -> List[Path]:
        """Large binaries that are not kept after archival."""
        return [p for p in (self.audio_file, self.artwork_file) if p is not None]

    @contextmanager
    def claim(self) -> Iterator[None]:
        """Hold the job exclusively, across processes, for the duration of the block.

        The claim file is created with O_EXCL, so only one caller can win. It is
        removed on exit unless archival already removed the whole directory.
        """
        try:
            fd = os.open(self.claim_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise JobClaimed(f"Job {self.job_id} is already being processed") from e
        except FileNotFoundError as e:
            raise JobClaimed(f"Job directory not found: {self.path}") from e
        try:
            with os.fdopen(fd, "w") as f:
                f.write(f"{os.getpid()}\n")
            yield
        finally:
            self.release_claim()

    def release_claim(self, pid: Optional[int] = None) -> None:
        """Drop the claim; with ``pid``, only if that process holds it."""
        if pid is not None:
            try:
                holder = self.claim_file.read_text().strip()
            except OSError:
                return
            if holder != str(pid):
                return
        self.claim_file.unlink(missing_ok=True)
