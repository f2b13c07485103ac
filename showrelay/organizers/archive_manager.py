"""Archival of finished jobs into archive/<year>/<date>_<owner>_<title>.json."""

import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from ..jobs.models import JobMetadata, StatusRecord, Track, utc_now_iso
from ..jobs.workspace import JobWorkspace
from ..storage import read_json, write_json_atomic

logger = logging.getLogger("relay.archive")

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
INDEX_DIR = ".index"


class ArchiveError(Exception):
    """The archive record could not be written; nothing was deleted."""


class ArchiveManager:
    """Turns a job's working directory into a single durable JSON record."""

    def __init__(self, archive_dir: Path, received_dir: Path):
        """Initialize the archive manager.

        Args:
            archive_dir: Root of the dated archive tree
            received_dir: Root holding one working directory per job
        """
        self.archive_dir = Path(archive_dir)
        self.received_dir = Path(received_dir)

    def archive_job(
        self,
        job_id: str,
        status: StatusRecord,
        metadata: JobMetadata,
        songs: List[Track],
        audio_info: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """Write the archive record, then delete the job's working directory.

        Args:
            job_id: Job identifier
            status: Terminal status record; its destinations become ``uploads``
            metadata: Original submission metadata
            songs: Normalized tracklist
            audio_info: Optional probe result for the audio asset

        Returns:
            Path of the written archive record
        """
        year, date = self._archive_date(metadata.broadcast_date)
        owner = self._sanitize(metadata.owner or "Unknown_DJ", "_")
        title = self._sanitize(metadata.title or "Untitled_Set", "-")

        record = self._build_record(job_id, status, metadata, songs, audio_info)
        try:
            year_dir = self.archive_dir / year
            year_dir.mkdir(parents=True, exist_ok=True)
            target = self._unique_target(year_dir, f"{date}_{owner}_{title}", job_id)
            write_json_atomic(target, record)
        except OSError as e:
            logger.error(f"Failed to write archive record for {job_id}: {e}")
            raise ArchiveError(str(e)) from e

        if not target.is_file():
            raise ArchiveError(f"Archive record missing after write: {target}")
        logger.info(f"Archived {job_id} to {target.relative_to(self.archive_dir)}")
        self._write_index(job_id, target)

        self._cleanup(job_id)
        return target

    def find_record(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Return the archive record for job_id through its index entry, else by scanning newest years first."""
        if not self.archive_dir.is_dir():
            return None
        indexed = read_json(self._index_file(job_id))
        if isinstance(indexed, dict) and indexed.get("path"):
            data = read_json(self.archive_dir / indexed["path"])
            if isinstance(data, dict) and (data.get("summary") or {}).get("job_id") == job_id:
                return data

        # records without an index entry
        year_dirs = sorted((d for d in self.archive_dir.iterdir() if d.is_dir() and d.name.isdigit()), reverse=True)
        for year_dir in year_dirs:
            for candidate in sorted(year_dir.glob("*.json")):
                data = read_json(candidate)
                if isinstance(data, dict) and (data.get("summary") or {}).get("job_id") == job_id:
                    return data
        return None

    def _build_record(
        self,
        job_id: str,
        status: StatusRecord,
        metadata: JobMetadata,
        songs: List[Track],
        audio_info: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        uploads = status.destinations or {}
        return {
            "summary": {
                "job_id": job_id,
                "owner": metadata.owner,
                "title": metadata.title,
                "date": metadata.broadcast_date,
                "time": metadata.broadcast_time,
                "genre": ", ".join(metadata.genres),
                "description": metadata.description,
                "track_count": len(songs),
                "destination_count": len(uploads),
                "successful_uploads": sum(1 for r in uploads.values() if r.get("success")),
                "status": status.status,
                "message": status.message,
                "uploaded_by": metadata.uploaded_by or metadata.owner or "Unknown",
                "status_timestamp": status.timestamp,
                "processed_at": utc_now_iso(),
                "audio": audio_info or {},
            },
            "metadata": {
                "user_id": metadata.user_id,
                "user_role": metadata.user_role,
                "requested_destinations": metadata.destinations,
                "confirm_songs": metadata.confirm_songs,
                "submitted": metadata.raw,
            },
            "uploads": uploads,
            "tracklist": [s.to_dict() for s in songs],
        }

    def _index_file(self, job_id: str) -> Path:
        return self.archive_dir / INDEX_DIR / f"{job_id}.json"

    def _write_index(self, job_id: str, target: Path) -> None:
        index_file = self._index_file(job_id)
        try:
            index_file.parent.mkdir(parents=True, exist_ok=True)
            write_json_atomic(index_file, {"path": target.relative_to(self.archive_dir).as_posix()})
        except OSError as e:
            # find_record falls back to scanning the year directories
            logger.warning(f"Could not index archive record for {job_id}: {e}")

    def _cleanup(self, job_id: str) -> None:
        workspace = JobWorkspace(self.received_dir, job_id)
        for asset in workspace.transient_assets():
            logger.info(f"Deleting {asset.name} (not needed after archival)")
            asset.unlink(missing_ok=True)
        if workspace.exists():
            shutil.rmtree(workspace.path)

    def _archive_date(self, broadcast_date: str) -> tuple[str, str]:
        match = _DATE_RE.match(broadcast_date or "")
        if match:
            year, month, day = match.groups()
        else:
            now = datetime.now(timezone.utc)
            year, month, day = f"{now.year:04d}", f"{now.month:02d}", f"{now.day:02d}"
        return year, f"{year}-{month}-{day}"

    def _unique_target(self, year_dir: Path, prefix: str, job_id: str) -> Path:
        target = year_dir / f"{prefix}.json"
        if not target.exists():
            return target
        existing = read_json(target)
        if isinstance(existing, dict) and (existing.get("summary") or {}).get("job_id") == job_id:
            return target
        return year_dir / f"{prefix}_{job_id[:8]}.json"

    def _sanitize(self, name: str, replacement: str) -> str:
        """Sanitize a string for use in an archive filename.

        Args:
            name: Original value
            replacement: Character substituted for anything non-alphanumeric

        Returns:
            Sanitized value
        """
        return re.sub(r"[^A-Za-z0-9]", replacement, name)[:120]
