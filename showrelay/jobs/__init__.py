"""File-backed job status store.

Each job owns received-files/<job_id>/status.json. Writes go through a temp file
and ``os.replace`` so a reader in another process never sees a partial record.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..storage import read_json, write_json_atomic
from .models import (  # type: ignore
    ALL_STATUSES,
    COMPLETED,
    ERROR,
    PROCESSING,
    RECEIVED,
    SONGS_CONFIRMED,
    TERMINAL_STATUSES,
    JobInputs,
    JobMetadata,
    StatusRecord,
    Track,
)
from .workspace import InputError, JobClaimed, JobWorkspace  # type: ignore


logger = logging.getLogger("relay.jobs")


ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    RECEIVED: frozenset({PROCESSING, SONGS_CONFIRMED, ERROR}),
    SONGS_CONFIRMED: frozenset({PROCESSING, ERROR}),
    PROCESSING: frozenset({PROCESSING, COMPLETED, ERROR}),
    COMPLETED: frozenset({COMPLETED}),
    # manual retry
    ERROR: frozenset({RECEIVED}),
}


class InvalidTransition(ValueError):
    """Refused status change that would break the job lifecycle."""


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StatusStore:
    def __init__(self, received_dir: Path, archive_manager=None) -> None:
        self.received_dir = Path(received_dir)
        self.archive_manager = archive_manager
        self._lock = threading.Lock()

    def workspace(self, job_id: str) -> JobWorkspace:
        return JobWorkspace(self.received_dir, job_id)

    def create(self, job_id: str, message: str = "File received") -> StatusRecord:
        record = StatusRecord(job_id=job_id, status=RECEIVED, message=message)
        with self._lock:
            workspace = self.workspace(job_id)
            if workspace.status_file.exists():
                raise InvalidTransition(f"Job {job_id} already has a status")
            workspace.path.mkdir(parents=True, exist_ok=True)
            self._write(record)
        return record

    def update(
        self,
        job_id: str,
        status: str,
        message: str,
        destinations: Optional[Dict[str, Dict[str, Any]]] = None,
        archive: Optional[str] = None,
        force: bool = False,
    ) -> StatusRecord:
        """Replace the status record after checking the lifecycle.

        ``destinations`` and ``archive`` carry over from the previous record
        when not given. ``force`` skips the transition check (stale resets).
        """
        if status not in ALL_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        with self._lock:
            current = self.get(job_id)
            if current is not None and not force:
                allowed = ALLOWED_TRANSITIONS.get(current.status, frozenset())
                if status not in allowed:
                    raise InvalidTransition(f"Job {job_id}: {current.status} -> {status} not allowed")
            if current is not None:
                if destinations is None:
                    destinations = current.destinations
                if archive is None:
                    archive = current.archive
            record = StatusRecord(
                job_id=job_id,
                status=status,
                message=message,
                destinations=destinations,
                archive=archive,
            )
            self._write(record)
        logger.info(f"{job_id}: {status} ({message})")
        return record

    def get(self, job_id: str) -> Optional[StatusRecord]:
        data = read_json(self.workspace(job_id).status_file)
        if not isinstance(data, dict) or not data.get("status"):
            return None
        record = StatusRecord.from_dict(data)
        record.job_id = record.job_id or job_id
        return record

    def exists(self, job_id: str) -> bool:
        return self.workspace(job_id).status_file.is_file()

    def archive_status(self, job_id: str) -> Dict[str, Any]:
        record = self.archive_manager.find_record(job_id) if self.archive_manager else None
        if record is None:
            return {"archived": False}
        return {"archived": True, "record": record}

    def lookup(self, job_id: str) -> Optional[StatusRecord]:
        """Live status if the working directory still exists, else the archived state."""
        live = self.get(job_id)
        if live is not None:
            return live
        archived = self.archive_status(job_id)
        if not archived["archived"]:
            return None
        summary = archived["record"].get("summary") or {}
        return StatusRecord(
            job_id=job_id,
            status=summary.get("status") or COMPLETED,
            message=summary.get("message") or "Archived",
            timestamp=summary.get("processed_at") or summary.get("status_timestamp") or "",
            destinations=archived["record"].get("uploads") or {},
        )

    def iter_records(self) -> Iterable[StatusRecord]:
        if not self.received_dir.is_dir():
            return
        for job_dir in sorted(p for p in self.received_dir.iterdir() if p.is_dir()):
            record = self.get(job_dir.name)
            if record is not None:
                yield record

    def counts(self) -> Dict[str, int]:
        result: Dict[str, int] = {status: 0 for status in ALL_STATUSES}
        for record in self.iter_records():
            result[record.status] = result.get(record.status, 0) + 1
        return result

    def recent_jobs(self, limit: int = 100, statuses: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        records = [r for r in self.iter_records() if not statuses or r.status in statuses]
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return [r.to_dict() for r in records[:limit]]

    def wait_for_status(
        self,
        job_id: str,
        statuses: Iterable[str] = TERMINAL_STATUSES,
        timeout: float = 10.0,
        poll_interval: float = 0.25,
    ) -> Optional[StatusRecord]:
        wanted = set(statuses)
        deadline = time.time() + timeout
        while True:
            record = self.lookup(job_id)
            if record is not None and record.status in wanted:
                return record
            if time.time() >= deadline:
                return None
            time.sleep(poll_interval)

    def reset_stale_processing(self, max_age_seconds: int = 3600) -> int:
        """Re-queue processing jobs that are likely orphaned.

        Returns number of jobs reset.
        """
        now = datetime.now(timezone.utc)
        reset = 0
        for record in list(self.iter_records()):
            if record.status != PROCESSING:
                continue
            started = _parse_timestamp(record.timestamp)
            if started is None or (now - started).total_seconds() <= max_age_seconds:
                continue
            self.workspace(record.job_id).release_claim()
            self.update(record.job_id, RECEIVED, "Requeued after stale processing", force=True)
            reset += 1
        return reset

    def _write(self, record: StatusRecord) -> None:
        write_json_atomic(self.workspace(record.job_id).status_file, record.to_dict())


__all__ = [
    "ALLOWED_TRANSITIONS",
    "COMPLETED",
    "ERROR",
    "InputError",
    "InvalidTransition",
    "JobClaimed",
    "JobInputs",
    "JobMetadata",
    "JobWorkspace",
    "PROCESSING",
    "RECEIVED",
    "SONGS_CONFIRMED",
    "StatusRecord",
    "StatusStore",
    "TERMINAL_STATUSES",
    "Track",
]
