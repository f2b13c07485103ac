from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import parse_destinations


RECEIVED = "received"
PROCESSING = "processing"
SONGS_CONFIRMED = "songs_confirmed"
COMPLETED = "completed"
ERROR = "error"

ALL_STATUSES = (RECEIVED, PROCESSING, SONGS_CONFIRMED, COMPLETED, ERROR)
TERMINAL_STATUSES = frozenset({COMPLETED, ERROR})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class StatusRecord:
    job_id: str
    status: str
    message: str
    timestamp: str = field(default_factory=utc_now_iso)
    destinations: Optional[Dict[str, Dict[str, Any]]] = None
    archive: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.destinations is not None:
            data["destinations"] = self.destinations
        if self.archive is not None:
            data["archive"] = self.archive
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusRecord":
        return cls(
            job_id=str(data.get("job_id") or data.get("fileId") or ""),
            status=str(data.get("status") or ""),
            message=str(data.get("message") or ""),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
            destinations=data.get("destinations"),
            archive=data.get("archive"),
        )


@dataclass
class Track:
    title: str
    artist: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "artist": self.artist}


def _as_list(value: Any) -> List[str]:
    """Comma-separated string or list; anything else counts as empty."""
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass
class JobMetadata:
    """Submission metadata as written by intake into metadata.json."""

    title: str = ""
    owner: str = ""
    broadcast_date: str = ""
    broadcast_time: str = ""
    genres: List[str] = field(default_factory=list)
    description: str = ""
    destinations: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    sharing: Optional[str] = None
    uploaded_by: str = ""
    user_id: str = ""
    user_role: str = ""
    confirm_songs: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobMetadata":
        confirm = data.get("confirm_songs", data.get("confirmSongs", False))
        sharing = _first(data, "sharing")
        return cls(
            title=str(_first(data, "title", "setTitle") or ""),
            owner=str(_first(data, "owner", "djName", "DJ") or ""),
            broadcast_date=str(_first(data, "broadcast_date", "broadcastDate") or ""),
            broadcast_time=str(_first(data, "broadcast_time", "broadcastTime") or ""),
            genres=_as_list(_first(data, "genres", "genre")),
            description=str(data.get("description") or ""),
            destinations=parse_destinations(data.get("destinations")),
            tags=_as_list(data.get("tags")),
            sharing=str(sharing) if sharing is not None else None,
            uploaded_by=str(_first(data, "uploaded_by", "uploadedBy") or ""),
            user_id=str(_first(data, "user_id", "userId") or ""),
            user_role=str(_first(data, "user_role", "userRole") or ""),
            confirm_songs=confirm in (True, "true", "1", 1),
            raw=dict(data),
        )


@dataclass
class JobInputs:
    """Everything an adapter needs to build its destination payload."""

    job_id: str
    metadata: JobMetadata
    songs: List[Track]
    audio_path: Path
    artwork_path: Optional[Path] = None
    audio_info: Dict[str, Any] = field(default_factory=dict)
