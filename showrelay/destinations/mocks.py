"""In-process stand-ins for the destination platforms.

Each mock records every request, checks the fields the real platform insists
on, and can be scripted to fail: ``failures`` maps an endpoint name
(``upload``, ``metadata``, ``playlist``) to a queue of failures, where a string
becomes an error response and an exception instance is raised.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger("relay.mocks")

Failure = Union[str, Exception]


class MockDestinationClient:
    REQUIRED_FIELDS = ("title", "artist")

    def __init__(self, name: str, failures: Optional[Dict[str, List[Failure]]] = None):
        self.name = name
        self.failures: Dict[str, List[Failure]] = {k: list(v) for k, v in (failures or {}).items()}
        self.requests: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def calls(self, endpoint: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["endpoint"] == endpoint]

    def _record(self, endpoint: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Record the request; return an error response if one is scripted."""
        with self._lock:
            self.requests.append({"endpoint": endpoint, "payload": payload})
            queue = self.failures.get(endpoint) or []
            failure = queue.pop(0) if queue else None
        if failure is None:
            return None
        if isinstance(failure, Exception):
            raise failure
        logger.debug(f"{self.name} mock: scripted {endpoint} failure: {failure}")
        return {"success": False, "error": failure}

    def _validate(self, audio_path: Path, metadata: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not Path(audio_path).is_file():
            return {"success": False, "error": f"File not found: {audio_path}"}
        missing = [f for f in self.REQUIRED_FIELDS if not metadata.get(f)]
        if missing:
            return {"success": False, "error": f"Missing required fields: {', '.join(missing)}"}
        return None

    def _new_id(self) -> str:
        return f"mock-{self.name}-{uuid.uuid4().hex[:12]}"


class AzuraCastMockClient(MockDestinationClient):
    def __init__(self, station_id: str = "2", failures: Optional[Dict[str, List[Failure]]] = None):
        super().__init__("azuracast", failures)
        self.station_id = station_id
        self.media: Dict[str, Dict[str, Any]] = {}

    def upload_file(self, audio_path: Path, metadata: Dict[str, Any]) -> Dict[str, Any]:
        destination_path = metadata.get("path") or Path(audio_path).name
        error = self._record("upload", {"file": Path(audio_path).name, "path": destination_path})
        if error:
            return error
        invalid = self._validate(audio_path, metadata)
        if invalid:
            return invalid
        media_id = self._new_id()
        full_path = f"/var/azuracast/stations/{self.station_id}/files/{destination_path}"
        self.media[media_id] = {"path": full_path}
        return {"success": True, "id": media_id, "path": full_path}

    def set_metadata(self, media_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        fields = {k: metadata.get(k) for k in ("title", "artist", "album", "genre")}
        error = self._record("metadata", {"id": media_id, **fields})
        if error:
            return error
        if media_id not in self.media:
            return {"success": False, "error": f"Media not found: {media_id}"}
        self.media[media_id].update(fields)
        return {"success": True}

    def add_to_playlist(self, media_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"id": media_id, "playlist": metadata.get("playlist"), "schedule": metadata.get("schedule")}
        error = self._record("playlist", payload)
        if error:
            return error
        if media_id not in self.media:
            return {"success": False, "error": f"Media not found: {media_id}"}
        if not metadata.get("playlist"):
            return {"success": False, "error": "No playlist given"}
        self.media[media_id]["playlist"] = metadata["playlist"]
        return {"success": True}


class MixcloudMockClient(MockDestinationClient):
    def __init__(self, failures: Optional[Dict[str, List[Failure]]] = None):
        super().__init__("mixcloud", failures)

    def upload_file(self, audio_path: Path, metadata: Dict[str, Any]) -> Dict[str, Any]:
        error = self._record("upload", dict(metadata))
        if error:
            return error
        invalid = self._validate(audio_path, metadata)
        if invalid:
            return invalid
        for track in metadata.get("track_list") or []:
            if not track.get("title") or not track.get("artist"):
                return {"success": False, "error": "Track list contains items missing required fields"}
        upload_id = self._new_id()
        slug = str(metadata["title"]).lower().replace(" ", "-")
        return {"success": True, "id": upload_id, "url": f"https://www.mixcloud.com/mock/{slug}/"}


class SoundCloudMockClient(MockDestinationClient):
    def __init__(self, failures: Optional[Dict[str, List[Failure]]] = None):
        super().__init__("soundcloud", failures)
        self.tracks: Dict[str, Dict[str, Any]] = {}

    def upload_file(self, audio_path: Path, metadata: Dict[str, Any]) -> Dict[str, Any]:
        error = self._record("upload", dict(metadata))
        if error:
            return error
        invalid = self._validate(audio_path, metadata)
        if invalid:
            return invalid
        track_id = self._new_id()
        self.tracks[track_id] = {"sharing": metadata.get("sharing", "public")}
        return {"success": True, "id": track_id, "permalink_url": f"https://soundcloud.com/mock/{track_id}"}

    def update_track_metadata(self, track_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        error = self._record("metadata", {"id": track_id, **metadata})
        if error:
            return error
        if track_id not in self.tracks:
            return {"success": False, "error": f"Track not found: {track_id}"}
        self.tracks[track_id].update(metadata)
        return {"success": True, "id": track_id, "permalink_url": f"https://soundcloud.com/mock/{track_id}"}
