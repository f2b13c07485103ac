"""Mixcloud: a single upload carrying the track list, degraded once on track list errors."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ..jobs.models import JobInputs
from ..retry import RetryPolicy, retry
from ..timeutils import utc_to_cet
from .base import DestinationAdapter, DestinationResult

TRACKLIST_SIGNATURE = "track list"
SIMPLIFIED_TRACK_LIMIT = 5
MAX_TAGS = 5


class MixcloudAdapter(DestinationAdapter):
    name = "mixcloud"
    policy = RetryPolicy(max_retries=1, initial_delay=1.0)

    def build_metadata(self, inputs: JobInputs) -> Dict[str, Any]:
        meta = inputs.metadata
        cet_date, cet_time = utc_to_cet(meta.broadcast_date, meta.broadcast_time)
        tags = meta.tags or meta.genres
        return {
            "title": meta.title or "Untitled Set",
            "artist": meta.owner or "Unknown DJ",
            "description": meta.description or f"Broadcast on {cet_date} at {cet_time or '00:00:00'}",
            "track_list": [s.to_dict() for s in inputs.songs],
            "tags": list(tags)[:MAX_TAGS],
        }

    def _publish(self, audio_path: Path, metadata: Dict[str, Any]) -> DestinationResult:
        title = metadata.get("title", "")
        payload = dict(metadata)
        payload["track_list"] = list(metadata.get("track_list") or [])
        original_count = len(payload["track_list"])
        used_simplified_metadata = False

        def is_retryable(error: Exception) -> bool:
            nonlocal used_simplified_metadata
            if used_simplified_metadata or TRACKLIST_SIGNATURE not in str(error).lower():
                return False
            payload["track_list"] = payload["track_list"][:SIMPLIFIED_TRACK_LIMIT]
            used_simplified_metadata = True
            self.logger.info(f"Mixcloud rejected the track list, retrying with {len(payload['track_list'])} tracks")
            return True

        policy = self.policy.replace(is_retryable=is_retryable, on_retry=self._on_retry)
        uploaded = retry(
            lambda: self._call("upload", title, self.client.upload_file, audio_path, dict(payload)),
            policy,
            sleep=self.sleep,
        )
        note = None
        if used_simplified_metadata:
            note = f"Uploaded with simplified track list ({len(payload['track_list'])} of {original_count} tracks)"
        self.logger.info(f"Mixcloud upload complete: {uploaded.get('url')}")
        return DestinationResult(success=True, id=str(uploaded["id"]), url=uploaded.get("url"), note=note)
