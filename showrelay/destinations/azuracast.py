"""AzuraCast: upload the media file, tag it, then attach it to the DJ's playlist schedule."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ..jobs.models import JobInputs
from ..retry import RetryPolicy, retry
from ..timeutils import end_time_minutes, time_to_minutes, utc_to_cet
from .base import DestinationAdapter, DestinationResult, slugify_owner


class AzuraCastAdapter(DestinationAdapter):
    name = "azuracast"
    policy = RetryPolicy(max_retries=2, initial_delay=1.0, backoff_factor=2.0)

    def build_metadata(self, inputs: JobInputs) -> Dict[str, Any]:
        meta = inputs.metadata
        cet_date, _ = utc_to_cet(meta.broadcast_date, meta.broadcast_time)
        owner = meta.owner or "Unknown DJ"
        playlist = slugify_owner(owner)
        return {
            "title": meta.title or "Untitled Set",
            "artist": owner,
            "album": f"{cet_date} Broadcast",
            "genre": ", ".join(meta.genres) or "Radio Show",
            "playlist": playlist,
            "path": f"{playlist}/{Path(inputs.audio_path).name}",
            "schedule": {
                "start_date": meta.broadcast_date,
                "start_time": time_to_minutes(meta.broadcast_time),
                "end_time": end_time_minutes(meta.broadcast_time),
                "loop_once": True,
            },
        }

    def _publish(self, audio_path: Path, metadata: Dict[str, Any]) -> DestinationResult:
        title = metadata.get("title", "")

        def upload_sequence() -> Dict[str, Any]:
            # every attempt restarts at the upload; re-uploading the same file is safe
            uploaded = self._call("upload", title, self.client.upload_file, audio_path, metadata)
            media_id = uploaded["id"]
            self._call("metadata", title, self.client.set_metadata, media_id, metadata)
            self._call("playlist", title, self.client.add_to_playlist, media_id, metadata)
            return uploaded

        self.logger.info(f"Uploading '{title}' to AzuraCast as {metadata.get('path')}")
        uploaded = retry(upload_sequence, self.policy.replace(on_retry=self._on_retry), sleep=self.sleep)
        self.logger.info(f"AzuraCast upload complete: {uploaded.get('path')}")
        return DestinationResult(success=True, id=str(uploaded["id"]), path=uploaded.get("path"))
