"""SoundCloud: upload, then push metadata.

A rejected upload that looks like a quota, permission or artwork problem is
retried once as a private track with placeholder artwork. A failed metadata
update after a good upload still counts as published.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..jobs.models import JobInputs
from ..retry import RetryPolicy, retry
from ..timeutils import utc_to_cet
from .base import DestinationAdapter, DestinationError, DestinationResult

RECOVERABLE_SIGNATURES = ("quota", "permission", "artwork")
PRIVATE_NOTE = "Uploaded as private due to quota/permission constraints"
METADATA_FAILED_NOTE = "File uploaded but metadata update failed"


class SoundCloudAdapter(DestinationAdapter):
    name = "soundcloud"
    policy = RetryPolicy(max_retries=1, initial_delay=1.0)

    def __init__(self, client, placeholder_artwork: str = "placeholder-artwork.jpg", **kwargs):
        super().__init__(client, **kwargs)
        self.placeholder_artwork = placeholder_artwork

    def build_metadata(self, inputs: JobInputs) -> Dict[str, Any]:
        meta = inputs.metadata
        cet_date, cet_time = utc_to_cet(meta.broadcast_date, meta.broadcast_time)
        return {
            "title": meta.title or "Untitled Set",
            "artist": meta.owner or "Unknown DJ",
            "description": meta.description or f"Broadcast on {cet_date} at {cet_time or '00:00:00'}",
            "genre": meta.genres[0] if meta.genres else "Radio Show",
            "tag_list": " ".join(meta.genres),
            "sharing": meta.sharing or "public",
            "artwork": str(inputs.artwork_path) if inputs.artwork_path else None,
        }

    def _publish(self, audio_path: Path, metadata: Dict[str, Any]) -> DestinationResult:
        title = metadata.get("title", "")
        payload = dict(metadata)
        notes: List[str] = []
        used_private_sharing = False

        def is_retryable(error: Exception) -> bool:
            nonlocal used_private_sharing
            message = str(error).lower()
            if used_private_sharing or not any(sig in message for sig in RECOVERABLE_SIGNATURES):
                return False
            payload["sharing"] = "private"
            if not payload.get("artwork") or "artwork" in message:
                payload["artwork"] = self.placeholder_artwork
            used_private_sharing = True
            notes.append(PRIVATE_NOTE)
            self.logger.info("SoundCloud upload rejected, retrying as private with placeholder artwork")
            return True

        policy = self.policy.replace(is_retryable=is_retryable, on_retry=self._on_retry)
        uploaded = retry(
            lambda: self._call("upload", title, self.client.upload_file, audio_path, dict(payload)),
            policy,
            sleep=self.sleep,
        )
        track_id = str(uploaded["id"])
        url: Optional[str] = uploaded.get("permalink_url") or uploaded.get("url")

        # the track exists from here on; metadata problems only annotate the result
        try:
            updated = self._call("metadata", title, self.client.update_track_metadata, track_id, dict(payload))
            url = updated.get("permalink_url") or url
        except DestinationError as e:
            self.logger.warning(f"SoundCloud metadata update failed for '{title}': {e}")
            notes.append(METADATA_FAILED_NOTE)

        self.logger.info(f"SoundCloud upload complete: {url}")
        return DestinationResult(success=True, id=track_id, url=url, note="; ".join(notes) or None)
