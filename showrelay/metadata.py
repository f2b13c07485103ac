"""Audio file probing."""
from pathlib import Path
from typing import Any, Dict, List, Optional

import mutagen


class AudioProbe:
    """Read technical details and tags from a broadcast recording."""

    SUPPORTED_FORMATS = {'.mp3', '.flac', '.m4a', '.mp4', '.ogg', '.opus', '.wav', '.aac'}

    def probe(self, file_path: Path) -> Dict[str, Any]:
        """Probe a single audio file.

        Args:
            file_path: Path to the audio file

        Returns:
            Dictionary with filename, size, format, duration and bitrate.
            Problems are reported under an ``error`` key instead of raised.
        """
        file_path = Path(file_path)
        if not file_path.exists():
            return {"error": "File not found", "filename": file_path.name}

        info: Dict[str, Any] = {
            'filename': file_path.name,
            'file_size_mb': round(file_path.stat().st_size / (1024 * 1024), 2),
            'format': file_path.suffix.lower()[1:],
        }
        if file_path.suffix.lower() not in self.SUPPORTED_FORMATS:
            info["error"] = f"Unsupported format: {file_path.suffix.lower()}"
            return info

        try:
            audio = mutagen.File(file_path)
        except Exception as e:
            info["error"] = str(e)
            return info
        if audio is None:
            info["error"] = "Could not read file"
            return info

        info['duration_seconds'] = getattr(audio.info, 'length', None)
        info['bitrate'] = getattr(audio.info, 'bitrate', None)
        if audio.tags:
            info['title'] = self._get_tag(audio.tags, ['TIT2', 'TITLE', '\xa9nam'])
            info['artist'] = self._get_tag(audio.tags, ['TPE1', 'ARTIST', '\xa9ART'])
        return info

    def _get_tag(self, tags: Any, keys: List[str]) -> Optional[str]:
        """Get the first available tag from a list of possible keys."""
        for key in keys:
            if key in tags:
                value = tags[key]
                if isinstance(value, list) and value:
                    return str(value[0])
                elif value:
                    return str(value)
        return None
