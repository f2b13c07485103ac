"""Tracklist parsing.

Accepted inputs:
- JSON: a list of songs, or an object with ``songs`` or ``track_list``
- CSV: a header row naming ``title`` and ``artist`` columns
- plain text: one ``Artist - Title`` per line; numbering and ``#`` comments are ignored
"""

from __future__ import annotations

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List

from .jobs.models import Track

logger = logging.getLogger("relay.tracklist")

_NUMBERING = re.compile(r"^\s*(\d+[.)]|\d+\s*-\s+|\[\d{1,2}:\d{2}(?::\d{2})?\])\s*")
_SEPARATORS = (" - ", " – ", " — ", " -- ")


class TracklistError(Exception):
    """The tracklist could not be read or contained no songs."""


class TracklistParser:
    def parse(self, path: Path) -> Dict[str, List[Dict[str, str]]]:
        songs = self.parse_tracks(path)
        return {"songs": [s.to_dict() for s in songs]}

    def parse_tracks(self, path: Path) -> List[Track]:
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise TracklistError(f"Could not read tracklist {path.name}: {e}") from e

        suffix = path.suffix.lower()
        if suffix == ".json":
            songs = self._parse_json(text)
        elif suffix == ".csv":
            songs = self._parse_csv(text)
        else:
            songs = self._parse_lines(text)

        if not songs:
            raise TracklistError(f"No songs found in {path.name}")
        logger.info(f"Parsed {len(songs)} songs from {path.name}")
        return songs

    def _parse_json(self, text: str) -> List[Track]:
        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as e:
            raise TracklistError(f"Invalid tracklist JSON: {e}") from e
        if isinstance(data, dict):
            data = data.get("songs") or data.get("track_list") or []
        if not isinstance(data, list):
            raise TracklistError("Tracklist JSON must be a list of songs")
        songs = []
        for item in data:
            if isinstance(item, dict):
                title = str(item.get("title") or "").strip()
                artist = str(item.get("artist") or "").strip()
                if title or artist:
                    songs.append(Track(title=title, artist=artist))
            elif isinstance(item, str):
                track = self._parse_line(item)
                if track:
                    songs.append(track)
        return songs

    def _parse_csv(self, text: str) -> List[Track]:
        reader = csv.DictReader(text.splitlines())
        if not reader.fieldnames:
            return []
        columns = {name.strip().lower(): name for name in reader.fieldnames if name}
        if "title" not in columns:
            raise TracklistError("Tracklist CSV needs a 'title' column")
        title_col = columns["title"]
        artist_col = columns.get("artist")
        songs = []
        for row in reader:
            title = (row.get(title_col) or "").strip()
            artist = (row.get(artist_col) or "").strip() if artist_col else ""
            if title or artist:
                songs.append(Track(title=title, artist=artist))
        return songs

    def _parse_lines(self, text: str) -> List[Track]:
        songs = []
        for line in text.splitlines():
            track = self._parse_line(line)
            if track:
                songs.append(track)
        return songs

    def _parse_line(self, line: str):
        line = line.strip()
        if not line or line.startswith("#"):
            return None
        line = _NUMBERING.sub("", line).strip()
        for sep in _SEPARATORS:
            if sep in line:
                artist, title = line.split(sep, 1)
                return Track(title=title.strip(), artist=artist.strip())
        return Track(title=line, artist="")
