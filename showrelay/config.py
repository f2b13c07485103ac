"""Runtime configuration for showrelay.

All settings come from RELAY_* environment variables with sensible defaults so
the CLI, the API server and the per-job worker processes resolve the same
directories. Settings are plain data and can be handed to a child process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from rich.logging import RichHandler


KNOWN_DESTINATIONS = ("azuracast", "mixcloud", "soundcloud")


def parse_destinations(value) -> List[str]:
    """Normalize a destination list given as a list or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        return []
    out: List[str] = []
    for item in items:
        name = str(item).strip().lower()
        if name and name not in out:
            out.append(name)
    return out


def parse_mock_failures(value: Optional[str]) -> Dict[str, List[str]]:
    """Parse 'mixcloud.upload=track list invalid;azuracast.metadata=timeout'.

    Keys are '<destination>.<endpoint>'; repeating a key queues several failures.
    """
    failures: Dict[str, List[str]] = {}
    if not value:
        return failures
    for chunk in value.split(";"):
        if "=" not in chunk:
            continue
        key, message = chunk.split("=", 1)
        key = key.strip().lower()
        if key:
            failures.setdefault(key, []).append(message.strip())
    return failures


@dataclass
class Settings:
    received_dir: Path = field(default_factory=lambda: Path.cwd() / "received-files")
    archive_dir: Path = field(default_factory=lambda: Path.cwd() / "archive")
    log_dir: Optional[Path] = None
    max_workers: int = 2
    isolation: str = "process"
    start_method: str = "spawn"
    default_destinations: List[str] = field(default_factory=lambda: list(KNOWN_DESTINATIONS))
    station_id: str = "2"
    placeholder_artwork: str = "placeholder-artwork.jpg"
    poll_seconds: int = 10
    stale_processing_seconds: int = 3600
    mock_failures: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        log_dir = env.get("RELAY_LOG_DIR")
        isolation = (env.get("RELAY_ISOLATION") or "process").lower()
        if isolation not in ("process", "thread"):
            raise ValueError(f"Unsupported isolation mode: {isolation}")
        return cls(
            received_dir=Path(env.get("RELAY_RECEIVED_DIR", str(Path.cwd() / "received-files"))),
            archive_dir=Path(env.get("RELAY_ARCHIVE_DIR", str(Path.cwd() / "archive"))),
            log_dir=Path(log_dir) if log_dir else None,
            max_workers=int(env.get("RELAY_MAX_WORKERS", "2")),
            isolation=isolation,
            start_method=env.get("RELAY_START_METHOD", "spawn"),
            default_destinations=parse_destinations(env.get("RELAY_DESTINATIONS")) or list(KNOWN_DESTINATIONS),
            station_id=env.get("RELAY_STATION_ID", "2"),
            placeholder_artwork=env.get("RELAY_PLACEHOLDER_ARTWORK", "placeholder-artwork.jpg"),
            poll_seconds=int(env.get("RELAY_POLL_SECONDS", "10")),
            stale_processing_seconds=int(env.get("RELAY_STALE_SECONDS", "3600")),
            mock_failures=parse_mock_failures(env.get("RELAY_MOCK_FAILURES")),
        )

    def ensure_dirs(self) -> None:
        self.received_dir.mkdir(parents=True, exist_ok=True)
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)


def configure_logging(log_dir: Optional[Path] = None, name: str = "showrelay", level: int = logging.INFO) -> None:
    """Console logging through rich, plus <log_dir>/<name>.log when a log dir is set."""
    handlers: List[logging.Handler] = [RichHandler(rich_tracebacks=True, show_path=False)]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(Path(log_dir) / f"{name}.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        handlers.append(file_handler)
    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)
