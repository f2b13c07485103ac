"""Broadcast time helpers. Broadcast dates are submitted in UTC; destinations show CET/CEST."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Tuple
from zoneinfo import ZoneInfo


BROADCAST_TZ = ZoneInfo("Europe/Berlin")


def utc_to_cet(broadcast_date: str, broadcast_time: str = "") -> Tuple[str, str]:
    """Convert a UTC date and HH:MM[:SS] time into (YYYY-MM-DD, HH:MM:SS) in Europe/Berlin.

    Unparseable input falls back to today's UTC date and the time unchanged.
    """
    time_part = broadcast_time or "00:00:00"
    if len(time_part.split(":")) == 2:
        time_part += ":00"
    try:
        utc = datetime.fromisoformat(f"{broadcast_date}T{time_part}").replace(tzinfo=timezone.utc)
    except ValueError:
        return datetime.now(timezone.utc).date().isoformat(), broadcast_time
    local = utc.astimezone(BROADCAST_TZ)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M:%S")


def time_to_minutes(value: str) -> int:
    """Minutes since midnight for 'HH:MM' or 'HH:MM:SS'."""
    parts = (value or "").split(":")
    try:
        hours = int(parts[0]) if parts[0] else 0
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return 0
    return hours * 60 + minutes


def end_time_minutes(start_time: str, duration_minutes: int = 60) -> int:
    return (time_to_minutes(start_time) + duration_minutes) % (24 * 60)
