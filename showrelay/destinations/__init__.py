"""Publishing destinations and their adapters."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from .azuracast import AzuraCastAdapter
from .base import DestinationAdapter, DestinationError, DestinationResult
from .mixcloud import MixcloudAdapter
from .mocks import AzuraCastMockClient, MixcloudMockClient, MockDestinationClient, SoundCloudMockClient
from .soundcloud import SoundCloudAdapter


def _failures_for(settings, name: str) -> Dict[str, list]:
    prefix = f"{name}."
    return {k[len(prefix):]: list(v) for k, v in settings.mock_failures.items() if k.startswith(prefix)}


def build_adapters(
    settings,
    clients: Optional[Dict[str, Any]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, DestinationAdapter]:
    """Create one adapter per known destination.

    ``clients`` overrides the client for a destination; otherwise the mock
    client is used, scripted with any failures from ``settings.mock_failures``.
    """
    clients = dict(clients or {})
    azuracast = clients.get("azuracast") or AzuraCastMockClient(
        station_id=settings.station_id, failures=_failures_for(settings, "azuracast")
    )
    mixcloud = clients.get("mixcloud") or MixcloudMockClient(failures=_failures_for(settings, "mixcloud"))
    soundcloud = clients.get("soundcloud") or SoundCloudMockClient(failures=_failures_for(settings, "soundcloud"))
    return {
        "azuracast": AzuraCastAdapter(azuracast, sleep=sleep),
        "mixcloud": MixcloudAdapter(mixcloud, sleep=sleep),
        "soundcloud": SoundCloudAdapter(soundcloud, placeholder_artwork=settings.placeholder_artwork, sleep=sleep),
    }


__all__ = [
    "AzuraCastAdapter",
    "AzuraCastMockClient",
    "DestinationAdapter",
    "DestinationError",
    "DestinationResult",
    "MixcloudAdapter",
    "MixcloudMockClient",
    "MockDestinationClient",
    "SoundCloudAdapter",
    "SoundCloudMockClient",
    "build_adapters",
]
