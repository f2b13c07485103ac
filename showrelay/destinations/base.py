"""Destination adapter interface and result type.

An adapter owns the whole conversation with one publishing platform: it projects
the shared job metadata into the platform's payload, drives the client calls
under its own retry policy, and always answers with a DestinationResult.
"""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..jobs.models import JobInputs, utc_now_iso
from ..retry import RetryPolicy


@dataclass
class DestinationResult:
    success: bool
    id: Optional[str] = None
    path: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    step: Optional[str] = None
    note: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def failure(cls, error: str, step: Optional[str] = None) -> "DestinationResult":
        return cls(success=False, error=error, step=step)


class DestinationError(Exception):
    """A destination step failed. ``step`` names the client call that failed."""

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step


def slugify_owner(owner: str) -> str:
    return re.sub(r"\s+", "_", (owner or "unknown_dj").strip().lower())


class DestinationAdapter(ABC):
    """Base class for per-platform adapters.

    Subclasses implement build_metadata and _publish; publish wraps _publish so
    that callers only ever see a DestinationResult.
    """

    name: str = ""
    policy: RetryPolicy = RetryPolicy()

    def __init__(self, client, sleep: Callable[[float], None] = time.sleep, policy: Optional[RetryPolicy] = None):
        self.client = client
        self.sleep = sleep
        if policy is not None:
            self.policy = policy
        self.logger = logging.getLogger(f"relay.{self.name}")

    @abstractmethod
    def build_metadata(self, inputs: JobInputs) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def _publish(self, audio_path: Path, metadata: Dict[str, Any]) -> DestinationResult:
        raise NotImplementedError

    def publish(self, audio_path: Path, metadata: Dict[str, Any]) -> DestinationResult:
        try:
            return self._publish(Path(audio_path), metadata)
        except DestinationError as e:
            self.logger.error(f"{self.name} upload failed for '{metadata.get('title')}' at {e.step}: {e}")
            return DestinationResult.failure(str(e), step=e.step)
        except Exception as e:
            self.logger.exception(f"{self.name} adapter crashed for '{metadata.get('title')}'")
            return DestinationResult.failure(str(e) or e.__class__.__name__, step="unexpected")

    def _call(self, step: str, title: str, func: Callable[..., Dict[str, Any]], *args) -> Dict[str, Any]:
        """Invoke one client call; a raised error or a ``success: False`` response becomes DestinationError."""
        try:
            response = func(*args)
        except DestinationError:
            raise
        except Exception as e:
            self.logger.warning(f"{self.name} step '{step}' failed for '{title}': {e}")
            raise DestinationError(step, str(e) or e.__class__.__name__) from e
        if not response or not response.get("success"):
            error = (response or {}).get("error") or f"{step} failed"
            self.logger.warning(f"{self.name} step '{step}' failed for '{title}': {error}")
            raise DestinationError(step, error)
        return response

    def _on_retry(self, attempt: int, error: Exception, delay: float) -> None:
        self.logger.info(
            f"{self.name} operation failed, retrying in {delay:.1f}s ({attempt}/{self.policy.max_retries}): {error}"
        )
