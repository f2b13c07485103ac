"""Bounded retry with exponential backoff.

Adapters describe how they recover from a failure with a RetryPolicy; the loop
itself lives here once. ``is_retryable`` both gates another attempt and may
mutate state captured by the operation (e.g. simplify the payload) before the
next try.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger("relay.retry")


def _always_retryable(error: Exception) -> bool:
    return True


@dataclass
class RetryPolicy:
    """Retry limits and hooks. Delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    is_retryable: Callable[[Exception], bool] = _always_retryable
    on_retry: Optional[Callable[[int, Exception, float], None]] = None

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * (self.backoff_factor ** attempt), self.max_delay)

    def replace(self, **overrides) -> "RetryPolicy":
        return dataclasses.replace(self, **overrides)


def retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    The error from the final attempt is re-raised unchanged.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as error:
            if attempt >= policy.max_retries or not policy.is_retryable(error):
                raise
            delay = policy.delay_for(attempt)
            if policy.on_retry is not None:
                policy.on_retry(attempt + 1, error, delay)
            else:
                logger.info(f"Retrying in {delay:.1f}s ({attempt + 1}/{policy.max_retries}) after: {error}")
            sleep(delay)
            attempt += 1
