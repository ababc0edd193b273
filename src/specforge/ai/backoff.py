"""Exponential backoff for transient AI provider failures.

Delays follow min(initial * multiplier^attempt, max_delay), optionally
scaled by a jitter factor in [0.5, 1.0). A provider-supplied Retry-After
value takes precedence when it is longer than the computed delay.
"""

from __future__ import annotations

import asyncio
import random

import structlog

from specforge.config import BackoffSettings

logger = structlog.get_logger(__name__)


class ExponentialBackoff:
    """Exponential backoff with jitter.

    Args:
        config: Backoff settings from AIConfig
    """

    def __init__(self, config: BackoffSettings) -> None:
        self._config = config

    def next_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Calculate the delay before retry number ``attempt`` (0-indexed).

        Args:
            attempt: Attempt number (0-indexed)
            retry_after: Optional provider-requested minimum wait

        Returns:
            Delay in seconds
        """
        delay = self._config.initial_delay_seconds * (self._config.multiplier**attempt)
        delay = min(delay, self._config.max_delay_seconds)

        if self._config.jitter:
            delay *= 0.5 + random.random() * 0.5

        if retry_after is not None:
            delay = max(delay, min(retry_after, self._config.max_delay_seconds))

        return delay

    async def wait(self, attempt: int, retry_after: float | None = None) -> float:
        """Sleep for the calculated delay.

        Returns:
            Actual wait time in seconds
        """
        delay = self.next_delay(attempt, retry_after)
        logger.info("backoff_waiting", attempt=attempt, delay=round(delay, 3))
        await asyncio.sleep(delay)
        return delay
