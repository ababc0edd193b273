"""Unit tests for exponential backoff."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from specforge.ai.backoff import ExponentialBackoff
from specforge.config import BackoffSettings


def _backoff(**overrides: object) -> ExponentialBackoff:
    settings = {"initial_delay_seconds": 1.0, "max_delay_seconds": 30.0, "jitter": False}
    settings.update(overrides)
    return ExponentialBackoff(BackoffSettings(**settings))


class TestNextDelay:
    def test_grows_exponentially(self) -> None:
        backoff = _backoff()
        assert [backoff.next_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self) -> None:
        assert _backoff(max_delay_seconds=5.0).next_delay(10) == 5.0

    def test_retry_after_takes_precedence_when_longer(self) -> None:
        assert _backoff().next_delay(0, retry_after=7.0) == 7.0

    def test_retry_after_ignored_when_shorter(self) -> None:
        assert _backoff().next_delay(3, retry_after=1.0) == 8.0

    def test_retry_after_capped_at_max_delay(self) -> None:
        assert _backoff(max_delay_seconds=10.0).next_delay(0, retry_after=120.0) == 10.0

    def test_jitter_stays_within_half_to_full(self) -> None:
        backoff = _backoff(jitter=True)
        for _ in range(50):
            delay = backoff.next_delay(2)
            assert 2.0 <= delay <= 4.0


@pytest.mark.asyncio
async def test_wait_sleeps_for_delay() -> None:
    backoff = _backoff()
    with patch("specforge.ai.backoff.asyncio.sleep", new=AsyncMock()) as sleep:
        waited = await backoff.wait(1)
    assert waited == 2.0
    sleep.assert_awaited_once_with(2.0)
