"""Unit tests for the progress channel and readiness predicate."""

from __future__ import annotations

import asyncio

import pytest

from specforge.orchestrator.progress import ProgressChannel, ProgressEvent
from specforge.orchestrator.readiness import PhraseReadiness, ReadinessPredicate


def _event(phase: int, status: str = "completed", terminal: bool = False) -> ProgressEvent:
    return ProgressEvent(
        project_id="p-1",
        stage="research",
        phase_number=phase,
        status=status,
        message=f"Phase {phase} {status}",
        percent=phase * 25,
        terminal=terminal,
    )


@pytest.mark.asyncio
async def test_events_delivered_in_order_until_terminal() -> None:
    channel = ProgressChannel("p-1")

    async def produce() -> None:
        for phase in range(1, 5):
            await channel.emit(_event(phase))
        await channel.emit(_event(4, status="complete", terminal=True))

    producer = asyncio.create_task(produce())
    received = [event async for event in channel.events()]
    await producer

    assert [e.phase_number for e in received] == [1, 2, 3, 4, 4]
    assert received[-1].terminal
    assert channel.closed
    assert channel.history == received


@pytest.mark.asyncio
async def test_emit_after_close_is_dropped() -> None:
    channel = ProgressChannel("p-1")
    await channel.emit(_event(1, status="failed", terminal=True))
    await channel.emit(_event(2))

    assert [e.phase_number for e in channel.history] == [1]
    assert [e async for e in channel.events()] == channel.history


@pytest.mark.asyncio
async def test_listener_receives_every_event() -> None:
    mirrored: list[ProgressEvent] = []

    async def listener(event: ProgressEvent) -> None:
        mirrored.append(event)

    channel = ProgressChannel("p-1", listener=listener)
    await channel.emit(_event(1))
    await channel.emit(_event(2, terminal=True))

    assert [e.phase_number for e in mirrored] == [1, 2]


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    channel = ProgressChannel("p-1")
    await channel.close()
    await channel.close()
    assert [e async for e in channel.events()] == []


def test_percent_bounds() -> None:
    with pytest.raises(ValueError):
        ProgressEvent(project_id="p", stage="research", status="x", message="m", percent=120)


class TestPhraseReadiness:
    def test_matches_case_insensitively(self) -> None:
        readiness = PhraseReadiness("i have enough context to begin research")
        assert readiness.is_ready_for_research(
            "Great, thanks! I Have Enough Context To Begin Research."
        )

    def test_no_match(self) -> None:
        readiness = PhraseReadiness("i have enough context to begin research")
        assert not readiness.is_ready_for_research("Who are your main users?")

    def test_empty_phrase_rejected(self) -> None:
        with pytest.raises(ValueError):
            PhraseReadiness("   ")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(PhraseReadiness("ready"), ReadinessPredicate)
