"""Progress event channel for research and generation runs.

Events are delivered in emission order, at least once, to a single
consumer through an asyncio queue. The channel also keeps the full
history so a late consumer can replay it, and forwards each event to an
optional listener (the web layer uses this to mirror events onto the
global SSE broadcaster).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

ProgressListener = Callable[["ProgressEvent"], Awaitable[None]]


class ProgressEvent(BaseModel):
    """One discrete progress notification.

    Attributes:
        project_id: Project the run belongs to
        stage: "research" or "generation"
        phase_number: Research phase (1-4); 0 for run-level events
        status: started, completed, skipped, failed, complete or error
        message: Human-readable progress message
        percent: Progress indicator, phase_number * 25 for research
        terminal: Last event of the run
        data: Extra structured data (counts, scores, artifact ids)
        timestamp: Emission time
    """

    project_id: str
    stage: Literal["research", "generation"]
    phase_number: int = Field(default=0, ge=0, le=4)
    status: str
    message: str
    percent: int = Field(default=0, ge=0, le=100)
    terminal: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class ProgressChannel:
    """Ordered, replayable stream of ProgressEvent for one run.

    Example:
        >>> channel = ProgressChannel(project_id)
        >>> task = asyncio.create_task(controller.run_research(project_id, progress=channel))
        >>> async for event in channel.events():
        ...     print(event.percent, event.message)
    """

    def __init__(self, project_id: str, listener: ProgressListener | None = None) -> None:
        self.project_id = project_id
        self.history: list[ProgressEvent] = []
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._listener = listener
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: ProgressEvent) -> None:
        """Publish an event; a terminal event closes the channel."""
        if self._closed:
            logger.warning(
                "progress_emit_after_close",
                project_id=self.project_id,
                status=event.status,
            )
            return

        self.history.append(event)
        await self._queue.put(event)
        if self._listener is not None:
            await self._listener(event)

        if event.terminal:
            await self.close()

    async def close(self) -> None:
        """Signal end of stream to the consumer."""
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until the channel closes."""
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
