"""Server-Sent Events (SSE) endpoint for real-time updates.

Provides a streaming endpoint that broadcasts research and generation
progress and project status changes to every connected client. Per-run
progress streams (``/projects/{id}/research/run``) carry the same events
for a single project; this stream is the global mirror.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from specforge.logging import get_logger
from specforge.orchestrator.progress import ProgressEvent

logger = get_logger(__name__)


class SSEEventType(str, Enum):
    """Types of SSE events."""

    PROGRESS = "progress"
    PROJECT_STATUS = "project_status"
    SYSTEM = "system"


@dataclass
class SSEEvent:
    """Server-Sent Event data structure."""

    event: SSEEventType
    data: dict[str, Any]
    id: str | None = None
    retry: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary format for SSE transmission."""
        result: dict[str, Any] = {
            "event": self.event.value,
            "data": json.dumps(self.data),
        }
        if self.id is not None:
            result["id"] = self.id
        if self.retry is not None:
            result["retry"] = self.retry
        return result


class EventBroadcaster:
    """Manages SSE client connections and event broadcasting.

    Maintains a list of connected client queues and broadcasts events to all
    subscribers. Handles client connection/disconnection lifecycle.
    """

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue[SSEEvent | None]] = []
        self._lock = asyncio.Lock()
        self.logger = get_logger(__name__)

    @property
    def client_count(self) -> int:
        return len(self._queues)

    async def subscribe(self) -> AsyncIterator[SSEEvent]:
        """Subscribe to events, yields events as they arrive.

        Yields:
            SSEEvent objects as they are broadcast to subscribers.
        """
        queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue()
        async with self._lock:
            self._queues.append(queue)
        self.logger.info("sse_client_connected", total_clients=len(self._queues))
        try:
            while True:
                event = await queue.get()
                if event is None:  # Shutdown signal
                    break
                yield event
        finally:
            async with self._lock:
                self._queues.remove(queue)
            self.logger.info("sse_client_disconnected", total_clients=len(self._queues))

    async def broadcast(self, event: SSEEvent) -> None:
        """Broadcast event to all connected clients.

        Args:
            event: The SSEEvent to broadcast to all subscribers.
        """
        async with self._lock:
            for queue in self._queues:
                await queue.put(event)
        self.logger.debug(
            "sse_event_broadcast",
            event_type=event.event.value,
            client_count=len(self._queues),
        )

    async def shutdown(self) -> None:
        """Signal every subscriber to end its stream."""
        async with self._lock:
            for queue in self._queues:
                await queue.put(None)

    async def broadcast_progress(self, event: ProgressEvent) -> None:
        """Mirror a pipeline progress event to all clients.

        Used as the ProgressChannel listener.
        """
        await self.broadcast(
            SSEEvent(event=SSEEventType.PROGRESS, data=event.model_dump(mode="json"))
        )

    async def broadcast_project_status(
        self, project_id: str, status: str, details: dict[str, Any] | None = None
    ) -> None:
        """Broadcast a project status change.

        Args:
            project_id: ID of the project that changed status.
            status: New status of the project.
            details: Optional additional details about the change.
        """
        data: dict[str, Any] = {
            "project_id": project_id,
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            data["details"] = details
        await self.broadcast(SSEEvent(event=SSEEventType.PROJECT_STATUS, data=data))


# Global broadcaster instance
_broadcaster: EventBroadcaster | None = None


def get_broadcaster() -> EventBroadcaster:
    """Get or create the global event broadcaster.

    Returns:
        The singleton EventBroadcaster instance.
    """
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = EventBroadcaster()
    return _broadcaster


def create_events_router() -> APIRouter:
    """Create the events router with SSE streaming endpoint.

    Returns:
        FastAPI router configured with the /events/stream endpoint.
    """
    router = APIRouter(prefix="/events", tags=["events"])

    @router.get("/stream")
    async def stream_events(request: Request) -> EventSourceResponse:
        """Stream server-sent events to connected clients.

        Establishes a long-lived connection and streams events as they occur.
        Connection is automatically cleaned up when the client disconnects.
        """
        broadcaster = get_broadcaster()

        async def event_generator() -> AsyncIterator[dict[str, Any]]:
            async for event in broadcaster.subscribe():
                if await request.is_disconnected():
                    break
                yield event.to_dict()

        return EventSourceResponse(event_generator())

    return router
