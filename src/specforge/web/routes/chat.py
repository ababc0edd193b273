"""Conversational endpoint for projects in ``chatting``.

``POST /projects/{id}/chat`` streams the assistant reply as Server-Sent
Events:

    event: chunk   data: {"content": "..."}
    event: done    data: {"content": "<full reply>", "ready_for_research": bool,
                          "status": "<project status>"}

The first chunk is awaited before the response starts, so state errors
(project not chatting) and provider failures before any output are
returned as regular JSON error responses.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import ChatEvent, LifecycleController
from specforge.web.dependencies import get_controller
from specforge.web.routes.events import get_broadcaster

logger = get_logger(__name__)


class ChatTurn(BaseModel):
    content: str = Field(..., min_length=1)


def _to_sse(event: ChatEvent) -> dict[str, Any]:
    data: dict[str, Any] = {"content": event.content}
    if event.type == "done":
        data["ready_for_research"] = event.ready_for_research
        data["status"] = event.status
    return {"event": event.type, "data": json.dumps(data)}


def create_chat_router() -> APIRouter:
    """Create the chat router.

    Routes:
        POST /projects/{project_id}/chat - Stream an assistant reply
    """
    router = APIRouter(prefix="/projects", tags=["chat"])

    @router.post("/{project_id}/chat")
    async def chat(
        project_id: UUID,
        body: ChatTurn,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> EventSourceResponse:
        stream = controller.submit_user_turn(project_id, body.content)
        first = await anext(stream)

        async def event_generator() -> AsyncIterator[dict[str, Any]]:
            event = first
            try:
                while True:
                    yield _to_sse(event)
                    if event.type == "done":
                        if event.ready_for_research:
                            await get_broadcaster().broadcast_project_status(
                                str(project_id), event.status or "researching"
                            )
                        break
                    event = await anext(stream)
            finally:
                await stream.aclose()

        return EventSourceResponse(event_generator())

    return router
