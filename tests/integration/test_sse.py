"""Integration tests for Server-Sent Events.

Covers the streamed chat reply, the research run progress stream and the
global event broadcaster behind ``/events/stream``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from specforge.errors import ProviderUnavailableError
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.orchestrator.progress import ProgressEvent
from specforge.web.routes.events import (
    EventBroadcaster,
    SSEEvent,
    SSEEventType,
    get_broadcaster,
)

if TYPE_CHECKING:
    from conftest import ScriptedAIClient
    from integration.conftest import ProjectDriver


def parse_sse(body: str) -> list[tuple[str, dict[str, Any]]]:
    """Split an SSE body into (event name, decoded data) pairs."""
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        name = None
        data = None
        for line in block.splitlines():
            if line.startswith("event:"):
                name = line.split(":", 1)[1].strip()
            elif line.startswith("data:"):
                data = json.loads(line.split(":", 1)[1].strip())
        if name is not None and data is not None:
            events.append((name, data))
    return events


async def drain_background_tasks(app: FastAPI) -> None:
    if app.state.background_tasks:
        await asyncio.gather(*app.state.background_tasks)


class TestChatStream:
    @pytest.mark.asyncio
    async def test_reply_streams_chunks_then_done(
        self, async_client: AsyncClient, driver: ProjectDriver, scripted_ai: ScriptedAIClient
    ) -> None:
        project_id = await driver.chatting()
        scripted_ai.replies.append("Who books the sessions?")

        async with asyncio.timeout(5):
            response = await async_client.post(
                f"/projects/{project_id}/chat", json={"content": "A booking app"}
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [name for name, _ in events] == ["chunk"] * 4 + ["done"]
        assert "".join(data["content"] for name, data in events[:-1]) == (
            "Who books the sessions? "
        )
        assert events[-1][1] == {
            "content": "Who books the sessions? ",
            "ready_for_research": False,
            "status": "chatting",
        }

    @pytest.mark.asyncio
    async def test_ready_reply_reports_researching(
        self, async_client: AsyncClient, driver: ProjectDriver, scripted_ai: ScriptedAIClient
    ) -> None:
        project_id = await driver.chatting()
        scripted_ai.replies.append("I have enough context to begin research.")

        async with asyncio.timeout(5):
            response = await async_client.post(
                f"/projects/{project_id}/chat", json={"content": "That is everything"}
            )

        done = parse_sse(response.text)[-1][1]
        assert done["ready_for_research"] is True
        assert done["status"] == "researching"

    @pytest.mark.asyncio
    async def test_not_chatting_returns_json_error(
        self, async_client: AsyncClient, driver: ProjectDriver
    ) -> None:
        project_id = await driver.researching()

        response = await async_client.post(
            f"/projects/{project_id}/chat", json={"content": "hello?"}
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "NOT_READY"

    @pytest.mark.asyncio
    async def test_provider_failure_before_first_chunk(
        self, async_client: AsyncClient, driver: ProjectDriver, scripted_ai: ScriptedAIClient
    ) -> None:
        project_id = await driver.chatting()
        scripted_ai.replies.extend([ProviderUnavailableError("down")] * 2)

        response = await async_client.post(
            f"/projects/{project_id}/chat", json={"content": "hello"}
        )

        assert response.status_code == 503


class TestResearchStream:
    @pytest.mark.asyncio
    async def test_run_streams_progress_until_complete(
        self,
        app: FastAPI,
        async_client: AsyncClient,
        driver: ProjectDriver,
        script_research: Any,
    ) -> None:
        project_id = await driver.researching()
        script_research()

        async with asyncio.timeout(5):
            response = await async_client.post(f"/projects/{project_id}/research/run")
            await drain_background_tasks(app)

        assert response.status_code == 200
        events = parse_sse(response.text)
        names = [name for name, _ in events]
        assert names[-1] == "complete"
        assert set(names[:-1]) == {"progress"}
        assert [data["status"] for _, data in events[:2]] == ["started", "completed"]
        assert events[-1][1]["data"]["novel_category"] is False

        research = await async_client.get(f"/projects/{project_id}/research")
        assert research.json()["status"] == "complete"

    @pytest.mark.asyncio
    async def test_run_reports_phase_failure(
        self,
        app: FastAPI,
        async_client: AsyncClient,
        driver: ProjectDriver,
        script_research: Any,
        scripted_ai: ScriptedAIClient,
    ) -> None:
        project_id = await driver.researching()
        script_research()
        scripted_ai.structured["FeatureDecomposition"] = [ProviderUnavailableError("down")]

        async with asyncio.timeout(5):
            response = await async_client.post(f"/projects/{project_id}/research/run")
            await drain_background_tasks(app)

        name, data = parse_sse(response.text)[-1]
        assert name == "error"
        assert data["status"] == "failed"
        assert data["data"]["error_code"] == "PROVIDER_UNAVAILABLE"

        research = await async_client.get(f"/projects/{project_id}/research")
        assert research.json()["failed_phase"] == 2
        assert research.json()["domain_analysis"] is not None

        again = await async_client.post(f"/projects/{project_id}/research/run")
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_run_requires_researching(
        self, async_client: AsyncClient, driver: ProjectDriver
    ) -> None:
        project_id = await driver.chatting()
        response = await async_client.post(f"/projects/{project_id}/research/run")
        assert response.status_code == 409


class TestBroadcaster:
    @pytest.mark.asyncio
    async def test_project_status_event(self) -> None:
        broadcaster = get_broadcaster()
        received = []

        async def subscriber() -> None:
            async for event in broadcaster.subscribe():
                received.append(event)
                break

        task = asyncio.create_task(subscriber())
        await asyncio.sleep(0.05)

        before = datetime.now(timezone.utc)
        await broadcaster.broadcast_project_status("p-1", "review", {"quality_score": 95})
        await asyncio.wait_for(task, timeout=2)

        event = received[0]
        assert event.event == SSEEventType.PROJECT_STATUS
        assert event.data["project_id"] == "p-1"
        assert event.data["status"] == "review"
        assert event.data["details"] == {"quality_score": 95}
        assert datetime.fromisoformat(event.data["timestamp"]) >= before

    @pytest.mark.asyncio
    async def test_progress_mirrored_to_all_clients(self) -> None:
        broadcaster = EventBroadcaster()
        received: list[int] = []

        async def subscriber(client: int) -> None:
            async for event in broadcaster.subscribe():
                assert event.event == SSEEventType.PROGRESS
                assert event.data["stage"] == "research"
                received.append(client)
                break

        tasks = [asyncio.create_task(subscriber(i)) for i in range(3)]
        await asyncio.sleep(0.05)
        assert broadcaster.client_count == 3

        await broadcaster.broadcast_progress(
            ProgressEvent(
                project_id="p-1", stage="research", status="completed", message="Phase 1"
            )
        )
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)

        assert sorted(received) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_shutdown_ends_streams(self) -> None:
        broadcaster = EventBroadcaster()

        async def subscriber() -> int:
            count = 0
            async for _ in broadcaster.subscribe():
                count += 1
            return count

        task = asyncio.create_task(subscriber())
        await asyncio.sleep(0.05)
        await broadcaster.shutdown()

        assert await asyncio.wait_for(task, timeout=2) == 0

    def test_event_to_dict(self) -> None:
        event = SSEEvent(
            event=SSEEventType.SYSTEM, data={"message": "restarting"}, id="7", retry=3000
        )
        assert event.to_dict() == {
            "event": "system",
            "data": '{"message": "restarting"}',
            "id": "7",
            "retry": 3000,
        }

    @pytest.mark.asyncio
    async def test_controller_progress_reaches_broadcaster(
        self,
        controller: LifecycleController,
        driver: ProjectDriver,
        script_research: Any,
    ) -> None:
        broadcaster = get_broadcaster()
        controller.progress_listener = broadcaster.broadcast_progress
        project_id = await driver.researching()
        script_research()
        received = []

        async def subscriber() -> None:
            async for event in broadcaster.subscribe():
                received.append(event.data)
                if event.data.get("status") == "complete":
                    break

        task = asyncio.create_task(subscriber())
        await asyncio.sleep(0.05)

        channel = controller.new_progress_channel(project_id)
        await controller.run_research(project_id, progress=channel)
        await asyncio.wait_for(task, timeout=2)

        assert received[0]["project_id"] == str(project_id)
        assert received[-1]["status"] == "complete"
