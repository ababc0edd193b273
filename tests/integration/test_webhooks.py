"""Integration tests for outbox publishing and webhook delivery.

Lifecycle operations write outbound events into the outbox table; the
OutboxDispatcher drains pending rows to webhook endpoints. HTTP calls go
through httpx.MockTransport, so no network access is needed.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.config import WebhookEndpointSettings
from specforge.database.models.outbox import OutboundStatus
from specforge.database.queries import outbox as outbox_queries
from specforge.database.queries import project as project_queries
from specforge.notifications import OutboxDispatcher, WebhookDispatcher, publish_event

if TYPE_CHECKING:
    from integration.conftest import ProjectDriver

SECRET = "whsec-test"


def recording_transport(
    requests: list[httpx.Request], status_code: int = 200
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler)


def make_outbox(
    session_factory: async_sessionmaker[AsyncSession],
    requests: list[httpx.Request],
    status_code: int = 200,
) -> OutboxDispatcher:
    webhooks = WebhookDispatcher(
        [WebhookEndpointSettings(url="https://hooks.test/in", secret=SECRET, retry_count=0)],
        http_client=httpx.AsyncClient(transport=recording_transport(requests, status_code)),
    )
    return OutboxDispatcher(session_factory, webhooks)


class TestPublishEvent:
    @pytest.mark.asyncio
    async def test_payload_carries_project_id(self, db_session: AsyncSession) -> None:
        project = await project_queries.create_project(db_session, "user-1", "PhysioBook")

        event = await publish_event(
            db_session, "spec_project.approved", project.id, {"quality_score": 95}
        )

        assert event.status == OutboundStatus.pending
        assert event.payload == {"project_id": str(project.id), "quality_score": 95}

    @pytest.mark.asyncio
    async def test_event_rolls_back_with_its_transaction(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(RuntimeError):
            async with session_factory() as session, session.begin():
                await publish_event(session, "spec_project.created", None)
                raise RuntimeError("status change failed")

        async with session_factory() as session:
            assert await outbox_queries.list_events(session) == []


class TestOutboxDrain:
    @pytest.mark.asyncio
    async def test_drain_delivers_signed_events(
        self,
        driver: ProjectDriver,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        project_id = await driver.chatting()
        requests: list[httpx.Request] = []
        outbox = make_outbox(session_factory, requests)

        result = await outbox.drain()

        assert (result.claimed, result.delivered, result.failed) == (1, 1, 0)
        request = requests[0]
        body = request.content.decode()
        assert request.headers["X-SpecForge-Event"] == "spec_project.created"
        assert request.headers["X-SpecForge-Signature"] == WebhookDispatcher.sign_payload(
            body, SECRET
        )
        payload = json.loads(body)
        assert payload["data"]["project_id"] == str(project_id)
        assert payload["data"]["name"] == "PhysioBook"

        async with session_factory() as session:
            [event] = await outbox_queries.list_events(session, project_id=project_id)
            assert request.headers["X-SpecForge-Delivery"] == str(event.id)
            assert event.status == OutboundStatus.delivered
            assert event.attempts == 1

        again = await outbox.drain()
        assert again.claimed == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_is_recorded(
        self,
        driver: ProjectDriver,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await driver.chatting()
        requests: list[httpx.Request] = []
        outbox = make_outbox(session_factory, requests, status_code=500)

        result = await outbox.drain()

        assert (result.delivered, result.failed) == (0, 1)
        async with session_factory() as session:
            stats = await outbox_queries.get_outbox_stats(session)
            [event] = await outbox_queries.list_events(session)
        assert stats["failed"] == 1
        assert stats["pending"] == 0
        assert event.last_error == "https://hooks.test/in: HTTP 500"

    @pytest.mark.asyncio
    async def test_batch_size_limits_claims(
        self,
        driver: ProjectDriver,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await driver.researching()
        requests: list[httpx.Request] = []
        outbox = make_outbox(session_factory, requests)

        first = await outbox.drain(batch_size=1)
        rest = await outbox.drain()

        assert first.claimed == 1
        assert rest.claimed == 1
        assert sorted(r.headers["X-SpecForge-Event"] for r in requests) == [
            "spec_project.created",
            "spec_project.research_started",
        ]

    @pytest.mark.asyncio
    async def test_no_endpoints_marks_delivered(
        self,
        driver: ProjectDriver,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await driver.chatting()
        outbox = OutboxDispatcher(session_factory, WebhookDispatcher([]))

        result = await outbox.drain()

        assert result.delivered == 1
