"""Outbox drain: delivers pending outbound events to webhooks.

Delivery runs outside any lifecycle operation. A failed delivery marks the
row ``failed`` with the error; it never reaches the code path that
produced the event.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.database.models.base import as_utc
from specforge.database.models.outbox import OutboundEvent
from specforge.database.queries import outbox as outbox_queries
from specforge.notifications.webhooks import WebhookDispatcher

logger = structlog.get_logger(__name__)


@dataclass
class DrainResult:
    """Counts from one drain pass."""

    claimed: int = 0
    delivered: int = 0
    failed: int = 0


class OutboxDispatcher:
    """Claims pending outbox rows and hands them to the webhook dispatcher.

    Attributes:
        session_factory: Async session factory
        webhooks: Webhook dispatcher used for delivery
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        webhooks: WebhookDispatcher,
    ) -> None:
        self.session_factory = session_factory
        self.webhooks = webhooks
        self.logger = logger.bind(component="OutboxDispatcher")

    async def drain(self, batch_size: int = 50) -> DrainResult:
        """Deliver up to ``batch_size`` pending events, oldest first.

        Args:
            batch_size: Maximum events claimed in this pass.

        Returns:
            DrainResult with claimed, delivered and failed counts.
        """
        async with self.session_factory() as session, session.begin():
            events = await outbox_queries.get_pending_events(session, limit=batch_size)
            claimed = [
                (event.id, event.event_type, dict(event.payload), event.created_at)
                for event in events
            ]

        result = DrainResult(claimed=len(claimed))
        for event_id, event_type, payload, created_at in claimed:
            errors = await self.webhooks.send(
                event_type,
                str(event_id),
                payload,
                occurred_at=as_utc(created_at) if created_at else None,
            )
            async with self.session_factory() as session, session.begin():
                event = await session.get(OutboundEvent, event_id)
                if event is None:
                    continue
                if errors:
                    await outbox_queries.mark_failed(session, event, "; ".join(errors))
                    result.failed += 1
                else:
                    await outbox_queries.mark_delivered(session, event)
                    result.delivered += 1

        self.logger.info(
            "outbox_drained",
            claimed=result.claimed,
            delivered=result.delivered,
            failed=result.failed,
        )
        return result
