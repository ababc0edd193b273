"""Outbound event queue query functions for SpecForge.

Provides async functions for managing the notification outbox: enqueueing
events inside the caller's transaction, fetching pending events, marking
delivery results and retrieving queue statistics.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.base import utcnow
from specforge.database.models.outbox import OutboundEvent, OutboundStatus

logger = structlog.get_logger(__name__)


async def enqueue_event(
    session: AsyncSession,
    event_type: str,
    project_id: UUID | None,
    payload: dict[str, Any],
) -> OutboundEvent:
    """Enqueue an outbound event for asynchronous delivery.

    Args:
        session: Active async database session.
        event_type: Dotted event name.
        project_id: Project the event concerns.
        payload: Event data (JSON-serializable).

    Returns:
        The newly created OutboundEvent instance.
    """
    event = OutboundEvent(
        event_type=event_type,
        project_id=project_id,
        payload=payload,
        status=OutboundStatus.pending,
        attempts=0,
    )
    session.add(event)
    await session.flush()

    logger.debug(
        "outbound_event_enqueued",
        event_id=str(event.id),
        event_type=event_type,
        project_id=str(project_id) if project_id else None,
    )
    return event


async def get_pending_events(
    session: AsyncSession,
    limit: int = 100,
) -> list[OutboundEvent]:
    """Get pending outbound events, oldest first.

    Args:
        session: Active async database session.
        limit: Maximum number of events to retrieve.

    Returns:
        List of pending OutboundEvent instances.
    """
    stmt = (
        select(OutboundEvent)
        .where(OutboundEvent.status == OutboundStatus.pending)
        .order_by(OutboundEvent.created_at.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_events(
    session: AsyncSession,
    project_id: UUID | None = None,
    event_type: str | None = None,
) -> list[OutboundEvent]:
    """List outbound events, optionally filtered by project and type."""
    stmt = select(OutboundEvent)
    if project_id is not None:
        stmt = stmt.where(OutboundEvent.project_id == project_id)
    if event_type is not None:
        stmt = stmt.where(OutboundEvent.event_type == event_type)
    stmt = stmt.order_by(OutboundEvent.created_at.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def mark_delivered(session: AsyncSession, event: OutboundEvent) -> OutboundEvent:
    """Mark an outbound event as delivered."""
    event.status = OutboundStatus.delivered
    event.attempts += 1
    event.delivered_at = utcnow()
    event.last_error = None
    await session.flush()

    logger.info(
        "outbound_event_delivered",
        event_id=str(event.id),
        event_type=event.event_type,
        attempts=event.attempts,
    )
    return event


async def mark_failed(
    session: AsyncSession,
    event: OutboundEvent,
    error_message: str,
) -> OutboundEvent:
    """Mark an outbound event as failed after delivery retries ran out."""
    event.status = OutboundStatus.failed
    event.attempts += 1
    event.last_error = error_message
    await session.flush()

    logger.warning(
        "outbound_event_failed",
        event_id=str(event.id),
        event_type=event.event_type,
        error_message=error_message,
    )
    return event


async def get_outbox_stats(session: AsyncSession) -> dict[str, int]:
    """Get counts of outbound events by status.

    Returns:
        Dictionary with pending, delivered, failed and total counts.
    """
    stmt = select(
        OutboundEvent.status,
        func.count(OutboundEvent.id).label("count"),
    ).group_by(OutboundEvent.status)

    result = await session.execute(stmt)

    stats = {status.value: 0 for status in OutboundStatus}
    stats["total"] = 0
    for row in result.all():
        stats[row.status.value] = row.count
        stats["total"] += row.count
    return stats
