"""Outbound event model for SpecForge.

Defines the OutboundEvent table, a transactional outbox for notification
side effects. Events are inserted in the same transaction as the state
change that caused them, then delivered by the outbox dispatcher so that
delivery failures never affect the pipeline.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, JSONType, TimestampMixin


class OutboundStatus(enum.Enum):
    """Delivery status of an outbound event."""

    pending = "pending"
    delivered = "delivered"
    failed = "failed"


class OutboundEvent(TimestampMixin, Base):
    """A queued notification awaiting delivery.

    Attributes:
        event_type: Dotted event name, e.g. ``spec_project.approved``.
        project_id: Project the event concerns.
        payload: Event data.
        status: Delivery status.
        attempts: Delivery attempts so far.
        delivered_at: When delivery succeeded.
        last_error: Last delivery error message.
    """

    __tablename__ = "outbound_events"

    event_type: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    status: Mapped[OutboundStatus] = mapped_column(
        default=OutboundStatus.pending,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
