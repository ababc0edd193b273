"""Conversation turn model for SpecForge.

Turns form an append-only log per project. ``message_order`` is a
monotonic index unique within its project; rows are never updated or
deleted after insert.
"""

from __future__ import annotations

import enum
import uuid
from typing import Any

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, JSONType, TimestampMixin


class TurnRole(enum.Enum):
    """Author of a conversation turn."""

    user = "user"
    assistant = "assistant"
    system = "system"


class ConversationTurn(TimestampMixin, Base):
    """One message in a project's conversation log.

    Attributes:
        project_id: Owning project.
        role: user, assistant or system.
        content: Message text.
        message_order: Position in the log, starting at 0.
        turn_metadata: Flags such as ``ready_for_research`` or ``research_phase``.
    """

    __tablename__ = "conversation_turns"
    __table_args__ = (
        UniqueConstraint("project_id", "message_order", name="uq_turn_order"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=False,
        index=True,
    )
    role: Mapped[TurnRole] = mapped_column(nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_order: Mapped[int] = mapped_column(Integer, nullable=False)
    turn_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )
