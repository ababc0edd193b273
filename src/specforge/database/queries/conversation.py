"""Conversation log query functions for SpecForge.

The log is append-only: there are no update or delete functions here.
``message_order`` is assigned as max + 1 within the project; the unique
constraint on (project_id, message_order) rejects concurrent appends
that would break ordering.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.conversation import ConversationTurn, TurnRole

logger = structlog.get_logger(__name__)


async def append_turn(
    session: AsyncSession,
    project_id: UUID,
    role: TurnRole,
    content: str,
    metadata: dict[str, Any] | None = None,
) -> ConversationTurn:
    """Append a turn to a project's conversation log.

    Args:
        session: Active async database session.
        project_id: Owning project.
        role: Turn author.
        content: Message text.
        metadata: Optional flags stored with the turn.

    Returns:
        The inserted ConversationTurn.
    """
    stmt = select(func.max(ConversationTurn.message_order)).where(
        ConversationTurn.project_id == project_id
    )
    current_max = (await session.execute(stmt)).scalar_one_or_none()
    next_order = 0 if current_max is None else current_max + 1

    turn = ConversationTurn(
        project_id=project_id,
        role=role,
        content=content,
        message_order=next_order,
        turn_metadata=dict(metadata or {}),
    )
    session.add(turn)
    await session.flush()

    logger.debug(
        "conversation_turn_appended",
        project_id=str(project_id),
        role=role.value,
        message_order=next_order,
    )

    return turn


async def list_turns(
    session: AsyncSession,
    project_id: UUID,
    role: TurnRole | None = None,
) -> list[ConversationTurn]:
    """List a project's turns in log order, optionally filtered by role."""
    stmt = select(ConversationTurn).where(ConversationTurn.project_id == project_id)
    if role is not None:
        stmt = stmt.where(ConversationTurn.role == role)
    stmt = stmt.order_by(ConversationTurn.message_order.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_description_turns(
    session: AsyncSession,
    project_id: UUID,
) -> list[ConversationTurn]:
    """List the user turns that describe the app.

    Feedback recorded between research phases is left out; it reaches
    the following phase separately.
    """
    turns = await list_turns(session, project_id, role=TurnRole.user)
    return [turn for turn in turns if not (turn.turn_metadata or {}).get("research_feedback")]


async def latest_turn(
    session: AsyncSession,
    project_id: UUID,
    role: TurnRole | None = None,
) -> ConversationTurn | None:
    """Return the most recent turn, optionally of a given role."""
    stmt = select(ConversationTurn).where(ConversationTurn.project_id == project_id)
    if role is not None:
        stmt = stmt.where(ConversationTurn.role == role)
    stmt = stmt.order_by(ConversationTurn.message_order.desc()).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_phase_presentation(
    session: AsyncSession,
    project_id: UUID,
    phase: int,
) -> ConversationTurn | None:
    """Find the latest system turn that presented a research phase's result.

    Args:
        session: Active async database session.
        project_id: Owning project.
        phase: Research phase number.

    Returns:
        The presentation turn, or None if the phase has not been presented.
    """
    turns = await list_turns(session, project_id, role=TurnRole.system)
    for turn in reversed(turns):
        if turn.turn_metadata.get("research_phase") == phase:
            return turn
    return None


async def user_turns_after(
    session: AsyncSession,
    project_id: UUID,
    after_order: int,
) -> list[ConversationTurn]:
    """List user turns positioned after ``after_order`` in the log."""
    stmt = (
        select(ConversationTurn)
        .where(ConversationTurn.project_id == project_id)
        .where(ConversationTurn.role == TurnRole.user)
        .where(ConversationTurn.message_order > after_order)
        .order_by(ConversationTurn.message_order.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def copy_turns(
    session: AsyncSession,
    source_project_id: UUID,
    target_project_id: UUID,
) -> int:
    """Copy a project's full log into another project, preserving order.

    Returns:
        Number of turns copied.
    """
    turns = await list_turns(session, source_project_id)
    for turn in turns:
        session.add(
            ConversationTurn(
                project_id=target_project_id,
                role=turn.role,
                content=turn.content,
                message_order=turn.message_order,
                turn_metadata=dict(turn.turn_metadata),
            )
        )
    await session.flush()
    return len(turns)
