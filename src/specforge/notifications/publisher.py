"""Outbox publishing.

Events are written in the caller's transaction, so an event exists if and
only if the state change that produced it was committed.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.outbox import OutboundEvent
from specforge.database.queries import outbox as outbox_queries

PROJECT_CREATED = "spec_project.created"
PROJECT_RESEARCH_STARTED = "spec_project.research_started"
PROJECT_REVIEW_STARTED = "spec_project.review_started"
PROJECT_APPROVED = "spec_project.approved"
PROJECT_CHANGES_REQUESTED = "spec_project.changes_requested"
PROJECT_ARCHIVED = "spec_project.archived"
PROJECT_VERSION_CREATED = "spec_project.version_created"

RESEARCH_COMPLETED = "research_report.completed"
RESEARCH_FAILED = "research_report.failed"

GENERATION_STARTED = "generated_spec.generation_started"
GENERATION_COMPLETED = "generated_spec.completed"
GENERATION_FAILED = "generated_spec.failed"

DOWNLOAD_CREATED = "spec_download.created"


def research_phase_completed(phase: int) -> str:
    """Event name for one settled research phase."""
    return f"research_report.phase_{phase}_completed"


async def publish_event(
    session: AsyncSession,
    event_type: str,
    project_id: UUID | None,
    payload: dict[str, Any] | None = None,
) -> OutboundEvent:
    """Record an outbound event in the current transaction."""
    data = {"project_id": str(project_id) if project_id else None, **(payload or {})}
    return await outbox_queries.enqueue_event(session, event_type, project_id, data)
