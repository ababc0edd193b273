"""Generated document query functions for SpecForge.

A project holds at most one generated document. Starting a new generation
replaces the previous row; callers must check the download lock first.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.document import DocumentStatus, GeneratedDocument
from specforge.orchestrator.state_machine import ensure_transition

logger = structlog.get_logger(__name__)

# Columns copied when forking a document onto a new project version
_DOCUMENT_FIELDS = (
    "status",
    "gate_0",
    "gate_1",
    "gate_2",
    "gate_3",
    "gate_4",
    "gate_5",
    "full_document",
    "recommended_stack",
    "entity_count",
    "state_change_count",
    "quality_score",
    "findings",
    "complexity_rating",
    "build_hours_min",
    "build_hours_max",
    "generation_cost_usd",
    "fix_attempted",
)


async def get_document(
    session: AsyncSession,
    project_id: UUID,
) -> GeneratedDocument | None:
    """Retrieve the generated document for a project."""
    stmt = select(GeneratedDocument).where(GeneratedDocument.project_id == project_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def start_document(
    session: AsyncSession,
    project_id: UUID,
) -> GeneratedDocument:
    """Create a fresh document in ``generating`` status, replacing any previous one.

    Args:
        session: Active async database session.
        project_id: Owning project.

    Returns:
        The new GeneratedDocument.
    """
    result = await session.execute(
        delete(GeneratedDocument).where(GeneratedDocument.project_id == project_id)
    )
    replaced = result.rowcount > 0

    document = GeneratedDocument(
        project_id=project_id,
        status=DocumentStatus.generating,
        findings=[],
        entity_count=0,
        state_change_count=0,
        quality_score=0,
        generation_cost_usd=0.0,
        fix_attempted=False,
    )
    session.add(document)
    await session.flush()

    logger.info(
        "document_generation_started",
        document_id=str(document.id),
        project_id=str(project_id),
        replaced_previous=replaced,
    )
    return document


async def update_document_status(
    session: AsyncSession,
    document: GeneratedDocument,
    target_status: DocumentStatus,
) -> GeneratedDocument:
    """Transition a document, enforcing the document transition table."""
    current = document.status
    ensure_transition(current, target_status, str(document.id))
    document.status = target_status
    await session.flush()

    logger.info(
        "document_transition",
        document_id=str(document.id),
        from_status=current.value,
        to_status=target_status.value,
    )
    return document


async def save_document_result(
    session: AsyncSession,
    document: GeneratedDocument,
    **fields: Any,
) -> GeneratedDocument:
    """Write generated content, scores and estimates onto a document.

    Raises:
        ValueError: If ``status`` is passed; use update_document_status.
    """
    if "status" in fields:
        raise ValueError("Use update_document_status to change document status")
    for name, value in fields.items():
        setattr(document, name, value)
    await session.flush()
    return document


async def copy_document(
    session: AsyncSession,
    source: GeneratedDocument,
    target_project_id: UUID,
) -> GeneratedDocument:
    """Copy a document onto another project (new version fork)."""
    copy = GeneratedDocument(project_id=target_project_id)
    for name in _DOCUMENT_FIELDS:
        value = getattr(source, name)
        if isinstance(value, (dict, list)):
            value = type(value)(value)
        setattr(copy, name, value)
    session.add(copy)
    await session.flush()
    return copy
