"""Research artifact query functions for SpecForge.

Enforces the write-once rule for phase payloads: ``record_phase`` refuses
to overwrite a non-null payload with PhaseAlreadyWrittenError, and
``clear_artifact`` (explicit restart) is the only path that resets them.
Status writes are checked against the research transition table.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.base import utcnow
from specforge.database.models.research import (
    PHASE_COLUMNS,
    PHASE_STATUSES,
    ResearchArtifact,
    ResearchStatus,
)
from specforge.errors import NotReadyError, PhaseAlreadyWrittenError
from specforge.orchestrator.state_machine import ensure_transition

logger = structlog.get_logger(__name__)


async def create_research_artifact(
    session: AsyncSession,
    project_id: UUID,
) -> ResearchArtifact:
    """Create the research artifact for a project in ``generating`` status."""
    artifact = ResearchArtifact(
        project_id=project_id,
        status=ResearchStatus.generating,
        novel_category=False,
        skipped_phases=[],
        total_cost_usd=0.0,
    )
    session.add(artifact)
    await session.flush()

    logger.info(
        "research_artifact_created",
        artifact_id=str(artifact.id),
        project_id=str(project_id),
    )
    return artifact


async def get_research_artifact(
    session: AsyncSession,
    project_id: UUID,
) -> ResearchArtifact | None:
    """Retrieve the research artifact for a project."""
    stmt = select(ResearchArtifact).where(ResearchArtifact.project_id == project_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def record_phase(
    session: AsyncSession,
    artifact: ResearchArtifact,
    phase: int,
    payload: dict[str, Any],
    cost_usd: float = 0.0,
    *,
    novel_category: bool | None = None,
) -> ResearchArtifact:
    """Persist a phase payload and advance the artifact to ``phase_N``.

    Args:
        session: Active async database session.
        artifact: The artifact to update.
        phase: Phase number (1-4).
        payload: Structured phase output.
        cost_usd: AI cost of producing the payload.
        novel_category: Set the novel-category flag (phase 1 only).

    Returns:
        The updated artifact.

    Raises:
        PhaseAlreadyWrittenError: If the phase payload is already non-null.
        IllegalTransitionError: If phase N is not the next phase.
    """
    if phase not in PHASE_COLUMNS:
        raise ValueError(f"Unknown research phase: {phase}")

    if artifact.payload(phase) is not None:
        raise PhaseAlreadyWrittenError(phase, str(artifact.id))

    target = PHASE_STATUSES[phase]
    ensure_transition(artifact.status, target, str(artifact.id))

    setattr(artifact, PHASE_COLUMNS[phase], payload)
    artifact.status = target
    artifact.total_cost_usd = (artifact.total_cost_usd or 0.0) + cost_usd
    artifact.failed_phase = None
    artifact.error_message = None
    if novel_category is not None:
        artifact.novel_category = novel_category

    await session.flush()

    logger.info(
        "research_phase_recorded",
        artifact_id=str(artifact.id),
        phase=phase,
        cost_usd=round(cost_usd, 6),
        total_cost_usd=round(artifact.total_cost_usd, 6),
    )
    return artifact


async def mark_research_failed(
    session: AsyncSession,
    artifact: ResearchArtifact,
    phase: int,
    error_message: str,
    cost_usd: float = 0.0,
) -> ResearchArtifact:
    """Mark the current attempt failed at ``phase``.

    Already-persisted payloads are left untouched.
    """
    ensure_transition(artifact.status, ResearchStatus.failed, str(artifact.id))

    artifact.status = ResearchStatus.failed
    artifact.failed_phase = phase
    artifact.error_message = error_message
    artifact.total_cost_usd = (artifact.total_cost_usd or 0.0) + cost_usd
    await session.flush()

    logger.warning(
        "research_phase_failed",
        artifact_id=str(artifact.id),
        phase=phase,
        error=error_message,
    )
    return artifact


async def skip_failed_phase(
    session: AsyncSession,
    artifact: ResearchArtifact,
) -> int:
    """Settle the failed phase as skipped, leaving its payload empty.

    Returns:
        The skipped phase number.

    Raises:
        NotReadyError: If the artifact is not in ``failed`` status.
    """
    if artifact.status != ResearchStatus.failed or artifact.failed_phase is None:
        raise NotReadyError(
            f"Research artifact {artifact.id} has no failed phase to skip"
        )

    phase = artifact.failed_phase
    ensure_transition(artifact.status, PHASE_STATUSES[phase], str(artifact.id))

    artifact.status = PHASE_STATUSES[phase]
    artifact.skipped_phases = sorted({*artifact.skipped_phases, phase})
    artifact.failed_phase = None
    artifact.error_message = None
    await session.flush()

    logger.info("research_phase_skipped", artifact_id=str(artifact.id), phase=phase)
    return phase


async def complete_research(
    session: AsyncSession,
    artifact: ResearchArtifact,
) -> ResearchArtifact:
    """Move a fully settled artifact to ``complete``."""
    ensure_transition(artifact.status, ResearchStatus.complete, str(artifact.id))

    artifact.status = ResearchStatus.complete
    artifact.completed_at = utcnow()
    await session.flush()

    logger.info(
        "research_completed",
        artifact_id=str(artifact.id),
        total_cost_usd=round(artifact.total_cost_usd, 6),
        skipped_phases=artifact.skipped_phases,
        novel_category=artifact.novel_category,
    )
    return artifact


async def clear_artifact(
    session: AsyncSession,
    artifact: ResearchArtifact,
) -> ResearchArtifact:
    """Reset an artifact for a full pipeline restart.

    This is the only operation allowed to null out written phase payloads.
    """
    for column in PHASE_COLUMNS.values():
        setattr(artifact, column, None)
    artifact.status = ResearchStatus.generating
    artifact.novel_category = False
    artifact.skipped_phases = []
    artifact.failed_phase = None
    artifact.error_message = None
    artifact.total_cost_usd = 0.0
    artifact.completed_at = None
    await session.flush()

    logger.info("research_artifact_cleared", artifact_id=str(artifact.id))
    return artifact


async def copy_research_artifact(
    session: AsyncSession,
    source: ResearchArtifact,
    target_project_id: UUID,
) -> ResearchArtifact:
    """Copy an artifact (payloads and status) onto another project."""
    copy = ResearchArtifact(
        project_id=target_project_id,
        status=source.status,
        novel_category=source.novel_category,
        skipped_phases=list(source.skipped_phases),
        failed_phase=source.failed_phase,
        error_message=source.error_message,
        total_cost_usd=source.total_cost_usd,
        completed_at=source.completed_at,
    )
    for column in PHASE_COLUMNS.values():
        setattr(copy, column, getattr(source, column))
    session.add(copy)
    await session.flush()
    return copy
