"""Download event query functions for SpecForge.

Recording a download inserts an append-only DownloadEvent and increments
the project's counter in the caller's transaction; neither is recomputed
later.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.download import DownloadEvent
from specforge.database.queries.project import increment_download_count

logger = structlog.get_logger(__name__)


async def record_download_event(
    session: AsyncSession,
    project_id: UUID,
    document_id: UUID,
    user_id: str,
    archive_size_bytes: int,
    included_files: list[str],
) -> DownloadEvent:
    """Insert a download event and bump the project's download counter.

    Args:
        session: Active async database session.
        project_id: Downloaded project.
        document_id: Packaged document.
        user_id: Requesting user.
        archive_size_bytes: Size of the served archive.
        included_files: Paths inside the archive.

    Returns:
        The inserted DownloadEvent.
    """
    event = DownloadEvent(
        project_id=project_id,
        document_id=document_id,
        user_id=user_id,
        archive_size_bytes=archive_size_bytes,
        included_files=list(included_files),
    )
    session.add(event)
    await session.flush()

    count = await increment_download_count(session, project_id)

    logger.info(
        "download_recorded",
        project_id=str(project_id),
        download_id=str(event.id),
        archive_size_bytes=archive_size_bytes,
        download_count=count,
    )
    return event


async def count_downloads(session: AsyncSession, project_id: UUID) -> int:
    """Count recorded download events for a project."""
    stmt = select(func.count(DownloadEvent.id)).where(
        DownloadEvent.project_id == project_id
    )
    return (await session.execute(stmt)).scalar_one()


async def list_downloads(session: AsyncSession, project_id: UUID) -> list[DownloadEvent]:
    """List download events for a project, oldest first."""
    stmt = (
        select(DownloadEvent)
        .where(DownloadEvent.project_id == project_id)
        .order_by(DownloadEvent.created_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_first_downloads_before(
    session: AsyncSession,
    older_than: datetime,
) -> list[tuple[UUID, datetime]]:
    """Projects whose first download happened at or before ``older_than``.

    Returns:
        (project_id, first_download_at) pairs.
    """
    first_at = func.min(DownloadEvent.created_at).label("first_download_at")
    stmt = (
        select(DownloadEvent.project_id, first_at)
        .group_by(DownloadEvent.project_id)
        .having(func.min(DownloadEvent.created_at) <= older_than)
    )
    result = await session.execute(stmt)
    return [(row.project_id, row.first_download_at) for row in result.all()]
