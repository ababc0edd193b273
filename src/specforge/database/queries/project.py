"""Project query functions for SpecForge.

Provides async functions for creating, reading and updating Project
records using SQLAlchemy 2.0 select() API. Status writes go through
``update_project_status``, which enforces the project transition table.

Functions only flush; committing is handled by the caller so that a
status change and its outbox event land in one transaction.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from specforge.database.models.base import utcnow
from specforge.database.models.project import Project, ProjectStatus
from specforge.errors import ProjectNotFoundError
from specforge.orchestrator.state_machine import ensure_transition

logger = structlog.get_logger(__name__)


def slugify(name: str) -> str:
    """Build a URL-friendly slug from a project name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:80] or "project"


async def create_project(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
    *,
    status: ProjectStatus = ProjectStatus.chatting,
    parent_project_id: UUID | None = None,
    version: int = 1,
) -> Project:
    """Create a new project.

    Args:
        session: Active async database session.
        user_id: Owner identifier.
        name: Display name.
        description: Optional initial app description.
        status: Initial status; only forked versions start outside ``chatting``.
        parent_project_id: Source project for forked versions.
        version: Version number.

    Returns:
        The newly created Project instance.
    """
    project = Project(
        user_id=user_id,
        name=name,
        description=description,
        slug=slugify(name),
        status=status,
        parent_project_id=parent_project_id,
        version=version,
        download_count=0,
        status_changed_at=utcnow(),
    )

    session.add(project)
    await session.flush()
    await session.refresh(project)

    logger.info(
        "project_created",
        project_id=str(project.id),
        user_id=user_id,
        status=project.status.value,
        version=version,
    )

    return project


async def get_project(
    session: AsyncSession,
    project_id: UUID,
) -> Project | None:
    """Retrieve a project by ID.

    Args:
        session: Active async database session.
        project_id: UUID of the project to retrieve.

    Returns:
        The Project instance if found, None otherwise.
    """
    stmt = select(Project).where(Project.id == project_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_project(session: AsyncSession, project_id: UUID) -> Project:
    """Retrieve a project by ID or raise ProjectNotFoundError."""
    project = await get_project(session, project_id)
    if project is None:
        raise ProjectNotFoundError(str(project_id))
    return project


async def list_projects(
    session: AsyncSession,
    user_id: str | None = None,
    status_filter: ProjectStatus | None = None,
    include_archived: bool = False,
) -> list[Project]:
    """List projects, newest first.

    Args:
        session: Active async database session.
        user_id: Optional owner to filter by.
        status_filter: Optional status to filter by.
        include_archived: Include archived projects when no status filter is given.

    Returns:
        List of matching Project instances.
    """
    stmt = select(Project)

    if user_id is not None:
        stmt = stmt.where(Project.user_id == user_id)
    if status_filter is not None:
        stmt = stmt.where(Project.status == status_filter)
    elif not include_archived:
        stmt = stmt.where(Project.status != ProjectStatus.archived)

    stmt = stmt.order_by(Project.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_project(
    session: AsyncSession,
    project_id: UUID,
    **updates: Any,
) -> Project:
    """Update non-status project fields.

    Args:
        session: Active async database session.
        project_id: UUID of the project to update.
        **updates: Field names and values to update.

    Returns:
        The updated Project instance.

    Raises:
        ProjectNotFoundError: If project not found.
        ValueError: If ``status`` is passed; use update_project_status.
    """
    if "status" in updates:
        raise ValueError("Use update_project_status to change project status")

    project = await require_project(session, project_id)
    for field, value in updates.items():
        setattr(project, field, value)
    await session.flush()

    logger.info(
        "project_updated",
        project_id=str(project_id),
        fields_updated=list(updates.keys()),
    )

    return project


async def update_project_status(
    session: AsyncSession,
    project_id: UUID,
    target_status: ProjectStatus,
) -> Project:
    """Transition a project to a new status.

    Args:
        session: Active async database session.
        project_id: UUID of the project to transition.
        target_status: Target status.

    Returns:
        The updated Project instance.

    Raises:
        ProjectNotFoundError: If project not found.
        IllegalTransitionError: If the transition is not in the table.
    """
    project = await require_project(session, project_id)
    current_status = project.status

    ensure_transition(current_status, target_status, str(project_id))

    project.status = target_status
    project.status_changed_at = utcnow()
    if target_status == ProjectStatus.archived:
        project.archived_at = project.status_changed_at

    logger.info(
        "project_transition",
        project_id=str(project_id),
        from_status=current_status.value,
        to_status=target_status.value,
    )

    await session.flush()
    return project


async def increment_download_count(session: AsyncSession, project_id: UUID) -> int:
    """Atomically increment a project's download counter.

    Returns:
        The new download count.
    """
    stmt = (
        update(Project)
        .where(Project.id == project_id)
        .values(download_count=Project.download_count + 1)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    project = await require_project(session, project_id)
    await session.refresh(project, attribute_names=["download_count"])
    return project.download_count


async def list_projects_in_status_since(
    session: AsyncSession,
    status: ProjectStatus,
    older_than: datetime,
) -> list[Project]:
    """List projects that entered ``status`` at or before ``older_than``.

    Backs the automation queries ("complete for 3 days, never downloaded").

    Args:
        session: Active async database session.
        status: Status the projects must currently be in.
        older_than: Cutoff for ``status_changed_at`` (UTC).

    Returns:
        Matching projects, oldest transition first.
    """
    stmt = (
        select(Project)
        .where(Project.status == status)
        .where(Project.status_changed_at <= older_than)
        .order_by(Project.status_changed_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
