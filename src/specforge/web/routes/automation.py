"""Read-only queries for external automation (reminders, follow-ups).

SpecForge never schedules these jobs itself. An external scheduler polls
these endpoints and decides what to send.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.config import SpecForgeConfig
from specforge.database.queries import download as download_queries
from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.dependencies import get_config, get_controller, get_session_factory
from specforge.web.routes.projects import ProjectResponse, _parse_status

logger = get_logger(__name__)


class FollowUpResponse(BaseModel):
    project_id: UUID
    first_download_at: datetime


def create_automation_router() -> APIRouter:
    """Create the automation router.

    Routes:
        GET /automation/stale - Projects sitting in a status past a cutoff
        GET /automation/follow-ups - Projects first downloaded before a cutoff
    """
    router = APIRouter(prefix="/automation", tags=["automation"])

    @router.get("/stale", response_model=list[ProjectResponse])
    async def stale_projects(
        status: str = "complete",
        older_than_hours: int | None = Query(default=None, ge=1),
        never_downloaded: bool = False,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
        config: SpecForgeConfig = Depends(get_config),  # noqa: B008
    ) -> list[ProjectResponse]:
        """Projects that entered ``status`` more than ``older_than_hours`` ago.

        Defaults to the configured reminder window. ``never_downloaded``
        restricts the result to projects with no downloads.
        """
        status_enum = _parse_status(status)
        hours = older_than_hours or config.pipeline.reminder_after_days * 24
        projects = await controller.stale_projects(status_enum, timedelta(hours=hours))
        if never_downloaded:
            projects = [p for p in projects if p.download_count == 0]
        logger.info(
            "stale_projects_listed",
            status=status,
            older_than_hours=hours,
            count=len(projects),
        )
        return [ProjectResponse.model_validate(p) for p in projects]

    @router.get("/follow-ups", response_model=list[FollowUpResponse])
    async def follow_ups(
        older_than_hours: int | None = Query(default=None, ge=1),
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        config: SpecForgeConfig = Depends(get_config),  # noqa: B008
    ) -> list[FollowUpResponse]:
        hours = older_than_hours or config.pipeline.upsell_after_days * 24
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        async with session_factory() as session:
            rows = await download_queries.list_first_downloads_before(session, cutoff)
        return [
            FollowUpResponse(project_id=project_id, first_download_at=first_at)
            for project_id, first_at in rows
        ]

    return router
