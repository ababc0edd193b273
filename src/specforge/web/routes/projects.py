"""Project endpoints for SpecForge.

This module provides REST API endpoints for the project lifecycle:
- Create and list projects, get a project with its artifacts
- Approve, request changes, archive
- Fork a complete project into a new version

Status changes go through the LifecycleController; reads go straight to
the query layer.

Example:
    >>> from fastapi import FastAPI
    >>> from specforge.web.routes.projects import create_projects_router
    >>>
    >>> app = FastAPI()
    >>> app.include_router(create_projects_router())
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.database.models.conversation import TurnRole
from specforge.database.models.project import ProjectStatus, ResearchProgress, SpecProgress
from specforge.database.queries import project as project_queries
from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.dependencies import get_controller, get_session_factory
from specforge.web.routes.events import get_broadcaster

logger = get_logger(__name__)


class ProjectCreate(BaseModel):
    """Request schema for creating a project.

    Attributes:
        user_id: Owner identifier (authentication happens upstream)
        name: Display name (1-255 characters)
        description: Optional free-text app description
    """

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class ChangeRequest(BaseModel):
    feedback: str | None = None


class OwnerAction(BaseModel):
    user_id: str | None = None


class ProjectResponse(BaseModel):
    """Response schema for project data."""

    id: UUID
    user_id: str
    name: str
    description: str | None
    slug: str
    status: ProjectStatus
    research_status: ResearchProgress
    spec_status: SpecProgress
    download_count: int
    version: int
    parent_project_id: UUID | None
    status_changed_at: datetime
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TurnResponse(BaseModel):
    """One conversation turn."""

    id: UUID
    role: TurnRole
    content: str
    message_order: int
    turn_metadata: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class ArtifactSummary(BaseModel):
    status: str
    quality_score: int | None = None
    novel_category: bool | None = None


class ProjectDetailResponse(BaseModel):
    """A project with its conversation and artifact summaries."""

    project: ProjectResponse
    research: ArtifactSummary | None
    document: ArtifactSummary | None
    turns: list[TurnResponse]


def _parse_status(status: str) -> ProjectStatus:
    try:
        return ProjectStatus(status)
    except ValueError:
        logger.warning(
            "invalid_status_filter",
            status=status,
            valid_values=[s.value for s in ProjectStatus],
        )
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status}. Valid values: {[s.value for s in ProjectStatus]}",
        ) from None


def create_projects_router() -> APIRouter:
    """Create projects router.

    Routes:
        POST /projects/ - Create a project in chatting
        GET /projects/ - List projects (status, user_id, include_archived filters)
        GET /projects/{project_id} - Project with artifacts and conversation
        POST /projects/{project_id}/approve - review -> complete
        POST /projects/{project_id}/request-changes - review -> chatting
        POST /projects/{project_id}/archive - complete -> archived
        POST /projects/{project_id}/versions - Fork a complete project
    """
    router = APIRouter(prefix="/projects", tags=["projects"])

    async def _announce(project_id: UUID, status: str) -> None:
        await get_broadcaster().broadcast_project_status(str(project_id), status)

    @router.post(
        "/",
        response_model=ProjectResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_project(
        body: ProjectCreate,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectResponse:
        project = await controller.create_project(body.user_id, body.name, body.description)
        logger.info("project_created_via_api", project_id=str(project.id))
        return ProjectResponse.model_validate(project)

    @router.get("/", response_model=list[ProjectResponse])
    async def list_projects(
        status: str | None = None,
        user_id: str | None = None,
        include_archived: bool = False,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> list[ProjectResponse]:
        """List projects, newest first.

        Raises:
            HTTPException: 400 if the status filter is invalid
        """
        status_enum = _parse_status(status) if status is not None else None

        async with session_factory() as session:
            projects = await project_queries.list_projects(
                session,
                user_id=user_id,
                status_filter=status_enum,
                include_archived=include_archived,
            )

        logger.info("projects_listed", count=len(projects), status_filter=status)
        return [ProjectResponse.model_validate(p) for p in projects]

    @router.get("/{project_id}", response_model=ProjectDetailResponse)
    async def get_project(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectDetailResponse:
        view = await controller.get_project_view(project_id)
        research = None
        if view.research is not None:
            research = ArtifactSummary(
                status=view.research.status.value,
                novel_category=view.research.novel_category,
            )
        document = None
        if view.document is not None:
            document = ArtifactSummary(
                status=view.document.status.value,
                quality_score=view.document.quality_score,
            )
        return ProjectDetailResponse(
            project=ProjectResponse.model_validate(view.project),
            research=research,
            document=document,
            turns=[TurnResponse.model_validate(t) for t in view.turns],
        )

    @router.post("/{project_id}/approve", response_model=ProjectResponse)
    async def approve_project(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectResponse:
        project = await controller.approve(project_id)
        await _announce(project_id, project.status.value)
        return ProjectResponse.model_validate(project)

    @router.post("/{project_id}/request-changes", response_model=ProjectResponse)
    async def request_changes(
        project_id: UUID,
        body: ChangeRequest | None = None,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectResponse:
        project = await controller.request_changes(
            project_id, body.feedback if body else None
        )
        await _announce(project_id, project.status.value)
        return ProjectResponse.model_validate(project)

    @router.post("/{project_id}/archive", response_model=ProjectResponse)
    async def archive_project(
        project_id: UUID,
        body: OwnerAction | None = None,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectResponse:
        project = await controller.archive(project_id, body.user_id if body else None)
        await _announce(project_id, project.status.value)
        return ProjectResponse.model_validate(project)

    @router.post(
        "/{project_id}/versions",
        response_model=ProjectResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_version(
        project_id: UUID,
        body: OwnerAction | None = None,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ProjectResponse:
        fork = await controller.create_new_version(
            project_id, body.user_id if body else None
        )
        await _announce(fork.id, fork.status.value)
        return ProjectResponse.model_validate(fork)

    return router
