"""Research endpoints.

``POST /projects/{id}/research/run`` runs the remaining phases in a
background task and streams its progress events as SSE. Event names:

    progress   a phase started, completed or was skipped
    complete   research finished (terminal)
    error      a phase failed or the run was aborted (terminal)

Disconnecting the client stops the run from scheduling further phases;
already-persisted phases are kept.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from specforge.database.models.project import ProjectStatus
from specforge.database.models.research import ResearchStatus
from specforge.errors import NotReadyError, SpecForgeError
from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.orchestrator.progress import ProgressChannel, ProgressEvent
from specforge.research.pipeline import PhaseOutcome
from specforge.web.dependencies import get_controller

logger = get_logger(__name__)


class FeedbackCreate(BaseModel):
    content: str = Field(..., min_length=1)


class FeedbackResponse(BaseModel):
    id: UUID
    message_order: int
    content: str

    model_config = {"from_attributes": True}


class ResearchResponse(BaseModel):
    """Research artifact with its phase payloads."""

    id: UUID
    project_id: UUID
    status: ResearchStatus
    domain_analysis: dict[str, Any] | None
    feature_decomposition: dict[str, Any] | None
    technical_requirements: dict[str, Any] | None
    competitive_gaps: dict[str, Any] | None
    novel_category: bool
    skipped_phases: list[int]
    failed_phase: int | None
    error_message: str | None
    total_cost_usd: float
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class PhaseOutcomeResponse(BaseModel):
    phase: int
    status: str
    message: str
    cost_usd: float
    artifact_status: ResearchStatus
    novel_category: bool
    research_complete: bool

    @classmethod
    def from_outcome(cls, outcome: PhaseOutcome) -> PhaseOutcomeResponse:
        return cls(
            phase=outcome.phase,
            status=outcome.status,
            message=outcome.message,
            cost_usd=outcome.cost_usd,
            artifact_status=outcome.artifact_status,
            novel_category=outcome.novel_category,
            research_complete=outcome.research_complete,
        )


def _sse_name(event: ProgressEvent) -> str:
    if not event.terminal:
        return "progress"
    return "complete" if event.status == "complete" else "error"


async def _run_in_background(
    controller: LifecycleController,
    project_id: UUID,
    channel: ProgressChannel,
    cancel_event: asyncio.Event,
) -> None:
    try:
        await controller.run_research(project_id, progress=channel, cancel_event=cancel_event)
    except Exception as e:
        logger.warning(
            "research_run_failed",
            project_id=str(project_id),
            error_type=type(e).__name__,
            error=str(e),
        )
        if not channel.closed:
            detail = e.to_dict() if isinstance(e, SpecForgeError) else {"message": str(e)}
            await channel.emit(
                ProgressEvent(
                    project_id=str(project_id),
                    stage="research",
                    status="error",
                    message=str(e),
                    terminal=True,
                    data=detail,
                )
            )
    finally:
        await channel.close()


def create_research_router() -> APIRouter:
    """Create the research router.

    Routes:
        GET /projects/{project_id}/research - Artifact with payloads
        POST /projects/{project_id}/research/run - Run remaining phases (SSE)
        POST /projects/{project_id}/research/next - Run exactly one phase
        POST /projects/{project_id}/research/feedback - Record phase feedback
        POST /projects/{project_id}/research/skip - Proceed without failed phase
        POST /projects/{project_id}/research/restart - Clear and start over
    """
    router = APIRouter(prefix="/projects", tags=["research"])

    @router.get("/{project_id}/research", response_model=ResearchResponse)
    async def get_research(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ResearchResponse:
        view = await controller.get_project_view(project_id)
        if view.research is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"Project {project_id} has no research artifact",
            )
        return ResearchResponse.model_validate(view.research)

    @router.post("/{project_id}/research/run")
    async def run_research(
        project_id: UUID,
        request: Request,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> EventSourceResponse:
        view = await controller.get_project_view(project_id)
        if view.project.status != ProjectStatus.researching:
            raise NotReadyError(
                f"Project {project_id} is {view.project.status.value}, not researching"
            )
        if view.research is not None and view.research.status == ResearchStatus.failed:
            raise NotReadyError(
                f"Research phase {view.research.failed_phase} failed; "
                "skip it or restart research"
            )

        channel = controller.new_progress_channel(project_id)
        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            _run_in_background(controller, project_id, channel, cancel_event)
        )
        request.app.state.background_tasks.add(task)
        task.add_done_callback(request.app.state.background_tasks.discard)

        async def event_generator() -> AsyncIterator[dict[str, Any]]:
            try:
                async for event in channel.events():
                    yield {"event": _sse_name(event), "data": event.model_dump_json()}
            finally:
                if not task.done():
                    cancel_event.set()

        return EventSourceResponse(event_generator())

    @router.post("/{project_id}/research/next", response_model=PhaseOutcomeResponse)
    async def run_next_phase(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> PhaseOutcomeResponse:
        outcome = await controller.run_next_research_phase(
            project_id, progress=controller.new_progress_channel(project_id)
        )
        return PhaseOutcomeResponse.from_outcome(outcome)

    @router.post(
        "/{project_id}/research/feedback",
        response_model=FeedbackResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def record_feedback(
        project_id: UUID,
        body: FeedbackCreate,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> FeedbackResponse:
        turn = await controller.record_feedback(project_id, body.content)
        return FeedbackResponse.model_validate(turn)

    @router.post("/{project_id}/research/skip", response_model=PhaseOutcomeResponse)
    async def skip_phase(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> PhaseOutcomeResponse:
        outcome = await controller.proceed_without_phase(project_id)
        return PhaseOutcomeResponse.from_outcome(outcome)

    @router.post("/{project_id}/research/restart", response_model=ResearchResponse)
    async def restart_research(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> ResearchResponse:
        await controller.restart_research(project_id)
        view = await controller.get_project_view(project_id)
        return ResearchResponse.model_validate(view.research)

    return router
