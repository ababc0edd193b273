"""Document generation endpoints.

``POST /projects/{id}/generate`` blocks until generation and validation
finish. A document scoring below the quality threshold after auto-fix
returns 422 with the final score, findings and suggestions.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel

from specforge.database.models.document import DocumentStatus
from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.dependencies import get_controller
from specforge.web.routes.events import get_broadcaster

logger = get_logger(__name__)


class GenerateRequest(BaseModel):
    integrations: list[str] | None = None


class GenerationResponse(BaseModel):
    """Summary of a successful generation."""

    document_id: UUID
    quality_score: int
    entity_count: int
    state_change_count: int
    complexity_rating: str
    build_hours_min: int
    build_hours_max: int
    cost_usd: float
    fix_attempted: bool
    findings: list[dict[str, Any]]
    project_status: str


class DocumentResponse(BaseModel):
    """Generated document with all gates."""

    id: UUID
    project_id: UUID
    status: DocumentStatus
    gate_0: dict[str, Any] | None
    gate_1: dict[str, Any] | None
    gate_2: dict[str, Any] | None
    gate_3: dict[str, Any] | None
    gate_4: dict[str, Any] | None
    gate_5: dict[str, Any] | None
    full_document: str | None
    recommended_stack: dict[str, Any] | None
    entity_count: int
    state_change_count: int
    quality_score: int
    findings: list[dict[str, Any]]
    complexity_rating: str | None
    build_hours_min: int | None
    build_hours_max: int | None
    generation_cost_usd: float
    fix_attempted: bool

    model_config = {"from_attributes": True}


def create_generation_router() -> APIRouter:
    """Create the generation router.

    Routes:
        POST /projects/{project_id}/generate - Generate or regenerate
        GET /projects/{project_id}/document - Current document
    """
    router = APIRouter(prefix="/projects", tags=["generation"])

    @router.post("/{project_id}/generate", response_model=GenerationResponse)
    async def generate(
        project_id: UUID,
        body: GenerateRequest | None = None,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> GenerationResponse:
        result = await controller.generate(
            project_id,
            body.integrations if body else None,
            progress=controller.new_progress_channel(project_id),
        )
        view = await controller.get_project_view(project_id)
        await get_broadcaster().broadcast_project_status(
            str(project_id), view.project.status.value, {"quality_score": result.quality_score}
        )
        return GenerationResponse(
            document_id=result.document_id,
            quality_score=result.quality_score,
            entity_count=result.entity_count,
            state_change_count=result.state_change_count,
            complexity_rating=result.complexity_rating,
            build_hours_min=result.build_hours_min,
            build_hours_max=result.build_hours_max,
            cost_usd=result.cost_usd,
            fix_attempted=result.fix_attempted,
            findings=result.findings,
            project_status=view.project.status.value,
        )

    @router.get("/{project_id}/document", response_model=DocumentResponse)
    async def get_document(
        project_id: UUID,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> DocumentResponse:
        view = await controller.get_project_view(project_id)
        if view.document is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"Project {project_id} has no generated document",
            )
        return DocumentResponse.model_validate(view.document)

    return router
