"""Download endpoint: serves the packaged document as a zip attachment."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.dependencies import get_controller

logger = get_logger(__name__)


class DownloadRequest(BaseModel):
    user_id: str | None = None


def create_downloads_router() -> APIRouter:
    """Create the downloads router.

    Routes:
        POST /projects/{project_id}/download - Package and record a download
    """
    router = APIRouter(prefix="/projects", tags=["downloads"])

    @router.post("/{project_id}/download")
    async def download(
        project_id: UUID,
        body: DownloadRequest | None = None,
        controller: LifecycleController = Depends(get_controller),  # noqa: B008
    ) -> Response:
        artifact = await controller.record_download(
            project_id, body.user_id if body else None
        )
        logger.info(
            "download_served",
            project_id=str(project_id),
            filename=artifact.filename,
            size=artifact.size,
        )
        return Response(
            content=artifact.content,
            media_type=artifact.media_type,
            headers={
                "Content-Disposition": f'attachment; filename="{artifact.filename}"',
                "X-Included-Files": ",".join(artifact.included_files),
            },
        )

    return router
