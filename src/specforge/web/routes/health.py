"""Health check endpoints for SpecForge.

- ``/health/`` liveness probe
- ``/health/ready`` readiness probe: database connectivity, whether an AI
  key is configured, and the notification outbox backlog

Example:
    >>> from fastapi import FastAPI
    >>> from specforge.web.routes.health import create_health_router
    >>>
    >>> app = FastAPI()
    >>> app.include_router(create_health_router())
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.config import SpecForgeConfig
from specforge.database.queries import outbox as outbox_queries
from specforge.logging import get_logger
from specforge.web.dependencies import get_config, get_session_factory

logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Liveness response.

    Attributes:
        status: "ok" while the process serves requests
    """

    status: str


class ReadinessResponse(BaseModel):
    """Readiness response.

    Attributes:
        status: "ok", "degraded" (no AI key) or "unhealthy"
        database: "connected" or "disconnected"
        ai_configured: Whether an AI provider key is set
        pending_notifications: Undelivered outbox events, when the
            database is reachable
    """

    status: str
    database: str
    ai_configured: bool
    pending_notifications: int | None = None


def create_health_router() -> APIRouter:
    """Create health check router.

    Routes:
        GET /health/ - Liveness check
        GET /health/ready - Readiness check
    """
    router = APIRouter(prefix="/health", tags=["health"])

    @router.get("/", response_model=HealthResponse)
    async def health() -> dict[str, Any]:
        return {"status": "ok"}

    @router.get("/ready", response_model=ReadinessResponse)
    async def readiness(
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        config: SpecForgeConfig = Depends(get_config),  # noqa: B008
    ) -> dict[str, Any]:
        ai_configured = bool(config.ai.api_key)
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
                stats = await outbox_queries.get_outbox_stats(session)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "readiness_check_failed",
                database="disconnected",
                error=str(exc),
            )
            return {
                "status": "unhealthy",
                "database": "disconnected",
                "ai_configured": ai_configured,
            }

        logger.debug("readiness_check_passed", database="connected")
        return {
            "status": "ok" if ai_configured else "degraded",
            "database": "connected",
            "ai_configured": ai_configured,
            "pending_notifications": stats["pending"],
        }

    return router
