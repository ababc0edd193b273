"""FastAPI dependencies reading shared objects from app state."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from specforge.config import SpecForgeConfig
    from specforge.orchestrator.lifecycle import LifecycleController


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Dependency that retrieves session factory from app state."""
    return request.app.state.session_factory  # type: ignore[no-any-return]


def get_controller(request: Request) -> LifecycleController:
    """Dependency that retrieves the lifecycle controller from app state."""
    return request.app.state.controller  # type: ignore[no-any-return]


def get_config(request: Request) -> SpecForgeConfig:
    """Dependency that retrieves the root configuration from app state."""
    return request.app.state.config  # type: ignore[no-any-return]
