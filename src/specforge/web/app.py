"""FastAPI application factory for SpecForge.

This module provides the main application factory function that creates
and configures a FastAPI application with:
- CORS middleware for cross-origin requests
- Request logging middleware with correlation IDs
- Database, AI client and lifecycle controller setup and teardown
- Error handlers mapping SpecForge errors to HTTP responses

Example usage:
    >>> from specforge.config import SpecForgeConfig
    >>> from specforge.web.app import create_app
    >>>
    >>> app = create_app(SpecForgeConfig())
    >>>
    >>> # Run with uvicorn
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from specforge import __version__
from specforge.ai.anthropic import AnthropicClient
from specforge.config import SpecForgeConfig
from specforge.database.connection import get_engine, get_session_factory
from specforge.logging import get_logger
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.errors import register_error_handlers
from specforge.web.middleware import RequestLoggingMiddleware
from specforge.web.routes.automation import create_automation_router
from specforge.web.routes.chat import create_chat_router
from specforge.web.routes.downloads import create_downloads_router
from specforge.web.routes.events import create_events_router, get_broadcaster
from specforge.web.routes.generation import create_generation_router
from specforge.web.routes.health import create_health_router
from specforge.web.routes.projects import create_projects_router
from specforge.web.routes.research import create_research_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database, AI client and controller lifetimes.

    When a controller was injected through create_app, startup only logs;
    the caller owns the controller's engine and AI client.

    Args:
        app: FastAPI application instance

    Yields:
        None after startup, cleans up on context exit
    """
    config: SpecForgeConfig = app.state.config
    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    owned = app.state.controller is None
    engine = None
    ai_client = None
    if owned:
        engine = get_engine(config.database)
        session_factory = get_session_factory(engine)
        ai_client = AnthropicClient(config.ai)
        app.state.session_factory = session_factory
        app.state.controller = LifecycleController(
            session_factory,
            ai_client,
            config,
            progress_listener=get_broadcaster().broadcast_progress,
        )
        logger.info(
            "database_pool_initialized",
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )

    yield

    logger.info("app_shutdown_begin", background_tasks=len(app.state.background_tasks))
    for task in list(app.state.background_tasks):
        task.cancel()
    if app.state.background_tasks:
        await asyncio.gather(*app.state.background_tasks, return_exceptions=True)
    await get_broadcaster().shutdown()

    if owned:
        if ai_client is not None:
            await ai_client.close()
        if engine is not None:
            await engine.dispose()
        app.state.controller = None
        logger.info("database_pool_disposed")


def create_app(
    config: SpecForgeConfig | None = None,
    controller: LifecycleController | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application.

    Args:
        config: Optional SpecForgeConfig. If None, creates default config.
        controller: Optional pre-built controller. Its session factory is
            used for read endpoints and the lifespan builds nothing.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = controller.config if controller is not None else SpecForgeConfig()

    app = FastAPI(
        title="SpecForge",
        version=__version__,
        description="Conversational research and specification generation service",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.controller = controller
    app.state.session_factory = controller.session_factory if controller is not None else None
    app.state.background_tasks = set()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)

    app.include_router(create_health_router())
    app.include_router(create_projects_router())
    app.include_router(create_chat_router())
    app.include_router(create_research_router())
    app.include_router(create_generation_router())
    app.include_router(create_downloads_router())
    app.include_router(create_automation_router())
    app.include_router(create_events_router())

    logger.info(
        "app_created",
        cors_origins=config.web.cors_origins,
        version=__version__,
        injected_controller=controller is not None,
    )

    return app
