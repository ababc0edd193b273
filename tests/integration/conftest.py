"""Pytest fixtures for integration tests.

Provides an in-memory SQLite database shared by every session of a test,
a LifecycleController wired to the scripted AI client, an HTTP client for
the FastAPI app, and a ``driver`` that walks projects through the
lifecycle so tests can start from any status.

Production runs on PostgreSQL; the models use portable column types
(JSON with a JSONB variant, Uuid) so the same schema works on SQLite.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import TYPE_CHECKING, Any
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sse_starlette.sse import AppStatus

from specforge.config import SpecForgeConfig
from specforge.database.models.base import Base
from specforge.database.models.project import Project
from specforge.orchestrator.lifecycle import LifecycleController
from specforge.web.app import create_app

if TYPE_CHECKING:
    from conftest import ScriptedAIClient

READY_REPLY = "Thanks, I have enough context to begin research."
RESEARCH_SCHEMAS = (
    "DomainAnalysis",
    "FeatureDecomposition",
    "TechnicalRequirements",
    "CompetitiveGaps",
)


@pytest.fixture(autouse=True)
def fresh_broadcaster(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give each test its own SSE broadcaster (and asyncio lock)."""
    monkeypatch.setattr("specforge.web.routes.events._broadcaster", None)
    # sse-starlette keeps a module-level exit event bound to the first loop
    monkeypatch.setattr(AppStatus, "should_exit_event", None, raising=False)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing.

    StaticPool keeps one connection so every session sees the same
    in-memory database.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a new async database session for each test.

    The session is rolled back after the test completes.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def controller(
    session_factory: async_sessionmaker[AsyncSession],
    scripted_ai: ScriptedAIClient,
    config: SpecForgeConfig,
) -> LifecycleController:
    return LifecycleController(session_factory, scripted_ai, config)


@pytest.fixture
def app(config: SpecForgeConfig, controller: LifecycleController) -> FastAPI:
    """FastAPI app with the test controller injected."""
    return create_app(config, controller=controller)


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class ProjectDriver:
    """Moves projects through the lifecycle using the scripted AI.

    Each method returns the project id once the project sits in the
    named status.
    """

    def __init__(
        self,
        controller: LifecycleController,
        ai: ScriptedAIClient,
        script_research: Callable[[], ScriptedAIClient],
        good_draft: dict[str, Any],
    ) -> None:
        self.controller = controller
        self.ai = ai
        self.script_research = script_research
        self.good_draft = good_draft

    def _forget(self, *schema_names: str) -> None:
        for name in schema_names:
            self.ai.structured.pop(name, None)

    async def chatting(self, user_id: str = "user-1") -> UUID:
        project: Project = await self.controller.create_project(
            user_id, "PhysioBook", "Booking app for solo physiotherapists"
        )
        return project.id

    async def chat(self, project_id: UUID, content: str, reply: str) -> list[Any]:
        self.ai.replies.append(reply)
        return [event async for event in self.controller.submit_user_turn(project_id, content)]

    async def researching(self, user_id: str = "user-1") -> UUID:
        project_id = await self.chatting(user_id)
        await self.chat(project_id, "Clients book sessions, I confirm them.", READY_REPLY)
        return project_id

    async def researched(self, user_id: str = "user-1") -> UUID:
        project_id = await self.researching(user_id)
        self.script_research()
        await self.controller.run_research(project_id)
        self._forget(*RESEARCH_SCHEMAS)
        return project_id

    async def in_review(self, user_id: str = "user-1") -> UUID:
        project_id = await self.researched(user_id)
        self.ai.script("DocumentDraft", self.good_draft)
        await self.controller.generate(project_id)
        self._forget("DocumentDraft")
        return project_id

    async def complete(self, user_id: str = "user-1") -> UUID:
        project_id = await self.in_review(user_id)
        await self.controller.approve(project_id)
        return project_id


@pytest.fixture
def driver(
    controller: LifecycleController,
    scripted_ai: ScriptedAIClient,
    script_research: Callable[[], ScriptedAIClient],
    good_draft: dict[str, Any],
) -> ProjectDriver:
    return ProjectDriver(controller, scripted_ai, script_research, good_draft)
