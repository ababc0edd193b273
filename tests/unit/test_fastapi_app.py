"""Unit tests for FastAPI application setup.

Tests cover:
- Application factory creates FastAPI instance
- CORS and request logging middleware are registered
- Every router is mounted
- Readiness reports database failures without raising
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from specforge.config import SpecForgeConfig, WebConfig
from specforge.web.app import create_app
from specforge.web.middleware import RequestLoggingMiddleware, project_id_from_path


class TestCreateApp:
    """Test application factory function."""

    def test_returns_fastapi_instance(self) -> None:
        app = create_app()
        assert isinstance(app, FastAPI)
        assert app.title == "SpecForge"
        assert app.version == "0.1.0"

    def test_app_stores_config_in_state(self) -> None:
        config = SpecForgeConfig()
        app = create_app(config)
        assert app.state.config is config
        assert app.state.controller is None
        assert app.state.background_tasks == set()

    def test_uses_default_config_when_none_provided(self) -> None:
        app = create_app()
        assert isinstance(app.state.config, SpecForgeConfig)


class TestMiddleware:
    def test_cors_uses_config_origins(self) -> None:
        origins = ["https://app.example.com", "https://admin.example.com"]
        app = create_app(SpecForgeConfig(web=WebConfig(cors_origins=origins)))

        cors = [m for m in app.user_middleware if m.cls == CORSMiddleware]
        assert len(cors) == 1
        assert cors[0].kwargs["allow_origins"] == origins
        assert cors[0].kwargs["allow_credentials"] is True

    def test_logging_middleware_is_registered(self) -> None:
        app = create_app()
        assert any(m.cls == RequestLoggingMiddleware for m in app.user_middleware)

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            (
                "/projects/0b7c1c7e-4a8f-4d8e-9a57-1a2b3c4d5e6f/chat",
                "0b7c1c7e-4a8f-4d8e-9a57-1a2b3c4d5e6f",
            ),
            ("/projects/0b7c1c7e-4a8f-4d8e-9a57-1a2b3c4d5e6f", "0b7c1c7e-4a8f-4d8e-9a57-1a2b3c4d5e6f"),
            ("/projects", None),
            ("/health/ready", None),
        ],
    )
    def test_project_id_from_path(self, path: str, expected: str | None) -> None:
        assert project_id_from_path(path) == expected


class TestRouterRegistration:
    def test_routes_are_mounted(self) -> None:
        app = create_app()
        routes = set(app.openapi()["paths"])

        assert {
            "/health/",
            "/health/ready",
            "/projects/",
            "/projects/{project_id}",
            "/projects/{project_id}/chat",
            "/projects/{project_id}/research/run",
            "/projects/{project_id}/generate",
            "/projects/{project_id}/download",
            "/events/stream",
        } <= routes


class TestReadiness:
    @pytest.mark.asyncio
    async def test_database_failure_reports_unhealthy(self) -> None:
        app = create_app(SpecForgeConfig())
        session_factory = MagicMock()
        session_factory.return_value.__aenter__ = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )
        session_factory.return_value.__aexit__ = AsyncMock(return_value=None)
        app.state.session_factory = session_factory

        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "unhealthy",
            "database": "disconnected",
            "ai_configured": False,
            "pending_notifications": None,
        }

    @pytest.mark.asyncio
    async def test_liveness_generates_correlation_id(self) -> None:
        app = create_app()

        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/health/")

        assert response.json() == {"status": "ok"}
        assert response.headers["X-Correlation-ID"]
