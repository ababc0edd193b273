"""Unit tests for HTTP error mapping and request middleware."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from specforge.errors import (
    BudgetExceededError,
    DocumentLockedError,
    IllegalTransitionError,
    MalformedOutputError,
    NotOwnerError,
    NotReadyError,
    PhaseAlreadyWrittenError,
    ProjectNotFoundError,
    ProviderRequestError,
    ProviderUnavailableError,
    SpecForgeError,
    ValidationBelowThresholdError,
)
from specforge.web.errors import register_error_handlers, status_for
from specforge.web.middleware import (
    CORRELATION_HEADER,
    RequestLoggingMiddleware,
    project_id_from_path,
)

PROJECT_ID = "3f2b8c1e-0d4a-4e5f-9a6b-7c8d9e0f1a2b"


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ProjectNotFoundError("p-1"), 404),
        (NotOwnerError("p-1", "u-2"), 403),
        (IllegalTransitionError("complete", "complete", "p-1"), 409),
        (PhaseAlreadyWrittenError(2), 409),
        (NotReadyError("not yet"), 409),
        (DocumentLockedError("p-1"), 409),
        (ValidationBelowThresholdError(40, [], []), 422),
        (MalformedOutputError("bad json"), 502),
        (ProviderRequestError("bad request", 400), 502),
        (ProviderUnavailableError("down"), 503),
        (BudgetExceededError("research", 300), 504),
        (SpecForgeError("unexpected"), 500),
    ],
)
def test_status_for(exc: SpecForgeError, expected: int) -> None:
    assert status_for(exc) == expected


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    @app.get("/projects/{project_id}/approve")
    async def approve(project_id: str) -> dict[str, str]:
        raise IllegalTransitionError("complete", "complete", project_id)

    @app.get("/generate")
    async def generate() -> dict[str, str]:
        raise ValidationBelowThresholdError(
            42, [{"check": "crud_coverage", "gate": 3}], ["Grant create on Client"]
        )

    @app.get("/ok")
    async def ok() -> dict[str, str]:
        return {"status": "ok"}

    return app


@pytest_asyncio.fixture
async def client() -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_illegal_transition_body(client: httpx.AsyncClient) -> None:
    response = await client.get(f"/projects/{PROJECT_ID}/approve")

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error_code"] == "ILLEGAL_TRANSITION"
    assert detail["current"] == "complete"
    assert detail["target"] == "complete"


@pytest.mark.asyncio
async def test_validation_below_threshold_body(client: httpx.AsyncClient) -> None:
    response = await client.get("/generate")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["score"] == 42
    assert detail["findings"][0]["check"] == "crud_coverage"
    assert detail["suggestions"] == ["Grant create on Client"]


@pytest.mark.asyncio
async def test_correlation_id_echoed(client: httpx.AsyncClient) -> None:
    response = await client.get("/ok", headers={CORRELATION_HEADER: "corr-1"})
    assert response.headers[CORRELATION_HEADER] == "corr-1"


@pytest.mark.asyncio
async def test_correlation_id_generated(client: httpx.AsyncClient) -> None:
    response = await client.get("/ok")
    assert len(response.headers[CORRELATION_HEADER]) == 36


@pytest.mark.parametrize(
    "path,expected",
    [
        (f"/projects/{PROJECT_ID}", PROJECT_ID),
        (f"/projects/{PROJECT_ID}/research/stream", PROJECT_ID),
        ("/projects", None),
        ("/projects/not-a-uuid/chat", None),
        ("/health", None),
    ],
)
def test_project_id_from_path(path: str, expected: str | None) -> None:
    assert project_id_from_path(path) == expected
