"""Integration tests for CLI commands.

Each test writes a TOML config pointing at a SQLite file, seeds it, and
invokes the Typer app through CliRunner the way an operator would.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine
from typer.testing import CliRunner

from specforge.database.connection import get_session_factory
from specforge.database.models.base import Base
from specforge.database.models.project import Project, ProjectStatus
from specforge.database.queries import project as project_queries
from specforge.main import app
from specforge.notifications import publish_event


async def _seed(url: str) -> dict[str, UUID]:
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = get_session_factory(engine)
    async with session_factory() as session, session.begin():
        physio = await project_queries.create_project(
            session, "user-1", "PhysioBook", "Booking app for solo physiotherapists"
        )
        clinic = await project_queries.create_project(
            session, "user-2", "ClinicDesk", status=ProjectStatus.review
        )
        await publish_event(session, "spec_project.created", physio.id, {"name": "PhysioBook"})
        await session.execute(
            update(Project)
            .where(Project.id == physio.id)
            .values(status_changed_at=datetime.now(timezone.utc) - timedelta(days=3))
        )

    await engine.dispose()
    return {"physio": physio.id, "clinic": clinic.id}


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'specforge.db'}"


@pytest.fixture
def seeded(database_url: str) -> dict[str, UUID]:
    return asyncio.run(_seed(database_url))


def write_config(tmp_path: Path, database_url: str, endpoint: str | None = None) -> Path:
    lines = [
        "[database]",
        f'url = "{database_url}"',
        "",
        "[logging]",
        'level = "WARNING"',
        "",
    ]
    if endpoint is not None:
        lines += [
            "[[notifications.endpoints]]",
            f'url = "{endpoint}"',
            "retry_count = 0",
            "timeout_seconds = 2",
            "",
        ]
    path = tmp_path / "specforge.toml"
    path.write_text("\n".join(lines))
    return path


@pytest.fixture
def config_path(tmp_path: Path, database_url: str, seeded: dict[str, UUID]) -> Path:
    return write_config(tmp_path, database_url)


class TestProjectCLI:
    def test_list_json(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(
            app, ["--config", str(config_path), "project", "list", "--format", "json"]
        )

        assert result.exit_code == 0, result.output
        start = result.output.index("[")
        projects = json.loads(result.output[start : result.output.rindex("]") + 1])
        assert sorted(p["name"] for p in projects) == ["ClinicDesk", "PhysioBook"]

    def test_list_filters_by_status(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(
            app,
            ["--config", str(config_path), "project", "list", "-s", "review", "-f", "json"],
        )

        assert result.exit_code == 0, result.output
        assert "ClinicDesk" in result.output
        assert "PhysioBook" not in result.output

    def test_list_rejects_unknown_status(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(
            app, ["--config", str(config_path), "project", "list", "--status", "shipped"]
        )

        assert result.exit_code == 1
        assert "Invalid status" in result.output

    def test_show(
        self, cli_runner: CliRunner, config_path: Path, seeded: dict[str, UUID]
    ) -> None:
        result = cli_runner.invoke(
            app, ["--config", str(config_path), "project", "show", str(seeded["physio"])]
        )

        assert result.exit_code == 0, result.output
        assert "PhysioBook" in result.output
        assert "chatting" in result.output

    def test_show_unknown_project(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(
            app, ["--config", str(config_path), "project", "show", str(uuid4())]
        )

        assert result.exit_code == 1
        assert "Project not found" in result.output

    def test_show_invalid_id(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(
            app, ["--config", str(config_path), "project", "show", "not-a-uuid"]
        )

        assert result.exit_code == 1
        assert "Invalid project ID" in result.output

    def test_stale(self, cli_runner: CliRunner, config_path: Path) -> None:
        stale = cli_runner.invoke(
            app,
            ["--config", str(config_path), "project", "stale", "-s", "chatting", "--hours", "24"],
        )
        fresh = cli_runner.invoke(
            app,
            ["--config", str(config_path), "project", "stale", "-s", "review", "--hours", "24"],
        )

        assert stale.exit_code == 0, stale.output
        assert "No projects" not in stale.output
        assert fresh.exit_code == 0, fresh.output
        assert "No projects in review for more than 24h" in fresh.output


class TestNotificationsCLI:
    def test_stats(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(app, ["--config", str(config_path), "notifications", "stats"])

        assert result.exit_code == 0, result.output
        assert "pending" in result.output

    def test_drain_without_endpoints(self, cli_runner: CliRunner, config_path: Path) -> None:
        result = cli_runner.invoke(app, ["--config", str(config_path), "notifications", "drain"])

        assert result.exit_code == 0, result.output
        assert "No webhook endpoints configured" in result.output

    def test_drain_exits_2_when_delivery_fails(
        self,
        cli_runner: CliRunner,
        tmp_path: Path,
        database_url: str,
        seeded: dict[str, UUID],
    ) -> None:
        path = write_config(tmp_path, database_url, endpoint="http://127.0.0.1:9/hooks")

        result = cli_runner.invoke(app, ["--config", str(path), "notifications", "drain"])

        assert result.exit_code == 2, result.output
        assert "Claimed" in result.output


class TestConfigLoading:
    def test_invalid_config_exits_1(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("[database]\npool_size = 0\n")

        result = cli_runner.invoke(app, ["--config", str(path), "project", "list"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output
