"""Project inspection CLI commands.

Read-only views over the project store: list, show one project with its
artifacts, and the stale-project query used by reminder automation.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from specforge.database.models.project import Project, ProjectStatus
from specforge.database.queries import document as document_queries
from specforge.database.queries import project as project_queries
from specforge.database.queries import research as research_queries
from specforge.errors import ProjectNotFoundError

app = typer.Typer(help="Project inspection commands")
console = Console()

STATUS_COLORS = {
    "chatting": "cyan",
    "researching": "yellow",
    "generating": "yellow",
    "review": "magenta",
    "complete": "green",
    "archived": "dim",
}


def _parse_status(status: str) -> ProjectStatus:
    try:
        return ProjectStatus(status)
    except ValueError:
        console.print(
            f"[red]Invalid status:[/red] {status}. "
            f"Valid values: {', '.join(s.value for s in ProjectStatus)}"
        )
        raise typer.Exit(code=1) from None


def _run(coro_factory):  # type: ignore[no-untyped-def]
    """Run a query coroutine against a fresh pool, exiting 1 on database errors."""
    from specforge.main import get_app_context

    ctx = get_app_context()

    async def _main():  # type: ignore[no-untyped-def]
        try:
            return await coro_factory(ctx.session_factory)
        finally:
            await ctx.dispose()

    try:
        return asyncio.run(_main())
    except SQLAlchemyError as e:
        console.print(f"[red]Database error:[/red] {e}")
        raise typer.Exit(code=1) from e


def _project_table(title: str, projects: list[Project]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Owner")
    table.add_column("Status")
    table.add_column("v", justify="right")
    table.add_column("Downloads", justify="right")
    table.add_column("Status since", style="dim")

    for p in projects:
        color = STATUS_COLORS.get(p.status.value, "white")
        table.add_row(
            str(p.id),
            p.name,
            p.user_id,
            f"[{color}]{p.status.value}[/{color}]",
            str(p.version),
            str(p.download_count),
            p.status_changed_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


@app.command("list")
def list_command(
    status: Annotated[
        Optional[str],
        typer.Option("--status", "-s", help="Filter by status"),
    ] = None,
    user_id: Annotated[
        Optional[str],
        typer.Option("--user", "-u", help="Filter by owner"),
    ] = None,
    include_archived: Annotated[
        bool,
        typer.Option("--archived", help="Include archived projects"),
    ] = False,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """List projects, newest first."""
    status_filter = _parse_status(status) if status is not None else None

    async def _list(session_factory):  # type: ignore[no-untyped-def]
        async with session_factory() as session:
            return await project_queries.list_projects(
                session,
                user_id=user_id,
                status_filter=status_filter,
                include_archived=include_archived,
            )

    projects = _run(_list)

    if format == "json":
        output = [
            {
                "id": str(p.id),
                "name": p.name,
                "user_id": p.user_id,
                "status": p.status.value,
                "version": p.version,
                "download_count": p.download_count,
                "created_at": p.created_at.isoformat(),
            }
            for p in projects
        ]
        console.print(json.dumps(output, indent=2))
        return

    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return
    console.print(_project_table("Projects", projects))


@app.command()
def show(
    project_id: Annotated[str, typer.Argument(help="Project ID")],
) -> None:
    """Show one project with its research and document summaries."""
    try:
        pid = UUID(project_id)
    except ValueError:
        console.print(f"[red]Invalid project ID:[/red] {project_id}")
        raise typer.Exit(code=1) from None

    async def _show(session_factory):  # type: ignore[no-untyped-def]
        async with session_factory() as session:
            project = await project_queries.require_project(session, pid)
            research = await research_queries.get_research_artifact(session, pid)
            document = await document_queries.get_document(session, pid)
            return project, research, document

    try:
        project, research, document = _run(_show)
    except ProjectNotFoundError:
        console.print(f"[red]Project not found:[/red] {project_id}")
        raise typer.Exit(code=1) from None

    lines = [
        f"[bold]ID:[/bold] {project.id}",
        f"[bold]Name:[/bold] {project.name}",
        f"[bold]Owner:[/bold] {project.user_id}",
        f"[bold]Status:[/bold] {project.status.value}",
        f"[bold]Research:[/bold] {project.research_status.value}",
        f"[bold]Spec:[/bold] {project.spec_status.value}",
        f"[bold]Version:[/bold] {project.version}",
        f"[bold]Downloads:[/bold] {project.download_count}",
    ]
    if research is not None:
        lines.append("")
        lines.append(f"[bold]Research artifact:[/bold] {research.status.value}")
        if research.novel_category:
            lines.append("  novel category (no direct competitors)")
        if research.skipped_phases:
            lines.append(f"  skipped phases: {research.skipped_phases}")
        if research.failed_phase is not None:
            lines.append(f"  [red]failed phase {research.failed_phase}:[/red] {research.error_message}")
        lines.append(f"  cost: ${research.total_cost_usd:.4f}")
    if document is not None:
        lines.append("")
        lines.append(f"[bold]Document:[/bold] {document.status.value}")
        lines.append(f"  quality score: {document.quality_score}")
        lines.append(
            f"  entities: {document.entity_count}, state changes: {document.state_change_count}"
        )
        if document.complexity_rating:
            lines.append(
                f"  complexity: {document.complexity_rating} "
                f"({document.build_hours_min}-{document.build_hours_max}h)"
            )

    color = STATUS_COLORS.get(project.status.value, "white")
    console.print(Panel("\n".join(lines), title=project.name, border_style=color))


@app.command()
def stale(
    status: Annotated[
        str,
        typer.Option("--status", "-s", help="Status the projects sit in"),
    ] = "complete",
    hours: Annotated[
        Optional[int],
        typer.Option("--hours", help="Minimum hours in status (default: reminder window)"),
    ] = None,
) -> None:
    """List projects that have sat in a status past a cutoff."""
    from specforge.main import get_app_context

    status_enum = _parse_status(status)
    window = hours or get_app_context().config.pipeline.reminder_after_days * 24
    cutoff = datetime.now(timezone.utc) - timedelta(hours=window)

    async def _stale(session_factory):  # type: ignore[no-untyped-def]
        async with session_factory() as session:
            return await project_queries.list_projects_in_status_since(
                session, status_enum, cutoff
            )

    projects = _run(_stale)
    if not projects:
        console.print(f"[green]No projects in {status} for more than {window}h[/green]")
        return
    console.print(_project_table(f"In {status} for more than {window}h", projects))
