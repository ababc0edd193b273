"""Notification outbox CLI commands."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from specforge.database.queries import outbox as outbox_queries
from specforge.notifications import DrainResult, OutboxDispatcher, WebhookDispatcher

app = typer.Typer(help="Notification outbox commands")
console = Console()


@app.command()
def drain(
    batch_size: Annotated[
        Optional[int],
        typer.Option("--batch-size", "-b", help="Maximum events to deliver"),
    ] = None,
) -> None:
    """Deliver pending outbox events to the configured webhook endpoints."""
    from specforge.main import get_app_context

    ctx = get_app_context()
    settings = ctx.config.notifications
    if not settings.endpoints:
        console.print("[yellow]No webhook endpoints configured; nothing to deliver[/yellow]")
        return

    async def _drain() -> DrainResult:
        webhooks = WebhookDispatcher(settings.endpoints)
        try:
            dispatcher = OutboxDispatcher(ctx.session_factory, webhooks)
            return await dispatcher.drain(batch_size or settings.batch_size)
        finally:
            await webhooks.close()
            await ctx.dispose()

    try:
        result = asyncio.run(_drain())
    except SQLAlchemyError as e:
        console.print(f"[red]Database error:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(
        f"Claimed [bold]{result.claimed}[/bold], "
        f"delivered [green]{result.delivered}[/green], "
        f"failed [red]{result.failed}[/red]"
    )
    if result.failed:
        raise typer.Exit(code=2)


@app.command()
def stats() -> None:
    """Show outbox counts by delivery status."""
    from specforge.main import get_app_context

    ctx = get_app_context()

    async def _stats() -> dict[str, int]:
        try:
            async with ctx.session_factory() as session:
                return await outbox_queries.get_outbox_stats(session)
        finally:
            await ctx.dispose()

    try:
        counts = asyncio.run(_stats())
    except SQLAlchemyError as e:
        console.print(f"[red]Database error:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title="Outbox")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in counts.items():
        table.add_row(status, str(count))
    console.print(table)
