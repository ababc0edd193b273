"""Main CLI entry point for SpecForge.

This module provides the main Typer application with the API server
command and sub-commands for inspecting projects and draining the
notification outbox.

Usage:
    specforge serve --port 8000
    specforge project list --status review
    specforge project stale --status complete --hours 72
    specforge notifications drain
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from specforge.cli import notifications as notifications_cli
from specforge.cli import project as project_cli
from specforge.config import SpecForgeConfig, load_config
from specforge.database.connection import get_engine, get_session_factory
from specforge.logging import setup_logging

app = typer.Typer(
    name="specforge",
    help="SpecForge: conversational research and specification generation",
    no_args_is_help=True,
)

app.add_typer(project_cli.app, name="project", help="Inspect projects")
app.add_typer(notifications_cli.app, name="notifications", help="Deliver notifications")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded SpecForge configuration
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
    """

    def __init__(self, config: SpecForgeConfig):
        self.config = config
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)

    async def dispose(self) -> None:
        """Release pooled connections; call before the command's loop ends."""
        await self.engine.dispose()


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: SpecForgeConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default: from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default: from config)"),
    ] = None,
) -> None:
    """Start the SpecForge API server."""
    import uvicorn

    from specforge.web.app import create_app

    config = get_app_context().config
    bind_host = host or config.web.host
    bind_port = port or config.web.port

    console.print("[bold cyan]Starting SpecForge API Server[/bold cyan]")
    console.print(f"[dim]Host:[/dim] {bind_host}")
    console.print(f"[dim]Port:[/dim] {bind_port}")
    if not config.ai.api_key:
        console.print("[yellow]No AI API key configured; AI calls will fail[/yellow]")
    console.print()

    uvicorn.run(
        create_app(config),
        host=bind_host,
        port=bind_port,
        log_level=config.logging.level.lower(),
    )


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration, configure logging and initialize the context."""
    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1) from e

    if verbose:
        config.logging.level = "DEBUG"
        config.logging.format = "console"
    setup_logging(config.logging)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
