import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from uvicorn import Config, Server

from uptime_reconciler.__about__ import __version__
from uptime_reconciler.app import create_app
from uptime_reconciler.config import get_settings

app = typer.Typer(help="Scheduled uptime reconciler")
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print the package version and exit if requested."""
    if value:
        console.print(f"uptime-reconciler {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(  # noqa: UP007 - Optional for clarity in help
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Configure logging before any subcommand runs."""
    _configure_logging(get_settings().log_level)


@app.command()
def serve() -> None:
    """Start the FastAPI server exposing the remote check endpoint."""
    settings = get_settings()

    fastapi_app = create_app()
    config = Config(
        app=fastapi_app, host=settings.app_host, port=settings.app_port, log_level="info"
    )
    server = Server(config)

    asyncio.run(server.serve())


@app.command()
def migrate() -> None:
    """Run Alembic migrations."""
    import os
    import subprocess
    import sys

    settings = get_settings()

    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        env={**os.environ, "DATABASE_URL": settings.database_url},
    )
    if result.returncode != 0:
        typer.echo("Migration failed", err=True)
        raise typer.Exit(1)

    typer.echo("Migrations completed successfully")


@app.command()
def check_once() -> None:
    """Run a single reconciliation."""
    from .db import Database, DatabaseKeyValueStore
    from .engine import create_reconciler

    settings = get_settings()

    async def run():
        async with Database(settings.database_url) as db:
            reconciler = await create_reconciler(settings, DatabaseKeyValueStore(db))
            return await reconciler.run()

    summary = asyncio.run(run())
    console.print(
        f"[bold]{summary.targets}[/bold] targets: "
        f"[green]{summary.up} up[/green], [red]{summary.down} down[/red]"
    )
    console.print(
        f"status changed: {summary.status_changed}, "
        f"state written: {summary.persisted}, "
        f"discovery: {'ok' if summary.discovery_ok else 'skipped'}"
    )


@app.command()
def run() -> None:
    """Reconcile every CHECK_INTERVAL_S seconds until interrupted."""
    from .db import Database, DatabaseKeyValueStore
    from .engine import create_reconciler, worker_loop

    settings = get_settings()

    async def loop() -> None:
        async with Database(settings.database_url) as db:
            store = DatabaseKeyValueStore(db)

            async def make_reconciler():
                return await create_reconciler(settings, store)

            await worker_loop(make_reconciler, interval_s=settings.check_interval_s)

    asyncio.run(loop())


if __name__ == "__main__":
    app()
