"""Harvester CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from harvester.cli.context import console
from harvester.cli.errors import err_config
from harvester.cli.ingest import ingest_cmd
from harvester.cli.project import project_app
from harvester.cli.search import search_cmd
from harvester.cli.status import status_cmd
from harvester.cli.worker import worker_cmd
from harvester.config import ConfigError, load_config
from harvester.log import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("harvester")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"harvester {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="harvester",
    help=(
        "Harvester — web ingestion and hybrid retrieval.\n\n"
        "  harvester ingest  Queue a URL, crawl, sitemap or file list for a project.\n"
        "  harvester worker  Run queued jobs.\n"
        "  harvester search  Query a project's chunks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR.")
    ] = None,
    db: Annotated[
        str | None, typer.Option("--db", help="SQLite database path (overrides config).")
    ] = None,
) -> None:
    """Harvester — web ingestion and hybrid retrieval."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db:
        cfg.database.path = db
    setup_logging(log_level or cfg.logging.level, json=cfg.logging.json)
    ctx.obj = cfg


app.add_typer(project_app, name="project")
app.command("ingest")(ingest_cmd)
app.command("status")(status_cmd)
app.command("worker")(worker_cmd)
app.command("search")(search_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Harvester version."""
    typer.echo(f"harvester {_installed_version()}")


if __name__ == "__main__":
    app()
