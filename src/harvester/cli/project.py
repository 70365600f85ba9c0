"""harvester project — create and list projects."""

from __future__ import annotations

import sqlite3
from typing import Annotated

import typer
from rich.table import Table

from harvester.cli.context import cli_errors, console, get_config, open_harvester
from harvester.cli.errors import err_project_exists

project_app = typer.Typer(help="Manage projects (ingestion and search namespaces).")


@project_app.command("create")
def create_cmd(
    ctx: typer.Context,
    slug: Annotated[str, typer.Argument(help="Unique project slug, e.g. 'docs'.")],
    name: Annotated[
        str,
        typer.Option("--name", help="Display name (defaults to the slug)."),
    ] = "",
) -> None:
    """Create a project."""
    harvester = open_harvester(ctx)
    with cli_errors(get_config(ctx)):
        try:
            project = harvester.create_project(slug, name)
        except sqlite3.IntegrityError as exc:
            console.print(err_project_exists(slug))
            raise typer.Exit(1) from exc
    console.print(f"[green]✓[/] Created project [bold]{project.slug}[/] ({project.id})")


@project_app.command("list")
def list_cmd(ctx: typer.Context) -> None:
    """List projects."""
    harvester = open_harvester(ctx)
    with cli_errors(get_config(ctx)):
        projects = harvester.list_projects()
    if not projects:
        console.print("[dim]No projects yet.[/]  Run:  harvester project create <slug>")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Slug")
    table.add_column("Name")
    table.add_column("Id", style="dim")
    table.add_column("Created", style="dim")
    for p in projects:
        table.add_row(p.slug, p.name, p.id, p.created_at or "")
    console.print(table)
