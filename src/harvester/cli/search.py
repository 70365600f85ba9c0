"""harvester search — hybrid retrieval over a project's chunks."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from harvester.cli.context import cli_errors, console, get_config, open_harvester

_SNIPPET_CHARS = 160


def search_cmd(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    project: Annotated[str, typer.Option("--project", "-p", help="Project id or slug.")],
    top_k: Annotated[
        int | None, typer.Option("--top-k", "-k", help="Maximum results (default: config).")
    ] = None,
) -> None:
    """Search a project's ingested chunks (vector + lexical)."""
    harvester = open_harvester(ctx)
    with cli_errors(get_config(ctx)):
        results = harvester.search(project, query, top_k=top_k)

    if not results:
        console.print("No results.")
        return

    table = Table(title=f"Results for '{escape(query)}'")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Text")
    for rank, result in enumerate(results, start=1):
        meta = result.metadata
        source = meta.get("uri", "")
        if meta.get("section_path"):
            source = f"{source}\n[dim]{meta['section_path']}[/]"
        snippet = " ".join(result.text.split())
        if len(snippet) > _SNIPPET_CHARS:
            snippet = snippet[: _SNIPPET_CHARS - 1] + "…"
        table.add_row(str(rank), f"{result.score:.3f}", source, escape(snippet))
    console.print(table)
