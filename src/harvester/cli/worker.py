"""harvester worker — consume queued ingestion jobs."""

from __future__ import annotations

from typing import Annotated

import typer

from harvester.cli.context import cli_errors, console, get_config, open_harvester


def worker_cmd(
    ctx: typer.Context,
    max_tasks: Annotated[
        int | None,
        typer.Option("--max-tasks", help="Exit after this many jobs (default: run forever)."),
    ] = None,
    poll_timeout: Annotated[
        float, typer.Option("--poll-timeout", help="Seconds each queue poll blocks.")
    ] = 5.0,
    until_idle: Annotated[
        bool, typer.Option("--until-idle", help="Exit once the queue is empty.")
    ] = False,
) -> None:
    """Run queued ingestion jobs one after another."""
    harvester = open_harvester(ctx)
    console.print(f"[bold]Worker started[/] (queue: {harvester.queue.key})")
    try:
        with cli_errors(get_config(ctx)):
            handled = harvester.work(
                stop_after=max_tasks, poll_timeout=poll_timeout, stop_when_idle=until_idle
            )
    except KeyboardInterrupt:
        console.print("[yellow]Worker stopped.[/]")
        return
    console.print(f"[green]✓[/] Worker finished: {handled} job(s) processed.")
