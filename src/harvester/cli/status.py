"""harvester status — show an ingestion job's progress record."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel

from harvester.cli.context import cli_errors, console, get_config, open_harvester
from harvester.cli.errors import err_job_not_found
from harvester.jobs.tracker import IngestJob, JobStatus

_STATUS_STYLE = {
    JobStatus.QUEUED: "cyan",
    JobStatus.RUNNING: "yellow",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
}


def status_cmd(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Job id returned by 'harvester ingest'.")],
) -> None:
    """Show the status of an ingestion job."""
    harvester = open_harvester(ctx)
    with cli_errors(get_config(ctx)):
        job = harvester.job_status(job_id)
    if job is None:
        console.print(err_job_not_found(job_id))
        raise typer.Exit(1)
    console.print(render_job(job))


def render_job(job: IngestJob) -> Panel:
    style = _STATUS_STYLE.get(job.status, "white")
    lines = [
        f"Job:       [bold]{job.job_id}[/]",
        f"Project:   {job.project_id}",
        f"Status:    [{style}]{job.status.value}[/]",
        f"Progress:  {job.processed}/{job.total}",
    ]
    if job.started_at:
        lines.append(f"Started:   {job.started_at}")
    if job.finished_at:
        lines.append(f"Finished:  {job.finished_at}")
    if job.error:
        lines.append(f"Error:     [red]{escape(job.error)}[/]")
    return Panel("\n".join(lines), title="[bold]Ingest job[/]", expand=False)
