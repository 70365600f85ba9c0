"""harvester ingest — submit a web source for ingestion.

Source selection (exactly one):
  --url U          single page
  --crawl URL      breadth-first crawl from URL (--mode single: just URL)
  --sitemap URL    every page listed in the sitemap (indexes followed)
  --file URL ...   explicit document URLs (--format to force markdown/text/html)

Without --wait the job is queued for 'harvester worker'. With --wait it runs
in this process and a progress bar follows the job record.
"""

from __future__ import annotations

import threading
from typing import Annotated, Any

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from harvester.cli.context import cli_errors, console, get_config, open_harvester
from harvester.cli.status import render_job
from harvester.ingest.spec import SourceSpec, SourceSpecError
from harvester.jobs.queue import IngestTask
from harvester.jobs.tracker import IngestJob
from harvester.service import Harvester

_POLL_INTERVAL = 0.25  # seconds


def build_source_dict(
    url: str | None,
    crawl: str | None,
    sitemap: str | None,
    files: list[str],
    *,
    mode: str | None = None,
    scope: str = "host",
    max_depth: int = 0,
    max_pages: int = 0,
    allow: list[str] | None = None,
    deny: list[str] | None = None,
    respect_robots: bool = False,
    concurrency: int = 0,
    delay_ms: int = 0,
    fmt: str = "auto",
    fail_fast: bool = False,
) -> dict[str, Any]:
    """Translate CLI flags into a source dict for SourceSpec.from_dict().

    Raises:
        SourceSpecError: Zero or several source kinds were given.
    """
    flags = (("--url", url), ("--crawl", crawl), ("--sitemap", sitemap), ("--file", files))
    given = [name for name, value in flags if value]
    if len(given) != 1:
        raise SourceSpecError(
            "no source given" if not given else f"conflicting sources: {', '.join(given)}"
        )

    crawl_opts = {
        "scope": scope,
        "allow": allow or [],
        "deny": deny or [],
        "max_depth": max_depth,
        "max_pages": max_pages,
        "respect_robots": respect_robots,
        "concurrency": concurrency,
        "delay_ms": delay_ms,
    }
    if crawl:
        return {
            "type": "crawl",
            "fail_fast": fail_fast,
            "crawl": {"mode": mode or "crawl", "start_url": crawl, **crawl_opts},
        }
    if sitemap:
        return {
            "type": "crawl",
            "fail_fast": fail_fast,
            "crawl": {"mode": "sitemap", "sitemap_url": sitemap, **crawl_opts},
        }
    if files:
        return {
            "type": "files",
            "fail_fast": fail_fast,
            "files": {"urls": files, "format": fmt},
            "crawl": {"concurrency": concurrency, "delay_ms": delay_ms},
        }
    return {"type": "url", "url": url, "fail_fast": fail_fast}


def ingest_cmd(
    ctx: typer.Context,
    project: Annotated[str, typer.Option("--project", "-p", help="Project id or slug.")],
    url: Annotated[str | None, typer.Option("--url", help="Ingest a single page.")] = None,
    crawl: Annotated[
        str | None, typer.Option("--crawl", help="Crawl breadth-first from this URL.")
    ] = None,
    sitemap: Annotated[
        str | None, typer.Option("--sitemap", help="Ingest the pages listed in this sitemap.")
    ] = None,
    file: Annotated[
        list[str] | None, typer.Option("--file", "-f", help="Document URL (repeatable).")
    ] = None,
    mode: Annotated[
        str | None, typer.Option("--mode", help="Crawl mode for --crawl: crawl or single.")
    ] = None,
    scope: Annotated[str, typer.Option("--scope", help="host, domain or prefix.")] = "host",
    max_depth: Annotated[int, typer.Option("--max-depth", help="BFS depth (0 = 2).")] = 0,
    max_pages: Annotated[int, typer.Option("--max-pages", help="URL cap (0 = default).")] = 0,
    allow: Annotated[
        list[str] | None, typer.Option("--allow", help="Regex a URL must match (repeatable).")
    ] = None,
    deny: Annotated[
        list[str] | None, typer.Option("--deny", help="Regex that excludes a URL (repeatable).")
    ] = None,
    respect_robots: Annotated[
        bool, typer.Option("--respect-robots", help="Honour robots.txt (User-agent: *).")
    ] = False,
    concurrency: Annotated[
        int, typer.Option("--concurrency", help="Parallel fetches (1-16, 0 = config).")
    ] = 0,
    delay_ms: Annotated[
        int, typer.Option("--delay-ms", help="Politeness delay per request in ms.")
    ] = 0,
    fmt: Annotated[
        str, typer.Option("--format", help="Document format: auto, html, markdown, text.")
    ] = "auto",
    fail_fast: Annotated[
        bool, typer.Option("--fail-fast", help="Abort the job on the first failing URL.")
    ] = False,
    wait: Annotated[
        bool, typer.Option("--wait", help="Run the job now and show progress.")
    ] = False,
) -> None:
    """Submit a web source for ingestion into a project."""
    harvester = open_harvester(ctx)
    with cli_errors(get_config(ctx)):
        source = build_source_dict(
            url,
            crawl,
            sitemap,
            file or [],
            mode=mode,
            scope=scope,
            max_depth=max_depth,
            max_pages=max_pages,
            allow=allow,
            deny=deny,
            respect_robots=respect_robots,
            concurrency=concurrency,
            delay_ms=delay_ms,
            fmt=fmt,
            fail_fast=fail_fast,
        )
        spec = SourceSpec.from_dict(source).validate()
        job_id = harvester.submit_source(project, spec, enqueue=not wait)
        project_id = harvester.resolve_project(project).id

    if not wait:
        console.print(f"[green]✓[/] Queued job [bold]{job_id}[/]")
        console.print(f"  Track it:  harvester status {job_id}")
        return

    task = IngestTask(job_id=job_id, project_id=project_id, source=spec)
    job = _run_with_progress(harvester, task)
    if job is not None:
        console.print(render_job(job))
        if job.error:
            raise typer.Exit(1)


def _run_with_progress(harvester: Harvester, task: IngestTask) -> IngestJob | None:
    """Run *task* on a background thread while polling its job record."""
    result: list[IngestJob | None] = []
    runner = threading.Thread(
        target=lambda: result.append(harvester.run_task(task)), name=f"run-{task.job_id}"
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as prog:
        bar = prog.add_task("Expanding source…", total=None)
        runner.start()
        while runner.is_alive():
            runner.join(_POLL_INTERVAL)
            job = harvester.job_status(task.job_id)
            if job is not None and job.total:
                prog.update(
                    bar,
                    description=f"Ingesting {job.total} URLs…",
                    total=job.total,
                    completed=job.processed,
                )

    return result[0] if result else None
