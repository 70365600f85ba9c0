"""harvester rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from harvester.cli.errors import err_project_not_found
    console.print(err_project_not_found("docs"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(message: str) -> str:
    """Embedding provider has no API key (message names the env var)."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Or use the offline embedder:  export HARVESTER_EMBEDDING_PROVIDER=mock"
    )


def err_project_not_found(ref: str) -> str:
    """Project id/slug did not resolve."""
    return (
        f"[red]Error:[/] Project '{ref}' not found.\n"
        f"  Create it:  harvester project create {ref}\n"
        "  Or list existing projects:  harvester project list"
    )


def err_project_exists(slug: str) -> str:
    return (
        f"[red]Error:[/] A project with slug '{slug}' already exists.\n"
        "  Choose another slug or use the existing project."
    )


def err_invalid_source(message: str) -> str:
    """Source flags or spec are malformed."""
    return (
        f"[red]Error:[/] Invalid source: {message}\n"
        "  Pass exactly one of --url, --crawl, --sitemap or --file.\n"
        "  Example:  harvester ingest --project docs --crawl https://example.com/docs"
    )


def err_config(message: str) -> str:
    """Config file contains an invalid or forbidden value."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Fix harvester.yaml or ~/.harvester/config.yaml and retry."
    )


def err_redis_unavailable(url: str, detail: str) -> str:
    """Job store / queue cannot be reached."""
    return (
        f"[red]Error:[/] Cannot reach Redis at '{url}': {detail}\n"
        "  Start Redis or point harvester at it:  export HARVESTER_REDIS_URL=redis://host:6379/0"
    )


def err_job_not_found(job_id: str) -> str:
    """Job record missing (never submitted, or expired after 24 h)."""
    return (
        f"[yellow]Job not found:[/] '{job_id}'.\n"
        "  Job records expire 24 hours after their last update."
    )

