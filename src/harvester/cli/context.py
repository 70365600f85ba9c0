"""Shared CLI plumbing: the config loaded by the root callback and error translation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import redis
import typer
from rich.console import Console

from harvester.cli.errors import (
    err_config,
    err_invalid_source,
    err_no_api_key,
    err_project_not_found,
    err_redis_unavailable,
)
from harvester.config import ConfigError, HarvesterConfig, load_config
from harvester.db.repository import ProjectNotFoundError
from harvester.ingest.embedding import EmbeddingError
from harvester.ingest.spec import SourceSpecError
from harvester.service import Harvester

console = Console()


def get_config(ctx: typer.Context) -> HarvesterConfig:
    """Config stored by the root callback (loaded fresh if a command runs standalone)."""
    if isinstance(ctx.obj, HarvesterConfig):
        return ctx.obj
    with cli_errors():
        ctx.obj = load_config()
    return ctx.obj


def open_harvester(ctx: typer.Context) -> Harvester:
    cfg = get_config(ctx)
    with cli_errors(cfg):
        return Harvester(cfg)


@contextmanager
def cli_errors(cfg: HarvesterConfig | None = None) -> Iterator[None]:
    """Translate configuration-class errors into actionable messages and exit code 1."""
    try:
        yield
    except ProjectNotFoundError as exc:
        console.print(err_project_not_found(exc.ref))
        raise typer.Exit(1) from exc
    except SourceSpecError as exc:
        console.print(err_invalid_source(str(exc)))
        raise typer.Exit(1) from exc
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    except EmbeddingError as exc:
        console.print(err_no_api_key(str(exc)))
        raise typer.Exit(1) from exc
    except redis.RedisError as exc:
        url = cfg.jobs.redis_url if cfg is not None else "?"
        console.print(err_redis_unavailable(url, str(exc)))
        raise typer.Exit(1) from exc
