"""harvester configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (HARVESTER_DB, HARVESTER_REDIS_URL, HARVESTER_EMBEDDING_*,
     HARVESTER_LOG_LEVEL)
  3. Per-project harvester.yaml  (in the working directory)
  4. Global ~/.harvester/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".harvester"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "harvester.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or auth_header.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # my_secret, client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections. Unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "crawl", "ingest", "retrieval", "jobs", "logging"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Document store location (harvester.yaml: database:)."""

    path: str = ".harvester.db"


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (harvester.yaml: embedding:).

    Attributes:
        provider: One of 'litellm', 'http', 'mock'.
        model: Model identifier passed to the provider.
        dimensions: Vector size; used by the mock provider and for display.
        endpoint: URL of the generic HTTP embedding endpoint (provider 'http').
        auth_header: Header carrying the bearer key for the HTTP provider.
    """

    provider: str = "litellm"
    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    endpoint: str = ""
    auth_header: str = "Authorization"


@dataclass
class CrawlCfg:
    """HTTP fetch settings shared by crawl, sitemap, robots and page fetches."""

    user_agent: str = "harvester/0.1"
    page_timeout: float = 30.0
    crawl_timeout: float = 20.0
    sitemap_timeout: float = 30.0
    robots_timeout: float = 5.0
    max_bytes: int = 5 * 1024 * 1024
    block_private_networks: bool = True


@dataclass
class IngestCfg:
    """Worker pool settings (harvester.yaml: ingest:)."""

    concurrency: int = 4
    max_chunks: int = 20


@dataclass
class RetrievalCfg:
    """Retrieval configuration (harvester.yaml: retrieval:)."""

    top_k: int = 10
    index: str = "chunks"


@dataclass
class JobsCfg:
    """Job tracking and task queue configuration (harvester.yaml: jobs:)."""

    redis_url: str = "redis://localhost:6379/0"
    ttl_hours: int = 24
    key_prefix: str = "harvester:job:"
    queue_key: str = "harvester:tasks"


@dataclass
class LoggingCfg:
    level: str = "INFO"
    json: bool = False


@dataclass
class HarvesterConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    crawl: CrawlCfg = field(default_factory=CrawlCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    jobs: JobsCfg = field(default_factory=JobsCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: HarvesterConfig) -> None:
    if cfg.embedding.provider not in ("litellm", "http", "mock"):
        raise ConfigError(
            "embedding.provider must be one of litellm, http, mock — "
            f"got '{cfg.embedding.provider}'"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.ingest.max_chunks < 1:
        raise ConfigError(f"ingest.max_chunks must be >= 1, got {cfg.ingest.max_chunks}")
    if cfg.jobs.ttl_hours < 1:
        raise ConfigError(f"jobs.ttl_hours must be >= 1, got {cfg.jobs.ttl_hours}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> HarvesterConfig:
    """Build a *HarvesterConfig* from a merged raw YAML dict."""
    cfg = HarvesterConfig()

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            provider=str(e.get("provider", cfg.embedding.provider)).lower(),
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            endpoint=str(e.get("endpoint", cfg.embedding.endpoint)),
            auth_header=str(e.get("auth_header", cfg.embedding.auth_header)),
        )

    if "crawl" in data:
        c = data["crawl"] or {}
        cfg.crawl = CrawlCfg(
            user_agent=str(c.get("user_agent", cfg.crawl.user_agent)),
            page_timeout=float(c.get("page_timeout", cfg.crawl.page_timeout)),
            crawl_timeout=float(c.get("crawl_timeout", cfg.crawl.crawl_timeout)),
            sitemap_timeout=float(c.get("sitemap_timeout", cfg.crawl.sitemap_timeout)),
            robots_timeout=float(c.get("robots_timeout", cfg.crawl.robots_timeout)),
            max_bytes=int(c.get("max_bytes", cfg.crawl.max_bytes)),
            block_private_networks=bool(
                c.get("block_private_networks", cfg.crawl.block_private_networks)
            ),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            concurrency=int(i.get("concurrency", cfg.ingest.concurrency)),
            max_chunks=int(i.get("max_chunks", cfg.ingest.max_chunks)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            index=str(r.get("index", cfg.retrieval.index)),
        )

    if "jobs" in data:
        j = data["jobs"] or {}
        cfg.jobs = JobsCfg(
            redis_url=str(j.get("redis_url", cfg.jobs.redis_url)),
            ttl_hours=int(j.get("ttl_hours", cfg.jobs.ttl_hours)),
            key_prefix=str(j.get("key_prefix", cfg.jobs.key_prefix)),
            queue_key=str(j.get("queue_key", cfg.jobs.queue_key)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: HarvesterConfig) -> HarvesterConfig:
    """Apply HARVESTER_* environment variable overrides."""
    if path := os.environ.get("HARVESTER_DB"):
        cfg.database.path = path
    if url := os.environ.get("HARVESTER_REDIS_URL"):
        cfg.jobs.redis_url = url
    if provider := os.environ.get("HARVESTER_EMBEDDING_PROVIDER"):
        cfg.embedding.provider = provider.lower()
    if model := os.environ.get("HARVESTER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if endpoint := os.environ.get("HARVESTER_EMBEDDING_ENDPOINT"):
        cfg.embedding.endpoint = endpoint
    if level := os.environ.get("HARVESTER_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> HarvesterConfig:
    """Load and return a merged *HarvesterConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *harvester.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
