"""Ingestion source descriptions: what to fetch and how to expand it.

A ``SourceSpec`` is built from the JSON-style dict carried by CLI flags and
queue messages. ``validate()`` rejects malformed specs before any job is
created, so configuration errors never reach the worker pool.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SourceSpecError(ValueError):
    """Raised for a missing required field or an unsupported type, mode or scope."""


class SourceType(str, Enum):
    URL = "url"
    CRAWL = "crawl"
    FILES = "files"


class CrawlMode(str, Enum):
    SINGLE = "single"
    SITEMAP = "sitemap"
    CRAWL = "crawl"


class Scope(str, Enum):
    HOST = "host"
    DOMAIN = "domain"
    PREFIX = "prefix"


# Document-style type names accepted on input; all ingest as a URL list.
_TYPE_ALIASES: dict[str, SourceType] = {
    "url": SourceType.URL,
    "crawl": SourceType.CRAWL,
    "files": SourceType.FILES,
    "file": SourceType.FILES,
    "document": SourceType.FILES,
    "documents": SourceType.FILES,
    "markdown": SourceType.FILES,
    "md": SourceType.FILES,
    "txt": SourceType.FILES,
    "text": SourceType.FILES,
}

_FORMATS = frozenset({"auto", "html", "markdown", "md", "txt", "text"})


def _str_tuple(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise SourceSpecError(f"'{name}' must be a list of strings")
    return tuple(str(v) for v in value)


def _int(value: Any, name: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SourceSpecError(f"'{name}' must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class CrawlSpec:
    """How to turn a web source into a URL list.

    Zero values for the limits mean "use the default" (max_depth 2,
    max_pages 200 for BFS; no truncation for sitemaps).
    """

    mode: CrawlMode = CrawlMode.CRAWL
    start_url: str = ""
    sitemap_url: str = ""
    scope: Scope = Scope.HOST
    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()
    max_depth: int = 0
    max_pages: int = 0
    respect_robots: bool = False
    concurrency: int = 0
    delay_ms: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrawlSpec:
        mode_raw = str(data.get("mode") or CrawlMode.CRAWL.value).lower()
        scope_raw = str(data.get("scope") or Scope.HOST.value).lower()
        try:
            mode = CrawlMode(mode_raw)
        except ValueError:
            raise SourceSpecError(
                f"unsupported crawl mode '{mode_raw}' (expected single, sitemap or crawl)"
            ) from None
        try:
            scope = Scope(scope_raw)
        except ValueError:
            raise SourceSpecError(
                f"unsupported crawl scope '{scope_raw}' (expected host, domain or prefix)"
            ) from None
        return cls(
            mode=mode,
            start_url=str(data.get("start_url") or "").strip(),
            sitemap_url=str(data.get("sitemap_url") or "").strip(),
            scope=scope,
            allow=_str_tuple(data.get("allow"), "allow"),
            deny=_str_tuple(data.get("deny"), "deny"),
            max_depth=_int(data.get("max_depth"), "max_depth"),
            max_pages=_int(data.get("max_pages"), "max_pages"),
            respect_robots=bool(data.get("respect_robots", False)),
            concurrency=_int(data.get("concurrency"), "concurrency"),
            delay_ms=_int(data.get("delay_ms"), "delay_ms"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "start_url": self.start_url,
            "sitemap_url": self.sitemap_url,
            "scope": self.scope.value,
            "allow": list(self.allow),
            "deny": list(self.deny),
            "max_depth": self.max_depth,
            "max_pages": self.max_pages,
            "respect_robots": self.respect_robots,
            "concurrency": self.concurrency,
            "delay_ms": self.delay_ms,
        }


@dataclass(frozen=True)
class FileSpec:
    """Explicit document URLs plus an optional declared content format."""

    urls: tuple[str, ...] = ()
    format: str = "auto"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileSpec:
        fmt = str(data.get("format") or "auto").lower()
        if fmt not in _FORMATS:
            raise SourceSpecError(
                f"unsupported file format '{fmt}' (expected one of {', '.join(sorted(_FORMATS))})"
            )
        urls = tuple(u.strip() for u in _str_tuple(data.get("urls"), "urls") if u.strip())
        return cls(urls=urls, format=fmt)

    def to_dict(self) -> dict[str, Any]:
        return {"urls": list(self.urls), "format": self.format}


@dataclass(frozen=True)
class SourceSpec:
    """One ingestion request.

    Attributes:
        type: Normalised source type.
        url: Single page URL (``url`` type), or the crawl seed when the crawl
            spec gives no ``start_url``.
        crawl: Expansion settings for ``crawl`` sources.
        files: Extra document URLs and their declared format.
        fail_fast: Abort the job on the first per-URL error.
    """

    type: SourceType
    url: str = ""
    crawl: CrawlSpec | None = None
    files: FileSpec | None = None
    fail_fast: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceSpec:
        """Build a spec from a JSON-style dict.

        Raises:
            SourceSpecError: On an unknown type, mode, scope or format, or a
                field of the wrong shape. Missing fields are reported by
                ``validate()``.
        """
        if not isinstance(data, dict):
            raise SourceSpecError("source must be an object")
        type_raw = str(data.get("type") or "").strip().lower()
        if not type_raw:
            raise SourceSpecError("source type is required")
        source_type = _TYPE_ALIASES.get(type_raw)
        if source_type is None:
            raise SourceSpecError(
                f"unsupported source type '{type_raw}' (expected url, crawl or files)"
            )

        crawl_data = data.get("crawl")
        files_data = data.get("files")
        files = FileSpec.from_dict(files_data) if isinstance(files_data, dict) else None
        # Document-style aliases imply their format when none is declared.
        if source_type is SourceType.FILES and type_raw in _FORMATS:
            if files is None:
                files = FileSpec(format=type_raw)
            elif files.format == "auto":
                files = FileSpec(urls=files.urls, format=type_raw)

        return cls(
            type=source_type,
            url=str(data.get("url") or "").strip(),
            crawl=CrawlSpec.from_dict(crawl_data) if isinstance(crawl_data, dict) else None,
            files=files,
            fail_fast=bool(data.get("fail_fast", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type.value,
            "url": self.url,
            "fail_fast": self.fail_fast,
        }
        if self.crawl is not None:
            out["crawl"] = self.crawl.to_dict()
        if self.files is not None:
            out["files"] = self.files.to_dict()
        return out

    @property
    def seed_url(self) -> str:
        """Crawl seed: ``crawl.start_url`` falling back to ``url``."""
        if self.crawl is not None and self.crawl.start_url:
            return self.crawl.start_url
        return self.url

    def validate(self) -> SourceSpec:
        """Check required fields for the source type. Returns self.

        Raises:
            SourceSpecError: When the spec cannot produce any URL.
        """
        if self.type is SourceType.URL:
            if not self.url:
                raise SourceSpecError("source type 'url' requires 'url'")
        elif self.type is SourceType.FILES:
            if not self.url and not (self.files and self.files.urls):
                raise SourceSpecError("file sources require 'url' or 'files.urls'")
        else:
            crawl = self.crawl or CrawlSpec()
            if crawl.mode is CrawlMode.SITEMAP:
                if not crawl.sitemap_url:
                    raise SourceSpecError("crawl mode 'sitemap' requires 'crawl.sitemap_url'")
            elif not self.seed_url:
                raise SourceSpecError(
                    f"crawl mode '{crawl.mode.value}' requires 'crawl.start_url' or 'url'"
                )
            for name in ("max_depth", "max_pages", "concurrency", "delay_ms"):
                if getattr(crawl, name) < 0:
                    raise SourceSpecError(f"'crawl.{name}' must be >= 0")
        return self
