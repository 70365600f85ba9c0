"""Scope and allow/deny filtering of candidate URLs."""

from __future__ import annotations

import logging
import re
import urllib.parse
from collections.abc import Sequence
from functools import lru_cache

from harvester.ingest.robots import RobotsChecker
from harvester.ingest.spec import CrawlSpec, Scope

logger = logging.getLogger(__name__)


def normalize_host(netloc: str) -> str:
    """Lower-case *netloc* and drop a leading ``www.``."""
    host = netloc.lower()
    return host[4:] if host.startswith("www.") else host


def host_suffix(host: str) -> str:
    """Last two labels of *host* (``docs.example.com`` -> ``example.com``).

    Not a public-suffix lookup: ``example.co.uk`` yields ``co.uk``.
    """
    labels = normalize_host(host).split(".")
    return ".".join(labels[-2:]) if len(labels) > 2 else ".".join(labels)


def within_scope(url: str, base_url: str, scope: Scope | str) -> bool:
    """Return True if *url* (absolute or relative to *base_url*) is inside *scope*."""
    scope = Scope(scope)
    target = urllib.parse.urljoin(base_url, url)
    parsed = urllib.parse.urlparse(target)
    base = urllib.parse.urlparse(base_url)

    if scope is Scope.PREFIX:
        prefix = base_url if base_url.endswith("/") else base_url + "/"
        return target.startswith(prefix) or target.rstrip("/") == base_url.rstrip("/")
    if scope is Scope.DOMAIN:
        host = normalize_host(parsed.hostname or "")
        suffix = host_suffix(base.hostname or "")
        return bool(suffix) and (host == suffix or host.endswith("." + suffix))
    return normalize_host(parsed.netloc) == normalize_host(base.netloc)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        logger.debug("invalid pattern %r, using substring match", pattern)
        return None


def _matches(pattern: str, url: str) -> bool:
    compiled = _compile(pattern)
    if compiled is None:
        return pattern in url
    return compiled.search(url) is not None


def passes_allow_deny(url: str, allow: Sequence[str], deny: Sequence[str]) -> bool:
    """Deny wins; a non-empty allow list needs at least one match. Empty patterns are ignored."""
    if any(_matches(p, url) for p in deny if p):
        return False
    allow = [p for p in allow if p]
    if not allow:
        return True
    return any(_matches(p, url) for p in allow)


class UrlFilter:
    """Combined scope, allow/deny and robots check for one expansion.

    Args:
        crawl_spec: Supplies scope, patterns and ``respect_robots``.
        base_url: Reference URL for scope decisions (the seed).
        robots: Checker consulted when ``crawl_spec.respect_robots`` is set.
    """

    def __init__(
        self,
        crawl_spec: CrawlSpec,
        base_url: str,
        robots: RobotsChecker | None = None,
    ) -> None:
        self.spec = crawl_spec
        self.base_url = base_url
        self.robots = robots

    def in_scope(self, url: str) -> bool:
        """Scope and allow/deny only; no network access."""
        return within_scope(url, self.base_url, self.spec.scope) and passes_allow_deny(
            url, self.spec.allow, self.spec.deny
        )

    def robots_allowed(self, url: str) -> bool:
        if not self.spec.respect_robots or self.robots is None:
            return True
        return self.robots.allowed(url)

    def allowed(self, url: str) -> bool:
        return self.in_scope(url) and self.robots_allowed(url)
