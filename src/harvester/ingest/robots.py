"""robots.txt checks for the ``User-agent: *`` group.

Only the wildcard group is honoured. Rules are plain path prefixes; the
longest matching Allow/Disallow wins and ties favour Allow. Any failure to
obtain robots.txt means "allowed".
"""

from __future__ import annotations

import logging
import threading
import urllib.parse

from harvester.ingest.fetch import FetchError, Fetcher

logger = logging.getLogger(__name__)

_ROBOTS_TIMEOUT = 5.0  # seconds


def robots_allow(robots_txt: str, path: str) -> bool:
    """Return True if *path* may be fetched under the ``*`` group of *robots_txt*."""
    in_star_group = False
    allows: list[str] = []
    disallows: list[str] = []

    for line in robots_txt.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.split("#", 1)[0].strip()
        if key == "user-agent":
            in_star_group = value == "*"
            continue
        if not in_star_group or not value:
            continue
        if key == "disallow":
            disallows.append(value)
        elif key == "allow":
            allows.append(value)

    best_allow = max((len(a) for a in allows if path.startswith(a)), default=0)
    best_disallow = max((len(d) for d in disallows if path.startswith(d)), default=0)
    return best_allow >= best_disallow


class RobotsChecker:
    """Fetch-and-cache robots.txt per origin (scheme + netloc).

    One checker lives for one URL-set expansion, so a crawl touching many
    pages on the same host fetches robots.txt once.
    """

    def __init__(self, fetcher: Fetcher, timeout: float = _ROBOTS_TIMEOUT) -> None:
        self._fetcher = fetcher
        self._timeout = timeout
        self._cache: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def allowed(self, url: str) -> bool:
        parsed = urllib.parse.urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return True
        robots_txt = self._robots_for(f"{parsed.scheme}://{parsed.netloc}")
        if robots_txt is None:
            return True
        return robots_allow(robots_txt, parsed.path or "/")

    def _robots_for(self, origin: str) -> str | None:
        with self._lock:
            if origin in self._cache:
                return self._cache[origin]
        robots_txt = self._fetch(origin)
        with self._lock:
            self._cache.setdefault(origin, robots_txt)
            return self._cache[origin]

    def _fetch(self, origin: str) -> str | None:
        robots_url = f"{origin}/robots.txt"
        try:
            response = self._fetcher.get(robots_url, timeout=self._timeout)
        except (FetchError, ValueError) as exc:
            logger.debug("robots.txt unavailable at %s: %s", robots_url, exc)
            return None
        if not response.ok:
            return None
        return response.text
