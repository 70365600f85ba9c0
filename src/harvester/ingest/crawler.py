"""Breadth-first link crawler producing the URL list for crawl sources."""

from __future__ import annotations

import logging
import threading
import urllib.parse
from collections import deque

from bs4 import BeautifulSoup

from harvester.ingest.fetch import FetchError, Fetcher
from harvester.ingest.scope import UrlFilter

logger = logging.getLogger(__name__)

CRAWL_TIMEOUT = 20.0  # seconds per page
DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 200
# Frontier admission stops once this many URLs per max_pages have been seen.
_FRONTIER_FACTOR = 3

_SKIP_PREFIXES = ("#", "mailto:", "javascript:", "tel:")


def extract_links(html: str, page_url: str) -> list[str]:
    """Absolute http(s) links from ``<a href>`` in *html*, in document order.

    Relative links are resolved against *page_url* and fragments removed.
    Duplicates are dropped case-sensitively on the final URL string.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIP_PREFIXES):
            continue
        try:
            absolute = urllib.parse.urljoin(page_url, href)
        except ValueError:
            continue
        absolute, _fragment = urllib.parse.urldefrag(absolute)
        if urllib.parse.urlparse(absolute).scheme not in ("http", "https"):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


class BfsCrawler:
    """Single-threaded breadth-first crawl from a seed URL.

    Each dequeued URL passes robots, scope and allow/deny checks before
    it is accepted. Pages shallower than ``max_depth`` are fetched and
    their in-scope links queued one level deeper. A page that fails to
    fetch is still accepted; it just contributes no links.

    Args:
        fetcher: HTTP fetcher (``HttpFetcher`` or a test fake).
        url_filter: Scope/allow/deny/robots filter built for the seed.
        max_depth: Maximum link depth; <= 0 means 2.
        max_pages: Maximum URLs returned; <= 0 means 200.
        delay_ms: Politeness pause after each fetched page.
        timeout: Per-page fetch timeout.
        cancel: Optional event; when set the crawl stops early.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        url_filter: UrlFilter,
        max_depth: int = 0,
        max_pages: int = 0,
        delay_ms: int = 0,
        timeout: float = CRAWL_TIMEOUT,
        cancel: threading.Event | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._filter = url_filter
        self.max_depth = max_depth if max_depth > 0 else DEFAULT_MAX_DEPTH
        self.max_pages = max_pages if max_pages > 0 else DEFAULT_MAX_PAGES
        self.delay_ms = max(0, delay_ms)
        self._timeout = timeout
        self._cancel = cancel or threading.Event()

    def crawl(self, seed: str) -> list[str]:
        """Return accepted URLs in BFS order, at most ``max_pages``."""
        frontier: deque[tuple[str, int]] = deque([(seed, 0)])
        seen: set[str] = {seed}
        accepted: list[str] = []
        frontier_limit = self.max_pages * _FRONTIER_FACTOR

        while frontier and len(accepted) < self.max_pages and not self._cancel.is_set():
            url, depth = frontier.popleft()
            if not self._filter.robots_allowed(url) or not self._filter.in_scope(url):
                continue
            accepted.append(url)
            if depth >= self.max_depth:
                continue

            html = self._fetch_html(url)
            if html is None:
                continue
            for link in extract_links(html, url):
                if link in seen or not self._filter.in_scope(link):
                    continue
                seen.add(link)
                frontier.append((link, depth + 1))
                if len(seen) >= frontier_limit:
                    break
            if self.delay_ms:
                self._cancel.wait(self.delay_ms / 1000)

        return accepted[: self.max_pages]

    def _fetch_html(self, url: str) -> str | None:
        try:
            response = self._fetcher.get(url, timeout=self._timeout)
        except (FetchError, ValueError) as exc:
            logger.warning("crawl fetch failed for %s: %s", url, exc)
            return None
        if not response.ok:
            logger.info("crawl fetch for %s returned status=%d", url, response.status)
            return None
        return response.text
