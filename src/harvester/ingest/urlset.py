"""Expand a SourceSpec into the ordered, de-duplicated list of URLs to ingest."""

from __future__ import annotations

import logging
import threading
import urllib.parse

from harvester.ingest.crawler import CRAWL_TIMEOUT, BfsCrawler
from harvester.ingest.fetch import Fetcher
from harvester.ingest.robots import RobotsChecker
from harvester.ingest.scope import UrlFilter
from harvester.ingest.sitemap import SITEMAP_TIMEOUT, SitemapReader
from harvester.ingest.spec import CrawlMode, CrawlSpec, SourceSpec, SourceType

logger = logging.getLogger(__name__)


def _dedup(urls: list[str]) -> list[str]:
    return list(dict.fromkeys(urls))


class UrlSetBuilder:
    """Turn a validated SourceSpec into a URL list.

    Expansion is single-threaded. Network problems during expansion never
    raise; they only shrink the result (possibly to an empty list).

    Args:
        fetcher: HTTP fetcher shared with the worker pool.
        robots_timeout: Timeout for robots.txt requests.
        sitemap_timeout: Timeout for each sitemap request.
        crawl_timeout: Timeout for each page fetched while crawling.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        robots_timeout: float = 5.0,
        sitemap_timeout: float = SITEMAP_TIMEOUT,
        crawl_timeout: float = CRAWL_TIMEOUT,
    ) -> None:
        self._fetcher = fetcher
        self._robots_timeout = robots_timeout
        self._sitemap_timeout = sitemap_timeout
        self._crawl_timeout = crawl_timeout

    def expand(self, spec: SourceSpec, cancel: threading.Event | None = None) -> list[str]:
        """Return the URLs *spec* describes.

        Raises:
            SourceSpecError: If *spec* is malformed.
        """
        spec.validate()
        if spec.type is not SourceType.CRAWL:
            urls = [spec.url] if spec.url else []
            if spec.files is not None:
                urls.extend(spec.files.urls)
            return _dedup(urls)

        crawl = spec.crawl or CrawlSpec()
        robots = RobotsChecker(self._fetcher, timeout=self._robots_timeout)

        if crawl.mode is CrawlMode.SINGLE:
            seed = spec.seed_url
            if crawl.respect_robots and not robots.allowed(seed):
                logger.info("robots.txt disallows %s", seed)
                return []
            return [seed]

        if crawl.mode is CrawlMode.SITEMAP:
            found = SitemapReader(self._fetcher, timeout=self._sitemap_timeout).read(
                crawl.sitemap_url
            )
            urls = self.filter_urls(found, crawl, robots, start_url=spec.seed_url)
            if crawl.max_pages > 0:
                urls = urls[: crawl.max_pages]
            logger.info("sitemap %s expanded to %d URLs", crawl.sitemap_url, len(urls))
            return urls

        seed = spec.seed_url
        crawler = BfsCrawler(
            self._fetcher,
            UrlFilter(crawl, seed, robots),
            max_depth=crawl.max_depth,
            max_pages=crawl.max_pages,
            delay_ms=crawl.delay_ms,
            timeout=self._crawl_timeout,
            cancel=cancel,
        )
        urls = crawler.crawl(seed)
        logger.info("crawl from %s accepted %d URLs", seed, len(urls))
        return urls

    @staticmethod
    def filter_urls(
        urls: list[str],
        crawl: CrawlSpec,
        robots: RobotsChecker | None = None,
        start_url: str = "",
    ) -> list[str]:
        """Resolve, scope-filter and de-duplicate sitemap entries.

        The scope base is *start_url* when given, else the first entry.
        Relative entries are resolved against that base.
        """
        if not urls:
            return []
        base = start_url or urls[0]
        url_filter = UrlFilter(crawl, base, robots)
        out: list[str] = []
        seen: set[str] = set()
        for raw in urls:
            url = urllib.parse.urljoin(base, raw)
            if url in seen:
                continue
            seen.add(url)
            if url_filter.allowed(url):
                out.append(url)
        return out
