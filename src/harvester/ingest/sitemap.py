"""Sitemap reader: ``urlset`` and nested ``sitemapindex`` documents.

XML is parsed with bs4's ``html.parser`` (lxml is not a harvester
dependency), which lower-cases tag names and ignores namespaces, so
``<urlset xmlns=...>`` and prefixed ``<sm:loc>`` tags both work.
"""

from __future__ import annotations

import logging
import warnings

from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning

from harvester.ingest.fetch import FetchError, Fetcher

logger = logging.getLogger(__name__)

SITEMAP_TIMEOUT = 30.0  # seconds
MAX_SITEMAP_DEPTH = 3
MAX_NESTED_SITEMAPS = 50  # per index
MAX_SITEMAP_URLS = 5000


def _local_name(tag: Tag) -> str:
    return (tag.name or "").rsplit(":", 1)[-1]


def _locs(soup: BeautifulSoup, entry: str) -> list[str]:
    """Trimmed, non-empty ``<loc>`` texts of every *entry* element."""
    out: list[str] = []
    for node in soup.find_all(lambda t: _local_name(t) == entry):
        loc = node.find(lambda t: _local_name(t) == "loc")
        if loc is not None:
            text = loc.get_text(strip=True)
            if text:
                out.append(text)
    return out


def parse_sitemap(xml_text: str) -> tuple[list[str], list[str]]:
    """Return ``(page_urls, nested_sitemap_urls)`` found in *xml_text*.

    A document is treated as a urlset when it has ``<url>`` entries;
    otherwise its ``<sitemap>`` entries are returned as nested sitemaps.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(xml_text, "html.parser")
    pages = _locs(soup, "url")
    if pages:
        return pages, []
    return [], _locs(soup, "sitemap")


class SitemapReader:
    """Collect page URLs from a sitemap, following sitemap indexes.

    Nested indexes are followed to depth 3, at most 50 children per index,
    never fetching a sitemap twice. Collection stops once more than 5000
    URLs are gathered. Unreachable or unparsable sitemaps contribute nothing.
    """

    def __init__(self, fetcher: Fetcher, timeout: float = SITEMAP_TIMEOUT) -> None:
        self._fetcher = fetcher
        self._timeout = timeout

    def read(self, sitemap_url: str) -> list[str]:
        """Return de-duplicated page URLs in discovery order."""
        visited: set[str] = set()
        out: list[str] = []
        self._read(sitemap_url, 0, visited, out)
        return list(dict.fromkeys(out))[:MAX_SITEMAP_URLS]

    def _read(self, url: str, depth: int, visited: set[str], out: list[str]) -> None:
        if url in visited or depth > MAX_SITEMAP_DEPTH:
            return
        visited.add(url)

        try:
            response = self._fetcher.get(url, timeout=self._timeout)
        except (FetchError, ValueError) as exc:
            logger.warning("sitemap fetch failed for %s: %s", url, exc)
            return
        if not response.ok:
            logger.warning("sitemap fetch failed for %s: status=%d", url, response.status)
            return

        pages, nested = parse_sitemap(response.text)
        if pages:
            out.extend(pages)
            return

        for child in nested[:MAX_NESTED_SITEMAPS]:
            self._read(child, depth + 1, visited, out)
            if len(out) > MAX_SITEMAP_URLS:
                break
