"""Tests for sitemap parsing and nested index traversal."""

from __future__ import annotations

import warnings

from bs4 import XMLParsedAsHTMLWarning

from harvester.ingest.fetch import FetchError
from harvester.ingest.sitemap import (
    MAX_NESTED_SITEMAPS,
    MAX_SITEMAP_URLS,
    SitemapReader,
    parse_sitemap,
)


def _urlset(*urls: str) -> str:
    entries = "".join(f"<url><loc>{u}</loc><lastmod>2024-01-01</lastmod></url>" for u in urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'
    )


def _index(*sitemaps: str) -> str:
    entries = "".join(f"<sitemap><loc>{s}</loc></sitemap>" for s in sitemaps)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}'
        "</sitemapindex>"
    )


# ---------------------------------------------------------------------------
# parse_sitemap
# ---------------------------------------------------------------------------


def test_parse_urlset():
    pages, nested = parse_sitemap(_urlset("https://ex.com/a", "https://ex.com/b"))
    assert pages == ["https://ex.com/a", "https://ex.com/b"]
    assert nested == []


def test_parse_index():
    pages, nested = parse_sitemap(_index("https://ex.com/s1.xml"))
    assert pages == []
    assert nested == ["https://ex.com/s1.xml"]


def test_parse_trims_and_skips_empty_locs():
    xml = "<urlset><url><loc>  https://ex.com/a \n</loc></url><url><loc> </loc></url></urlset>"
    assert parse_sitemap(xml)[0] == ["https://ex.com/a"]


def test_parse_prefixed_tags():
    xml = '<sm:urlset xmlns:sm="x"><sm:url><sm:loc>https://ex.com/a</sm:loc></sm:url></sm:urlset>'
    assert parse_sitemap(xml)[0] == ["https://ex.com/a"]


def test_parse_garbage_returns_nothing():
    assert parse_sitemap("not xml at all") == ([], [])


def test_parse_silences_xml_warning_locally():
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        parse_sitemap(_urlset("https://ex.com/a"))
    assert not [w for w in caught if issubclass(w.category, XMLParsedAsHTMLWarning)]
    # the process-wide filter list is left alone
    assert not [f for f in warnings.filters if f[2] is XMLParsedAsHTMLWarning]


# ---------------------------------------------------------------------------
# SitemapReader
# ---------------------------------------------------------------------------


def test_reader_follows_index(make_fetcher):
    fetcher = make_fetcher(
        {
            "https://ex.com/sitemap.xml": _index("https://ex.com/s1.xml", "https://ex.com/s2.xml"),
            "https://ex.com/s1.xml": _urlset("https://ex.com/a", "https://ex.com/b"),
            "https://ex.com/s2.xml": _urlset("https://ex.com/b", "https://ex.com/c"),
        }
    )
    urls = SitemapReader(fetcher).read("https://ex.com/sitemap.xml")
    assert urls == ["https://ex.com/a", "https://ex.com/b", "https://ex.com/c"]


def test_reader_depth_limit(make_fetcher):
    pages = {
        f"https://ex.com/i{n}.xml": _index(f"https://ex.com/i{n + 1}.xml") for n in range(5)
    }
    pages["https://ex.com/i3.xml"] = _urlset("https://ex.com/depth3")
    pages["https://ex.com/i4.xml"] = _urlset("https://ex.com/depth4")
    fetcher = make_fetcher(pages)
    assert SitemapReader(fetcher).read("https://ex.com/i0.xml") == ["https://ex.com/depth3"]

    pages["https://ex.com/i3.xml"] = _index("https://ex.com/i4.xml")
    fetcher = make_fetcher(pages)
    assert SitemapReader(fetcher).read("https://ex.com/i0.xml") == []
    assert "https://ex.com/i4.xml" not in fetcher.calls


def test_reader_caps_children_per_index(make_fetcher):
    children = [f"https://ex.com/s{n}.xml" for n in range(MAX_NESTED_SITEMAPS + 10)]
    pages = {"https://ex.com/sitemap.xml": _index(*children)}
    for n, child in enumerate(children):
        pages[child] = _urlset(f"https://ex.com/p{n}")
    fetcher = make_fetcher(pages)
    urls = SitemapReader(fetcher).read("https://ex.com/sitemap.xml")
    assert len(urls) == MAX_NESTED_SITEMAPS
    assert children[MAX_NESTED_SITEMAPS] not in fetcher.calls


def test_reader_caps_total_urls(make_fetcher):
    first = [f"https://ex.com/a{n}" for n in range(4000)]
    second = [f"https://ex.com/b{n}" for n in range(4000)]
    fetcher = make_fetcher(
        {
            "https://ex.com/sitemap.xml": _index(
                "https://ex.com/s1.xml", "https://ex.com/s2.xml", "https://ex.com/s3.xml"
            ),
            "https://ex.com/s1.xml": _urlset(*first),
            "https://ex.com/s2.xml": _urlset(*second),
            "https://ex.com/s3.xml": _urlset("https://ex.com/never"),
        }
    )
    urls = SitemapReader(fetcher).read("https://ex.com/sitemap.xml")
    assert len(urls) == MAX_SITEMAP_URLS
    assert "https://ex.com/s3.xml" not in fetcher.calls


def test_reader_cycle_safe(make_fetcher):
    fetcher = make_fetcher(
        {
            "https://ex.com/a.xml": _index("https://ex.com/b.xml"),
            "https://ex.com/b.xml": _index("https://ex.com/a.xml"),
        }
    )
    assert SitemapReader(fetcher).read("https://ex.com/a.xml") == []
    assert fetcher.calls.count("https://ex.com/a.xml") == 1


def test_reader_skips_unreachable_children(make_fetcher):
    fetcher = make_fetcher(
        {
            "https://ex.com/sitemap.xml": _index(
                "https://ex.com/down.xml", "https://ex.com/gone.xml", "https://ex.com/ok.xml"
            ),
            "https://ex.com/down.xml": FetchError("connection refused"),
            "https://ex.com/ok.xml": _urlset("https://ex.com/a"),
        }
    )
    assert SitemapReader(fetcher).read("https://ex.com/sitemap.xml") == ["https://ex.com/a"]
