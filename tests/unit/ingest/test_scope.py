"""Tests for scope and allow/deny filtering."""

from __future__ import annotations

import pytest

from harvester.ingest.robots import RobotsChecker
from harvester.ingest.scope import (
    UrlFilter,
    host_suffix,
    normalize_host,
    passes_allow_deny,
    within_scope,
)
from harvester.ingest.spec import CrawlSpec, Scope

BASE = "https://docs.example.com/guide"


def test_normalize_host_strips_www():
    assert normalize_host("WWW.Example.com") == "example.com"


def test_host_suffix_last_two_labels():
    assert host_suffix("a.b.example.com") == "example.com"
    assert host_suffix("example.com") == "example.com"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://docs.example.com/other", True),
        ("https://www.docs.example.com/x", True),
        ("https://api.example.com/x", False),
        ("/relative/path", True),
    ],
)
def test_host_scope(url, expected):
    assert within_scope(url, BASE, Scope.HOST) is expected


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://api.example.com/x", True),
        ("https://example.com/", True),
        ("https://notexample.com/", False),
        ("https://other.org/", False),
    ],
)
def test_domain_scope(url, expected):
    assert within_scope(url, BASE, Scope.DOMAIN) is expected


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://docs.example.com/guide/install", True),
        ("https://docs.example.com/guide", True),
        ("https://docs.example.com/guide/", True),
        ("https://docs.example.com/guidebook", False),
        ("https://docs.example.com/", False),
    ],
)
def test_prefix_scope(url, expected):
    assert within_scope(url, BASE, "prefix") is expected


def test_deny_takes_precedence_over_allow():
    url = "https://ex.com/docs/changelog"
    assert passes_allow_deny(url, allow=[r"/docs/"], deny=["changelog"]) is False


def test_allow_list_requires_match():
    assert passes_allow_deny("https://ex.com/blog", allow=[r"/docs/"], deny=[]) is False
    assert passes_allow_deny("https://ex.com/docs/a", allow=[r"/docs/"], deny=[]) is True


def test_empty_lists_allow_everything():
    assert passes_allow_deny("https://ex.com/x", allow=[], deny=[]) is True


def test_invalid_regex_falls_back_to_substring():
    assert passes_allow_deny("https://ex.com/a[b", allow=[], deny=["a[b"]) is False


def test_url_filter_combines_scope_and_patterns():
    spec = CrawlSpec(scope=Scope.HOST, deny=(r"\.pdf$",))
    f = UrlFilter(spec, "https://ex.com/")
    assert f.allowed("https://ex.com/page") is True
    assert f.allowed("https://ex.com/file.pdf") is False
    assert f.allowed("https://other.com/page") is False


def test_url_filter_ignores_robots_unless_requested(make_fetcher):
    fetcher = make_fetcher({"https://ex.com/robots.txt": "User-agent: *\nDisallow: /\n"})
    robots = RobotsChecker(fetcher)
    assert UrlFilter(CrawlSpec(), "https://ex.com/", robots).allowed("https://ex.com/a") is True
    strict = UrlFilter(CrawlSpec(respect_robots=True), "https://ex.com/", robots)
    assert strict.allowed("https://ex.com/a") is False
