"""Tests for SourceSpec parsing and validation."""

from __future__ import annotations

import pytest

from harvester.ingest.spec import CrawlMode, Scope, SourceSpec, SourceSpecError, SourceType


# ---------------------------------------------------------------------------
# from_dict
# ---------------------------------------------------------------------------


def test_url_source():
    spec = SourceSpec.from_dict({"type": "url", "url": " https://ex.com/a "})
    assert spec.type is SourceType.URL
    assert spec.url == "https://ex.com/a"
    assert spec.crawl is None


def test_crawl_source_defaults():
    spec = SourceSpec.from_dict({"type": "crawl", "crawl": {"start_url": "https://ex.com/"}})
    assert spec.crawl.mode is CrawlMode.CRAWL
    assert spec.crawl.scope is Scope.HOST
    assert spec.crawl.max_depth == 0
    assert spec.crawl.respect_robots is False


def test_type_is_case_insensitive():
    spec = SourceSpec.from_dict({"type": "CRAWL", "url": "https://ex.com/"})
    assert spec.type is SourceType.CRAWL


@pytest.mark.parametrize("alias", ["file", "document", "documents"])
def test_document_aliases_map_to_files(alias):
    spec = SourceSpec.from_dict({"type": alias, "url": "https://ex.com/a"})
    assert spec.type is SourceType.FILES


def test_format_alias_sets_declared_format():
    spec = SourceSpec.from_dict({"type": "markdown", "files": {"urls": ["https://ex.com/a"]}})
    assert spec.type is SourceType.FILES
    assert spec.files.format == "markdown"


def test_explicit_format_wins_over_alias():
    spec = SourceSpec.from_dict(
        {"type": "md", "files": {"urls": ["https://ex.com/a"], "format": "html"}}
    )
    assert spec.files.format == "html"


def test_unknown_type_rejected():
    with pytest.raises(SourceSpecError, match="unsupported source type"):
        SourceSpec.from_dict({"type": "ftp", "url": "ftp://x"})


def test_missing_type_rejected():
    with pytest.raises(SourceSpecError, match="type is required"):
        SourceSpec.from_dict({"url": "https://ex.com"})


def test_unknown_mode_rejected():
    with pytest.raises(SourceSpecError, match="crawl mode"):
        SourceSpec.from_dict({"type": "crawl", "crawl": {"mode": "deep"}})


def test_unknown_scope_rejected():
    with pytest.raises(SourceSpecError, match="crawl scope"):
        SourceSpec.from_dict({"type": "crawl", "crawl": {"scope": "world"}})


def test_bad_integer_rejected():
    with pytest.raises(SourceSpecError, match="max_pages"):
        SourceSpec.from_dict({"type": "crawl", "crawl": {"max_pages": "many"}})


def test_single_string_pattern_becomes_tuple():
    spec = SourceSpec.from_dict({"type": "crawl", "url": "https://ex.com", "crawl": {"deny": "x"}})
    assert spec.crawl.deny == ("x",)


def test_to_dict_round_trips():
    data = {
        "type": "crawl",
        "url": "",
        "fail_fast": True,
        "crawl": {"mode": "sitemap", "sitemap_url": "https://ex.com/sitemap.xml", "max_pages": 7},
    }
    spec = SourceSpec.from_dict(data)
    assert SourceSpec.from_dict(spec.to_dict()) == spec


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


def test_url_type_requires_url():
    with pytest.raises(SourceSpecError, match="requires 'url'"):
        SourceSpec.from_dict({"type": "url"}).validate()


def test_files_type_requires_some_url():
    with pytest.raises(SourceSpecError, match="files.urls"):
        SourceSpec.from_dict({"type": "files", "files": {"urls": []}}).validate()


def test_sitemap_mode_requires_sitemap_url():
    spec = SourceSpec.from_dict(
        {"type": "crawl", "url": "https://ex.com", "crawl": {"mode": "sitemap"}}
    )
    with pytest.raises(SourceSpecError, match="sitemap_url"):
        spec.validate()


def test_crawl_mode_requires_seed():
    with pytest.raises(SourceSpecError, match="start_url"):
        SourceSpec.from_dict({"type": "crawl", "crawl": {"mode": "crawl"}}).validate()


def test_negative_limit_rejected():
    spec = SourceSpec.from_dict(
        {"type": "crawl", "url": "https://ex.com", "crawl": {"max_depth": -1}}
    )
    with pytest.raises(SourceSpecError, match="max_depth"):
        spec.validate()


def test_seed_url_prefers_start_url():
    spec = SourceSpec.from_dict(
        {"type": "crawl", "url": "https://ex.com/u", "crawl": {"start_url": "https://ex.com/s"}}
    )
    assert spec.seed_url == "https://ex.com/s"
    assert spec.validate() is spec


def test_seed_url_falls_back_to_url():
    spec = SourceSpec.from_dict({"type": "crawl", "url": "https://ex.com/u"})
    assert spec.seed_url == "https://ex.com/u"
