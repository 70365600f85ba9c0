"""Tests for harvester rich error messages."""

from __future__ import annotations

import pytest

from harvester.cli.errors import (
    err_config,
    err_invalid_source,
    err_job_not_found,
    err_no_api_key,
    err_project_exists,
    err_project_not_found,
    err_redis_unavailable,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(
        kw in lower
        for kw in ["export ", "harvester ", "fix ", "choose ", "pass ", "expire", "start "]
    )


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("No API key found for provider 'openai'. Set OPENAI_API_KEY."),
        err_project_not_found("docs"),
        err_project_exists("docs"),
        err_invalid_source("no source given"),
        err_config("embedding.provider must be one of litellm, http, mock"),
        err_redis_unavailable("redis://localhost:6379/0", "Connection refused"),
        err_job_not_found("job_123"),
    ],
)
def test_every_error_has_action(msg: str) -> None:
    assert _has_action(msg)


def test_err_no_api_key_mentions_mock_fallback() -> None:
    msg = err_no_api_key("Set the OPENAI_API_KEY environment variable.")
    assert "OPENAI_API_KEY" in msg
    assert "HARVESTER_EMBEDDING_PROVIDER=mock" in msg


def test_err_project_not_found_suggests_create() -> None:
    msg = err_project_not_found("docs")
    assert "'docs'" in msg
    assert "harvester project create docs" in msg


def test_err_invalid_source_lists_flags() -> None:
    msg = err_invalid_source("conflicting sources: --url, --crawl")
    assert "conflicting sources" in msg
    for flag in ("--url", "--crawl", "--sitemap", "--file"):
        assert flag in msg


def test_err_redis_unavailable_contains_url_and_detail() -> None:
    msg = err_redis_unavailable("redis://cache:6379/0", "Connection refused")
    assert "redis://cache:6379/0" in msg
    assert "Connection refused" in msg
    assert "HARVESTER_REDIS_URL" in msg


def test_err_job_not_found_mentions_expiry() -> None:
    assert "24 hours" in err_job_not_found("job_1")
