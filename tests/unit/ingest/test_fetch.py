"""Tests for HttpFetcher: scheme validation, SSRF guard, response handling."""

from __future__ import annotations

import io
import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from harvester.ingest.fetch import FetchError, FetchResponse, HttpFetcher, SsrfError

# ------------------------------------------------------------------
# Scheme validation
# ------------------------------------------------------------------


def test_scheme_https_ok():
    HttpFetcher._validate_scheme("https://example.com/page")  # no exception


def test_scheme_ftp_raises():
    with pytest.raises(ValueError, match="scheme"):
        HttpFetcher._validate_scheme("ftp://example.com")


def test_scheme_file_raises():
    with pytest.raises(ValueError, match="scheme"):
        HttpFetcher._validate_scheme("file:///etc/passwd")


def test_check_ssrf_no_hostname_raises():
    with pytest.raises(ValueError, match="hostname"):
        HttpFetcher._check_ssrf("https:///path")


# ------------------------------------------------------------------
# SSRF guard
# ------------------------------------------------------------------


def _patch_getaddrinfo(ip: str):
    family = socket.AF_INET6 if ":" in ip else socket.AF_INET
    addr_info = [(family, socket.SOCK_STREAM, 6, "", (ip, 0))]
    return patch("harvester.ingest.fetch.socket.getaddrinfo", return_value=addr_info)


def test_ssrf_public_ip_ok():
    with _patch_getaddrinfo("93.184.216.34"):
        HttpFetcher._check_ssrf("https://example.com/")


@pytest.mark.parametrize(
    "ip", ["127.0.0.1", "10.0.0.1", "172.16.0.1", "192.168.1.1", "169.254.169.254", "::1"]
)
def test_ssrf_private_ranges_blocked(ip):
    with _patch_getaddrinfo(ip):
        with pytest.raises(SsrfError):
            HttpFetcher._check_ssrf("https://internal.example/")


def test_dns_failure_is_fetch_error():
    with patch(
        "harvester.ingest.fetch.socket.getaddrinfo", side_effect=socket.gaierror("no such host")
    ):
        with pytest.raises(FetchError, match="DNS"):
            HttpFetcher._check_ssrf("https://nope.invalid/")


def test_private_network_allowed_when_guard_disabled():
    fetcher = HttpFetcher(block_private_networks=False)
    with patch.object(HttpFetcher, "_check_ssrf") as check, _patch_opener(_response(b"ok")):
        fetcher.get("http://localhost/")
    check.assert_not_called()


# ------------------------------------------------------------------
# get()
# ------------------------------------------------------------------


def _response(body: bytes, status: int = 200, content_type: str = "text/html; charset=utf-8"):
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.read.side_effect = lambda n=-1: body if n < 0 else body[:n]
    resp.status = status
    resp.geturl.return_value = None
    resp.headers = {"Content-Type": content_type}
    return resp


def _patch_opener(response=None, error=None):
    opener = MagicMock()
    if error is not None:
        opener.open.side_effect = error
    else:
        opener.open.return_value = response
    return patch("harvester.ingest.fetch.urllib.request.build_opener", return_value=opener)


@pytest.fixture
def fetcher():
    with _patch_getaddrinfo("93.184.216.34"):
        yield HttpFetcher(max_bytes=100)


def test_get_returns_body_and_media_type(fetcher):
    with _patch_opener(_response(b"<p>hi</p>")):
        result = fetcher.get("https://example.com/page")
    assert isinstance(result, FetchResponse)
    assert result.ok
    assert result.text == "<p>hi</p>"
    assert result.content_type == "text/html"
    assert result.url == "https://example.com/page"


def test_get_body_too_large(fetcher):
    with _patch_opener(_response(b"x" * 101)):
        with pytest.raises(FetchError, match="exceeds"):
            fetcher.get("https://example.com/big")


def test_get_http_error_is_returned(fetcher):
    error = urllib.error.HTTPError(
        "https://example.com/missing", 404, "Not Found", {"Content-Type": "text/html"},
        io.BytesIO(b"gone"),
    )
    with _patch_opener(error=error):
        result = fetcher.get("https://example.com/missing")
    assert result.status == 404
    assert not result.ok
    assert result.body == b""


def test_get_url_error_is_fetch_error(fetcher):
    with _patch_opener(error=urllib.error.URLError("connection refused")):
        with pytest.raises(FetchError, match="connection refused"):
            fetcher.get("https://example.com/")


def test_get_timeout_is_fetch_error(fetcher):
    with _patch_opener(error=TimeoutError("timed out")):
        with pytest.raises(FetchError):
            fetcher.get("https://example.com/")


def test_get_rejects_bad_scheme(fetcher):
    with pytest.raises(ValueError, match="scheme"):
        fetcher.get("ftp://example.com/")


def test_user_agent_header_sent(fetcher):
    with _patch_opener(_response(b"ok")) as build:
        fetcher.get("https://example.com/")
    request = build.return_value.open.call_args.args[0]
    assert request.get_header("User-agent") == fetcher.user_agent
