"""HTTP fetching with SSRF protection.

Security requirements:
- SSRF guard: ipaddress module blocks private/loopback/link-local ranges before
  any connection is established (can be disabled for trusted deployments).
- Allowed URL schemes: https:// and http:// only.
- Max response body: configurable, 5 MB by default.
- Max redirects: 3.
- Per-call timeout chosen by the caller (robots 5 s, crawl 20 s, page 30 s).

Non-2xx responses are *returned*, not raised, so callers decide whether a
404 is an error (it never is during ingestion: the page is skipped).
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from http.client import HTTPResponse
from typing import Protocol

_DEFAULT_USER_AGENT = "harvester/0.1"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}


class FetchError(RuntimeError):
    """Raised when a URL cannot be fetched (DNS, connection, timeout, size)."""


class SsrfError(ValueError):
    """Raised when a URL resolves to a private or reserved address."""


@dataclass
class FetchResponse:
    """Result of a completed HTTP exchange (any status code)."""

    url: str
    status: int
    body: bytes
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Fetcher(Protocol):
    """Anything with HttpFetcher.get()'s signature (tests use in-memory fakes)."""

    def get(self, url: str, timeout: float = 30.0) -> FetchResponse: ...


class HttpFetcher:
    """GET URLs with a redirect limit, a body size cap and an SSRF guard.

    Safe to share between threads: each call builds its own opener.

    Args:
        user_agent: Sent as the User-Agent header.
        max_bytes: Larger bodies raise FetchError.
        block_private_networks: Refuse hosts resolving to private ranges.
    """

    def __init__(
        self,
        user_agent: str = _DEFAULT_USER_AGENT,
        max_bytes: int = _MAX_BYTES,
        block_private_networks: bool = True,
    ) -> None:
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self.block_private_networks = block_private_networks

    def get(self, url: str, timeout: float = 30.0) -> FetchResponse:
        """Fetch *url*.

        Raises:
            ValueError: Unsupported scheme or no hostname.
            SsrfError: Host resolves to a blocked address.
            FetchError: Network failure, too many redirects, or body too large.
        """
        self._validate_scheme(url)
        if self.block_private_networks:
            self._check_ssrf(url)

        request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

        try:
            response: HTTPResponse = opener.open(request, timeout=timeout)
        except urllib.error.HTTPError as exc:
            # 4xx/5xx: report the status; the error body is never used
            exc.close()
            raw_ct = exc.headers.get("Content-Type", "") if exc.headers else ""
            return FetchResponse(
                url=url,
                status=exc.code,
                body=b"",
                content_type=_media_type(raw_ct),
            )
        except urllib.error.URLError as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc.reason}") from exc
        except (OSError, TimeoutError) as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc}") from exc

        with response:
            try:
                body = response.read(self.max_bytes + 1)
            except (OSError, TimeoutError) as exc:
                raise FetchError(f"Failed to read URL '{url}': {exc}") from exc
            if len(body) > self.max_bytes:
                raise FetchError(
                    f"Response body exceeds {self.max_bytes} bytes for URL '{url}'."
                )
            return FetchResponse(
                url=response.geturl() or url,
                status=response.status,
                body=body,
                content_type=_media_type(response.headers.get("Content-Type", "")),
            )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_scheme(url: str) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise ValueError(
                f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
            )

    @staticmethod
    def _check_ssrf(url: str) -> None:
        """Resolve the hostname and block private/reserved IP ranges.

        Raises SsrfError if any resolved address is private, loopback,
        link-local, or otherwise reserved.
        """
        parsed = urllib.parse.urlparse(url)
        hostname = parsed.hostname
        if not hostname:
            raise ValueError(f"URL has no hostname: {url}")

        try:
            addrinfos = socket.getaddrinfo(hostname, None)
        except socket.gaierror as exc:
            raise FetchError(f"DNS resolution failed for '{hostname}': {exc}") from exc

        for addrinfo in addrinfos:
            addr_str = addrinfo[4][0]
            try:
                ip = ipaddress.ip_address(addr_str)
            except ValueError:
                continue
            if (
                ip.is_private
                or ip.is_loopback
                or ip.is_link_local
                or ip.is_reserved
                or ip.is_multicast
                or ip.is_unspecified
            ):
                raise SsrfError(
                    f"URL resolves to private address ({ip}). "
                    "Access to internal network addresses is not allowed."
                )


def _media_type(raw: str) -> str:
    """'text/html; charset=utf-8' -> 'text/html'."""
    return raw.split(";")[0].strip().lower()


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        return super().redirect_request(req, fp, code, msg, headers, newurl)
