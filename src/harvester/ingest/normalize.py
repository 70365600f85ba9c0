"""Turn a fetched response body into plain text plus a title.

Markdown and plain text pass through unchanged. Everything else is treated
as HTML: non-content tags are removed with BeautifulSoup and the rest is
rendered to readable text with html2text.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass

import html2text
from bs4 import BeautifulSoup

_PASSTHROUGH_FORMATS = {"markdown": "markdown", "md": "markdown", "txt": "text", "text": "text"}
_PASSTHROUGH_SUFFIXES = {".md": "markdown", ".markdown": "markdown", ".txt": "text"}
_PASSTHROUGH_CONTENT_TYPES = {
    "text/markdown": "markdown",
    "text/x-markdown": "markdown",
    "text/plain": "text",
}

_STRIP_TAGS = ["script", "style", "nav", "footer", "head", "noscript"]
_MD_TITLE_RE = re.compile(r"^# +(.+?)\s*#*\s*$", re.MULTILINE)


@dataclass
class NormalizedDocument:
    text: str
    title: str = ""
    format: str = "html"  # html | markdown | text


def _converter() -> html2text.HTML2Text:
    # One converter per call: HTML2Text keeps parse state on the instance.
    h2t = html2text.HTML2Text()
    h2t.ignore_links = True
    h2t.ignore_images = True
    h2t.body_width = 0  # no line wrapping
    return h2t


def resolve_format(declared: str, url: str, content_type: str = "") -> str:
    """Pick ``markdown``, ``text`` or ``html`` for a document.

    Order: declared format, URL suffix, response content type, else HTML.
    """
    declared = (declared or "auto").lower()
    if declared in _PASSTHROUGH_FORMATS:
        return _PASSTHROUGH_FORMATS[declared]
    if declared == "html":
        return "html"

    path = urllib.parse.urlparse(url).path.lower()
    for suffix, fmt in _PASSTHROUGH_SUFFIXES.items():
        if path.endswith(suffix):
            return fmt

    return _PASSTHROUGH_CONTENT_TYPES.get(content_type.lower(), "html")


def html_to_text(html: str) -> tuple[str, str]:
    """Return ``(text, title)`` for an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    title_tag = soup.find("title")
    title = title_tag.get_text(" ", strip=True) if title_tag else ""
    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()
    return _converter().handle(str(soup)).strip(), title


def markdown_title(text: str) -> str:
    """First ``# `` heading of a markdown document, or empty."""
    match = _MD_TITLE_RE.search(text)
    return match.group(1).strip() if match else ""


def normalize(
    body: str, url: str, content_type: str = "", declared_format: str = "auto"
) -> NormalizedDocument:
    """Normalise a fetched *body* according to its resolved format."""
    fmt = resolve_format(declared_format, url, content_type)
    if fmt == "markdown":
        return NormalizedDocument(text=body, title=markdown_title(body), format=fmt)
    if fmt == "text":
        return NormalizedDocument(text=body, format=fmt)
    text, title = html_to_text(body)
    return NormalizedDocument(text=text, title=title, format=fmt)
