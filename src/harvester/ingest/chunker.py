"""Paragraph chunker: one chunk per blank-line separated block."""

from __future__ import annotations

import re

from harvester.db.models import Chunk
from harvester.ingest.base import BaseChunker

_BLANK_LINE_RE = re.compile(r"\n\s*\n")
# ATX heading at the start of a block line: level and title.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)


class ParagraphChunker(BaseChunker):
    """Split text on blank lines; keep the first ``max_chunks`` blocks.

    Blocks are trimmed and empty blocks dropped. Non-blank text without
    any block boundary becomes a single chunk. Each chunk records the
    markdown heading trail covering it, headings inside the block
    included, joined with `` > `` (``Guide > Install``).
    """

    def chunk(self, document_id: str, content: str) -> list[Chunk]:
        if not content.strip():
            return []

        blocks = self.split_paragraphs(content)
        trail: list[tuple[int, str]] = []
        paths: list[str] = []
        for block in blocks:
            for match in _HEADING_RE.finditer(block):
                level = len(match.group(1))
                trail = [(lvl, title) for lvl, title in trail if lvl < level]
                trail.append((level, match.group(2)))
            paths.append(" > ".join(title for _, title in trail))

        return self._make_chunks(document_id, blocks, paths)

    @staticmethod
    def split_paragraphs(text: str) -> list[str]:
        blocks = [b.strip() for b in _BLANK_LINE_RE.split(text.replace("\r\n", "\n"))]
        blocks = [b for b in blocks if b]
        if not blocks and text.strip():
            return [text.strip()]
        return blocks
