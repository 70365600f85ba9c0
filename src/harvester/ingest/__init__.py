"""harvester ingest pipeline — URL expansion, fetching, chunking, embedding, worker pool."""

from harvester.ingest.base import BaseChunker
from harvester.ingest.chunker import ParagraphChunker
from harvester.ingest.spec import CrawlSpec, FileSpec, SourceSpec, SourceSpecError

__all__ = [
    "BaseChunker",
    "CrawlSpec",
    "FileSpec",
    "ParagraphChunker",
    "SourceSpec",
    "SourceSpecError",
]
