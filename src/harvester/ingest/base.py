"""Base chunker interface for harvester documents."""

from __future__ import annotations

from abc import ABC, abstractmethod

from harvester.db.models import Chunk


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and use ``_make_chunks()`` to build
    dense, zero-based ``ord`` values.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, max_chunks: int = 20) -> None:
        if max_chunks < 1:
            raise ValueError("max_chunks must be >= 1")
        self.max_chunks = max_chunks

    @abstractmethod
    def chunk(self, document_id: str, content: str) -> list[Chunk]:
        """Split *content* into Chunk objects for *document_id*.

        Args:
            document_id: Id of the parent Document row.
            content: Normalised text of the document.

        Returns:
            At most ``max_chunks`` Chunk objects with sequential ``ord``.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token.

        Fast, dependency-free approximation consistent with GPT tokeniser
        averages for English prose and technical documentation.
        """
        return max(1, len(text) // 4)

    def _make_chunks(
        self, document_id: str, texts: list[str], section_paths: list[str] | None = None
    ) -> list[Chunk]:
        """Convert text blocks into sequentially ordered Chunks, capped at max_chunks."""
        paths = section_paths or [""] * len(texts)
        return [
            Chunk(
                document_id=document_id,
                ord=i,
                text=t,
                token_count=self.count_tokens(t),
                section_path=p,
            )
            for i, (t, p) in enumerate(zip(texts, paths))
        ][: self.max_chunks]
