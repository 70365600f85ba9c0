"""Hybrid retrieval: a vector provider and a lexical provider merged into one hit list.

Merge rule:
  primary hits first, in primary order; then secondary hits whose id the
  primary did not return; stop at top_k. Scores from different providers
  are never compared.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from harvester.db.connection import Database
from harvester.db.models import Chunk
from harvester.db.repository import Repository
from harvester.ingest.embedding import Embedder

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10
DEFAULT_INDEX = "chunks"


@dataclass
class SearchResult:
    """One retrieved chunk.

    Attributes:
        id: Chunk id as a string; the de-duplication key across providers.
        text: Chunk text.
        metadata: ``document_id``, ``uri``, ``title``, ``section_path``, ``ord``
            and the ``provider`` that produced the hit.
        score: Provider-specific relevance, higher is better.
    """

    id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float = 0.0


class SearchProvider(ABC):
    """A ranked text search over one index."""

    name: str = "provider"

    @abstractmethod
    def search(
        self, index: str, query: str, top_k: int, filters: dict[str, Any] | None = None
    ) -> list[SearchResult]:
        """Return up to *top_k* hits for *query*, best first."""


def _project_filter(filters: dict[str, Any] | None) -> str:
    project = (filters or {}).get("project_id")
    if not project:
        raise ValueError("search requires filters['project_id'] (project id or slug)")
    return str(project)


def _to_results(
    repo: Repository, hits: list[tuple[Chunk, float]], provider: str, score_fn
) -> list[SearchResult]:
    documents: dict[str, Any] = {}
    results: list[SearchResult] = []
    for chunk, raw in hits:
        if chunk.document_id not in documents:
            documents[chunk.document_id] = repo.get_document(chunk.document_id)
        doc = documents[chunk.document_id]
        results.append(
            SearchResult(
                id=str(chunk.id),
                text=chunk.text,
                metadata={
                    "document_id": chunk.document_id,
                    "uri": doc.uri if doc else "",
                    "title": doc.title if doc else "",
                    "section_path": chunk.section_path,
                    "ord": chunk.ord,
                    "provider": provider,
                },
                score=score_fn(raw),
            )
        )
    return results


class VectorSearchProvider(SearchProvider):
    """Cosine similarity between the query embedding and stored chunk embeddings.

    Score is ``1 - cosine distance``.
    """

    name = "vector"

    def __init__(self, database: Database, embedder: Embedder) -> None:
        self._database = database
        self._embedder = embedder

    def search(
        self, index: str, query: str, top_k: int, filters: dict[str, Any] | None = None
    ) -> list[SearchResult]:
        project_ref = _project_filter(filters)
        vector = self._embedder.embed(query)
        with self._database.session() as conn:
            repo = Repository(conn)
            project = repo.resolve_project(project_ref)
            hits = repo.search_vec(project.id, vector, limit=top_k)
            return _to_results(repo, hits, self.name, lambda distance: 1.0 - distance)


class LexicalSearchProvider(SearchProvider):
    """FTS5 BM25 search. Score is ``-bm25`` so higher is better."""

    name = "lexical"

    def __init__(self, database: Database) -> None:
        self._database = database

    def search(
        self, index: str, query: str, top_k: int, filters: dict[str, Any] | None = None
    ) -> list[SearchResult]:
        project_ref = _project_filter(filters)
        with self._database.session() as conn:
            repo = Repository(conn)
            project = repo.resolve_project(project_ref)
            hits = repo.search_fts(project.id, query, limit=top_k)
            return _to_results(repo, hits, self.name, lambda bm25: -bm25)


def merge_results(
    primary: list[SearchResult], secondary: list[SearchResult], top_k: int
) -> list[SearchResult]:
    """Primary hits in order, then unseen secondary hits, at most *top_k* in total."""
    merged: list[SearchResult] = []
    seen: set[str] = set()
    for result in [*primary, *secondary]:
        if len(merged) >= top_k:
            break
        if result.id in seen:
            continue
        seen.add(result.id)
        merged.append(result)
    return merged


class HybridSearch(SearchProvider):
    """Query both providers and merge, tolerating the failure of either one.

    Args:
        primary: Provider whose ranking leads (vector search by default).
        secondary: Provider that fills remaining slots (lexical search).
    """

    name = "hybrid"

    def __init__(self, primary: SearchProvider, secondary: SearchProvider) -> None:
        self.primary = primary
        self.secondary = secondary

    def search(
        self,
        index: str,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Return merged hits.

        Raises:
            Exception: The primary provider's error, when both providers fail.
        """
        if top_k <= 0:
            top_k = DEFAULT_TOP_K

        primary_hits: list[SearchResult] = []
        secondary_hits: list[SearchResult] = []
        primary_error: Exception | None = None
        secondary_error: Exception | None = None

        try:
            primary_hits = self.primary.search(index, query, top_k, filters)
        except Exception as exc:
            primary_error = exc
        try:
            secondary_hits = self.secondary.search(index, query, top_k, filters)
        except Exception as exc:
            secondary_error = exc

        if primary_error is not None and secondary_error is not None:
            logger.error("search failed in both providers: %s; %s", primary_error, secondary_error)
            raise primary_error
        if primary_error is not None:
            logger.warning(
                "%s search failed, using %s only: %s",
                self.primary.name,
                self.secondary.name,
                primary_error,
            )
        if secondary_error is not None:
            logger.warning(
                "%s search failed, using %s only: %s",
                self.secondary.name,
                self.primary.name,
                secondary_error,
            )

        return merge_results(primary_hits, secondary_hits, top_k)
