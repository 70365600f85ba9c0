"""Tests for vector, lexical and hybrid search."""

from __future__ import annotations

import logging

import pytest

from harvester.db.models import Chunk
from harvester.db.repository import Repository
from harvester.rag.search import (
    HybridSearch,
    LexicalSearchProvider,
    SearchProvider,
    SearchResult,
    VectorSearchProvider,
    merge_results,
)


def _r(id: str, score: float = 0.0) -> SearchResult:
    return SearchResult(id=id, text=f"text {id}", score=score)


class StubProvider(SearchProvider):
    def __init__(self, name, results=None, error=None):
        self.name = name
        self.results = results or []
        self.error = error
        self.calls = []

    def search(self, index, query, top_k, filters=None):
        self.calls.append((index, query, top_k, filters))
        if self.error is not None:
            raise self.error
        return self.results[:top_k]


# ---------------------------------------------------------------------------
# merge_results
# ---------------------------------------------------------------------------


def test_merge_primary_first_then_unseen_secondary():
    merged = merge_results([_r("a"), _r("b")], [_r("b"), _r("c")], top_k=3)
    assert [r.id for r in merged] == ["a", "b", "c"]


def test_merge_respects_top_k():
    merged = merge_results([_r("a"), _r("b")], [_r("c")], top_k=1)
    assert [r.id for r in merged] == ["a"]


def test_merge_keeps_primary_copy_of_duplicate():
    merged = merge_results([_r("a", 0.9)], [_r("a", 5.0)], top_k=5)
    assert merged[0].score == 0.9


def test_merge_empty():
    assert merge_results([], [], top_k=3) == []


# ---------------------------------------------------------------------------
# HybridSearch
# ---------------------------------------------------------------------------


def test_hybrid_queries_both_providers():
    primary = StubProvider("vector", [_r("a"), _r("b")])
    secondary = StubProvider("lexical", [_r("b"), _r("c")])
    hits = HybridSearch(primary, secondary).search("chunks", "q", 3, {"project_id": "p"})
    assert [h.id for h in hits] == ["a", "b", "c"]
    assert primary.calls == [("chunks", "q", 3, {"project_id": "p"})]
    assert secondary.calls == [("chunks", "q", 3, {"project_id": "p"})]


def test_hybrid_default_top_k():
    primary = StubProvider("vector", [_r(str(n)) for n in range(20)])
    hits = HybridSearch(primary, StubProvider("lexical")).search("chunks", "q", top_k=0)
    assert len(hits) == 10


def test_hybrid_primary_failure_falls_back(caplog):
    primary = StubProvider("vector", error=RuntimeError("embedder down"))
    secondary = StubProvider("lexical", [_r("c")])
    with caplog.at_level(logging.WARNING):
        hits = HybridSearch(primary, secondary).search("chunks", "q", 5)
    assert [h.id for h in hits] == ["c"]
    assert "embedder down" in caplog.text


def test_hybrid_secondary_failure_falls_back():
    primary = StubProvider("vector", [_r("a")])
    secondary = StubProvider("lexical", error=RuntimeError("fts broken"))
    assert [h.id for h in HybridSearch(primary, secondary).search("chunks", "q", 5)] == ["a"]


def test_hybrid_both_fail_raises_primary_error():
    primary = StubProvider("vector", error=RuntimeError("first"))
    secondary = StubProvider("lexical", error=ValueError("second"))
    with pytest.raises(RuntimeError, match="first"):
        HybridSearch(primary, secondary).search("chunks", "q", 5)


# ---------------------------------------------------------------------------
# Store-backed providers
# ---------------------------------------------------------------------------


@pytest.fixture
def indexed(database, embedder):
    """Project 'docs' with three embedded chunks."""
    with database.session() as conn:
        repo = Repository(conn)
        project = repo.add_project("docs")
        doc_id = repo.upsert_document(project.id, "https://ex.com/guide", "Guide")
        texts = ["install the widget", "configure logging output", "widget troubleshooting"]
        for ord, text in enumerate(texts):
            chunk = Chunk(document_id=doc_id, ord=ord, text=text, section_path="Guide")
            chunk_id = repo.upsert_chunk(chunk)
            repo.upsert_embedding(chunk_id, embedder.model, embedder.embed(text))
    return project


def test_vector_provider_exact_text_ranks_first(database, embedder, indexed):
    provider = VectorSearchProvider(database, embedder)
    hits = provider.search("chunks", "configure logging output", 3, {"project_id": "docs"})
    assert hits[0].text == "configure logging output"
    assert hits[0].score == pytest.approx(1.0, abs=1e-5)
    assert hits[0].metadata["provider"] == "vector"
    assert hits[0].metadata["uri"] == "https://ex.com/guide"
    assert hits[0].metadata["title"] == "Guide"


def test_lexical_provider_matches_terms(database, indexed):
    provider = LexicalSearchProvider(database)
    hits = provider.search("chunks", "widget", 5, {"project_id": indexed.id})
    assert {h.text for h in hits} == {"install the widget", "widget troubleshooting"}
    assert hits[0].score >= hits[-1].score
    assert hits[0].metadata["section_path"] == "Guide"


def test_provider_requires_project_filter(database):
    with pytest.raises(ValueError, match="project_id"):
        LexicalSearchProvider(database).search("chunks", "widget", 5, {})


def test_hybrid_over_store_dedups(database, embedder, indexed):
    hybrid = HybridSearch(VectorSearchProvider(database, embedder), LexicalSearchProvider(database))
    hits = hybrid.search("chunks", "widget", 10, {"project_id": "docs"})
    ids = [h.id for h in hits]
    assert len(ids) == len(set(ids)) == 3
