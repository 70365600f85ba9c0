"""Shared pytest fixtures."""

from __future__ import annotations

import fakeredis
import pytest

from harvester.config import HarvesterConfig
from harvester.db.connection import Database
from harvester.db.schema import initialize
from harvester.ingest.embedding import MockEmbedder
from harvester.ingest.fetch import FetchResponse


class FakeFetcher:
    """In-memory Fetcher: maps URL -> body (str), (status, body), FetchResponse or exception."""

    def __init__(self, pages: dict | None = None) -> None:
        self.pages = dict(pages or {})
        self.calls: list[str] = []

    def get(self, url: str, timeout: float = 30.0) -> FetchResponse:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            return FetchResponse(url=url, status=404, body=b"")
        if isinstance(page, BaseException):
            raise page
        if isinstance(page, FetchResponse):
            return page
        status, body = page if isinstance(page, tuple) else (200, page)
        content_type = "text/html"
        if url.endswith(".xml"):
            content_type = "application/xml"
        elif url.endswith("robots.txt"):
            content_type = "text/plain"
        return FetchResponse(url=url, status=status, body=body.encode("utf-8"),
                             content_type=content_type)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".harvester.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def database(tmp_path) -> Database:
    """Initialised Database handle for code that opens its own sessions."""
    db = Database(tmp_path / ".harvester.db")
    with db.session() as conn:
        initialize(conn)
    return db


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def make_fetcher():
    """Factory for FakeFetcher instances: ``make_fetcher({url: body})``."""
    return FakeFetcher


@pytest.fixture
def embedder() -> MockEmbedder:
    return MockEmbedder(dimensions=16)


@pytest.fixture
def config(tmp_path) -> HarvesterConfig:
    """Default config pointing at a tmp database and the mock embedder."""
    cfg = HarvesterConfig()
    cfg.database.path = str(tmp_path / ".harvester.db")
    cfg.embedding.provider = "mock"
    cfg.embedding.dimensions = 16
    return cfg
