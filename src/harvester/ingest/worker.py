"""Ingestion worker pool: fetch, normalise, chunk, embed and store every URL of a job."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import redis

from harvester.db.connection import Database
from harvester.db.repository import Repository
from harvester.ingest.base import BaseChunker
from harvester.ingest.chunker import ParagraphChunker
from harvester.ingest.embedding import Embedder
from harvester.ingest.fetch import Fetcher
from harvester.ingest.normalize import normalize
from harvester.ingest.spec import SourceSpec
from harvester.ingest.urlset import UrlSetBuilder
from harvester.jobs.tracker import JobTracker

logger = logging.getLogger(__name__)

PAGE_TIMEOUT = 30.0  # seconds
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 16


class IngestionWorkerPool:
    """Run one ingestion job across a bounded pool of threads.

    Every URL is an independent task. Tasks share one cancel event per
    job; with ``fail_fast`` the first error sets it so queued tasks are
    skipped and running tasks stop at their next network call. Each task
    opens its own SQLite connection; the store's upserts keep concurrent
    writes to the same document consistent.

    Args:
        database: Document store.
        fetcher: HTTP fetcher for page bodies.
        embedder: Chunk embedder.
        tracker: Job progress records.
        expander: Builds the URL list for a source.
        chunker: Splits normalised text; defaults to ParagraphChunker(20).
        default_concurrency: Pool size when the source sets none.
        page_timeout: Per-page fetch timeout in seconds.
    """

    def __init__(
        self,
        database: Database,
        fetcher: Fetcher,
        embedder: Embedder,
        tracker: JobTracker,
        expander: UrlSetBuilder,
        chunker: BaseChunker | None = None,
        default_concurrency: int = DEFAULT_CONCURRENCY,
        page_timeout: float = PAGE_TIMEOUT,
    ) -> None:
        self.database = database
        self.fetcher = fetcher
        self.embedder = embedder
        self.tracker = tracker
        self.expander = expander
        self.chunker = chunker or ParagraphChunker()
        self.default_concurrency = default_concurrency
        self.page_timeout = page_timeout

    def concurrency_for(self, spec: SourceSpec) -> int:
        """Pool size: the source's crawl concurrency if set, else the default, in [1, 16]."""
        wanted = self.default_concurrency
        if spec.crawl is not None and spec.crawl.concurrency > 0:
            wanted = spec.crawl.concurrency
        return max(1, min(MAX_CONCURRENCY, wanted))

    def process_source(
        self,
        job_id: str,
        project_ref: str,
        spec: SourceSpec,
        cancel: threading.Event | None = None,
    ) -> None:
        """Ingest every URL *spec* expands to, recording progress under *job_id*.

        *cancel* is the job's cancel token; a caller may pass its own event
        to stop the job from outside. Fail-fast sets it on the first error.

        Raises:
            ProjectNotFoundError: *project_ref* matches no project.
            SourceSpecError: *spec* is malformed.
            Exception: With ``spec.fail_fast``, the first per-URL error.
        """
        with self.database.session() as conn:
            project = Repository(conn).resolve_project(project_ref)

        urls = self.expander.expand(spec)
        self.tracker.mark_running(job_id, project.id, total=len(urls))
        if not urls:
            logger.info("job %s: source expanded to no URLs", job_id)
            return

        workers = self.concurrency_for(spec)
        delay_ms = spec.crawl.delay_ms if spec.crawl is not None else 0
        declared_format = spec.files.format if spec.files is not None else "auto"
        cancel = cancel or threading.Event()
        error_lock = threading.Lock()
        first_error: list[BaseException] = []

        def run(url: str) -> None:
            if cancel.is_set():
                return
            if delay_ms > 0 and cancel.wait(delay_ms / 1000):
                return
            try:
                self.ingest_url(project.id, url, declared_format, cancel)
            except Exception as exc:
                logger.warning("job %s: ingest failed for %s: %s", job_id, url, exc)
                if spec.fail_fast:
                    with error_lock:
                        if not first_error:
                            first_error.append(exc)
                            cancel.set()
            self._count(job_id)

        logger.info("job %s: ingesting %d URLs with %d workers", job_id, len(urls), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"ingest-{job_id}") as pool:
            for future in [pool.submit(run, url) for url in urls]:
                future.result()

        if first_error:
            raise first_error[0]

    def ingest_url(
        self,
        project_id: str,
        url: str,
        declared_format: str = "auto",
        cancel: threading.Event | None = None,
    ) -> int:
        """Fetch *url* and store it as a document with embedded chunks.

        Non-2xx responses are logged and skipped. Every chunk is embedded
        before anything is written; the document, its chunks, their
        embeddings and the removal of stale ordinals then land in one
        transaction, so a failed embed or a cancel leaves the stored
        document untouched. Returns the number of chunks stored.
        """
        cancel = cancel or threading.Event()
        response = self.fetcher.get(url, timeout=self.page_timeout)
        if not response.ok:
            logger.warning("fetch failed: %s status=%d", url, response.status)
            return 0

        doc = normalize(response.text, url, response.content_type, declared_format)
        # Document id is assigned by store_document.
        chunks = self.chunker.chunk("", doc.text)
        vectors = []
        for chunk in chunks:
            if cancel.is_set():
                return 0
            vectors.append(self.embedder.embed(chunk.text))
        if cancel.is_set():
            return 0

        with self.database.session() as conn:
            _, removed = Repository(conn).store_document(
                project_id, url, doc.title, chunks, vectors, self.embedder.model
            )

        logger.debug("stored %s: %d chunks (%d stale removed)", url, len(chunks), removed)
        return len(chunks)

    def _count(self, job_id: str) -> None:
        try:
            self.tracker.increment(job_id)
        except redis.RedisError as exc:
            logger.warning("job %s: progress update failed: %s", job_id, exc)
