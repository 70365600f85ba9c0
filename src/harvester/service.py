"""Harvester service facade: submit sources, run jobs, report status, search.

One ``Harvester`` is built from a ``HarvesterConfig`` and owns every
collaborator explicitly; nothing is held in module-level globals. The
embedder, worker pool and search stack are built on first use so commands
that never embed (``project list``, ``status``) need no provider API key.
"""

from __future__ import annotations

import logging
import uuid
from functools import cached_property
from typing import Any

import redis

from harvester.config import HarvesterConfig
from harvester.db.connection import Database
from harvester.db.models import Project
from harvester.db.repository import Repository
from harvester.db.schema import initialize
from harvester.ingest.chunker import ParagraphChunker
from harvester.ingest.embedding import Embedder, build_embedder
from harvester.ingest.fetch import Fetcher, HttpFetcher
from harvester.ingest.spec import SourceSpec
from harvester.ingest.urlset import UrlSetBuilder
from harvester.ingest.worker import IngestionWorkerPool
from harvester.jobs.queue import IngestTask, TaskDecodeError, TaskQueue
from harvester.jobs.tracker import IngestJob, JobStateError, JobTracker
from harvester.rag.search import (
    HybridSearch,
    LexicalSearchProvider,
    SearchResult,
    VectorSearchProvider,
)

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


class Harvester:
    """Entry point for every harvester operation.

    Args:
        config: Merged configuration (see ``load_config``).
        redis_client: Client for job records and the task queue; built from
            ``config.jobs.redis_url`` when omitted.
        fetcher: HTTP fetcher; an ``HttpFetcher`` from ``config.crawl`` when omitted.
        embedder: Embedder; ``build_embedder(config.embedding)`` when omitted.
    """

    def __init__(
        self,
        config: HarvesterConfig,
        redis_client: redis.Redis | None = None,
        fetcher: Fetcher | None = None,
        embedder: Embedder | None = None,
    ) -> None:
        self.config = config
        self.database = Database(config.database.path)
        with self.database.session() as conn:
            initialize(conn)

        client = redis_client or redis.Redis.from_url(config.jobs.redis_url, decode_responses=True)
        self.tracker = JobTracker(
            client, key_prefix=config.jobs.key_prefix, ttl_seconds=config.jobs.ttl_hours * 3600
        )
        self.queue = TaskQueue(client, key=config.jobs.queue_key)
        self.fetcher = fetcher or HttpFetcher(
            user_agent=config.crawl.user_agent,
            max_bytes=config.crawl.max_bytes,
            block_private_networks=config.crawl.block_private_networks,
        )
        self._embedder = embedder

    # ------------------------------------------------------------------
    # Lazily built collaborators
    # ------------------------------------------------------------------

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = build_embedder(self.config.embedding)
        return self._embedder

    @cached_property
    def worker_pool(self) -> IngestionWorkerPool:
        crawl = self.config.crawl
        return IngestionWorkerPool(
            database=self.database,
            fetcher=self.fetcher,
            embedder=self.embedder,
            tracker=self.tracker,
            expander=UrlSetBuilder(
                self.fetcher,
                robots_timeout=crawl.robots_timeout,
                sitemap_timeout=crawl.sitemap_timeout,
                crawl_timeout=crawl.crawl_timeout,
            ),
            chunker=ParagraphChunker(max_chunks=self.config.ingest.max_chunks),
            default_concurrency=self.config.ingest.concurrency,
            page_timeout=crawl.page_timeout,
        )

    @cached_property
    def hybrid_search(self) -> HybridSearch:
        return HybridSearch(
            primary=VectorSearchProvider(self.database, self.embedder),
            secondary=LexicalSearchProvider(self.database),
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, slug: str, name: str = "") -> Project:
        with self.database.session() as conn:
            return Repository(conn).add_project(slug, name or slug)

    def list_projects(self) -> list[Project]:
        with self.database.session() as conn:
            return Repository(conn).list_projects()

    def resolve_project(self, project_ref: str) -> Project:
        """Raises ProjectNotFoundError when *project_ref* matches no id or slug."""
        with self.database.session() as conn:
            return Repository(conn).resolve_project(project_ref)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def submit_source(self, project_ref: str, spec: SourceSpec, enqueue: bool = True) -> str:
        """Validate *spec*, record a queued job and (by default) enqueue it.

        Returns:
            The new job id (``job_<hex>``).

        Raises:
            SourceSpecError: *spec* is malformed.
            ProjectNotFoundError: *project_ref* matches no project.
        """
        spec.validate()
        project = self.resolve_project(project_ref)
        job_id = new_job_id()
        self.tracker.mark_queued(job_id, project.id)
        if enqueue:
            self.queue.enqueue(IngestTask(job_id=job_id, project_id=project.id, source=spec))
        logger.info("job %s queued for project %s (%s)", job_id, project.slug, spec.type.value)
        return job_id

    def run_task(self, task: IngestTask) -> IngestJob | None:
        """Process one task and record its outcome. Never raises.

        Returns the final job record (None if it could not be read back).
        """
        try:
            self.worker_pool.process_source(task.job_id, task.project_id, task.source)
        except Exception as exc:
            logger.error("job %s failed: %s", task.job_id, exc)
            self._record(task.job_id, error=str(exc) or type(exc).__name__)
        else:
            self._record(task.job_id)
            logger.info("job %s completed", task.job_id)
        try:
            return self.tracker.get(task.job_id)
        except redis.RedisError as exc:
            logger.warning("job %s: could not read final status: %s", task.job_id, exc)
            return None

    def work(
        self,
        stop_after: int | None = None,
        poll_timeout: float = 5.0,
        stop_when_idle: bool = False,
    ) -> int:
        """Consume the task queue. Returns the number of tasks run.

        Args:
            stop_after: Stop after this many tasks (None = run forever).
            poll_timeout: Seconds each queue poll blocks.
            stop_when_idle: Return as soon as a poll times out.
        """
        handled = 0
        while stop_after is None or handled < stop_after:
            try:
                task = self.queue.pop(timeout=poll_timeout)
            except TaskDecodeError as exc:
                logger.warning("skipping malformed task: %s", exc)
                continue
            if task is None:
                if stop_when_idle:
                    break
                continue
            logger.info("worker picked up job %s", task.job_id)
            self.run_task(task)
            handled += 1
        return handled

    def job_status(self, job_id: str) -> IngestJob | None:
        return self.tracker.get(job_id)

    def _record(self, job_id: str, error: str | None = None) -> None:
        try:
            if error is None:
                self.tracker.mark_completed(job_id)
            else:
                self.tracker.mark_failed(job_id, error)
        except (JobStateError, redis.RedisError) as exc:
            logger.error("job %s: could not record final status: %s", job_id, exc)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        project_ref: str,
        query: str,
        top_k: int | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Hybrid search within one project.

        Raises:
            ProjectNotFoundError: *project_ref* matches no project.
        """
        project = self.resolve_project(project_ref)
        merged_filters = dict(filters or {})
        merged_filters["project_id"] = project.id
        return self.hybrid_search.search(
            self.config.retrieval.index,
            query,
            top_k if top_k is not None else self.config.retrieval.top_k,
            merged_filters,
        )
