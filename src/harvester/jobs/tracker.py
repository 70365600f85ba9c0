"""Redis-backed job progress records.

Each job is one hash at ``<prefix><job_id>`` holding its status, counters
and timestamps. Readers use HGETALL and never block writers; the processed
counter only moves through HINCRBY. Every write refreshes the key's TTL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import redis

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "harvester:job:"
DEFAULT_TTL_SECONDS = 24 * 3600


class JobStateError(RuntimeError):
    """Raised on a status transition the job lifecycle does not allow."""


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Key None: no record exists (never queued, or the TTL expired).
_TRANSITIONS: dict[JobStatus | None, frozenset[JobStatus]] = {
    None: frozenset({JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _int(value: str | None) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


@dataclass
class IngestJob:
    """Snapshot of a job's progress record."""

    job_id: str
    project_id: str = ""
    status: JobStatus = JobStatus.QUEUED
    processed: int = 0
    total: int = 0
    started_at: str = ""
    finished_at: str = ""
    updated_at: str = ""
    error: str = ""

    @classmethod
    def from_hash(cls, job_id: str, data: dict[str, str]) -> IngestJob:
        return cls(
            job_id=data.get("job_id") or job_id,
            project_id=data.get("project_id", ""),
            status=JobStatus(data.get("status") or JobStatus.QUEUED.value),
            processed=_int(data.get("processed")),
            total=_int(data.get("total")),
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
            updated_at=data.get("updated_at", ""),
            error=data.get("error", ""),
        )

    @property
    def progress(self) -> float:
        """Fraction processed in [0, 1]; 0 while the total is unknown."""
        if self.total <= 0:
            return 0.0
        return min(1.0, self.processed / self.total)


class JobTracker:
    """Create and advance job records in Redis.

    Args:
        client: Redis client created with ``decode_responses=True``.
        key_prefix: Prefix for job hash keys.
        ttl_seconds: Expiry applied on every write.
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._redis = client
        self._prefix = key_prefix
        self._ttl = ttl_seconds

    def key(self, job_id: str) -> str:
        return f"{self._prefix}{job_id}"

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_queued(self, job_id: str, project_id: str, total: int = 0) -> None:
        now = _now()
        self._transition(
            job_id,
            JobStatus.QUEUED,
            {
                "job_id": job_id,
                "project_id": project_id,
                "status": JobStatus.QUEUED.value,
                "processed": 0,
                "total": total,
                "started_at": "",
                "finished_at": "",
                "updated_at": now,
                "error": "",
            },
        )

    def mark_running(self, job_id: str, project_id: str, total: int) -> None:
        now = _now()
        self._transition(
            job_id,
            JobStatus.RUNNING,
            {
                "job_id": job_id,
                "project_id": project_id,
                "status": JobStatus.RUNNING.value,
                "processed": 0,
                "total": total,
                "started_at": now,
                "updated_at": now,
            },
        )

    def mark_completed(self, job_id: str) -> None:
        now = _now()
        self._transition(
            job_id,
            JobStatus.COMPLETED,
            {"status": JobStatus.COMPLETED.value, "finished_at": now, "updated_at": now},
        )

    def mark_failed(self, job_id: str, error: str) -> None:
        now = _now()
        self._transition(
            job_id,
            JobStatus.FAILED,
            {
                "job_id": job_id,
                "status": JobStatus.FAILED.value,
                "error": error,
                "finished_at": now,
                "updated_at": now,
            },
        )

    def increment(self, job_id: str, delta: int = 1) -> int:
        """Atomically add *delta* to ``processed``. Returns the new value."""
        if delta == 0:
            job = self.get(job_id)
            return job.processed if job else 0
        key = self.key(job_id)
        pipe = self._redis.pipeline(transaction=True)
        pipe.hincrby(key, "processed", delta)
        pipe.hset(key, "updated_at", _now())
        pipe.expire(key, self._ttl)
        processed, _, _ = pipe.execute()
        return int(processed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> IngestJob | None:
        data = self._redis.hgetall(self.key(job_id))
        if not data:
            return None
        return IngestJob.from_hash(job_id, data)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, job_id: str, target: JobStatus, fields: dict) -> None:
        """Check the current status allows *target*, then write *fields* atomically.

        WATCH on the job key makes a concurrent status change abort and
        retry the check instead of being overwritten.
        """
        key = self.key(job_id)

        def _apply(pipe: redis.client.Pipeline) -> None:
            raw = pipe.hget(key, "status")
            current = JobStatus(raw) if raw else None
            if target not in _TRANSITIONS[current]:
                raise JobStateError(
                    f"job {job_id}: cannot move from "
                    f"{current.value if current else 'missing'} to {target.value}"
                )
            pipe.multi()
            pipe.hset(key, mapping=fields)
            pipe.expire(key, self._ttl)

        self._redis.transaction(_apply, key)
        logger.debug("job %s -> %s", job_id, target.value)
