"""Redis list task queue carrying ingestion requests to workers.

Producers LPUSH JSON messages, workers BRPOP from the other end, so tasks
are consumed in submission order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import redis

from harvester.ingest.spec import SourceSpec, SourceSpecError

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "harvester:tasks"


class TaskDecodeError(ValueError):
    """Raised when a queue message is not a valid ingestion task."""


@dataclass(frozen=True)
class IngestTask:
    """One queued ingestion request.

    ``project_id`` holds the project reference as submitted: an id once
    the submitter has resolved it, otherwise a slug.
    """

    job_id: str
    project_id: str
    source: SourceSpec

    def to_json(self) -> str:
        return json.dumps(
            {"job_id": self.job_id, "project_id": self.project_id, "source": self.source.to_dict()}
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> IngestTask:
        """Decode a queue message.

        Raises:
            TaskDecodeError: Not JSON, missing fields, or an invalid source.
        """
        try:
            data: Any = json.loads(raw)
        except ValueError as exc:
            raise TaskDecodeError(f"task is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise TaskDecodeError("task must be a JSON object")
        job_id = data.get("job_id")
        project_id = data.get("project_id")
        if not job_id or not project_id:
            raise TaskDecodeError("task requires 'job_id' and 'project_id'")
        try:
            source = SourceSpec.from_dict(data.get("source") or {})
        except SourceSpecError as exc:
            raise TaskDecodeError(f"task {job_id}: {exc}") from exc
        return cls(job_id=str(job_id), project_id=str(project_id), source=source)


class TaskQueue:
    """FIFO queue of IngestTask messages in a Redis list."""

    def __init__(self, client: redis.Redis, key: str = DEFAULT_QUEUE_KEY) -> None:
        self._redis = client
        self.key = key

    def enqueue(self, task: IngestTask) -> None:
        self._redis.lpush(self.key, task.to_json())
        logger.debug("enqueued task for job %s", task.job_id)

    def pop(self, timeout: float = 5.0) -> IngestTask | None:
        """Block up to *timeout* seconds for the next task; None on timeout.

        Raises:
            TaskDecodeError: The popped message is malformed. It has already
                been removed from the queue.
        """
        item = self._redis.brpop([self.key], timeout=timeout)
        if item is None:
            return None
        _key, raw = item
        return IngestTask.from_json(raw)

    def __len__(self) -> int:
        return int(self._redis.llen(self.key))
