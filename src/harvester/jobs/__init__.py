"""harvester job tracking and task queue (Redis)."""

from harvester.jobs.queue import IngestTask, TaskDecodeError, TaskQueue
from harvester.jobs.tracker import IngestJob, JobStateError, JobStatus, JobTracker

__all__ = [
    "IngestJob",
    "IngestTask",
    "JobStateError",
    "JobStatus",
    "JobTracker",
    "TaskDecodeError",
    "TaskQueue",
]
