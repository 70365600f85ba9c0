"""harvester database layer."""

from harvester.db.connection import Database
from harvester.db.migrations import MIGRATIONS, run_migrations
from harvester.db.repository import ProjectNotFoundError, Repository
from harvester.db.schema import initialize

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ProjectNotFoundError",
    "Repository",
]
