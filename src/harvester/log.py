"""Logging setup for harvester commands and workers.

Modules log through ``logging.getLogger(__name__)``; only entry points call
``setup_logging()``. Interactive commands get rich console output, long-running
workers can switch to one JSON object per line.
"""

from __future__ import annotations

import json as _json
import logging
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler

# LogRecord attributes that are not user-supplied ``extra=`` fields.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def __init__(self, service_name: str = "harvester") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                entry[key] = value
        return _json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json: bool = False) -> None:
    """Configure the root logger.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown
            names fall back to INFO.
        json: Emit JSON lines to stderr instead of rich console output.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)

    handler: logging.Handler
    if json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # litellm and urllib3 are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx", "urllib3"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))
