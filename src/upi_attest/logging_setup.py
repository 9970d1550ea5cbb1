"""Process logging setup.

Locally, logs are human-readable text.  Outside ``local`` (or when
``logging.json_format`` is set) each record is one JSON object::

    {"severity": "INFO", "message": "...", "logger": "...", "time": "..."}
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from upi_attest.settings.config import Settings


class JsonFormatter(logging.Formatter):
    """JSON formatter emitting severity-tagged entries."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(settings: Settings | None = None) -> None:
    """Install a single stderr handler on the root logger."""
    if settings is None:
        from upi_attest.settings import get_settings

        settings = get_settings()

    level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    if settings.logging.json_format or settings.env != "local":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s %(name)s — %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
    logging.root.handlers.clear()
    logging.root.addHandler(handler)
    logging.root.setLevel(level)

    # Quieten noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
