"""JSON log lines on stdout, tagged with the request correlation id."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra_fields`` are merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = get_correlation_id()
        if cid:
            entry["correlationId"] = cid

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger writing JSON to stdout; handlers are attached once per name."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger
