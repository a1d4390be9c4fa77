"""Structured logging configuration.

Standard library logging with one JSON object per line. Execution context
passed via `extra=` (workflow, execution_id, step) is lifted to the top level
so the history of one execution can be filtered with plain `jq`; any other
extra fields are nested under "extra".
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

CONTEXT_KEYS: tuple[str, ...] = ("workflow", "execution_id", "step")

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: value
        for name, value in vars(record).items()
        if name not in _RECORD_ATTRS and not name.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        fields = _extra_fields(record)
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update({key: fields.pop(key) for key in CONTEXT_KEYS if key in fields})
        if fields:
            line["extra"] = fields
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        # Step payloads are arbitrary; anything non-JSON falls back to str().
        return json.dumps(line, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: IO[str] | None = None) -> None:
    """Send all logging through a single JSON handler (stdout by default)."""

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # requests logs every connection at DEBUG through urllib3.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.INFO))
