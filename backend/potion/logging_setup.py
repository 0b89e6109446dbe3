"""Log formatting for the storage engine.

Modules attach storage context through ``extra=`` (workspace, page,
migration version, backup key). Both formatters surface those fields, so a
migration or import can be followed across log lines.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import IO, Any, Optional

from .config import LOG_JSON, LOG_LEVEL

CONFIGURED_MARKER = "POTION_LOGGING_CONFIGURED"
CONTEXT_FIELDS = ("workspace_id", "page_id", "migration_version", "backup_key")
PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, with storage context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        payload.update(record_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ContextLogFormatter(logging.Formatter):
    """Plain text lines with storage context appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__(PLAIN_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        suffix = " ".join(f"{key}={value}" for key, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {suffix}{sep}{tail}"


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    *,
    stream: Optional[IO[str]] = None,
    force: bool = False,
) -> Optional[logging.Handler]:
    """Install one root handler. Later calls are no-ops unless ``force`` is set.

    Returns the installed handler, or ``None`` when logging was already set up.
    """
    if not force and os.getenv(CONFIGURED_MARKER, "").strip() == "1":
        return None

    resolved = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    use_json = LOG_JSON if json_output is None else json_output

    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(JsonLogFormatter() if use_json else ContextLogFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(resolved)
    root.addHandler(handler)

    # Route uvicorn through the root handler.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.setLevel(resolved)
        server_logger.propagate = True

    os.environ[CONFIGURED_MARKER] = "1"
    return handler
