"""Logging configuration for the training platform API.

Two output modes share one stdout handler:

  _ContainerFormatter: single-line text for local development. Lines
    emitted inside a request carry the request ID right after the level,
    so interleaved requests can be told apart.

  _JsonFormatter: one JSON object per line for log aggregation in
    production (LOG_JSON=true). Request context fields become top-level
    keys that can be filtered on directly.
"""

from __future__ import annotations

import json
import logging
import sys

# Fields that RequestContextMiddleware and its logging filter attach to records.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "user_id",
    "status_code",
    "duration_ms",
)


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    WARNING and above get a ``[filename:lineno]`` suffix. Stack traces are
    appended whenever the record carries exc_info.
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        fmt = self._BASE_FMT
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            fmt = fmt.replace("%(name)s", "[%(request_id)s] %(name)s")
        if record.levelno >= logging.WARNING:
            fmt += self._LOC_SUFFIX
        self._style._fmt = fmt
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter for machine-parseable output."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger.

    Args:
        level_name: debug/info/warning/error. Unknown names fall back to INFO.
        json_format: emit JSON lines instead of text (LOG_JSON).
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep server and client libraries from flooding at DEBUG
    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "aiosqlite",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
