"""Log formatting and per-request log context.

Every record can carry the id of the request and of the caller it was emitted
for. Middleware binds them with ``LogContext``; formatters read them from
context variables, so cache code just calls ``logger.info(...)``.

Usage:
    from respcache.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="INFO")

    with LogContext(request_id="abc", user_id="u1"):
        logger.info("[CACHE HIT] cache:u1:bookings:0123456789")
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
user_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("user_id", default="")

_CONTEXT_VARS = {"request_id": request_id_var, "user_id": user_id_var}

# Attributes every LogRecord has; anything else was passed via ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "redis": logging.WARNING,
}


def current_context() -> dict[str, str]:
    """Context values bound for the running task, empty ones omitted."""
    return {key: value for key, var in _CONTEXT_VARS.items() if (value := var.get())}


class JsonFormatter(logging.Formatter):
    """Single-line JSON records for log shippers.

    {"timestamp": "...", "level": "INFO", "logger": "respcache.cache.interceptor",
     "message": "[CACHE MISS] cache:u1:bookings:0123456789", "user_id": "u1"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(current_context())
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Readable one-line records for local development."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_colors:
            level = f"\033[{self.LEVEL_COLORS.get(record.levelno, '0')}m{level}\033[0m"

        timestamp = self.formatTime(record, self.datefmt)
        line = f"{timestamp} {level} {record.name}: {record.getMessage()}"
        context = current_context()
        if "request_id" in context:
            context["request_id"] = context["request_id"][:8]
        if context:
            line += " [" + " ".join(f"{k.split('_')[0]}={v}" for k, v in context.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Replace the root handlers with one stderr handler in the chosen format."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


class LogContext:
    """Bind request and user ids for log records emitted inside the block.

    Unknown keys and empty values are ignored.
    """

    def __init__(self, **values: Any) -> None:
        self.values = {k: str(v) for k, v in values.items() if k in _CONTEXT_VARS and v}
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.values.items():
            var = _CONTEXT_VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
