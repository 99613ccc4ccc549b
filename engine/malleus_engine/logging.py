"""
Logging for the Malleus engine.

Every line carries the conference it belongs to. Hundreds of participant
threads across several conferences log into one stream, so each worker binds
a LogContext (run ID, room, participant) at start and the formatter renders
it as a prefix (text) or as separate fields (JSON).
"""

import json
import logging
import sys
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Conference/participant a log line belongs to."""

    run_id: str | None = None
    room: str | None = None
    participant: int | None = None

    def prefix(self) -> str:
        parts = [p for p in (self.run_id, self.room) if p]
        if self.participant is not None:
            parts.append(f"p{self.participant}")
        return f"[{' '.join(parts)}] " if parts else ""


# Not inherited by pool threads: each worker binds its own context.
current_log_context: ContextVar[LogContext] = ContextVar("current_log_context", default=LogContext())

# Settings keys scrubbed before a config snapshot is logged or written
REDACTED_FIELDS = {
    "token",
    "secret",
    "password",
    "authorization",
}


def redact_sensitive(data: Any, depth: int = 0) -> Any:
    """Replace values of sensitive keys with "[REDACTED]", recursively."""
    if depth > 10:
        return data
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(f in k.lower() for f in REDACTED_FIELDS) else redact_sensitive(v, depth + 1)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive(item, depth + 1) for item in data]
    return data


class ConferenceFormatter(logging.Formatter):
    """
    Formatter that stamps the bound LogContext onto each record.

    Text lines get a ``[run room pN]`` prefix; JSON lines get ``run_id``,
    ``room`` and ``participant`` fields.
    """

    def __init__(self, json_output: bool = False):
        super().__init__(
            None if json_output else "%(timestamp)s | %(levelname)-8s | %(threadName)s | %(name)s | %(context)s%(message)s"
        )
        self._json = json_output

    def format(self, record: logging.LogRecord) -> str:
        ctx = current_log_context.get()
        record.timestamp = datetime.now(UTC).isoformat()
        record.context = ctx.prefix()

        if not self._json:
            return super().format(record)

        entry = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "module": record.name,
            "thread": record.threadName,
            "run_id": ctx.run_id,
            "room": ctx.room,
            "participant": ctx.participant,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit one JSON object per line

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ConferenceFormatter(json_output=json_output))
    root.addHandler(handler)

    # One line per fault-injection request is enough
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def bind_run(run_id: str, room: str | None = None, participant: int | None = None) -> None:
    """Bind the current thread's log lines to a run (and room/participant)."""
    current_log_context.set(LogContext(run_id=run_id, room=room, participant=participant))


def clear_context() -> None:
    current_log_context.set(LogContext())
