"""
Structured JSON logging configuration and the audit stream.

Diagnostic logs are JSON objects on standard error. The audit stream writes
plain JSON lines to standard output through a queue, so a slow consumer of
stdout never stalls the pipeline.
"""

import json
import logging
import logging.handlers
import queue
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from haikubot.models import CandidateEvent, StrongRef

AUDIT_LOGGER_NAME = "haikubot.audit"

# Structured extras copied into the JSON payload when present
_EXTRA_FIELDS = ("seq", "author_id", "record_key", "pattern", "attempt", "state")


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(JSONFormatter())
        >>> logger = logging.getLogger(__name__)
        >>> logger.addHandler(handler)
        >>> logger.info("Matched", extra={"pattern": "haiku", "seq": 42})
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python logging.LogRecord

        Returns:
            JSON string with structured log data
        """
        log_entry = {
            "timestamp": datetime.now(UTC).replace(tzinfo=None).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Destination stream (default: standard error)

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logging.info("Application started")
    """
    formatter = JSONFormatter()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Set levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)

    logging.debug("Structured JSON logging configured")


class AuditLog:
    """Best-effort, non-blocking JSON-lines output of accepted records.

    Lines are handed to a ``QueueHandler``; a ``QueueListener`` thread writes
    them to the sink. Call ``start`` before emitting and ``stop`` on shutdown
    to flush.

    Example:
        >>> audit = AuditLog()
        >>> audit.start()
        >>> audit.emit_candidate(event)
        >>> audit.stop()
    """

    def __init__(self, stream: TextIO | None = None, *, name: str = AUDIT_LOGGER_NAME):
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        sink = logging.StreamHandler(stream or sys.stdout)
        sink.setFormatter(logging.Formatter("%(message)s"))
        self._listener = logging.handlers.QueueListener(self._queue, sink)
        self._logger = logging.getLogger(name)
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handler = logging.handlers.QueueHandler(self._queue)
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._logger.addHandler(self._handler)
        self._listener.start()
        self._started = True

    def stop(self) -> None:
        """Flush pending lines and detach from the logger."""
        if not self._started:
            return
        self._listener.stop()
        self._logger.removeHandler(self._handler)
        self._started = False

    def emit(self, payload: dict[str, Any]) -> None:
        self._logger.info(json.dumps(payload, ensure_ascii=False, default=str))

    def emit_candidate(self, event: CandidateEvent) -> None:
        self.emit(
            {
                "seq": event.seq,
                "author_id": event.author_id,
                "record_key": event.record_key,
                "record": dict(event.record) or {"text": event.text},
            }
        )

    def emit_posted(self, ref: StrongRef) -> None:
        self.emit({"posted": ref.uri, "cid": ref.cid})
