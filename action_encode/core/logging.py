"""Structured logging keyed by job.

Every record emitted while a job is being encoded carries the job uid as its
correlation ID, so interleaved output from the pipeline can be attributed.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

NO_JOB = "-"

# Job uid of the encode run in progress, set by the transcoding service
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "taskName", "correlation_id", "overwrite"}


def get_correlation_id() -> str:
    """Get the uid of the job being encoded, or NO_JOB outside a run."""
    return correlation_id_var.get() or NO_JOB


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with extra fields under "extra"."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
            "source": f"{record.module}:{record.lineno}",
        }

        if record.exc_info and self.include_stack_trace:
            exc_type, exc, tb = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc) if exc else None,
                "stack_trace": traceback.format_exception(exc_type, exc, tb) if tb else None,
            }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class CorrelationIdFilter(logging.Filter):
    """Stamps each record with the current job uid."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class ConsoleHandler(logging.StreamHandler):
    """Stream handler that can rewrite a single status line.

    Records logged with ``extra={"overwrite": True}`` end with a carriage
    return instead of a newline when the stream is a terminal, so repeated
    download progress reports replace each other.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "overwrite", False) and self._is_terminal():
            self.terminator = "\r"
        else:
            self.terminator = "\n"
        super().emit(record)

    def _is_terminal(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Send all logging to stderr, leaving stdout for the job JSON.

    Args:
        level: Log level name
        json_format: Emit one JSON object per record instead of plain lines
        include_stack_trace: Include stack traces in JSON error records
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = ConsoleHandler(sys.stderr)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"
        ))
    root_logger.addHandler(handler)

    # The binary download would otherwise log every request
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error with context fields and an optional exception."""
    logger.error(message, exc_info=exception, extra=extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    logger.warning(message, extra=extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    logger.info(message, extra=extra)
