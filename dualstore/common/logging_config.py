"""
Structured JSON logging for the ingest and retrieval services.

Every line carries the request id of the API call that produced it and,
while a dataset is being ingested or read, that dataset's id. Pipeline
stages are timed with PerformanceTracker.
"""

import logging
import json
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
dataset_id_ctx: ContextVar[Optional[str]] = ContextVar("dataset_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id
        dataset_id = dataset_id_ctx.get()
        if dataset_id:
            log_data["dataset_id"] = dataset_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Times one pipeline stage and logs its outcome.

    Usage:
        with PerformanceTracker("ingest.writing", logger, backend="sql") as t:
            writer.write(...)
        durations["writing"] = t.duration_ms
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def _fields(self, **more) -> dict:
        return {"operation": self.operation, **self.extra_fields, **more}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(f"{self.operation} started", extra={"extra_fields": self._fields()})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        duration = round(self.duration_ms, 2)

        if exc_type is None:
            self.logger.log(
                self.log_level,
                f"{self.operation} completed in {duration}ms",
                extra={"extra_fields": self._fields(duration_ms=duration)},
            )
            return

        self.logger.error(
            f"{self.operation} failed after {duration}ms: {exc_val}",
            extra={"extra_fields": self._fields(
                duration_ms=duration, error=str(exc_val), error_type=exc_type.__name__)},
        )


PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Driver loggers that flood INFO with connection chatter
QUIET_LOGGERS = ("pymongo", "sqlalchemy.engine", "sqlalchemy.pool")


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Route all service logs to stderr.

    Args:
        log_level: Root level name (DEBUG, INFO, ...)
        json_format: One JSON object per line when True, plain text otherwise
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context.

    Args:
        request_id: Request ID (generated if not provided)

    Returns:
        Request ID
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_ctx.get()


def clear_request_id():
    """Clear request ID from context."""
    request_id_ctx.set(None)


@contextmanager
def dataset_context(dataset_id: Optional[str]) -> Iterator[Optional[str]]:
    """Tag every log line emitted inside the block with a dataset id."""
    token = dataset_id_ctx.set(dataset_id)
    try:
        yield dataset_id
    finally:
        dataset_id_ctx.reset(token)


def get_dataset_id() -> Optional[str]:
    return dataset_id_ctx.get()
