"""
Structured JSON logging scoped to ingestion runs.

Provides logging for batch ingestion with:
- JSON lines for log aggregation
- A run scope that stamps every line of one convert/import pass with its
  run ID and dataset
- Structured metadata via ``extra={"extra_fields": {...}}``
- Operation timing
"""

import logging
import json
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional
from datetime import datetime, timezone

# Current run, set by run_scope()
run_id_ctx: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
dataset_ctx: ContextVar[Optional[str]] = ContextVar("dataset", default=None)

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Lines logged inside a run scope carry ``run_id`` and ``dataset``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        run_id = run_id_ctx.get()
        if run_id:
            log_data["run_id"] = run_id
        dataset = dataset_ctx.get()
        if dataset:
            log_data["dataset"] = dataset

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # explicit extra fields win over the run scope
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Times one operation and logs its outcome.

    ``duration_ms`` is available once the block exits.

    Usage:
        with PerformanceTracker("profile", logger, jsonl_path=path) as tracker:
            ...
        result.duration_ms = tracker.duration_ms
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

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"extra_fields": {"operation": self.operation, **self.extra_fields}},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.time() - self.start_time) * 1000, 2)
        extra = {"operation": self.operation, "duration_ms": self.duration_ms, **self.extra_fields}

        if exc_type:
            extra["error"] = str(exc_val)
            extra["error_type"] = exc_type.__name__
            self.logger.error(f"Operation failed: {self.operation}", extra={"extra_fields": extra})
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation} ({self.duration_ms}ms)",
                extra={"extra_fields": extra},
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure the root logger with a single console handler.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines if True, plain text otherwise
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
    root_logger.addHandler(console_handler)

    # SQL echo only when explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@contextmanager
def run_scope(dataset: Optional[str] = None, run_id: Optional[str] = None) -> Generator[str, None, None]:
    """
    Tag log lines emitted inside the block with a run ID and dataset.

    Scopes nest; the enclosing run is restored on exit.

    Yields:
        The run ID (generated when not given)
    """
    run_id = run_id or str(uuid.uuid4())
    run_token = run_id_ctx.set(run_id)
    dataset_token = dataset_ctx.set(dataset)
    try:
        yield run_id
    finally:
        dataset_ctx.reset(dataset_token)
        run_id_ctx.reset(run_token)


def get_run_id() -> Optional[str]:
    return run_id_ctx.get()


def get_dataset() -> Optional[str]:
    return dataset_ctx.get()
