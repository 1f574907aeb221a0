"""
Prometheus metrics for monitoring ingestion runs.

Provides counters and histograms for tracking:
- Records converted and dropped per source format
- Profile runs
- Per-field outcomes of the loose object mapper
- Entity import batches
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

records_converted_total = Counter(
    "records_converted_total",
    "Total number of records written to the JSONL stream",
    ["format"],  # csv/json/jsonl/json_dir
    registry=REGISTRY,
)

records_dropped_total = Counter(
    "records_dropped_total",
    "Total number of records dropped by enrichment hooks",
    ["status"],  # skip/duplicate/vetoed
    registry=REGISTRY,
)

profile_runs_total = Counter(
    "profile_runs_total",
    "Total number of profile passes",
    ["status"],  # success/failure
    registry=REGISTRY,
)

mapped_fields_total = Counter(
    "mapped_fields_total",
    "Fields handled by the loose object mapper",
    ["outcome"],  # written/ignored/unresolved/write_failed
    registry=REGISTRY,
)

entities_imported_total = Counter(
    "entities_imported_total",
    "Total number of entities written by the importer",
    ["entity"],
    registry=REGISTRY,
)

# ========== Histograms ==========

convert_duration_seconds = Histogram(
    "convert_duration_seconds",
    "Time to convert and profile one input",
    ["status"],  # success/failure
    buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 300.0),
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_convert_time(func: Callable):
    """Decorator to track convert run duration and profile outcome."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        status = "success"
        try:
            return func(*args, **kwargs)
        except Exception:
            status = "failure"
            raise
        finally:
            duration = time.time() - start_time
            convert_duration_seconds.labels(status=status).observe(duration)
            profile_runs_total.labels(status=status).inc()

    return wrapper


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
