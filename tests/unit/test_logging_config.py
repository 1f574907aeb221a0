"""
Unit tests for structured logging.
"""

import json
import logging

import pytest

from src.common.logging_config import (
    PerformanceTracker,
    StructuredFormatter,
    get_dataset,
    get_run_id,
    run_scope,
    setup_logging,
)


def _record(message="hello", **attrs):
    record = logging.LogRecord("ingest.test", logging.INFO, __file__, 10, message, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for the JSON formatter."""

    def test_basic_fields(self):
        data = json.loads(StructuredFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "ingest.test"
        assert data["message"] == "hello"
        assert "run_id" not in data
        assert "dataset" not in data

    def test_run_scope_fields(self):
        with run_scope("films", run_id="run-1") as run_id:
            data = json.loads(StructuredFormatter().format(_record(extra_fields={"rows": 3})))
        assert run_id == "run-1"
        assert data["run_id"] == "run-1"
        assert data["dataset"] == "films"
        assert data["rows"] == 3

    def test_extra_fields_win(self):
        with run_scope("films"):
            data = json.loads(StructuredFormatter().format(_record(extra_fields={"dataset": "other"})))
        assert data["dataset"] == "other"


class TestRunScope:
    """Tests for run correlation."""

    def test_generated_run_id(self):
        with run_scope() as run_id:
            assert run_id and get_run_id() == run_id
        assert get_run_id() is None

    def test_nested_scopes_restore(self):
        with run_scope("outer", run_id="a"):
            with run_scope("inner", run_id="b"):
                assert (get_run_id(), get_dataset()) == ("b", "inner")
            assert (get_run_id(), get_dataset()) == ("a", "outer")
        assert get_dataset() is None

    def test_reset_on_error(self):
        with pytest.raises(ValueError):
            with run_scope("films"):
                raise ValueError("boom")
        assert get_run_id() is None


class TestPerformanceTracker:
    """Tests for operation timing."""

    def test_records_duration(self, caplog):
        logger = logging.getLogger("ingest.perf")
        with caplog.at_level(logging.INFO, logger="ingest.perf"):
            with PerformanceTracker("profile", logger, dataset="films") as tracker:
                pass

        assert tracker.duration_ms is not None and tracker.duration_ms >= 0
        completed = [r for r in caplog.records if r.getMessage().startswith("Operation completed: profile")]
        assert completed
        assert completed[0].extra_fields["dataset"] == "films"

    def test_logs_failure_and_propagates(self, caplog):
        logger = logging.getLogger("ingest.perf")
        with caplog.at_level(logging.INFO, logger="ingest.perf"):
            with pytest.raises(RuntimeError):
                with PerformanceTracker("convert", logger):
                    raise RuntimeError("bad input")

        failed = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert failed[0].extra_fields["error_type"] == "RuntimeError"


def test_setup_logging_plain():
    setup_logging("DEBUG", json_format=False)
    root = logging.getLogger()
    try:
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        setup_logging("WARNING", json_format=True)
