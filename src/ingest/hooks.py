"""
Enrichment hooks for convert runs.

The converter dispatches a ``RowEvent`` for each record before it is
written, and ``RunStartedEvent`` / ``RunFinishedEvent`` around the run.
Row listeners may mutate ``event.row``, set it to None, or change
``event.status``; any status other than ``okay`` drops the record.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

STATUS_OKAY = "okay"
STATUS_SKIP = "skip"
STATUS_DUPLICATE = "duplicate"


@dataclass
class RowEvent:
    """One record on its way to the JSONL output."""
    row: Optional[Dict[str, Any]]
    input: str
    format: Optional[str] = None
    index: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    status: str = STATUS_OKAY
    apply_profile_path: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.row is not None and self.status == STATUS_OKAY


@dataclass
class RunStartedEvent:
    input: str
    jsonl_path: str
    profile_path: str
    dataset: str
    tags: List[str]
    limit: Optional[int] = None
    zip_path: Optional[str] = None
    root_key: Optional[str] = None


@dataclass
class RunFinishedEvent:
    input: str
    jsonl_path: str
    profile_path: str
    record_count: int
    dataset: str
    tags: List[str]
    limit: Optional[int] = None
    zip_path: Optional[str] = None
    root_key: Optional[str] = None


RowListener = Callable[[RowEvent], None]
StartedListener = Callable[[RunStartedEvent], None]
FinishedListener = Callable[[RunFinishedEvent], None]


class HookDispatcher:
    """Calls registered listeners in registration order."""

    def __init__(self):
        self._row: List[RowListener] = []
        self._started: List[StartedListener] = []
        self._finished: List[FinishedListener] = []

    def on_row(self, listener: RowListener) -> RowListener:
        self._row.append(listener)
        return listener

    def on_started(self, listener: StartedListener) -> StartedListener:
        self._started.append(listener)
        return listener

    def on_finished(self, listener: FinishedListener) -> FinishedListener:
        self._finished.append(listener)
        return listener

    def dispatch(self, event):
        if isinstance(event, RowEvent):
            listeners = self._row
        elif isinstance(event, RunStartedEvent):
            listeners = self._started
        elif isinstance(event, RunFinishedEvent):
            listeners = self._finished
        else:
            raise TypeError(f"Unknown hook event: {type(event).__name__}")

        for listener in listeners:
            listener(event)
        return event


class ApplyProfileTransforms:
    """
    Row listener applying the ``transforms.split`` rules of a profile.

    Rules are read once per profile path. A string value is split when it
    contains the rule's delimiter and at least ``minParts`` non-empty parts
    remain; lists and None are left alone.
    """

    def __init__(self, profile_path: Optional[str] = None):
        self.profile_path = profile_path
        self._cache: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __call__(self, event: RowEvent) -> None:
        path = event.apply_profile_path or self.profile_path
        if not path or not isinstance(event.row, dict):
            return

        rules = self.load_split_rules(path)
        if not rules:
            return

        row = event.row
        for field_name, rule in rules.items():
            value = row.get(field_name)
            if value is None or isinstance(value, (list, dict)):
                continue

            text = str(value)
            if not text or rule["delimiter"] not in text:
                continue

            parts = text.split(rule["delimiter"])
            if rule["trim"]:
                parts = [p.strip() for p in parts]
            parts = [p for p in parts if p != ""]

            if len(parts) >= rule["minParts"]:
                row[field_name] = parts

    def load_split_rules(self, path: str) -> Dict[str, Dict[str, Any]]:
        if path in self._cache:
            return self._cache[path]

        rules: Dict[str, Dict[str, Any]] = {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                profile = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot read split rules from {path}: {e}")
            profile = None

        split = profile.get("transforms", {}).get("split", []) if isinstance(profile, dict) else []
        for rule in split if isinstance(split, list) else []:
            if not isinstance(rule, dict):
                continue
            field_name = rule.get("field")
            delimiter = rule.get("delimiter")
            if not isinstance(field_name, str) or not field_name:
                continue
            if not isinstance(delimiter, str) or not delimiter:
                continue
            rules[field_name] = {
                "delimiter": delimiter,
                "trim": bool(rule.get("trim", True)),
                "minParts": int(rule.get("minParts", 2)),
            }

        self._cache[path] = rules
        return rules


def _is_jsonl(path: str) -> bool:
    return path.endswith(".jsonl") or path.endswith(".jsonl.gz")


def _is_csv(path: str) -> bool:
    return path.endswith(".csv") or path.endswith(".csv.gz")


class ExportCsvOnFinish:
    """
    Finished listener writing a CSV next to the JSONL output.

    Runs when ``enabled`` (``INGEST_EXPORT_CSV_ON_FINISH``) or when the run
    is tagged ``export:csv`` / ``export.csv``.
    """

    def __init__(self, exporter, enabled: bool = False):
        self.exporter = exporter
        self.enabled = enabled

    def __call__(self, event: RunFinishedEvent) -> None:
        if _is_csv(event.jsonl_path):
            return
        if not (self.enabled or "export:csv" in event.tags or "export.csv" in event.tags):
            return

        if _is_jsonl(event.jsonl_path):
            input_path = event.jsonl_path
        elif _is_jsonl(event.input):
            input_path = event.input
        else:
            return

        result = self.exporter.export_from_profile(
            event.profile_path, input_path, None, event.limit
        )
        logger.info(
            f"Exported {result['recordCount']} records to {result['outputPath']}",
            extra={"extra_fields": {"dataset": event.dataset}},
        )
