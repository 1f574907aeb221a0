"""
Unit tests for CSV export and the convert enrichment hooks.
"""

import csv
import gzip
import json

import pytest

from src.ingest.hooks import (
    STATUS_SKIP,
    ApplyProfileTransforms,
    ExportCsvOnFinish,
    HookDispatcher,
    RowEvent,
    RunFinishedEvent,
    RunStartedEvent,
)
from src.ingest.jsonl import JsonlWriter
from src.profiling.csv_exporter import CsvProfileExporter, csv_value, default_csv_path
from src.profiling.profile import Profile, ProfileInvalidError


@pytest.fixture
def exported_dataset(tmp_path):
    """A JSONL file and the profile describing it."""
    jsonl_path = tmp_path / "films.jsonl"
    with JsonlWriter(jsonl_path) as writer:
        writer.write({"filmId": "f-1", "genres": ["Horror", "Sci-Fi"], "released": True})
        writer.write({"filmId": "f-2", "genres": None, "released": False, "extra": 1})
        writer.write({"filmId": "f-3", "meta": {"a": 1}})

    profile = Profile(
        input="films.csv",
        output=str(jsonl_path),
        record_count=3,
        dataset="films",
        fields={
            "filmId": {"originalName": "Film ID"},
            "genres": {},
            "released": {"originalName": "Is Released"},
            "meta": {},
        },
    )
    profile_path = profile.save(tmp_path / "films.profile.json")
    return jsonl_path, profile_path


def read_csv(path, opener=open):
    with opener(path, "rt", encoding="utf-8", newline="") as f:
        return list(csv.reader(f))


class TestCsvValue:
    """Tests for cell formatting."""

    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (True, "true"),
        (False, "false"),
        (3, 3),
        ("x", "x"),
        (["a", "b"], "a|b"),
        ([True, None], "true|"),
        ([1, [2]], "[1, [2]]"),
        ({"a": "é"}, '{"a": "é"}'),
    ])
    def test_csv_value(self, value, expected):
        assert csv_value(value) == expected

    @pytest.mark.parametrize("path,expected", [
        ("x.jsonl", "x.csv"),
        ("x.jsonl.gz", "x.csv.gz"),
        ("x.json", "x.csv"),
        ("x.csv", "x.csv"),
        ("x.txt", "x.txt.csv"),
    ])
    def test_default_csv_path(self, path, expected):
        assert default_csv_path(path) == expected


class TestCsvProfileExporter:
    """Tests for profile-driven export."""

    def test_export_uses_profile_order_and_headers(self, exported_dataset):
        jsonl_path, profile_path = exported_dataset

        result = CsvProfileExporter().export_from_profile(str(profile_path))

        assert result == {"outputPath": str(jsonl_path)[:-6] + ".csv", "recordCount": 3}
        assert read_csv(result["outputPath"]) == [
            ["Film ID", "genres", "Is Released", "meta"],
            ["f-1", "Horror|Sci-Fi", "true", ""],
            ["f-2", "", "false", ""],
            ["f-3", "", "", '{"a": 1}'],
        ]

    def test_export_gzip_with_limit(self, exported_dataset, tmp_path):
        jsonl_path, profile_path = exported_dataset
        output = tmp_path / "out" / "films.csv.gz"

        result = CsvProfileExporter().export_from_profile(
            str(profile_path), str(jsonl_path), str(output), limit=1
        )

        assert result["recordCount"] == 1
        assert read_csv(output, gzip.open) == [
            ["Film ID", "genres", "Is Released", "meta"],
            ["f-1", "Horror|Sci-Fi", "true", ""],
        ]

    def test_missing_input(self, exported_dataset, tmp_path):
        _, profile_path = exported_dataset
        with pytest.raises(FileNotFoundError):
            CsvProfileExporter().export_from_profile(str(profile_path), str(tmp_path / "nope.jsonl"))

    def test_profile_without_output(self, tmp_path):
        path = Profile(input="", output="", record_count=0, dataset="x", fields={"a": {}}).save(
            tmp_path / "x.profile.json"
        )
        with pytest.raises(ProfileInvalidError, match="Missing input path"):
            CsvProfileExporter().export_from_profile(str(path))

    def test_profile_without_fields(self, tmp_path):
        path = Profile(input="", output="x.jsonl", record_count=0, dataset="x", fields={}).save(
            tmp_path / "x.profile.json"
        )
        with pytest.raises(ProfileInvalidError, match="no fields"):
            CsvProfileExporter().export_from_profile(str(path))


class TestHookDispatcher:
    """Tests for listener dispatch."""

    def test_listeners_run_in_order(self):
        dispatcher = HookDispatcher()
        calls = []
        dispatcher.on_row(lambda e: calls.append("first"))
        dispatcher.on_row(lambda e: calls.append("second"))

        event = dispatcher.dispatch(RowEvent(row={"a": 1}, input="in.csv"))

        assert calls == ["first", "second"]
        assert event.accepted

    def test_events_route_to_their_listeners(self):
        dispatcher = HookDispatcher()
        seen = []
        dispatcher.on_started(lambda e: seen.append(("started", e.dataset)))
        dispatcher.on_finished(lambda e: seen.append(("finished", e.record_count)))

        dispatcher.dispatch(RunStartedEvent("in.csv", "out.jsonl", "out.profile.json", "films", []))
        dispatcher.dispatch(RunFinishedEvent("in.csv", "out.jsonl", "out.profile.json", 2, "films", []))

        assert seen == [("started", "films"), ("finished", 2)]

    def test_unknown_event(self):
        with pytest.raises(TypeError, match="Unknown hook event"):
            HookDispatcher().dispatch(object())

    def test_status_and_veto(self):
        assert not RowEvent(row={"a": 1}, input="x", status=STATUS_SKIP).accepted
        assert not RowEvent(row=None, input="x").accepted


class TestApplyProfileTransforms:
    """Tests for the split-transform row listener."""

    @pytest.fixture
    def profile_path(self, tmp_path):
        path = tmp_path / "films.profile.json"
        path.write_text(json.dumps({
            "fields": {},
            "transforms": {"split": [
                {"field": "genres", "delimiter": "|", "trim": True, "minParts": 2},
                {"field": "tags", "delimiter": ",", "trim": False, "minParts": 3},
                {"field": "", "delimiter": "|"},
                {"field": "bad"},
            ]},
        }), encoding="utf-8")
        return str(path)

    def test_splits_configured_fields(self, profile_path):
        hook = ApplyProfileTransforms(profile_path)
        event = RowEvent(
            row={"genres": "Horror | Sci-Fi", "tags": "a, b", "title": "x|y"},
            input="films.csv",
        )

        hook(event)

        assert event.row == {"genres": ["Horror", "Sci-Fi"], "tags": "a, b", "title": "x|y"}

    def test_leaves_short_lists_and_nulls(self, profile_path):
        hook = ApplyProfileTransforms()
        for value in ["Horror", "Horror|", None, ["a", "b"]]:
            event = RowEvent(row={"genres": value}, input="x", apply_profile_path=profile_path)
            hook(event)
            assert event.row == {"genres": value}

    def test_untrimmed_parts(self, profile_path):
        event = RowEvent(row={"tags": "a, b,c"}, input="x")
        ApplyProfileTransforms(profile_path)(event)
        assert event.row == {"tags": ["a", " b", "c"]}

    def test_rules_are_cached(self, profile_path):
        hook = ApplyProfileTransforms(profile_path)
        assert set(hook.load_split_rules(profile_path)) == {"genres", "tags"}
        assert hook.load_split_rules(profile_path) is hook.load_split_rules(profile_path)

    def test_missing_profile_is_a_no_op(self, tmp_path):
        event = RowEvent(row={"genres": "a|b"}, input="x")
        ApplyProfileTransforms(str(tmp_path / "missing.json"))(event)
        assert event.row == {"genres": "a|b"}


class _RecordingExporter:
    def __init__(self):
        self.calls = []

    def export_from_profile(self, profile_path, input_path=None, output_path=None, limit=None):
        self.calls.append((profile_path, input_path, output_path, limit))
        return {"outputPath": "out.csv", "recordCount": 0}


def _finished(jsonl_path="out.jsonl", tags=(), input_path="in.csv"):
    return RunFinishedEvent(input_path, jsonl_path, "out.profile.json", 0, "films", list(tags), limit=5)


class TestExportCsvOnFinish:
    """Tests for the export-on-finish listener."""

    def test_disabled_without_tag(self):
        exporter = _RecordingExporter()
        ExportCsvOnFinish(exporter)(_finished())
        assert exporter.calls == []

    @pytest.mark.parametrize("tag", ["export:csv", "export.csv"])
    def test_enabled_by_tag(self, tag):
        exporter = _RecordingExporter()
        ExportCsvOnFinish(exporter)(_finished(tags=[tag]))
        assert exporter.calls == [("out.profile.json", "out.jsonl", None, 5)]

    def test_enabled_by_setting(self):
        exporter = _RecordingExporter()
        ExportCsvOnFinish(exporter, enabled=True)(_finished(jsonl_path="out.jsonl.gz"))
        assert exporter.calls[0][1] == "out.jsonl.gz"

    def test_falls_back_to_jsonl_input(self):
        exporter = _RecordingExporter()
        ExportCsvOnFinish(exporter, enabled=True)(
            _finished(jsonl_path="data/films", input_path="films.jsonl")
        )
        assert exporter.calls[0][1] == "films.jsonl"

    def test_skips_csv_output(self):
        exporter = _RecordingExporter()
        ExportCsvOnFinish(exporter, enabled=True)(_finished(jsonl_path="out.csv"))
        assert exporter.calls == []
