"""
Integration tests for the loose-ingest CLI.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.catalog import database
from src.cli import cli
from src.common.logging_config import setup_logging
from src.config.settings import get_settings

MODELS = '''
from typing import List, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CliFilm(Base):
    __tablename__ = "cli_film"

    film_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[Optional[str]]
    genres: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
'''


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point settings and the catalog engine at scratch locations."""
    data = tmp_path / "data"
    monkeypatch.setenv("INGEST_DATA_DIR", str(data))
    monkeypatch.setenv("INGEST_DATABASE_URL", f"sqlite:///{tmp_path / 'catalog.db'}")
    monkeypatch.setenv("INGEST_PERSIST_PROFILES", "false")
    monkeypatch.setenv("INGEST_LOG_JSON", "false")
    get_settings.cache_clear()
    database.get_engine.cache_clear()
    database.get_session_factory.cache_clear()

    yield data

    database.get_engine().dispose()
    get_settings.cache_clear()
    database.get_engine.cache_clear()
    database.get_session_factory.cache_clear()
    setup_logging("WARNING", json_format=False)


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args, **kwargs):
    return runner.invoke(cli, ["--log-level", "ERROR", *args], **kwargs)


class TestConvertCommand:
    """Tests for `convert`."""

    def test_convert(self, runner, data_dir, films_csv):
        result = invoke(runner, "convert", str(films_csv))

        assert result.exit_code == 0, result.output
        assert "Converted 3 records" in result.output
        assert "PK-like unique fields: filmId" in result.output
        assert (data_dir / "films.jsonl").is_file()
        assert (data_dir / "films.profile.json").is_file()

    def test_convert_json_output(self, runner, data_dir, films_csv):
        result = invoke(runner, "convert", str(films_csv), "-f", "json", "-l", "1", "-d", "movies")

        assert result.exit_code == 0, result.output
        body = json.loads(result.output[result.output.index("{"):])
        assert body["dataset"] == "movies"
        assert body["recordCount"] == 1

    def test_convert_missing_input(self, runner, data_dir, tmp_path):
        result = invoke(runner, "convert", str(tmp_path / "nope.csv"))
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestReportCommand:
    """Tests for `report`."""

    def test_report_by_dataset(self, runner, data_dir, films_csv):
        invoke(runner, "convert", str(films_csv))

        result = invoke(runner, "report", "-d", "films", "--only", "pk", "--show-transforms")

        assert result.exit_code == 0, result.output
        assert "Summary" in result.output
        assert "Transforms" in result.output
        assert "filmId" in result.output

    def test_report_by_path(self, runner, data_dir, films_csv):
        invoke(runner, "convert", str(films_csv))
        result = invoke(runner, "report", str(data_dir / "films.profile.json"), "-s", "distinct", "-l", "1")
        assert result.exit_code == 0, result.output
        assert "Fields (1)" in result.output

    def test_report_needs_profile(self, runner, data_dir):
        result = invoke(runner, "report")
        assert result.exit_code == 1
        assert "Provide a profile path or --dataset" in result.output

    def test_report_missing_profile(self, runner, data_dir):
        result = invoke(runner, "report", "-d", "nope")
        assert result.exit_code == 1
        assert "Profile file not found" in result.output

    def test_report_rejects_unknown_filter(self, runner, data_dir):
        result = invoke(runner, "report", "-d", "films", "--only", "bogus")
        assert result.exit_code == 2


class TestExportCsvCommand:
    """Tests for `export-csv`."""

    def test_export_by_dataset(self, runner, data_dir, films_csv):
        invoke(runner, "convert", str(films_csv))

        result = invoke(runner, "export-csv", "-d", "films")

        assert result.exit_code == 0, result.output
        assert "Exported 3 records" in result.output
        header = (data_dir / "films.csv").read_text(encoding="utf-8").splitlines()[0]
        assert header == "Film ID,Title,Genres,Is Released,Rating"

    def test_export_by_input(self, runner, data_dir, films_csv, tmp_path):
        invoke(runner, "convert", str(films_csv))
        output = tmp_path / "out.csv"

        result = invoke(runner, "export-csv", str(data_dir / "films.jsonl"), "-o", str(output), "-l", "2")

        assert result.exit_code == 0, result.output
        assert len(output.read_text(encoding="utf-8").splitlines()) == 3

    def test_export_needs_arguments(self, runner, data_dir):
        result = invoke(runner, "export-csv")
        assert result.exit_code == 1


class TestBrowseCommand:
    """Tests for `browse`."""

    def test_browse_by_dataset(self, runner, data_dir, films_csv):
        invoke(runner, "convert", str(films_csv))

        result = invoke(runner, "browse", "-d", "films", "-l", "2")

        assert result.exit_code == 0, result.output
        assert "Record #1" in result.output
        assert "Record #2" in result.output
        assert "Record #3" not in result.output
        assert '"filmId": "f-1"' in result.output
        assert "Displayed 2 records" in result.output

    def test_browse_by_path(self, runner, data_dir, tmp_path):
        path = tmp_path / "rows.jsonl"
        path.write_text('{"título": "Año"}\n', encoding="utf-8")

        result = invoke(runner, "browse", str(path))

        assert result.exit_code == 0, result.output
        assert '"título": "Año"' in result.output
        assert "Displayed 1 records" in result.output

    def test_browse_missing_file(self, runner, data_dir):
        result = invoke(runner, "browse", "-d", "nope")
        assert result.exit_code == 1
        assert "JSONL file not found" in result.output

    def test_browse_needs_target(self, runner, data_dir):
        result = invoke(runner, "browse")
        assert result.exit_code == 1
        assert "Provide a JSONL path or --dataset" in result.output


class TestImportEntitiesCommand:
    """Tests for `import-entities`."""

    @pytest.fixture
    def models(self, tmp_path, monkeypatch):
        module_dir = tmp_path / "models"
        module_dir.mkdir()
        (module_dir / "cli_models.py").write_text(MODELS, encoding="utf-8")
        monkeypatch.syspath_prepend(str(module_dir))
        return "cli_models:CliFilm"

    def test_import(self, runner, data_dir, films_csv, models):
        result = invoke(runner, "import-entities", str(films_csv), models, "--create-table", "-b", "2")

        assert result.exit_code == 0, result.output
        assert "Imported 3 CliFilm rows (3 new, 0 updated, 0 skipped)" in result.output
        assert "unresolved: 6 fields" in result.output
        assert "3 now in CliFilm" in result.output

    def test_reset_needs_confirmation(self, runner, data_dir, films_csv, models):
        result = invoke(runner, "import-entities", str(films_csv), models, "--reset", input="n\n")
        assert result.exit_code == 0
        assert "Import cancelled." in result.output

    def test_bad_entity(self, runner, data_dir, films_csv):
        result = invoke(runner, "import-entities", str(films_csv), "no_such_module_xyz:Thing")
        assert result.exit_code == 2
        assert "Cannot import" in result.output

    def test_entity_spec_format(self, runner, data_dir, films_csv):
        result = invoke(runner, "import-entities", str(films_csv), "just_a_name")
        assert result.exit_code == 2
