"""
Tests for the FolderScanner utility.
"""

from pathlib import Path

import pytest

from src.ingest.folder_scanner import FolderScanner, RecordFile, record_format


def _create_sample_tree(root: Path):
    """Create a directory tree with mixed record and non-record files."""
    (root / ".importignore").write_text(
        "\n".join(
            [
                "# Ignore comments",
                "__MACOSX",
                "backup",
                ".bak",
            ]
        ),
        encoding="utf-8",
    )

    films = root / "films"
    films.mkdir()
    (films / "b.csv").write_text("id\n1\n", encoding="utf-8")
    (films / "a.json").write_text("[]", encoding="utf-8")

    logs = root / "logs"
    logs.mkdir()
    (logs / "events.ndjson").write_text("{}\n", encoding="utf-8")
    (logs / "people.tsv").write_text("id\tname\n", encoding="utf-8")
    (logs / "readme.md").write_text("notes", encoding="utf-8")

    # Ignored directories and files
    macosx = root / "__MACOSX"
    macosx.mkdir()
    (macosx / "films.csv").write_text("junk", encoding="utf-8")

    backup = root / "backup"
    backup.mkdir()
    (backup / "old.jsonl").write_text("{}\n", encoding="utf-8")

    (root / "films.csv.bak").write_text("id\n", encoding="utf-8")
    (root / ".hidden.json").write_text("[]", encoding="utf-8")


def test_scan_folder_respects_ignore_patterns(tmp_path):
    """Scan should exclude files and folders defined in .importignore."""
    _create_sample_tree(tmp_path)
    scanner = FolderScanner()

    files = list(scanner.scan_folder(str(tmp_path)))
    names = [entry.relative_path for entry in files]

    assert names == [
        "films/a.json",
        "films/b.csv",
        "logs/events.ndjson",
        "logs/people.tsv",
    ]
    assert scanner.ignore_patterns == ["__MACOSX", "backup", ".bak"]


def test_scan_folder_formats(tmp_path):
    """Each record file is tagged with the provider format that reads it."""
    _create_sample_tree(tmp_path)

    formats = {
        Path(entry.path).name: entry.format
        for entry in FolderScanner().scan_folder(str(tmp_path))
    }

    assert formats == {
        "a.json": "json",
        "b.csv": "csv",
        "events.ndjson": "jsonl",
        "people.tsv": "csv",
    }


def test_scan_folder_raises_for_missing_path():
    """Non-existent folder should raise a ValueError."""
    scanner = FolderScanner()

    with pytest.raises(ValueError):
        list(scanner.scan_folder("/path/does/not/exist"))


def test_scan_folder_raises_for_file(tmp_path):
    """A file path is not a folder."""
    path = tmp_path / "a.csv"
    path.write_text("id\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Not a directory"):
        list(FolderScanner().scan_folder(str(path)))


def test_scan_folder_unsupported_extension(tmp_path):
    """Files that hold no records should be skipped silently."""
    scanner = FolderScanner()
    (tmp_path / ".importignore").write_text("", encoding="utf-8")
    (tmp_path / "random.xyz").write_text("content", encoding="utf-8")

    files = list(scanner.scan_folder(str(tmp_path)))

    assert files == []


def test_scan_is_stable_and_absolute(tmp_path):
    """Two scans of one tree agree, and paths resolve under the root."""
    _create_sample_tree(tmp_path)
    scanner = FolderScanner()

    first = list(scanner.scan_folder(str(tmp_path)))
    second = list(scanner.scan_folder(str(tmp_path)))

    assert first == second
    assert all(Path(entry.path).is_absolute() for entry in first)
    assert isinstance(first[0], RecordFile)


def test_record_format():
    assert record_format(Path("a/B.JSONL")) == "jsonl"
    assert record_format(Path("notes.txt")) is None
