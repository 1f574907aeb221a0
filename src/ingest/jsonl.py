"""
JSON-lines reading and writing.

Paths ending in ``.gz`` are transparently gzip-compressed.
"""

import gzip
import json
import logging
from pathlib import Path
from typing import IO, Any, Generator, Optional, Tuple, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def open_text(path: PathLike, mode: str = "r") -> IO[str]:
    """Open a text file, gzip-aware, always UTF-8."""
    path = str(path)
    if path.endswith(".gz"):
        return gzip.open(path, mode + "t", encoding="utf-8", newline="")
    return open(path, mode, encoding="utf-8", newline="")


def iter_jsonl(path: PathLike) -> Generator[Tuple[int, Any], None, None]:
    """
    Yield ``(line_number, value)`` for every decodable line.

    Blank lines are skipped silently; lines that are not valid JSON are
    skipped with a warning. Line numbers start at 1.
    """
    with open_text(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield line_number, json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping undecodable line {line_number} of {path}: {e}")


def count_jsonl(path: PathLike) -> int:
    return sum(1 for _ in iter_jsonl(path))


class JsonlWriter:
    """
    Appends one JSON document per line.

    Usage:
        with JsonlWriter("out.jsonl") as writer:
            writer.write({"id": 1})
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.count = 0
        self._fh: Optional[IO[str]] = None

    def open(self) -> "JsonlWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open_text(self.path, "w")
        return self

    def write(self, record: Any) -> None:
        if self._fh is None:
            raise RuntimeError(f"Writer for {self.path} is not open")
        self._fh.write(json.dumps(record, ensure_ascii=False, default=str))
        self._fh.write("\n")
        self.count += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "JsonlWriter":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
