"""
Row providers: turn a source file into a stream of flat records.

Each provider handles one input format and yields plain dicts. Providers are
restartable: calling ``iterate`` again re-reads the source from the start.
Malformed items are skipped with a warning; only a source that cannot be
read at all raises.
"""

import csv
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

from src.ingest.errors import SourceUnreadableError, UnsupportedFormatError
from src.ingest.folder_scanner import FolderScanner
from src.ingest.jsonl import iter_jsonl, open_text
from src.mapping.naming import canonical_key

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
HeaderCallback = Callable[[str, str], None]

# Characters inspected to choose the CSV delimiter
DELIMITER_SNIFF_CHARS = 4096


@dataclass(frozen=True)
class ProviderContext:
    """
    Options shared by the providers of one run.

    Attributes:
        root_key: JSON key holding the record list, for wrapped documents
        on_header: Called with ``(canonical, original)`` for each CSV header
    """
    root_key: Optional[str] = None
    on_header: Optional[HeaderCallback] = None


class RowProvider(ABC):
    """Reads one source format."""

    @abstractmethod
    def supports(self, ext: str) -> bool:
        """True when this provider reads files with extension ``ext``."""

    @abstractmethod
    def iterate(self, path: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        """Yield the records of ``path``."""


class CsvRowProvider(RowProvider):
    """
    CSV and TSV files with a header row.

    The delimiter is a tab when one appears in the first 4096 characters,
    otherwise a comma. Short rows are padded with ``""``; surplus cells are
    dropped.
    """

    def supports(self, ext: str) -> bool:
        return ext in ("csv", "tsv")

    @staticmethod
    def detect_delimiter(path: str) -> str:
        with open_text(path) as f:
            head = f.read(DELIMITER_SNIFF_CHARS)
        return "\t" if "\t" in head else ","

    def iterate(self, path: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        # decoding happens lazily, so a bad byte can surface on any row
        try:
            delimiter = self.detect_delimiter(path)
            logger.debug(f"Detected CSV delimiter {delimiter!r} for {path}")
            yield from self._rows(path, delimiter, ctx)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise SourceUnreadableError(f"Unable to read CSV file {path}: {e}") from e

    @staticmethod
    def _rows(path: str, delimiter: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        with open_text(path) as f:
            reader = csv.reader(f, delimiter=delimiter)
            raw_header = next(reader, None)
            if raw_header is None:
                return

            header: List[str] = []
            for name in raw_header:
                original = name.strip().lstrip("\ufeff")
                normalized = canonical_key(original)
                header.append(normalized)
                if ctx.on_header:
                    ctx.on_header(normalized, original)

            for cells in reader:
                if not cells:
                    continue
                row: Record = {}
                for index, key in enumerate(header):
                    row[key] = cells[index] if index < len(cells) else ""
                yield row


class JsonRowProvider(RowProvider):
    """
    A whole JSON document.

    A list yields its object items; an object yields one record. With
    ``root_key`` the list is read from that key of the top-level object.
    """

    def supports(self, ext: str) -> bool:
        return ext == "json"

    def iterate(self, path: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        try:
            with open_text(path) as f:
                decoded = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnreadableError(f"Unable to read JSON file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise SourceUnreadableError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(decoded, (dict, list)):
            raise SourceUnreadableError("JSON root must be an object or array.")

        items: Any = decoded
        if ctx.root_key is not None:
            if not isinstance(decoded, dict) or ctx.root_key not in decoded:
                available = ", ".join(decoded.keys()) if isinstance(decoded, dict) else ""
                raise SourceUnreadableError(
                    f'Root key "{ctx.root_key}" not found in JSON. Available keys: {available}'
                )
            items = decoded[ctx.root_key]
            if not isinstance(items, (list, dict)):
                raise SourceUnreadableError(
                    f'Value at root key "{ctx.root_key}" is not an array.'
                )

        if isinstance(items, dict):
            yield items
            return

        for index, item in enumerate(items):
            if isinstance(item, dict):
                yield item
            else:
                logger.warning(f"Skipping non-object item {index} in {path}")


class JsonlRowProvider(RowProvider):
    """JSON-lines; non-object values are wrapped as ``{"raw": value}``."""

    def supports(self, ext: str) -> bool:
        return ext in ("jsonl", "ndjson")

    def iterate(self, path: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        try:
            for _, decoded in iter_jsonl(path):
                if isinstance(decoded, dict):
                    yield decoded
                else:
                    yield {"raw": decoded}
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnreadableError(f"Unable to read JSONL file {path}: {e}") from e


class JsonDirRowProvider(RowProvider):
    """A directory tree of record files, read in sorted order."""

    def __init__(self, registry: "RowProviderRegistry", scanner: Optional[FolderScanner] = None):
        self.registry = registry
        self.scanner = scanner or FolderScanner()

    def supports(self, ext: str) -> bool:
        return ext == "json_dir"

    def iterate(self, path: str, ctx: ProviderContext) -> Generator[Record, None, None]:
        if not Path(path).is_dir():
            raise SourceUnreadableError(f'Records directory "{path}" does not exist.')

        for record_file in self.scanner.scan_folder(path):
            yield from self.registry.iterate(record_file.path, record_file.format, ctx)


class RowProviderRegistry:
    """
    Picks the provider for an extension; the first match wins.

    ``RowProviderRegistry.default()`` registers the CSV, JSON, JSONL and
    directory providers.
    """

    def __init__(self, providers: Optional[Sequence[RowProvider]] = None):
        self.providers: List[RowProvider] = list(providers or [])

    @classmethod
    def default(cls) -> "RowProviderRegistry":
        registry = cls([CsvRowProvider(), JsonRowProvider(), JsonlRowProvider()])
        registry.register(JsonDirRowProvider(registry))
        return registry

    def register(self, provider: RowProvider) -> None:
        self.providers.append(provider)

    def provider_for(self, ext: str) -> RowProvider:
        ext = ext.lower().lstrip(".")
        for provider in self.providers:
            if provider.supports(ext):
                return provider
        raise UnsupportedFormatError(f'No row provider supports extension "{ext}".')

    def iterate(self, path: str, ext: str, ctx: Optional[ProviderContext] = None) -> Generator[Record, None, None]:
        # resolve eagerly so an unsupported extension fails before iteration
        provider = self.provider_for(ext)
        return provider.iterate(path, ctx or ProviderContext())
