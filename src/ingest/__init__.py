"""
Ingest module for record files.

Provides row providers for CSV/TSV/JSON/JSONL inputs, archive unpacking,
row normalization and enrichment hooks. The pipelines built on them live in
``src.ingest.converter`` and ``src.ingest.entity_importer``.
"""

from src.ingest.archive import normalize_input
from src.ingest.errors import (
    ArchiveError,
    ConvertError,
    SourceUnreadableError,
    UnsupportedFormatError,
)
from src.ingest.folder_scanner import FolderScanner
from src.ingest.hooks import (
    ApplyProfileTransforms,
    ExportCsvOnFinish,
    HookDispatcher,
    RowEvent,
    RunFinishedEvent,
    RunStartedEvent,
)
from src.ingest.jsonl import JsonlWriter, iter_jsonl
from src.ingest.providers import ProviderContext, RowProvider, RowProviderRegistry
from src.ingest.row_normalizer import RowNormalizer

__all__ = [  # ruff: noqa: RUF022
    # Reading
    "normalize_input",
    "FolderScanner",
    "ProviderContext",
    "RowProvider",
    "RowProviderRegistry",
    "RowNormalizer",
    "JsonlWriter",
    "iter_jsonl",
    # Hooks
    "HookDispatcher",
    "RowEvent",
    "RunStartedEvent",
    "RunFinishedEvent",
    "ApplyProfileTransforms",
    "ExportCsvOnFinish",
    # Errors
    "ConvertError",
    "SourceUnreadableError",
    "UnsupportedFormatError",
    "ArchiveError",
]
