"""
Convert and profile orchestration.

``ConvertService.convert`` runs one input through the whole pipeline:
unpack archives, read records with the matching row provider, normalize
them, pass them through the enrichment hooks, write JSON-lines, then
profile the JSON-lines output and write ``<base>.profile.json`` next to it.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from src.catalog.database import get_db_session, init_db
from src.catalog.queries import ProfileStore
from src.common.logging_config import PerformanceTracker, run_scope
from src.common.metrics import records_converted_total, records_dropped_total, track_convert_time
from src.config.settings import Settings, get_settings
from src.ingest.archive import unpacked_input
from src.ingest.errors import ConvertError
from src.ingest.hooks import (
    STATUS_OKAY,
    ApplyProfileTransforms,
    ExportCsvOnFinish,
    HookDispatcher,
    RowEvent,
    RunFinishedEvent,
    RunStartedEvent,
)
from src.ingest.jsonl import JsonlWriter, iter_jsonl
from src.ingest.providers import ProviderContext, RowProviderRegistry
from src.ingest.row_normalizer import RowNormalizer
from src.profiling.csv_exporter import CsvProfileExporter
from src.profiling.field_profiler import FieldProfiler, ProfileThresholds
from src.profiling.primary_key import PrimaryKeyDetector
from src.profiling.profile import Profile, build_transforms, default_profile_path

logger = logging.getLogger(__name__)


@dataclass
class ConvertResult:
    """Outcome of one convert run."""
    input: str
    dataset: str
    jsonl_path: str
    profile_path: str
    record_count: int
    converted_count: Optional[int] = None
    unique_fields: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    dropped: Dict[str, int] = field(default_factory=dict)
    run_id: Optional[str] = None
    duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "dataset": self.dataset,
            "jsonlPath": self.jsonl_path,
            "profilePath": self.profile_path,
            "recordCount": self.record_count,
            "convertedCount": self.converted_count,
            "uniqueFields": list(self.unique_fields),
            "tags": list(self.tags),
            "dropped": dict(self.dropped),
            "runId": self.run_id,
            "durationMs": self.duration_ms,
        }


def parse_tags(tags: Union[None, str, Iterable[str]]) -> List[str]:
    """Comma-separated string or iterable -> trimmed, de-duplicated list."""
    if tags is None:
        return []
    parts = tags.split(",") if isinstance(tags, str) else list(tags)
    out: List[str] = []
    for part in parts:
        part = str(part).strip()
        if part and part not in out:
            out.append(part)
    return out


def base_name(path: str) -> str:
    """``films.csv`` -> ``films``; ``films.csv.gz`` -> ``films``."""
    name = Path(path).name
    for suffix in (".gz", ".zip"):
        if name.lower().endswith(suffix):
            name = name[: -len(suffix)]
            break
    stem = Path(name).stem
    return stem or name


def default_dispatcher(settings: Settings) -> HookDispatcher:
    dispatcher = HookDispatcher()
    dispatcher.on_row(ApplyProfileTransforms())
    dispatcher.on_finished(ExportCsvOnFinish(CsvProfileExporter(), settings.export_csv_on_finish))
    return dispatcher


class ConvertService:
    """
    Runs convert/profile passes.

    Args:
        settings: Configuration (defaults to ``get_settings()``)
        registry: Row providers (defaults to CSV/JSON/JSONL/directory)
        normalizer: Row normalizer applied to every converted record
        dispatcher: Hook dispatcher (defaults to profile transforms and CSV export)
        db: Session to persist profiles into; when omitted, profiles are
            persisted through ``get_db_session()`` if ``persist_profiles`` is set
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[RowProviderRegistry] = None,
        normalizer: Optional[RowNormalizer] = None,
        profiler: Optional[FieldProfiler] = None,
        pk_detector: Optional[PrimaryKeyDetector] = None,
        dispatcher: Optional[HookDispatcher] = None,
        db: Optional[Session] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or RowProviderRegistry.default()
        self.normalizer = normalizer or RowNormalizer(
            self.settings.multi_value_fields, self.settings.plural_denylist
        )
        self.profiler = profiler or FieldProfiler(
            ProfileThresholds.from_settings(self.settings), self.settings.profile_distinct_cap
        )
        self.pk_detector = pk_detector or PrimaryKeyDetector()
        self.dispatcher = dispatcher if dispatcher is not None else default_dispatcher(self.settings)
        self.db = db

    @track_convert_time
    def convert(
        self,
        input: str,
        output: Optional[str] = None,
        limit: Optional[int] = None,
        profile_only: bool = False,
        dataset: Optional[str] = None,
        tags: Union[None, str, Iterable[str]] = None,
        zip_path: Optional[str] = None,
        root_key: Optional[str] = None,
        apply_profile: Optional[str] = None,
    ) -> ConvertResult:
        """
        Convert ``input`` to JSON-lines and write its profile.

        Args:
            input: CSV/TSV/JSON/JSONL file, record directory, or ZIP/GZ archive
            output: JSONL output path (defaults to ``<data_dir>/<dataset>.jsonl``)
            limit: Maximum records to convert and profile
            profile_only: Treat ``input`` as JSONL and only profile it
            dataset: Dataset code (defaults to the input base name)
            tags: Extra tags, comma-separated or a list
            zip_path: Entry to pick inside a ZIP input
            root_key: JSON key holding the record list
            apply_profile: Profile whose split transforms are applied to rows

        Returns:
            ConvertResult

        Raises:
            ConvertError: If the input is missing or cannot be read
        """
        if not Path(input).exists():
            raise ConvertError(f'Input file "{input}" does not exist.')

        dataset = dataset or base_name(input)
        with run_scope(dataset) as run_id:
            with PerformanceTracker("convert", logger, input=input) as tracker:
                result = self._run(
                    input, output, limit, profile_only, dataset, tags,
                    zip_path, root_key, apply_profile,
                )
        result.run_id = run_id
        result.duration_ms = tracker.duration_ms
        return result

    def _run(self, input, output, limit, profile_only, dataset, tags, zip_path, root_key, apply_profile) -> ConvertResult:
        with unpacked_input(input, zip_path) as (source_path, source_ext):
            return self._process(
                source_path, source_ext, input, output, limit, profile_only,
                dataset, tags, zip_path, root_key, apply_profile,
            )

    def _process(
        self, source_path, source_ext, input, output, limit, profile_only,
        dataset, tags, zip_path, root_key, apply_profile,
    ) -> ConvertResult:
        # archive members are deleted after the run and cannot be profiled in place
        extracted = source_path != input

        jsonl_path = output or str(Path(self.settings.data_dir) / f"{dataset}.jsonl")
        profile_path = str(default_profile_path(jsonl_path))

        base_tags = parse_tags([dataset, f"source:{Path(input).name}"] + parse_tags(tags))

        self.dispatcher.dispatch(RunStartedEvent(
            input, jsonl_path, profile_path, dataset, base_tags, limit, zip_path, root_key,
        ))

        original_names: Dict[str, str] = {}
        dropped: Dict[str, int] = {}
        converted_count: Optional[int] = None

        if (profile_only or source_ext == "jsonl") and not extracted:
            logger.info(f"Input already JSONL; profiling {source_path} without conversion")
            jsonl_path = source_path
        else:
            ctx = ProviderContext(
                root_key=root_key,
                on_header=lambda canonical, original: original_names.setdefault(canonical, original),
            )
            converted_count = self._convert(
                source_path, source_ext, jsonl_path, ctx, limit,
                input, dataset, parse_tags(tags), apply_profile, dropped,
            )
            logger.info(f"Converted {converted_count} records to {jsonl_path}")

        profile = self.build_profile(jsonl_path, limit, original_names)
        profile.input = input
        profile.dataset = dataset
        profile.tags = base_tags
        profile.save(profile_path)
        logger.info(f"Profile written to {profile_path}")

        if profile.unique_fields:
            logger.info(f"PK-like unique fields: {', '.join(profile.unique_fields)}")
        else:
            logger.warning(
                "No PK-like unique field detected (non-null, allowed chars, no duplicates)",
                extra={"extra_fields": {"dataset": dataset}},
            )

        self._persist(profile, profile_path)

        self.dispatcher.dispatch(RunFinishedEvent(
            input, jsonl_path, profile_path, profile.record_count, dataset,
            base_tags, limit, zip_path, root_key,
        ))

        return ConvertResult(
            input=input,
            dataset=dataset,
            jsonl_path=jsonl_path,
            profile_path=profile_path,
            record_count=profile.record_count,
            converted_count=converted_count,
            unique_fields=list(profile.unique_fields),
            tags=base_tags,
            dropped=dropped,
        )

    def _convert(
        self,
        source_path: str,
        source_ext: str,
        jsonl_path: str,
        ctx: ProviderContext,
        limit: Optional[int],
        input: str,
        dataset: str,
        extra_tags: List[str],
        apply_profile: Optional[str],
        dropped: Dict[str, int],
    ) -> int:
        row_tags = parse_tags([dataset, f"format:{source_ext}", f"source:{Path(input).name}"] + extra_tags)
        records = self.registry.iterate(source_path, source_ext, ctx)

        try:
            with JsonlWriter(jsonl_path) as writer:
                for index, raw in enumerate(records):
                    event = RowEvent(
                        row=self.normalizer.normalize_row(raw),
                        input=input,
                        format=source_ext,
                        index=index,
                        tags=list(row_tags),
                        status=STATUS_OKAY,
                        apply_profile_path=apply_profile,
                    )
                    self.dispatcher.dispatch(event)

                    if not event.accepted:
                        status = event.status if event.status != STATUS_OKAY else "vetoed"
                        dropped[status] = dropped.get(status, 0) + 1
                        records_dropped_total.labels(status=status).inc()
                        continue

                    writer.write(event.row)
                    if limit is not None and writer.count >= limit:
                        break

                count = writer.count
        except ConvertError:
            Path(jsonl_path).unlink(missing_ok=True)
            raise

        records_converted_total.labels(format=source_ext).inc(count)
        return count

    @staticmethod
    def _read_records(jsonl_path: str, limit: Optional[int]) -> Generator[Dict[str, Any], None, None]:
        count = 0
        for _, row in iter_jsonl(jsonl_path):
            yield row if isinstance(row, dict) else {"raw": row}
            count += 1
            if limit is not None and count >= limit:
                return

    def build_profile(
        self,
        jsonl_path: str,
        limit: Optional[int] = None,
        original_names: Optional[Dict[str, str]] = None,
    ) -> Profile:
        """
        Profile a JSONL file.

        Field statistics and samples are gathered in one streaming pass;
        primary-key detection re-reads the file.
        """
        top_n = self.settings.profile_top_samples
        bottom_n = self.settings.profile_bottom_samples
        top: List[Dict[str, Any]] = []
        bottom: deque = deque(maxlen=bottom_n or None)
        seen = 0

        def sampled():
            nonlocal seen
            for row in self._read_records(jsonl_path, limit):
                seen += 1
                if len(top) < top_n:
                    top.append(row)
                if bottom_n:
                    bottom.append(row)
                yield row

        with PerformanceTracker("profile", logger, jsonl_path=jsonl_path):
            stats = self.profiler.profile(sampled())
            for name, original in (original_names or {}).items():
                if name in stats:
                    stats[name].original_name = original
            unique_fields = self.pk_detector.detect(stats, seen, self._read_records(jsonl_path, limit))

        fields = self.profiler.to_dicts(stats)
        return Profile(
            input=jsonl_path,
            output=jsonl_path,
            record_count=seen,
            dataset=base_name(jsonl_path),
            fields=fields,
            unique_fields=unique_fields,
            samples={
                "top": top,
                "bottom": list(bottom) if bottom_n and seen > bottom_n else [],
            },
            transforms=build_transforms(fields),
        )

    def _persist(self, profile: Profile, profile_path: str) -> None:
        if self.db is not None:
            ProfileStore(self.db).save(profile, profile_path)
        elif self.settings.persist_profiles:
            init_db()
            with get_db_session() as db:
                ProfileStore(db).save(profile, profile_path)
