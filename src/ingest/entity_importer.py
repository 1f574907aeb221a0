"""
Import records into SQLAlchemy entities.

Each record is matched to an existing entity by primary key (or a new one
is created), then the remaining fields are bound with the loose object
mapper. Commits happen every ``batch`` rows.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

import sqlalchemy
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from src.common.logging_config import run_scope
from src.common.metrics import entities_imported_total
from src.config.settings import get_settings
from src.ingest.archive import unpacked_input
from src.ingest.providers import ProviderContext, RowProviderRegistry
from src.mapping.key_resolver import KeyResolver
from src.mapping.loose_mapper import LooseObjectMapper

logger = logging.getLogger(__name__)

# Column names tried when the mapper has no single-column primary key
PK_CANDIDATES = ("id", "code", "sku", "ssn", "uid", "uuid", "key")


class EntityImportError(Exception):
    """Exception raised when an entity import cannot start."""
    pass


@dataclass
class ImportSummary:
    """Counts for one import run."""
    entity: str
    pk: Optional[str]
    imported: int = 0
    created: int = 0
    updated: int = 0
    skipped_rows: int = 0
    field_skips: Dict[str, int] = field(default_factory=dict)
    total_in_table: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "pk": self.pk,
            "imported": self.imported,
            "created": self.created,
            "updated": self.updated,
            "skippedRows": self.skipped_rows,
            "fieldSkips": dict(self.field_skips),
            "totalInTable": self.total_in_table,
        }


def resolve_primary_key(entity_cls: type) -> Optional[str]:
    """Attribute name of the entity's single-column primary key."""
    mapper = sqlalchemy.inspect(entity_cls, raiseerr=False)
    if mapper is None:
        return None

    pk_columns = list(mapper.primary_key)
    if len(pk_columns) == 1:
        return mapper.get_property_by_column(pk_columns[0]).key

    names = {attr.key for attr in mapper.column_attrs}
    for candidate in PK_CANDIDATES:
        if candidate in names:
            return candidate
    return None


class EntityImporter:
    """
    Upserts records from a file into an entity table.

    Args:
        session: Session owning the transaction
        mapper: Mapper used for non-key fields
        registry: Row providers for the input file
    """

    def __init__(
        self,
        session: Session,
        mapper: Optional[LooseObjectMapper] = None,
        registry: Optional[RowProviderRegistry] = None,
    ):
        self.session = session
        self.mapper = mapper or LooseObjectMapper()
        self.registry = registry or RowProviderRegistry.default()
        self.keys = KeyResolver()

    def import_file(
        self,
        path: str,
        entity_cls: Type[Any],
        pk: Optional[str] = None,
        limit: Optional[int] = None,
        batch: Optional[int] = None,
        reset: bool = False,
        id_is_line_number: bool = False,
    ) -> ImportSummary:
        """
        Import every record of ``path`` into ``entity_cls``.

        Args:
            path: CSV/TSV/JSON/JSONL file, directory or archive
            entity_cls: SQLAlchemy mapped class
            pk: Primary key attribute (defaults to the mapper's)
            limit: Maximum rows to import
            batch: Commit every N rows (defaults to ``import_batch_size``)
            reset: Delete all existing rows first
            id_is_line_number: Use the 1-based record number as the key

        Returns:
            ImportSummary

        Raises:
            EntityImportError: If no primary key can be determined
            ConvertError: If the file cannot be read
        """
        batch = batch if batch is not None else get_settings().import_batch_size
        pk_field = pk or resolve_primary_key(entity_cls)
        if not pk_field:
            raise EntityImportError(f"No primary key found for {entity_cls.__name__}")

        summary = ImportSummary(entity=entity_cls.__name__, pk=pk_field)
        with run_scope(summary.entity), unpacked_input(path) as (source_path, ext):
            self._import_rows(source_path, ext, entity_cls, pk_field, summary, limit, batch, reset, id_is_line_number)
        return summary

    def _import_rows(self, source_path, ext, entity_cls, pk_field, summary, limit, batch, reset, id_is_line_number) -> None:
        oracle = self.mapper.schema_cache.oracle_for(entity_cls)
        pk_spec = oracle.field(pk_field)

        if reset:
            deleted = self.session.execute(delete(entity_cls)).rowcount
            logger.info(f"Deleted {deleted} existing {entity_cls.__name__} rows")

        records = self.registry.iterate(source_path, ext, ProviderContext())
        # entities added since the last commit; session.get cannot see them unflushed
        pending: Dict[Any, Any] = {}

        for index, row in enumerate(records):
            if id_is_line_number:
                pk_value: Any = index + 1
            else:
                key = self.keys.resolve_key(row, pk_field)
                pk_value = row.get(key) if key is not None else None
                if pk_spec is not None and pk_spec.declared_type is not None:
                    pk_value = self.mapper.engine.coerce(pk_value, pk_spec.declared_type, pk_field)
                if pk_value is None or pk_value == "":
                    logger.warning(f"Skipping row {index}: no value for primary key {pk_field}")
                    summary.skipped_rows += 1
                    continue

            entity = pending.get(pk_value)
            if entity is None:
                entity = self.session.get(entity_cls, pk_value)
            if entity is None:
                entity = entity_cls()
                setattr(entity, pk_field, pk_value)
                self.session.add(entity)
                pending[pk_value] = entity
                summary.created += 1
            else:
                summary.updated += 1

            result = self.mapper.apply(row, entity, ignored=[pk_field])
            for reason, count in result.skipped_by_reason().items():
                summary.field_skips[reason] = summary.field_skips.get(reason, 0) + count

            summary.imported += 1
            if batch > 0 and summary.imported % batch == 0:
                self.session.commit()
                pending.clear()
                logger.info(f"... {summary.imported}")

            if limit and summary.imported >= limit:
                break

        self.session.commit()
        entities_imported_total.labels(entity=summary.entity).inc(summary.imported)

        summary.total_in_table = self.session.execute(
            select(func.count()).select_from(entity_cls)
        ).scalar_one()
        logger.info(
            f"{summary.total_in_table} now in {summary.entity}",
            extra={"extra_fields": summary.to_dict()},
        )
