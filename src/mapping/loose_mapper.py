"""
Loose object mapper.

Binds a loosely-typed record (CSV row, JSON object) onto a typed
destination: a dataclass, a plain annotated class, a pydantic model or a
SQLAlchemy entity. Keys are matched regardless of spelling, values are
coerced to the declared type of the property, and every field that could
not be written is reported instead of raised.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from src.common.metrics import mapped_fields_total
from src.mapping.coercion import CoercionContext, TypeCoercionEngine
from src.mapping.declared_types import SchemaCache, SchemaOracle
from src.mapping.naming import to_camel, to_snake

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SkipReason(str, Enum):
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    WRITE_FAILED = "write_failed"


@dataclass
class SkippedField:
    """A record key that was not written, and why."""
    key: str
    property: Optional[str]
    reason: SkipReason
    detail: Optional[str] = None


@dataclass
class MappingResult:
    """Outcome of one mapping call."""
    written: List[str] = field(default_factory=list)
    skipped: List[SkippedField] = field(default_factory=list)

    def skipped_by_reason(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for skip in self.skipped:
            counts[skip.reason.value] = counts.get(skip.reason.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "written": list(self.written),
            "skipped": [
                {"key": s.key, "property": s.property, "reason": s.reason.value, "detail": s.detail}
                for s in self.skipped
            ],
        }


class LooseObjectMapper:
    """
    Maps records onto destination objects.

    Args:
        schema_cache: Caller-owned oracle cache; a private one is created
            when omitted, scoped to this mapper.
        engine: Coercion engine used for every value.
        context: Default coercion context for calls that do not pass one.
    """

    def __init__(
        self,
        schema_cache: Optional[SchemaCache] = None,
        engine: Optional[TypeCoercionEngine] = None,
        context: Optional[CoercionContext] = None,
    ):
        self.schema_cache = schema_cache if schema_cache is not None else SchemaCache()
        self.engine = engine or TypeCoercionEngine(context)
        self.context = context or self.engine.context

    def apply(
        self,
        record: Mapping[str, Any],
        destination: Any,
        ignored: Iterable[str] = ("id",),
        context: Optional[CoercionContext] = None,
    ) -> MappingResult:
        """
        Write every resolvable field of ``record`` onto ``destination``.

        Args:
            record: Source key/value pairs
            destination: Object receiving the values (mutated in place)
            ignored: Property names that are never written (primary keys)
            context: Coercion settings for this call

        Returns:
            MappingResult listing written properties and skipped keys
        """
        ctx = context or self.context
        oracle = self.schema_cache.oracle_for(destination)
        ignored = tuple(ignored)
        ignored_names = {to_snake(name) for name in ignored}
        result = MappingResult()

        for key, value in record.items():
            snake = to_snake(key)
            if not snake:
                result.skipped.append(SkippedField(str(key), None, SkipReason.UNRESOLVED))
                continue

            if snake in ignored_names:
                result.skipped.append(SkippedField(str(key), snake, SkipReason.IGNORED))
                continue

            prop = self._resolve_property(oracle, snake)
            if prop is None:
                result.skipped.append(SkippedField(str(key), None, SkipReason.UNRESOLVED))
                continue
            if prop in ignored or to_snake(prop) in ignored_names:
                result.skipped.append(SkippedField(str(key), prop, SkipReason.IGNORED))
                continue

            spec = oracle.field(prop)
            if spec is None or spec.declared_type is None:
                coerced = value
            else:
                coerced = self.engine.coerce(
                    value, spec.declared_type, prop, ctx, nullable=spec.nullable
                )

            try:
                setattr(destination, prop, coerced)
            except (TypeError, ValueError, AttributeError) as e:
                logger.debug(f"Could not write {prop!r} on {type(destination).__name__}: {e}")
                result.skipped.append(
                    SkippedField(str(key), prop, SkipReason.WRITE_FAILED, detail=str(e))
                )
                continue

            result.written.append(prop)

        self._count(result)
        return result

    def map_into(
        self,
        record: Mapping[str, Any],
        destination: T,
        ignored: Iterable[str] = ("id",),
        context: Optional[CoercionContext] = None,
    ) -> T:
        self.apply(record, destination, ignored, context)
        return destination

    def map(
        self,
        record: Mapping[str, Any],
        cls: Type[T],
        ignored: Iterable[str] = ("id",),
        context: Optional[CoercionContext] = None,
    ) -> T:
        """
        Build a new ``cls`` instance and map ``record`` onto it.

        Pydantic models are created with ``model_construct`` so required
        fields can be filled by the mapping; other classes must be
        constructible without arguments.
        """
        if isinstance(cls, type) and issubclass(cls, BaseModel):
            instance = cls.model_construct()
        else:
            instance = cls()
        return self.map_into(record, instance, ignored, context)

    @staticmethod
    def _resolve_property(oracle: SchemaOracle, snake: str) -> Optional[str]:
        camel = to_camel(snake)
        for name in (camel, snake):
            if oracle.is_writable(name):
                return name

        # acronym casing: posterId -> posterID
        if camel.endswith("Id"):
            acronym = camel[:-2] + "ID"
            if oracle.is_writable(acronym):
                return acronym
        return None

    @staticmethod
    def _count(result: MappingResult) -> None:
        if result.written:
            mapped_fields_total.labels(outcome="written").inc(len(result.written))
        for reason, count in result.skipped_by_reason().items():
            mapped_fields_total.labels(outcome=reason).inc(count)
