"""
Mapping module for binding loose records onto typed objects.

Provides key spelling conversions, tolerant key resolution, declared-type
lookup and value coercion.
"""

from src.mapping.coercion import CoercionContext, TypeCoercionEngine, loads_tolerant
from src.mapping.declared_types import (
    DeclaredType,
    FieldSpec,
    SchemaCache,
    SchemaOracle,
    DataclassSchema,
    PydanticSchema,
    SqlAlchemySchema,
)
from src.mapping.key_resolver import KeyResolver
from src.mapping.loose_mapper import LooseObjectMapper, MappingResult, SkippedField, SkipReason
from src.mapping.naming import canonical_key, to_camel, to_snake

__all__ = [  # ruff: noqa: RUF022
    # Coercion
    "CoercionContext",
    "TypeCoercionEngine",
    "loads_tolerant",
    # Declared types
    "DeclaredType",
    "FieldSpec",
    "SchemaCache",
    "SchemaOracle",
    "DataclassSchema",
    "PydanticSchema",
    "SqlAlchemySchema",
    # Mapping
    "KeyResolver",
    "LooseObjectMapper",
    "MappingResult",
    "SkippedField",
    "SkipReason",
    # Naming
    "canonical_key",
    "to_camel",
    "to_snake",
]
