"""
Declared-type lookup for mapping destinations.

The coercion engine only needs to ask "what type does this property expect,
and can I write it?". ``SchemaOracle`` answers that for one destination
class; the implementations below read the answer from type hints, pydantic
model fields, or SQLAlchemy column metadata.
"""

import dataclasses
import datetime
import decimal
import types
import typing
from abc import ABC, abstractmethod
from collections.abc import Mapping as AbcMapping, Sequence as AbcSequence, Set as AbcSet
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

import sqlalchemy
from pydantic import BaseModel
from sqlalchemy.orm import Mapped


class DeclaredType(str, Enum):
    """Canonical destination type tags."""
    ARRAY = "array"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    DATE = "date"
    OBJECT = "object"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FieldSpec:
    """What the destination expects for one property."""
    name: str
    declared_type: Optional[DeclaredType]
    writable: bool = True
    nullable: bool = True


_NONE_TYPE = type(None)


def declared_type_for(annotation: Any) -> Tuple[DeclaredType, bool]:
    """
    Translate a Python annotation into ``(DeclaredType, nullable)``.

    ``Optional[X]`` is nullable; a union of several concrete types is UNKNOWN.
    """
    if annotation is None or annotation is Any:
        return DeclaredType.UNKNOWN, True

    origin = typing.get_origin(annotation)

    if origin is Mapped:
        args = typing.get_args(annotation)
        return declared_type_for(args[0]) if args else (DeclaredType.UNKNOWN, True)

    if origin is typing.Union or _is_pep604_union(annotation):
        args = [a for a in typing.get_args(annotation) if a is not _NONE_TYPE]
        nullable = len(args) != len(typing.get_args(annotation))
        if len(args) == 1:
            declared, inner_nullable = declared_type_for(args[0])
            return declared, nullable or inner_nullable
        return DeclaredType.UNKNOWN, nullable

    target = origin or annotation
    if not isinstance(target, type):
        return DeclaredType.UNKNOWN, True

    if issubclass(target, bool):
        return DeclaredType.BOOL, False
    if issubclass(target, int):
        return DeclaredType.INT, False
    if issubclass(target, (float, decimal.Decimal)):
        return DeclaredType.FLOAT, False
    if issubclass(target, (str, bytes)):
        return DeclaredType.STRING, False
    if issubclass(target, (datetime.datetime, datetime.date)):
        return DeclaredType.DATE, False
    if issubclass(target, AbcMapping):
        return DeclaredType.OBJECT, False
    if issubclass(target, (list, tuple, AbcSet)) or (
        origin is not None and issubclass(target, AbcSequence)
    ):
        return DeclaredType.ARRAY, False
    return DeclaredType.UNKNOWN, True


def _is_pep604_union(annotation: Any) -> bool:
    return isinstance(annotation, types.UnionType)


def _python_type_to_declared(python_type: type) -> DeclaredType:
    declared, _ = declared_type_for(python_type)
    return declared


class SchemaOracle(ABC):
    """Answers declared-type and writability questions for one class."""

    def __init__(self, cls: type):
        self.cls = cls
        self._fields: Dict[str, FieldSpec] = self._build_fields()

    @abstractmethod
    def _build_fields(self) -> Dict[str, FieldSpec]:
        """Collect the FieldSpec of every known property."""

    def field(self, name: str) -> Optional[FieldSpec]:
        return self._fields.get(name)

    def is_writable(self, name: str) -> bool:
        spec = self._fields.get(name)
        return spec is not None and spec.writable

    def declared_type(self, name: str) -> Optional[DeclaredType]:
        spec = self._fields.get(name)
        return spec.declared_type if spec else None


def _safe_type_hints(cls: type) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError, AttributeError):
        # unresolved forward references: fall back to the raw annotations
        hints: Dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            hints.update(getattr(klass, "__annotations__", {}) or {})
        return hints


class DataclassSchema(SchemaOracle):
    """
    Oracle for dataclasses and plain annotated classes.

    Annotated attributes carry a declared type; read-only properties and
    frozen dataclasses are not writable; un-annotated class attributes are
    writable with no type information.
    """

    def _build_fields(self) -> Dict[str, FieldSpec]:
        frozen = dataclasses.is_dataclass(self.cls) and self.cls.__dataclass_params__.frozen
        fields: Dict[str, FieldSpec] = {}

        for name, hint in _safe_type_hints(self.cls).items():
            if name.startswith("_") or typing.get_origin(hint) is typing.ClassVar:
                continue
            if isinstance(hint, str):
                declared, nullable = DeclaredType.UNKNOWN, True
            else:
                declared, nullable = declared_type_for(hint)
            fields[name] = FieldSpec(name, declared, writable=not frozen, nullable=nullable)

        for klass in self.cls.__mro__:
            for name, attr in vars(klass).items():
                if name.startswith("_") or name in fields:
                    continue
                if isinstance(attr, property):
                    fields[name] = FieldSpec(name, None, writable=attr.fset is not None)
                elif not callable(attr) and not isinstance(attr, (classmethod, staticmethod)):
                    fields[name] = FieldSpec(name, None, writable=not frozen)

        return fields


class PydanticSchema(SchemaOracle):
    """Oracle for pydantic models; frozen models are read-only."""

    def _build_fields(self) -> Dict[str, FieldSpec]:
        frozen = bool(self.cls.model_config.get("frozen", False))
        fields: Dict[str, FieldSpec] = {}
        for name, info in self.cls.model_fields.items():
            declared, nullable = declared_type_for(info.annotation)
            fields[name] = FieldSpec(name, declared, writable=not frozen, nullable=nullable)
        return fields


class SqlAlchemySchema(SchemaOracle):
    """
    Oracle for SQLAlchemy mapped classes.

    ``Mapped[...]`` annotations win over the column's ``python_type`` so a
    JSON column declared as ``Mapped[List[str]]`` is seen as an array.
    """

    def _build_fields(self) -> Dict[str, FieldSpec]:
        mapper = sqlalchemy.inspect(self.cls)
        hints = _safe_type_hints(self.cls)
        fields: Dict[str, FieldSpec] = {}

        for attr in mapper.column_attrs:
            column = attr.columns[0]
            hint = hints.get(attr.key)
            if hint is not None and not isinstance(hint, str):
                declared, _ = declared_type_for(hint)
            else:
                declared = DeclaredType.UNKNOWN
            if declared == DeclaredType.UNKNOWN:
                try:
                    declared = _python_type_to_declared(column.type.python_type)
                except NotImplementedError:
                    declared = DeclaredType.UNKNOWN
            nullable = bool(getattr(column, "nullable", True))
            fields[attr.key] = FieldSpec(attr.key, declared, writable=True, nullable=nullable)

        return fields


def oracle_class_for(cls: type) -> Type[SchemaOracle]:
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        return PydanticSchema
    if sqlalchemy.inspect(cls, raiseerr=False) is not None:
        return SqlAlchemySchema
    return DataclassSchema


class SchemaCache:
    """
    Caller-owned memo of one SchemaOracle per destination class.

    Create one per mapping session (or per process) and pass it to the
    mapper; nothing is cached globally.
    """

    def __init__(self):
        self._oracles: Dict[type, SchemaOracle] = {}

    def oracle_for(self, destination: Any) -> SchemaOracle:
        cls = destination if isinstance(destination, type) else type(destination)
        oracle = self._oracles.get(cls)
        if oracle is None:
            oracle = oracle_class_for(cls)(cls)
            self._oracles[cls] = oracle
        return oracle

    def __len__(self) -> int:
        return len(self._oracles)

    def clear(self) -> None:
        self._oracles.clear()
