"""
Type coercion for loosely-typed record values.

``TypeCoercionEngine.coerce`` turns one value into the type a destination
property declares. The rules run in a fixed order (null literals, arrays,
booleans, the is/has name heuristic, ints, floats, dates, embedded JSON) so
that a delimited list is never read as a date and a zero-padded code is not
silently shortened to an int.
"""

import ast
import dataclasses
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from src.config.settings import Settings, get_settings
from src.mapping.declared_types import DeclaredType
from src.mapping.naming import split_words, to_camel, to_snake

DEFAULT_NULL_LITERALS = frozenset({"null", "n/a", "na", "nil", "none", ""})
BOOL_TRUE = frozenset({"true", "yes", "y", "on", "1"})
BOOL_FALSE = frozenset({"false", "no", "n", "off", "0"})

INT_RE = re.compile(r"^-?\d+$")
FLOAT_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
ISO_DATETIME_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})?$"
)
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
EPOCH_SECONDS_RE = re.compile(r"^\d{10}$")
EPOCH_MILLIS_RE = re.compile(r"^\d{13}$")

# a double-quoted JSON string (kept) or a single-quoted one (rewritten)
_QUOTED_RE = re.compile(r'"(?:[^"\\]|\\.)*"|\'((?:[^\'\\]|\\.)*)\'')
_BRACKETED_RE = re.compile(r"^\s*(\[.*\]|\{.*\})\s*$", re.DOTALL)

_NO_MATCH = object()


def _requote(match: "re.Match[str]") -> str:
    inner = match.group(1)
    if inner is None:
        return match.group(0)
    return json.dumps(inner.replace("\\'", "'"))


def loads_tolerant(text: str) -> Tuple[bool, Any]:
    """
    Decode JSON, accepting single-quoted JSON-like text.

    Quotes are only rewritten when ``text`` is not already valid JSON and is
    bracket-delimited. Returns ``(ok, value)``.
    """
    try:
        return True, json.loads(text)
    except (TypeError, ValueError):
        pass

    if not _BRACKETED_RE.match(text):
        return False, None

    try:
        return True, json.loads(_QUOTED_RE.sub(_requote, text))
    except ValueError:
        pass

    # Python-literal spelling ('a': True, None)
    try:
        return True, ast.literal_eval(text.strip())
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
        return False, None


@dataclass(frozen=True)
class CoercionContext:
    """
    Per-mapping-call configuration. Read-only once built; share it freely.
    """
    list_delimiters: Mapping[str, str] = field(default_factory=dict)
    coerce_scalars: bool = True
    coerce_dates: bool = True
    null_literals: FrozenSet[str] = DEFAULT_NULL_LITERALS
    wrap_scalar_to_array: bool = False
    numeric_hint_fields: FrozenSet[str] = frozenset()
    boolean_prefixes: Tuple[str, ...] = ("is", "has")
    two_digit_year_pivot: int = 70

    def __post_init__(self):
        object.__setattr__(
            self, "null_literals",
            frozenset(str(v).strip().lower() for v in self.null_literals),
        )
        object.__setattr__(self, "numeric_hint_fields", frozenset(self.numeric_hint_fields))
        object.__setattr__(
            self, "boolean_prefixes", tuple(p.lower() for p in self.boolean_prefixes)
        )
        object.__setattr__(self, "list_delimiters", dict(self.list_delimiters))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "CoercionContext":
        settings = settings or get_settings()
        values = dict(
            null_literals=frozenset(settings.null_literals),
            numeric_hint_fields=frozenset(settings.numeric_hint_fields),
            boolean_prefixes=tuple(settings.boolean_prefixes),
            two_digit_year_pivot=settings.two_digit_year_pivot,
            wrap_scalar_to_array=settings.wrap_scalar_to_array,
        )
        values.update(overrides)
        return cls(**values)

    def replace(self, **changes) -> "CoercionContext":
        return dataclasses.replace(self, **changes)

    def delimiter_for(self, field_name: str) -> Optional[str]:
        for name in (field_name, to_snake(field_name), to_camel(field_name)):
            if name in self.list_delimiters:
                return self.list_delimiters[name]
        return None

    def is_numeric_hint(self, field_name: str) -> bool:
        hints = self.numeric_hint_fields
        return field_name in hints or to_camel(field_name) in hints


class TypeCoercionEngine:
    """Coerces one value at a time; holds no state besides its default context."""

    def __init__(self, context: Optional[CoercionContext] = None):
        self.context = context or CoercionContext.from_settings()

    def coerce(
        self,
        value: Any,
        declared_type: Optional[DeclaredType],
        field_name: str,
        context: Optional[CoercionContext] = None,
        nullable: bool = True,
    ) -> Any:
        ctx = context or self.context
        declared = declared_type or DeclaredType.UNKNOWN

        if self.is_null(value, ctx):
            if declared == DeclaredType.ARRAY and not nullable:
                return []
            return None

        if declared == DeclaredType.ARRAY:
            return self.to_array(value, field_name, ctx)

        scalars = ctx.coerce_scalars or not isinstance(value, str)

        if scalars and declared == DeclaredType.BOOL:
            result = self.to_bool(value)
            if result is not _NO_MATCH:
                return result

        if scalars and declared != DeclaredType.STRING and self._has_boolean_prefix(field_name, ctx):
            result = self._flag_from_digit(value)
            if result is not _NO_MATCH:
                return result

        if scalars and declared == DeclaredType.INT:
            result = self.to_int(value, field_name, ctx)
            if result is not _NO_MATCH:
                return result

        if scalars and declared == DeclaredType.FLOAT:
            result = self.to_float(value)
            if result is not _NO_MATCH:
                return result

        if declared == DeclaredType.DATE:
            if ctx.coerce_dates:
                parsed = self.parse_date(value, ctx)
                if parsed is not None:
                    return parsed
            return value

        if declared in (DeclaredType.OBJECT, DeclaredType.UNKNOWN) and isinstance(value, str):
            text = value.strip()
            if text.startswith("{") and text.endswith("}"):
                ok, decoded = loads_tolerant(text)
                if ok and isinstance(decoded, dict):
                    return decoded

        return value

    # ------------------------------------------------------------------
    # Individual rules
    # ------------------------------------------------------------------

    @staticmethod
    def is_null(value: Any, ctx: CoercionContext) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            text = value.strip()
            return text == "" or text.lower() in ctx.null_literals
        return False

    @staticmethod
    def to_array(value: Any, field_name: str, ctx: CoercionContext) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                ok, decoded = loads_tolerant(text)
                if ok and isinstance(decoded, list):
                    return decoded

            delimiter = ctx.delimiter_for(field_name)
            if delimiter is None:
                if "|" in text:
                    delimiter = "|"
                elif "," in text:
                    delimiter = ","
                else:
                    delimiter = "|"
            return [part.strip() for part in text.split(delimiter) if part.strip()]

        if ctx.wrap_scalar_to_array and not isinstance(value, (list, tuple, set, dict)):
            return [value]

        return value

    @staticmethod
    def to_bool(value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value == 1
        if isinstance(value, str):
            low = value.strip().lower()
            if low in BOOL_TRUE:
                return True
            if low in BOOL_FALSE:
                return False
        return _NO_MATCH

    @staticmethod
    def _has_boolean_prefix(field_name: str, ctx: CoercionContext) -> bool:
        words = split_words(field_name)
        return len(words) > 1 and words[0].lower() in ctx.boolean_prefixes

    @staticmethod
    def _flag_from_digit(value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text == "1":
                return True
            if text == "0":
                return False
            return _NO_MATCH
        if isinstance(value, (int, float)) and value in (0, 1):
            return value == 1
        return _NO_MATCH

    @staticmethod
    def to_int(value: Any, field_name: str, ctx: CoercionContext) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not INT_RE.match(text):
                return _NO_MATCH
            digits = text.lstrip("-")
            has_leading_zero = len(digits) > 1 and digits[0] == "0"
            if has_leading_zero and not ctx.is_numeric_hint(field_name):
                # zero-padded codes (zip codes, SKUs) stay strings
                return text
            return int(text)
        if isinstance(value, float) and not isinstance(value, bool):
            if math.isfinite(value):
                return int(value)
        return _NO_MATCH

    @staticmethod
    def to_float(value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if FLOAT_RE.match(text):
                return float(text)
            return _NO_MATCH
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return _NO_MATCH

    @staticmethod
    def parse_date(value: Any, ctx: Optional[CoercionContext] = None) -> Optional[datetime]:
        """
        Parse the supported date spellings into a UTC datetime.

        Tried in order: ISO-8601 date-time, ``YYYY-MM-DD``, US ``M/D/YY[YY]``,
        10-digit epoch seconds, 13-digit epoch milliseconds. Returns None when
        nothing matches.
        """
        if isinstance(value, datetime):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            return None

        pivot = ctx.two_digit_year_pivot if ctx else 70
        text = value.strip()

        match = ISO_DATETIME_RE.match(text)
        if match:
            day, clock, fraction, offset = match.groups()
            fraction = ((fraction or "") + "000000")[:6]
            if offset in (None, "Z"):
                offset = "+00:00"
            elif ":" not in offset:
                offset = f"{offset[:3]}:{offset[3:]}"
            try:
                parsed = datetime.fromisoformat(f"{day}T{clock}.{fraction}{offset}")
                return parsed.astimezone(timezone.utc)
            except ValueError:
                pass

        match = ISO_DATE_RE.match(text)
        if match:
            try:
                year, month, day_of_month = (int(g) for g in match.groups())
                return datetime(year, month, day_of_month, tzinfo=timezone.utc)
            except ValueError:
                pass

        match = US_DATE_RE.match(text)
        if match:
            month, day_of_month, year = (int(g) for g in match.groups())
            if year < 100:
                year += 1900 if year >= pivot else 2000
            try:
                return datetime(year, month, day_of_month, tzinfo=timezone.utc)
            except ValueError:
                pass

        if EPOCH_SECONDS_RE.match(text):
            return datetime.fromtimestamp(int(text), tz=timezone.utc)

        if EPOCH_MILLIS_RE.match(text):
            return datetime.fromtimestamp(int(text) // 1000, tz=timezone.utc)

        return None
