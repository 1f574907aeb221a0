"""
Heuristic row normalizer for records coming from CSV / JSON sources.

Keys are rewritten to their canonical lowerCamelCase spelling. String values
are trimmed; empty strings become None; ``true``/``false`` become bools;
integer and decimal literals become numbers; delimited strings in
multi-value fields become lists.
"""

import re
from typing import Any, Dict, Iterable, Mapping, Optional

from src.config.settings import get_settings
from src.mapping.naming import canonical_key, last_word

INT_LITERAL_RE = re.compile(r"^-?\d+$")
FLOAT_LITERAL_RE = re.compile(r"^-?\d+\.\d+$")


class RowNormalizer:
    """
    Normalizes one record at a time. Never raises.

    Args:
        multi_value_fields: Field names that always hold lists
        plural_denylist: Last words that do not make a plural field name
    """

    def __init__(
        self,
        multi_value_fields: Optional[Iterable[str]] = None,
        plural_denylist: Optional[Iterable[str]] = None,
    ):
        settings = get_settings()
        if multi_value_fields is None:
            multi_value_fields = settings.multi_value_fields
        if plural_denylist is None:
            plural_denylist = settings.plural_denylist
        self.multi_value_fields = frozenset(f.lower() for f in multi_value_fields)
        self.plural_denylist = frozenset(w.lower() for w in plural_denylist)

    def normalize_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        normalized: Dict[str, Any] = {}
        for key, value in row.items():
            field = canonical_key(key)
            normalized[field] = self.normalize_value(field, value)
        return normalized

    def normalize_value(self, field: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value

        text = value.strip()
        if text == "":
            return None

        if ("," in text or "|" in text) and self.is_multi_value_field(field):
            delimiter = "|" if "|" in text else ","
            return [part.strip() for part in text.split(delimiter) if part.strip()]

        lower = text.lower()
        if lower == "true" or lower == "false":
            return lower == "true"

        if INT_LITERAL_RE.match(text):
            return int(text)

        if FLOAT_LITERAL_RE.match(text):
            return float(text)

        return text

    def is_multi_value_field(self, field: str) -> bool:
        key = field.lower()
        if key in self.multi_value_fields:
            return True
        # plural-ish name, unless the last word only looks plural
        return key.endswith("s") and last_word(field) not in self.plural_denylist
