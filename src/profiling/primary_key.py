"""Primary-key candidate detection."""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Set

from src.profiling.field_profiler import FieldStats

logger = logging.getLogger(__name__)

PK_ALLOWED_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def pk_string(value: Any) -> str:
    """String form used for the uniqueness check; bools spell true/false."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PrimaryKeyDetector:
    """
    Finds fields usable as primary keys.

    A field qualifies when it is present and non-null on every record, and
    every value is a non-empty scalar made only of ``[A-Za-z0-9_-]`` with no
    repeats.
    """

    def detect(
        self,
        field_stats: Mapping[str, FieldStats],
        record_count: int,
        records: Iterable[Mapping[str, Any]],
    ) -> List[str]:
        """
        Args:
            field_stats: Profiler output for the same records
            record_count: Number of records profiled
            records: The records themselves (iterated once)

        Returns:
            Qualifying field names in field encounter order
        """
        if record_count <= 0:
            return []

        candidates: Dict[str, Set[str]] = {
            name: set()
            for name, stats in field_stats.items()
            if stats.total == record_count and stats.nulls == 0
        }
        if not candidates:
            return []

        rejected: Set[str] = set()
        seen_any = False
        for record in records:
            seen_any = True
            for name, seen in candidates.items():
                if name in rejected:
                    continue
                if not self._accepts(record, name, seen):
                    rejected.add(name)
            if len(rejected) == len(candidates):
                break

        if not seen_any:
            return []

        result = [name for name in candidates if name not in rejected]
        logger.debug(f"Primary key candidates: {result}")
        return result

    @staticmethod
    def _accepts(record: Mapping[str, Any], name: str, seen: Set[str]) -> bool:
        if name not in record:
            return False
        value = record[name]
        if value is None or value == "" or isinstance(value, (list, tuple, dict)):
            return False
        text = pk_string(value)
        if not PK_ALLOWED_RE.match(text) or text in seen:
            return False
        seen.add(text)
        return True
