"""Tolerant lookup of a destination field name among a record's keys."""

from typing import Any, List, Mapping, Optional

from src.mapping.naming import squash, to_camel, to_snake


class KeyResolver:
    """
    Finds the record key that holds a destination field.

    ``identificationId``, ``Identification.ID`` and ``IDENTIFICATION_ID``
    all resolve to each other.
    """

    def candidates(self, field: str) -> List[str]:
        """
        Likely spellings of ``field``, in lookup order: exact, snake, camel,
        then the lowercase of each. Duplicates are dropped.
        """
        snake = to_snake(field)
        camel = to_camel(field)
        ordered = [field, snake, camel, field.lower(), snake.lower(), camel.lower()]

        seen = set()
        out = []
        for cand in ordered:
            if cand and cand not in seen:
                seen.add(cand)
                out.append(cand)
        return out

    def resolve_key(self, record: Mapping[str, Any], field: str) -> Optional[str]:
        """
        Return the original key of ``record`` that holds ``field``, or None.
        """
        cands = self.candidates(field)

        for cand in cands:
            if cand in record:
                return cand

        # one case-insensitive pass, preserving the record's spelling
        lower_map = {}
        for key in record:
            lower_map.setdefault(str(key).lower(), key)
        for cand in cands:
            if cand.lower() in lower_map:
                return lower_map[cand.lower()]

        target = squash(field)
        if not target:
            return None
        for key in record:
            if squash(key) == target:
                return key

        return None
