"""
Single-pass field profiler.

Builds one ``FieldStats`` per field from a stream of records: observed
types, null and distinct counts, string lengths, and the shape flags
(boolean/url/json/image/natural language), locale guess and split
candidate that downstream tools use to pick storage types and transforms.

Every value costs O(1) amortized work except the locale letter tally
(linear in the string). The distinct-value set is the only unbounded
memory; bound it with ``distinct_cap`` (``INGEST_PROFILE_DISTINCT_CAP``),
in which case the count is a lower bound and the field is marked
``distinctApproximate``.
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from src.config.settings import Settings, get_settings
from src.profiling import detectors

logger = logging.getLogger(__name__)

# Average part length above which split confidence is reduced
SPLIT_SHORT_PART_CHARS = 24
# String longer than this is stored as text
TEXT_LENGTH_THRESHOLD = 255


@dataclass(frozen=True)
class ProfileThresholds:
    """Tunable constants applied when FieldStats are finalized."""
    flag_ratio: float = 0.9
    image_min_samples: int = 3
    image_min_ratio: float = 0.5
    split_min_hits: int = 3
    split_min_ratio: float = 0.3
    split_min_confidence: float = 0.5
    nl_min_words: float = 3.0
    nl_min_whitespace_ratio: float = 0.5
    nl_min_avg_length: float = 15.0
    locale_min_letters: int = 10

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProfileThresholds":
        settings = settings or get_settings()
        return cls(
            flag_ratio=settings.profile_flag_ratio,
            image_min_samples=settings.image_min_samples,
            image_min_ratio=settings.image_min_ratio,
            split_min_hits=settings.split_min_hits,
            split_min_ratio=settings.split_min_ratio,
            split_min_confidence=settings.split_min_confidence,
        )


class _SplitTally:
    """Part-count statistics of one delimiter."""

    __slots__ = ("hits", "parts_sum", "parts_sq_sum", "part_chars")

    def __init__(self):
        self.hits = 0
        self.parts_sum = 0
        self.parts_sq_sum = 0
        self.part_chars = 0

    def add(self, parts: List[str]) -> None:
        n = len(parts)
        self.hits += 1
        self.parts_sum += n
        self.parts_sq_sum += n * n
        self.part_chars += sum(len(p) for p in parts)

    def coefficient_of_variation(self) -> float:
        if self.hits == 0 or self.parts_sum == 0:
            return 0.0
        mean = self.parts_sum / self.hits
        variance = max(self.parts_sq_sum / self.hits - mean * mean, 0.0)
        return math.sqrt(variance) / mean

    def avg_part_length(self) -> float:
        return self.part_chars / self.parts_sum if self.parts_sum else 0.0


class FieldStats:
    """Statistics for a single field, accumulated one value at a time."""

    def __init__(self, name: str, distinct_cap: Optional[int] = None):
        self.name = name
        self.distinct_cap = distinct_cap
        self.types: List[str] = []
        self.total = 0
        self.nulls = 0
        self.distinct_approximate = False
        self._distinct: Set[str] = set()

        self.string_count = 0
        self.length_min: Optional[int] = None
        self.length_max: Optional[int] = None
        self.length_avg = 0.0

        self.native_bools = 0
        self.boolean_hits = 0
        self.url_hits = 0
        self.json_hits = 0

        self.with_extension = 0
        self.image_hits = 0
        self.image_extensions: Dict[str, None] = {}

        self.word_total = 0
        self.whitespace_values = 0
        self.scripts: Dict[str, int] = {}
        self.latin_markers: Dict[str, int] = {}
        self.splits: Dict[str, _SplitTally] = {d: _SplitTally() for d in detectors.SPLIT_DELIMITERS}

        self.original_name: Optional[str] = None

    @property
    def distinct(self) -> int:
        return len(self._distinct)

    def observe(self, value: Any) -> None:
        """Record one value observation for this field."""
        self.total += 1
        tag = detectors.value_type(value)
        if tag not in self.types:
            self.types.append(tag)

        if value is None:
            self.nulls += 1
            return

        self._track_distinct(value)

        if isinstance(value, bool):
            self.native_bools += 1
        elif isinstance(value, str):
            self._observe_string(value)

    def _track_distinct(self, value: Any) -> None:
        key = json.dumps(value, sort_keys=True, default=str)
        if key in self._distinct:
            return
        if self.distinct_cap is not None and len(self._distinct) >= self.distinct_cap:
            self.distinct_approximate = True
            return
        self._distinct.add(key)

    def _observe_string(self, text: str) -> None:
        self.string_count += 1
        length = len(text)
        self.length_min = length if self.length_min is None else min(self.length_min, length)
        self.length_max = length if self.length_max is None else max(self.length_max, length)
        self.length_avg += (length - self.length_avg) / self.string_count

        if detectors.is_boolean_like(text):
            self.boolean_hits += 1
        if detectors.is_url_like(text):
            self.url_hits += 1
        if detectors.is_json_like(text):
            self.json_hits += 1

        ext = detectors.path_extension(text)
        if ext:
            self.with_extension += 1
            if ext in detectors.IMAGE_EXTENSIONS:
                self.image_hits += 1
                self.image_extensions.setdefault(ext, None)

        self.word_total += detectors.word_count(text)
        if detectors.has_whitespace(text):
            self.whitespace_values += 1
        detectors.count_scripts(text, self.scripts, self.latin_markers)

        for delimiter, tally in self.splits.items():
            if delimiter in text:
                parts = [p.strip() for p in text.split(delimiter) if p.strip()]
                tally.add(parts)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _share(self, hits: int, of: int, ratio: float) -> bool:
        return of > 0 and hits / of >= ratio

    def is_boolean_like(self, t: ProfileThresholds) -> bool:
        return self._share(self.boolean_hits + self.native_bools, self.string_count + self.native_bools, t.flag_ratio)

    def is_url_like(self, t: ProfileThresholds) -> bool:
        return self._share(self.url_hits, self.string_count, t.flag_ratio)

    def is_json_like(self, t: ProfileThresholds) -> bool:
        return self._share(self.json_hits, self.string_count, t.flag_ratio)

    def is_image_like(self, t: ProfileThresholds) -> bool:
        return self.image_hits >= t.image_min_samples and self._share(
            self.image_hits, self.with_extension, t.image_min_ratio
        )

    def is_natural_language_like(self, t: ProfileThresholds) -> bool:
        if self.string_count == 0:
            return False
        return (
            self.word_total / self.string_count >= t.nl_min_words
            and self.whitespace_values / self.string_count >= t.nl_min_whitespace_ratio
            and self.length_avg >= t.nl_min_avg_length
        )

    def split_candidate(self, t: ProfileThresholds) -> Optional[Dict[str, Any]]:
        # first delimiter in SPLIT_DELIMITERS wins ties
        delimiter, tally = max(self.splits.items(), key=lambda item: item[1].hits)
        if tally.hits == 0 or self.string_count == 0:
            return None

        ratio = tally.hits / self.string_count
        stability = 1.0 / (1.0 + tally.coefficient_of_variation())
        avg_len = tally.avg_part_length()
        shortness = 1.0 if avg_len <= SPLIT_SHORT_PART_CHARS else SPLIT_SHORT_PART_CHARS / avg_len
        confidence = ratio * stability * shortness

        return {
            "delimiter": delimiter,
            "ratio": round(ratio, 3),
            "confidence": round(confidence, 3),
            "enabled": (
                tally.hits >= t.split_min_hits
                and ratio >= t.split_min_ratio
                and confidence >= t.split_min_confidence
            ),
        }

    def storage_hint(self, t: ProfileThresholds, split: Optional[Dict[str, Any]] = None) -> str:
        """Column type a schema generator should use for this field."""
        kinds = {k for k in self.types if k != "null"}
        if not kinds:
            return "string"
        if kinds == {"array"} or (split and split["enabled"]):
            return "array"
        if kinds == {"bool"}:
            return "bool"
        if kinds == {"int"}:
            return "int"
        if kinds == {"date"}:
            return "date"
        if kinds <= {"int", "float"}:
            return "float"
        if "object" in kinds or (kinds <= {"string"} and self.is_json_like(t)):
            return "json" if kinds <= {"object", "string"} else "mixed"
        if not kinds <= {"string", "date"}:
            return "mixed"
        if self.is_boolean_like(t) and kinds == {"string"}:
            return "bool"
        if self.is_url_like(t) or self.is_image_like(t):
            return "url"
        if self.is_natural_language_like(t) or (self.length_max or 0) > TEXT_LENGTH_THRESHOLD:
            return "text"
        return "string"

    def to_dict(self, thresholds: Optional[ProfileThresholds] = None) -> Dict[str, Any]:
        t = thresholds or ProfileThresholds()
        natural_language = self.is_natural_language_like(t)
        image_like = self.is_image_like(t)
        split = self.split_candidate(t)

        out: Dict[str, Any] = {
            "types": list(self.types),
            "total": self.total,
            "nulls": self.nulls,
            "distinct": self.distinct,
        }
        if self.distinct_approximate:
            out["distinctApproximate"] = True
        if self.string_count:
            out["stringLengths"] = {
                "min": self.length_min,
                "max": self.length_max,
                "avg": round(self.length_avg, 2),
            }
        out["booleanLike"] = self.is_boolean_like(t)
        out["urlLike"] = self.is_url_like(t)
        out["jsonLike"] = self.is_json_like(t)
        out["imageLike"] = image_like
        if image_like:
            out["imageExtensions"] = list(self.image_extensions)
        out["naturalLanguageLike"] = natural_language

        locale = detectors.guess_locale(
            self.scripts, self.latin_markers, natural_language, t.locale_min_letters
        )
        if locale:
            out["localeGuess"] = locale
        if split:
            out["splitCandidate"] = split
        out["storageHint"] = self.storage_hint(t, split)
        if self.original_name and self.original_name != self.name:
            out["originalName"] = self.original_name
        return out


class FieldProfiler:
    """
    Profiles a record stream in one pass.

    Args:
        thresholds: Finalization constants (defaults from settings)
        distinct_cap: Per-field limit on remembered distinct values
    """

    def __init__(
        self,
        thresholds: Optional[ProfileThresholds] = None,
        distinct_cap: Optional[int] = None,
    ):
        settings = get_settings()
        self.thresholds = thresholds or ProfileThresholds.from_settings(settings)
        self.distinct_cap = distinct_cap if distinct_cap is not None else settings.profile_distinct_cap

    def profile(self, records: Iterable[Mapping[str, Any]]) -> Dict[str, FieldStats]:
        """
        Accumulate FieldStats for every field, in first-encounter order.

        Args:
            records: Record stream (consumed once)

        Returns:
            Mapping of field name to its FieldStats
        """
        fields: Dict[str, FieldStats] = {}
        count = 0
        for record in records:
            count += 1
            for name, value in record.items():
                stats = fields.get(name)
                if stats is None:
                    stats = fields[name] = FieldStats(name, self.distinct_cap)
                stats.observe(value)

        logger.debug(f"Profiled {count} records, {len(fields)} fields")
        return fields

    def to_dicts(self, fields: Mapping[str, FieldStats]) -> Dict[str, Dict[str, Any]]:
        return {name: stats.to_dict(self.thresholds) for name, stats in fields.items()}
