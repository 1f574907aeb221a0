"""
Human-readable profile report.

``build_report_rows`` filters and sorts the fields of a profile;
``render_report`` lays them out as a plain-text summary and table.
"""

import json
import re
from typing import Any, Dict, List, Optional, Pattern

from src.profiling.profile import Profile

ONLY_FILTERS = ("split", "nl", "image", "url", "json", "pk")
SORT_KEYS = ("name", "distinct", "nulls", "avgLen", "maxLen")
FLAG_KEYS = ("booleanLike", "urlLike", "jsonLike", "imageLike", "naturalLanguageLike")
TABLE_HEADERS = ("Field", "Types", "Hint", "Nulls", "Distinct", "Len(avg/min/max)", "Flags", "Split")
ROW_COLUMNS = ("name", "types", "storageHint", "nulls", "distinct", "len", "flags", "split")


def compile_match(pattern: Optional[str]) -> Optional[Pattern]:
    """
    Compile a field-name filter.

    Accepts plain patterns and ``/pattern/flags`` with the ``i`` flag.
    Raises ``re.error`` for an invalid pattern.
    """
    if not pattern:
        return None
    flags = 0
    delimited = re.match(r"^/(.*)/([a-z]*)$", pattern, re.DOTALL)
    if delimited:
        pattern = delimited.group(1)
        if "i" in delimited.group(2):
            flags |= re.IGNORECASE
    return re.compile(pattern, flags)


def _split_cell(stats: Dict[str, Any]) -> str:
    split = stats.get("splitCandidate")
    if not isinstance(split, dict) or not split.get("enabled"):
        return ""
    return "%s (r=%s c=%s)" % (split.get("delimiter", ""), split.get("ratio", ""), split.get("confidence", ""))


def _len_cell(lengths: Any) -> str:
    if not isinstance(lengths, dict):
        return "//"
    avg = lengths.get("avg")
    if isinstance(avg, float):
        avg = "%.1f" % avg
    return "/".join("" if v is None else str(v) for v in (avg, lengths.get("min"), lengths.get("max")))


def row_for_field(name: str, stats: Dict[str, Any]) -> Dict[str, Any]:
    types = stats.get("types", [])
    lengths = stats.get("stringLengths") or {}
    flags = [k for k in FLAG_KEYS if stats.get(k)]
    if stats.get("localeGuess"):
        flags.append(f"locale:{stats['localeGuess']}")

    avg = lengths.get("avg") if isinstance(lengths, dict) else None
    max_len = lengths.get("max") if isinstance(lengths, dict) else None

    return {
        "name": name,
        "types": ",".join(types) if isinstance(types, list) else str(types),
        "storageHint": str(stats.get("storageHint", "")),
        "nulls": str(stats.get("nulls", "")),
        "distinct": str(stats.get("distinct", "")),
        "len": _len_cell(lengths),
        "flags": " ".join(flags),
        "split": _split_cell(stats),
        "_sort": {
            "name": name,
            "distinct": int(stats.get("distinct") or 0),
            "nulls": int(stats.get("nulls") or 0),
            "avgLen": float(avg) if isinstance(avg, (int, float)) else -1.0,
            "maxLen": int(max_len) if isinstance(max_len, (int, float)) else -1,
        },
    }


def passes_only(only: str, name: str, stats: Dict[str, Any], unique_fields: List[str]) -> bool:
    only = only.strip().lower()
    if only == "split":
        split = stats.get("splitCandidate")
        return isinstance(split, dict) and bool(split.get("enabled"))
    if only == "nl":
        return bool(stats.get("naturalLanguageLike"))
    if only == "image":
        return bool(stats.get("imageLike"))
    if only == "url":
        return bool(stats.get("urlLike"))
    if only == "json":
        return bool(stats.get("jsonLike"))
    if only == "pk":
        return name in unique_fields
    return True


def build_report_rows(
    profile: Profile,
    only: Optional[str] = None,
    sort: str = "name",
    limit: int = 0,
    match: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Report rows for the fields of ``profile``.

    Args:
        profile: Loaded profile
        only: Keep only split|nl|image|url|json|pk fields
        sort: name (ascending) or distinct|nulls|avgLen|maxLen (descending)
        limit: Maximum rows, 0 for all
        match: Regex on the field name; an invalid regex matches nothing

    Returns:
        Row dicts keyed by ROW_COLUMNS
    """
    try:
        pattern = compile_match(match)
    except re.error:
        return []

    rows = []
    for name, stats in profile.fields.items():
        if pattern is not None and not pattern.search(name):
            continue
        if only and not passes_only(only, name, stats, profile.unique_fields):
            continue
        rows.append(row_for_field(name, stats))

    key = sort if sort in SORT_KEYS else "name"
    rows.sort(key=lambda r: r["_sort"][key], reverse=key != "name")

    if limit and limit > 0:
        rows = rows[:limit]
    return rows


def _table(headers, body) -> List[str]:
    widths = [len(h) for h in headers]
    for row in body:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells):
        return " | ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    rule = "-+-".join("-" * w for w in widths)
    return [line(headers), rule] + [line(row) for row in body]


def render_report(
    profile: Profile,
    rows: List[Dict[str, Any]],
    profile_path: Optional[str] = None,
    show_transforms: bool = False,
) -> str:
    """Plain-text summary followed by the field table."""
    summary = [
        ("Profile", profile_path or ""),
        ("Dataset", profile.dataset),
        ("Input", profile.input),
        ("Output", profile.output),
        ("Record count", str(profile.record_count)),
        ("Unique fields", ", ".join(profile.unique_fields)),
        ("Tags", ", ".join(profile.tags)),
    ]
    label_width = max(len(label) for label, _ in summary)
    lines = ["Summary", "======="]
    lines += [f"{label.ljust(label_width)}  {value}" for label, value in summary]

    if show_transforms:
        lines += ["", "Transforms", "=========="]
        lines.append(json.dumps(profile.transforms, indent=4, ensure_ascii=False))

    lines += ["", f"Fields ({len(rows)})", "=" * len(f"Fields ({len(rows)})")]
    lines += _table(TABLE_HEADERS, [[row[c] for c in ROW_COLUMNS] for row in rows])
    return "\n".join(lines) + "\n"
