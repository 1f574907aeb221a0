"""
JSONL to CSV export driven by a profile.

Columns follow the profile's field order and use each field's original
source header when the profile recorded one.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from src.ingest.jsonl import iter_jsonl, open_text
from src.profiling.profile import ProfileInvalidError, load_profile

logger = logging.getLogger(__name__)


def csv_value(value: Any) -> Any:
    """
    Cell value for one field.

    Lists of scalars join with ``|``; any other list or dict is written as
    JSON. Bools spell ``true``/``false``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, (list, dict)):
                return json.dumps(value, ensure_ascii=False)
            parts.append(csv_value(item))
        return "|".join(str(p) for p in parts)
    return value


def default_csv_path(input_path: str) -> str:
    """``x.jsonl`` -> ``x.csv``; ``x.jsonl.gz`` -> ``x.csv.gz``."""
    path = input_path
    compressed = path.endswith(".gz")
    if compressed:
        path = path[:-3]
    if path.endswith(".jsonl"):
        path = path[:-6] + ".csv"
    elif path.endswith(".json"):
        path = path[:-5] + ".csv"
    elif not path.endswith(".csv"):
        path += ".csv"
    if compressed:
        path += ".gz"
    return path


class CsvProfileExporter:
    """Writes the records of a JSONL file as CSV, in profile field order."""

    def export_from_profile(
        self,
        profile_path: str,
        input_path: Optional[str] = None,
        output_path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Export a JSONL file to CSV.

        Args:
            profile_path: Profile describing the records
            input_path: JSONL to read (defaults to the profile's ``output``)
            output_path: CSV to write (defaults to the input with a .csv suffix)
            limit: Maximum records to write

        Returns:
            ``{"outputPath": ..., "recordCount": ...}``

        Raises:
            ProfileInvalidError: If the profile is unusable or names no input
            FileNotFoundError: If the input file does not exist
        """
        profile = load_profile(profile_path)
        if not profile.fields:
            raise ProfileInvalidError(f"Profile has no fields: {profile_path}")

        input_path = input_path or profile.output
        if not input_path:
            raise ProfileInvalidError(
                'Missing input path (provide one or ensure profile contains "output").'
            )
        if not Path(input_path).is_file():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        output_path = output_path or default_csv_path(input_path)
        field_names = list(profile.fields)
        headers = [profile.header_for(name) for name in field_names]

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        count = 0
        with open_text(output_path, "w") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            for _, row in iter_jsonl(input_path):
                if not isinstance(row, dict):
                    continue
                writer.writerow([csv_value(row.get(name)) for name in field_names])
                count += 1
                if limit is not None and count >= limit:
                    break

        logger.info(f"Exported {count} records to {output_path}")
        return {"outputPath": output_path, "recordCount": count}
