"""
Profile artifact: the per-dataset JSON document written next to the JSONL.

Key names are camelCase and fixed; the report, CSV exporter, entity
importer and split-transform hook all read them.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union


class ProfileInvalidError(Exception):
    """Profile file is missing, unreadable or malformed."""
    pass


@dataclass
class Profile:
    """In-memory form of a ``.profile.json`` document."""
    input: str
    output: str
    record_count: int
    dataset: str
    fields: Dict[str, Dict[str, Any]]
    tags: List[str] = field(default_factory=list)
    unique_fields: List[str] = field(default_factory=list)
    samples: Dict[str, List[Any]] = field(default_factory=lambda: {"top": [], "bottom": []})
    transforms: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "output": self.output,
            "recordCount": self.record_count,
            "tags": list(self.tags),
            "dataset": self.dataset,
            "uniqueFields": list(self.unique_fields),
            "fields": self.fields,
            "samples": self.samples,
            "transforms": self.transforms,
        }

    @classmethod
    def from_dict(cls, data: Any, source: str = "<memory>") -> "Profile":
        if not isinstance(data, dict):
            raise ProfileInvalidError(f"Profile JSON is invalid or not an object: {source}")
        fields = data.get("fields")
        if not isinstance(fields, dict):
            raise ProfileInvalidError(f'Profile does not contain a "fields" object: {source}')

        samples = data.get("samples")
        if not isinstance(samples, dict):
            samples = {"top": [], "bottom": []}
        transforms = data.get("transforms")

        return cls(
            input=str(data.get("input") or ""),
            output=str(data.get("output") or ""),
            record_count=int(data.get("recordCount") or 0),
            dataset=str(data.get("dataset") or ""),
            fields={name: stats for name, stats in fields.items() if isinstance(stats, dict)},
            tags=[str(t) for t in data.get("tags") or []],
            unique_fields=[str(f) for f in data.get("uniqueFields") or []],
            samples=samples,
            transforms=transforms if isinstance(transforms, dict) else {},
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4, ensure_ascii=False, default=str)

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() + "\n", encoding="utf-8")
        return path

    def header_for(self, name: str) -> str:
        """Source spelling of a field, for CSV headers."""
        original = self.fields.get(name, {}).get("originalName")
        return original if isinstance(original, str) and original else name

    def split_rules(self) -> List[Dict[str, Any]]:
        rules = self.transforms.get("split", [])
        return rules if isinstance(rules, list) else []


def load_profile(path: Union[str, Path]) -> Profile:
    """
    Read and validate a profile file.

    Raises:
        ProfileInvalidError: If the file is missing, unreadable, not a JSON
            object, or has no ``fields`` object
    """
    path = Path(path)
    if not path.is_file():
        raise ProfileInvalidError(f"Profile file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ProfileInvalidError(f"Unable to read profile file: {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ProfileInvalidError(f"Profile JSON is invalid: {path}: {e}") from e
    return Profile.from_dict(data, str(path))


def build_transforms(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Split rules for every field whose split candidate is enabled."""
    split = []
    for name, stats in fields.items():
        candidate = stats.get("splitCandidate")
        if isinstance(candidate, dict) and candidate.get("enabled"):
            split.append({
                "field": name,
                "delimiter": candidate["delimiter"],
                "trim": True,
                "minParts": 2,
            })
    return {"split": split} if split else {}


def default_profile_path(jsonl_path: Union[str, Path]) -> Path:
    """``data/films.jsonl`` / ``data/films.jsonl.gz`` -> ``data/films.profile.json``."""
    jsonl_path = Path(jsonl_path)
    name = jsonl_path.name
    if name.endswith(".gz"):
        name = name[:-3]
    name = re.sub(r"\.(jsonl|json)$", "", name, count=1, flags=re.IGNORECASE)
    return jsonl_path.parent / f"{name}.profile.json"


def profile_path_for_dataset(data_dir: Union[str, Path], dataset: str) -> Path:
    return Path(data_dir) / f"{dataset}.profile.json"
