"""
Value-shape heuristics used by the field profiler.

Each detector looks at a single value and never raises; the profiler turns
the per-value answers into per-field flags.
"""

import posixpath
import re
import unicodedata
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from src.mapping.coercion import ISO_DATE_RE, ISO_DATETIME_RE, loads_tolerant

BOOLEAN_LEXICON = frozenset({"true", "false", "yes", "no", "y", "n", "on", "off", "1", "0"})
URL_SCHEMES = frozenset({"http", "https", "ftp"})
IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "avif", "svg", "bmp")
SPLIT_DELIMITERS = ("|", ",")

# Unicode name prefix -> script label
SCRIPT_PREFIXES = (
    ("CJK", "han"),
    ("HIRAGANA", "kana"),
    ("KATAKANA", "kana"),
    ("HANGUL", "hangul"),
    ("CYRILLIC", "cyrillic"),
    ("ARABIC", "arabic"),
    ("HEBREW", "hebrew"),
    ("GREEK", "greek"),
    ("DEVANAGARI", "devanagari"),
    ("THAI", "thai"),
    ("LATIN", "latin"),
)

SCRIPT_LOCALES = {
    "han": "zh",
    "kana": "ja",
    "hangul": "ko",
    "cyrillic": "ru",
    "arabic": "ar",
    "hebrew": "he",
    "greek": "el",
    "devanagari": "hi",
    "thai": "th",
}

# Latin letters that mark a language
LATIN_MARKERS = {
    "ñ": "es",
    "ß": "de", "ä": "de", "ö": "de", "ü": "de",
    "ã": "pt", "õ": "pt",
    "ç": "fr", "è": "fr", "ê": "fr", "à": "fr",
}

_WHITESPACE_RE = re.compile(r"\s")


def value_type(value: Any) -> str:
    """
    Profile type tag of a value.

    Strings shaped like ISO dates are tagged ``date``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, str) and (ISO_DATE_RE.match(value) or ISO_DATETIME_RE.match(value)):
        return "date"
    return "string"


def is_boolean_like(text: str) -> bool:
    return text.strip().lower() in BOOLEAN_LEXICON


def is_url_like(text: str) -> bool:
    text = text.strip()
    if "://" not in text:
        return False
    try:
        parts = urlsplit(text)
    except ValueError:
        return False
    return parts.scheme.lower() in URL_SCHEMES and bool(parts.netloc)


def is_json_like(text: str) -> bool:
    text = text.strip()
    if not ((text.startswith("{") and text.endswith("}")) or (text.startswith("[") and text.endswith("]"))):
        return False
    ok, decoded = loads_tolerant(text)
    return ok and isinstance(decoded, (dict, list))


def path_extension(text: str) -> Optional[str]:
    """
    Lowercased file extension of a path or URL, ignoring query and fragment.

    Returns None when the last path segment has no extension.
    """
    text = text.strip()
    if not text:
        return None
    if "://" in text:
        try:
            path = urlsplit(text).path
        except ValueError:
            return None
    else:
        path = text.split("#", 1)[0].split("?", 1)[0]

    _, ext = posixpath.splitext(posixpath.basename(path))
    ext = ext.lstrip(".").lower()
    return ext or None


def word_count(text: str) -> int:
    return len(text.split())


def has_whitespace(text: str) -> bool:
    return bool(_WHITESPACE_RE.search(text.strip()))


def script_of(char: str) -> Optional[str]:
    if not char.isalpha():
        return None
    name = unicodedata.name(char, "")
    for prefix, script in SCRIPT_PREFIXES:
        if name.startswith(prefix):
            return script
    return None


def count_scripts(text: str, scripts: Dict[str, int], markers: Dict[str, int]) -> None:
    """Add the letters of ``text`` to per-script and Latin-marker tallies."""
    for char in text:
        script = script_of(char)
        if script is None:
            continue
        scripts[script] = scripts.get(script, 0) + 1
        if script == "latin":
            lang = LATIN_MARKERS.get(char.lower())
            if lang:
                markers[lang] = markers.get(lang, 0) + 1


def guess_locale(
    scripts: Dict[str, int],
    markers: Dict[str, int],
    natural_language: bool,
    min_letters: int = 10,
) -> Optional[str]:
    """
    Locale from script tallies.

    Non-Latin scripts map directly to a language; Latin text needs marker
    letters, and falls back to ``en`` only for natural-language fields.
    """
    if sum(scripts.values()) < min_letters:
        return None

    dominant = max(scripts.items(), key=lambda item: item[1])[0]
    if dominant in SCRIPT_LOCALES:
        return SCRIPT_LOCALES[dominant]

    if dominant == "latin":
        if markers:
            return max(markers.items(), key=lambda item: item[1])[0]
        if natural_language:
            return "en"
    return None
