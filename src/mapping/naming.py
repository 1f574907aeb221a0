"""
Key spelling conversions shared by the row normalizer and the object mapper.

Every function splits a name into words the same way: any character that is
not an ASCII letter or digit separates words, and camel-case humps start a
new word (``posterURLPath`` -> ``poster``, ``URL``, ``Path``). Accented
letters are folded to ASCII first so ``Título`` keeps its letters.
"""

import re
import unicodedata
from typing import List

_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_CANONICAL_RE = re.compile(r"^(?:[a-z]|_\d)[A-Za-z0-9]*$")
_ALNUM_RE = re.compile(r"^[A-Za-z0-9]+$")


def split_words(name: str) -> List[str]:
    """Split a field name into its spelling-independent words."""
    folded = unicodedata.normalize("NFKD", str(name))
    folded = folded.encode("ascii", "ignore").decode("ascii")
    return _WORD_RE.findall(folded)


def _title(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def to_camel(name: str) -> str:
    """``accession_number`` / ``Accession Number`` -> ``accessionNumber``."""
    words = split_words(name)
    if not words:
        return ""
    return words[0].lower() + "".join(_title(w) for w in words[1:])


def to_snake(name: str) -> str:
    """``accessionNumber`` / ``ACCESSION-NUMBER`` -> ``accession_number``."""
    return "_".join(w.lower() for w in split_words(name))


def squash(name: str) -> str:
    """Lowercase alphanumerics only: ``Identification.ID`` -> ``identificationid``."""
    return _NON_ALNUM_RE.sub("", str(name).lower())


def last_word(name: str) -> str:
    words = split_words(name)
    return words[-1].lower() if words else ""


def canonical_key(name: str) -> str:
    """
    Canonical lowerCamelCase spelling of a source key.

    ``"Engine Information.Driveline"`` -> ``engineInformationDriveline``.
    Keys without any letters or digits become ``field``; keys starting with a
    digit get a leading underscore.

    Keys made only of letters and digits keep their casing after the first
    word, so ``PosterURL`` and ``posterURL`` both give ``posterURL``. Keys
    already in canonical shape are returned as they are, which makes the
    function idempotent.
    """
    name = str(name)
    if _CANONICAL_RE.match(name):
        return name
    if _ALNUM_RE.match(name):
        first = split_words(name)[0]
        camel = first.lower() + name[len(first):]
    else:
        camel = to_camel(name)
    if not camel:
        return "field"
    if camel[0].isdigit():
        camel = "_" + camel
    return camel
