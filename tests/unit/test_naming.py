"""
Unit tests for key spelling conversions and the key resolver.
"""

import pytest

from src.mapping.key_resolver import KeyResolver
from src.mapping.naming import canonical_key, last_word, split_words, squash, to_camel, to_snake


class TestSpelling:
    """Tests for the naming helpers."""

    @pytest.mark.parametrize("name,expected", [
        ("Engine Information.Driveline", "engineInformationDriveline"),
        ("accession_number", "accessionNumber"),
        ("ACCESSION-NUMBER", "accessionNumber"),
        ("a/b-c_d", "aBCD"),
        ("Título", "titulo"),
    ])
    def test_canonical_key(self, name, expected):
        assert canonical_key(name) == expected

    def test_canonical_key_is_idempotent(self):
        for name in ["Engine Information.Driveline", "a/b-c_d", "Is_Active", "2nd place"]:
            once = canonical_key(name)
            assert canonical_key(once) == once

    def test_canonical_key_without_letters(self):
        assert canonical_key("...") == "field"
        assert canonical_key("") == "field"

    def test_canonical_key_keeps_camel_keys(self):
        assert canonical_key("posterURLPath") == "posterURLPath"
        assert canonical_key("title") == "title"

    @pytest.mark.parametrize("name", ["posterURL", "PosterURL"])
    def test_canonical_key_same_for_leading_case(self, name):
        assert canonical_key(name) == "posterURL"

    @pytest.mark.parametrize("name,expected", [
        ("RATING", "rating"),
        ("URLPath", "urlPath"),
        ("FilmID", "filmID"),
        ("2ndPlace", "_2ndPlace"),
    ])
    def test_canonical_key_alnum_only(self, name, expected):
        once = canonical_key(name)
        assert once == expected
        assert canonical_key(once) == once

    def test_canonical_key_leading_digit(self):
        assert canonical_key("2nd place") == "_2NdPlace"

    def test_to_snake(self):
        assert to_snake("accessionNumber") == "accession_number"
        assert to_snake("ID") == "id"
        assert to_snake("Is_Active") == "is_active"

    def test_to_camel(self):
        assert to_camel("posterURLPath") == "posterUrlPath"
        assert to_camel("is_active") == "isActive"
        assert to_camel("vote count") == "voteCount"

    def test_split_words_on_acronym(self):
        assert split_words("posterURLPath") == ["poster", "URL", "Path"]

    def test_squash_and_last_word(self):
        assert squash("Identification.ID") == "identificationid"
        assert last_word("userIds") == "ids"


class TestKeyResolver:
    """Tests for tolerant key lookup."""

    def test_candidates_order(self):
        assert KeyResolver().candidates("identificationId") == [
            "identificationId",
            "identification_id",
            "identificationid",
        ]

    def test_exact_match_wins(self):
        record = {"identificationId": 1, "identification_id": 2}
        assert KeyResolver().resolve_key(record, "identificationId") == "identificationId"

    def test_snake_spelling(self):
        assert KeyResolver().resolve_key({"identification_id": 1}, "identificationId") == "identification_id"

    def test_case_insensitive_pass(self):
        assert KeyResolver().resolve_key({"IDENTIFICATION_ID": 1}, "identificationId") == "IDENTIFICATION_ID"

    def test_squashed_match(self):
        assert KeyResolver().resolve_key({"Identification.ID": 1}, "identificationId") == "Identification.ID"

    def test_no_match(self):
        assert KeyResolver().resolve_key({"name": "x"}, "identificationId") is None
