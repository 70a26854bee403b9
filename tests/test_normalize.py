"""Tests for identifier normalization."""

import pytest

from pairguard.errors import InvalidIdentifierError
from pairguard.identity.normalize import (
    Token,
    TokenKind,
    normalize,
    parse_identifier,
    token_from_record,
)


class TestNormalize:
    def test_username_forms_collapse(self):
        expected = Token(TokenKind.USERNAME, "foo")
        assert normalize("@Foo") == expected
        assert normalize("telegram:foo") == expected
        assert normalize("TG:FOO") == expected
        assert normalize("  tg: @Foo  ") == expected

    def test_numeric_id(self):
        assert normalize("555") == Token(TokenKind.ID, "555")
        assert normalize(555) == Token(TokenKind.ID, "555")
        assert normalize("telegram:-1001234") == Token(TokenKind.ID, "-1001234")

    def test_leading_zeros_kept(self):
        assert normalize("007").value == "007"

    def test_wildcard(self):
        assert normalize("*") == Token(TokenKind.WILDCARD, "*")
        assert normalize("telegram:*").is_wildcard

    @pytest.mark.parametrize("raw", ["", "   ", "@", "tg:", "telegram: @ ", None])
    def test_empty_is_no_token(self, raw):
        assert normalize(raw) is None

    @pytest.mark.parametrize("raw", ["@Foo", "555", "*", "TG:Bar", "-42"])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once
        assert normalize(str(once)) == once

    def test_only_one_prefix_stripped(self):
        assert normalize("tg:tg:alice").value == "tg:alice"


class TestParseIdentifier:
    def test_valid(self):
        assert parse_identifier("@Alice_1") == Token(TokenKind.USERNAME, "alice_1")

    def test_empty_raises(self):
        with pytest.raises(InvalidIdentifierError):
            parse_identifier("  @ ")

    def test_bad_characters_raise(self):
        with pytest.raises(InvalidIdentifierError):
            parse_identifier("not a name")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_identifier("")


class TestTokenFromRecord:
    def test_typed_row(self):
        assert token_from_record({"type": "id", "value": "1"}) == Token(TokenKind.ID, "1")

    def test_flat_string(self):
        assert token_from_record("@Bob") == Token(TokenKind.USERNAME, "bob")

    def test_type_mismatch_dropped(self):
        assert token_from_record({"type": "id", "value": "abc"}) is None

    def test_garbage_dropped(self):
        assert token_from_record(42) is None
        assert token_from_record({"type": "id"}) is None
        assert token_from_record({"value": "1"}) is None
