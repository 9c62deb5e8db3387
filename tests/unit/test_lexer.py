"""Unit tests for protorules.expr.lexer: tokenization of rule expressions."""
from __future__ import annotations

import pytest

from protorules.expr.errors import ExpressionSyntaxError
from protorules.expr.lexer import Lexer, tokenize
from protorules.expr.tokens import TokenType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def types_of(source: str) -> list[TokenType]:
    """Return just the token types, excluding EOF."""
    return [t.type for t in tokenize(source) if t.type is not TokenType.EOF]


def single(source: str):
    tokens = tokenize(source)
    assert len(tokens) == 2, tokens
    return tokens[0]


# ---------------------------------------------------------------------------
# Empty and whitespace-only inputs
# ---------------------------------------------------------------------------


class TestEmptyInputs:
    def test_empty_string_produces_only_eof(self) -> None:
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type is TokenType.EOF

    def test_whitespace_only_produces_only_eof(self) -> None:
        assert types_of("  \t\n ") == []

    def test_comment_is_skipped(self) -> None:
        assert types_of("1 // trailing comment") == [TokenType.INT]

    def test_lexer_class_matches_function(self) -> None:
        assert Lexer("a + b").tokenize() == tokenize("a + b")


# ---------------------------------------------------------------------------
# Numeric literals
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("source, expected_type, expected_value", [
    ("42", TokenType.INT, 42),
    ("0x1F", TokenType.INT, 31),
    ("7u", TokenType.UINT, 7),
    ("0xffU", TokenType.UINT, 255),
    ("1.5", TokenType.DOUBLE, 1.5),
    (".25", TokenType.DOUBLE, 0.25),
    ("1e3", TokenType.DOUBLE, 1000.0),
    ("2.5e-1", TokenType.DOUBLE, 0.25),
])
def test_numeric_literal(source: str, expected_type: TokenType, expected_value: object) -> None:
    token = single(source)
    assert token.type is expected_type
    assert token.literal == expected_value


class TestNumericErrors:
    def test_unsigned_double_is_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Invalid unsigned literal"):
            tokenize("1.5u")


# ---------------------------------------------------------------------------
# String and bytes literals
# ---------------------------------------------------------------------------


class TestStringLiterals:
    def test_single_quoted(self) -> None:
        token = single("'abc'")
        assert token.type is TokenType.STRING
        assert token.literal == "abc"

    def test_double_quoted(self) -> None:
        assert single('"abc"').literal == "abc"

    def test_triple_quoted_allows_newlines(self) -> None:
        assert single("'''a\nb'''").literal == "a\nb"

    def test_escapes_are_decoded(self) -> None:
        assert single(r"'a\tb\n'").literal == "a\tb\n"

    def test_unicode_escape(self) -> None:
        assert single(r"'\u00e9'").literal == "\u00e9"

    def test_octal_escape(self) -> None:
        assert single(r"'\101'").literal == "A"

    def test_raw_string_keeps_backslashes(self) -> None:
        assert single(r"r'\d+'").literal == r"\d+"

    def test_bytes_literal(self) -> None:
        token = single(r"b'\x00\xff'")
        assert token.type is TokenType.BYTES
        assert token.literal == b"\x00\xff"

    def test_bytes_literal_encodes_text_as_utf8(self) -> None:
        assert single("b'é'").literal == "é".encode("utf-8")

    def test_unterminated_string_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Unterminated"):
            tokenize("'abc")

    def test_newline_in_single_quoted_string_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="newline"):
            tokenize("'a\nb'")

    def test_invalid_escape_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Invalid escape"):
            tokenize(r"'\q'")

    def test_surrogate_code_point_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="code point"):
            tokenize(r"'\ud800'")


# ---------------------------------------------------------------------------
# Keywords, identifiers and operators
# ---------------------------------------------------------------------------


class TestKeywordsAndIdentifiers:
    def test_true_and_false_are_bool_literals(self) -> None:
        tokens = tokenize("true false")
        assert [t.literal for t in tokens[:2]] == [True, False]
        assert all(t.type is TokenType.BOOL for t in tokens[:2])

    def test_null(self) -> None:
        assert single("null").type is TokenType.NULL

    def test_in_keyword(self) -> None:
        assert types_of("x in y") == [TokenType.IDENT, TokenType.IN, TokenType.IDENT]

    def test_identifier_with_underscore_and_digits(self) -> None:
        token = single("field_2")
        assert token.type is TokenType.IDENT
        assert token.value == "field_2"

    def test_reserved_word_is_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Reserved word"):
            tokenize("while")


@pytest.mark.parametrize("source, expected", [
    ("==", TokenType.EQ),
    ("!=", TokenType.NEQ),
    ("<=", TokenType.LTE),
    (">=", TokenType.GTE),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("<", TokenType.LT),
    ("!", TokenType.NOT),
    ("?", TokenType.QUESTION),
    ("%", TokenType.PERCENT),
])
def test_operator(source: str, expected: TokenType) -> None:
    assert single(source).type is expected


class TestOffsets:
    def test_offsets_track_source_positions(self) -> None:
        tokens = tokenize("a  && b")
        assert [t.offset for t in tokens] == [0, 3, 6, 7]

    def test_unexpected_character_reports_offset(self) -> None:
        with pytest.raises(ExpressionSyntaxError) as info:
            tokenize("a # b")
        assert info.value.offset == 2
        assert "Unexpected character" in info.value.detail
