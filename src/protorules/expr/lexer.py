"""Expression lexer: converts rule expression text into a flat token list.

The lexer is a single-pass character scanner.  Whitespace and ``//``
comments are skipped.  Literal tokens carry their decoded value so the
parser never has to re-interpret source text.

Literals supported:
    - integers (decimal or ``0x`` hex), unsigned integers (``u`` suffix)
    - doubles (``1.5``, ``.5``, ``1e9``, ``2.5e-3``)
    - strings in single, double or triple quotes, with backslash
      escapes; an ``r`` prefix disables escapes
    - bytes, written as a string with a ``b`` prefix
"""
from __future__ import annotations

import re
from typing import Final

from protorules.expr.errors import ExpressionSyntaxError
from protorules.expr.tokens import KEYWORDS, RESERVED, Token, TokenType

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_IDENT_START: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_]")
_IDENT_CONT: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_]")
_NUMBER: Final[re.Pattern[str]] = re.compile(
    r"0[xX][0-9a-fA-F]+[uU]?"
    r"|(?:[0-9]+\.[0-9]+|\.[0-9]+|[0-9]+)(?:[eE][+-]?[0-9]+)?[uU]?"
)

_ESCAPE_MAP: Final[dict[str, str]] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "`": "`",
    "?": "?",
}

_TWO_CHAR: Final[dict[str, TokenType]] = {
    "==": TokenType.EQ,
    "!=": TokenType.NEQ,
    "<=": TokenType.LTE,
    ">=": TokenType.GTE,
    "&&": TokenType.AND,
    "||": TokenType.OR,
}

_SINGLE: Final[dict[str, TokenType]] = {
    "<": TokenType.LT,
    ">": TokenType.GT,
    "!": TokenType.NOT,
    "?": TokenType.QUESTION,
    ":": TokenType.COLON,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.PERCENT,
}


class Lexer:
    """Single-pass expression lexer.

    Parameters
    ----------
    source:
        The complete expression text to tokenize.
    """

    __slots__ = ("_source", "_pos", "_tokens")

    def __init__(self, source: str) -> None:
        self._source: str = source
        self._pos: int = 0
        self._tokens: list[Token] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tokenize(self) -> list[Token]:
        """Scan the entire source and return the token list, ending with EOF.

        Raises
        ------
        ExpressionSyntaxError
            On any character that cannot begin a valid token, on
            unterminated strings, and on invalid escapes or literals.
        """
        while self._pos < len(self._source):
            self._scan_one()
        self._tokens.append(Token(TokenType.EOF, "", self._pos))
        return self._tokens

    # ------------------------------------------------------------------
    # Internal scanner
    # ------------------------------------------------------------------

    def _current(self) -> str:
        return self._source[self._pos] if self._pos < len(self._source) else ""

    def _peek(self, offset: int = 1) -> str:
        idx = self._pos + offset
        return self._source[idx] if idx < len(self._source) else ""

    def _error(self, message: str, offset: int | None = None) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(message, self._pos if offset is None else offset)

    def _scan_one(self) -> None:
        """Scan exactly one token (or skip whitespace/comments)."""
        ch = self._current()
        start = self._pos

        if ch in (" ", "\t", "\r", "\n"):
            self._pos += 1
            return

        if ch == "/" and self._peek() == "/":
            while self._pos < len(self._source) and self._current() != "\n":
                self._pos += 1
            return

        # String and bytes literals, with optional r/b prefixes.
        prefix_len = self._string_prefix_length()
        if prefix_len is not None:
            self._scan_string(start, prefix_len)
            return

        if ch.isdigit() or (ch == "." and self._peek().isdigit()):
            self._scan_number(start)
            return

        if _IDENT_START.match(ch):
            self._scan_ident_or_keyword(start)
            return

        pair = self._source[self._pos : self._pos + 2]
        if pair in _TWO_CHAR:
            self._pos += 2
            self._tokens.append(Token(_TWO_CHAR[pair], pair, start))
            return

        if ch in _SINGLE:
            self._pos += 1
            self._tokens.append(Token(_SINGLE[ch], ch, start))
            return

        raise self._error(f"Unexpected character {ch!r}")

    # ------------------------------------------------------------------
    # Token-specific scanners
    # ------------------------------------------------------------------

    def _string_prefix_length(self) -> int | None:
        """Return the length of an ``r``/``b``/``rb`` prefix before a quote."""
        for length in (0, 1, 2):
            prefix = self._source[self._pos : self._pos + length].lower()
            if prefix not in ("", "r", "b", "rb", "br"):
                continue
            if self._peek(length) in ("'", '"'):
                return length
        return None

    def _scan_string(self, start: int, prefix_len: int) -> None:
        prefix = self._source[self._pos : self._pos + prefix_len].lower()
        raw = "r" in prefix
        is_bytes = "b" in prefix
        self._pos += prefix_len
        quote = self._current()
        triple = self._source[self._pos : self._pos + 3] == quote * 3
        delim = quote * 3 if triple else quote
        self._pos += len(delim)

        chunks: list[str | bytes] = []
        while True:
            if self._pos >= len(self._source):
                raise self._error("Unterminated string literal", start)
            if self._source.startswith(delim, self._pos):
                self._pos += len(delim)
                break
            ch = self._current()
            if ch == "\n" and not triple:
                raise self._error("Unterminated string literal (newline in string)", start)
            if ch == "\\" and not raw:
                chunks.append(self._scan_escape(is_bytes))
                continue
            chunks.append(ch)
            self._pos += 1

        text = self._source[start : self._pos]
        if is_bytes:
            literal = b"".join(c if isinstance(c, bytes) else c.encode("utf-8") for c in chunks)
            self._tokens.append(Token(TokenType.BYTES, text, start, literal))
        else:
            literal_str = "".join(c if isinstance(c, str) else c.decode("latin-1") for c in chunks)
            self._tokens.append(Token(TokenType.STRING, text, start, literal_str))

    def _scan_escape(self, is_bytes: bool) -> str | bytes:
        """Consume one backslash escape and return its decoded value."""
        esc_start = self._pos
        self._pos += 1  # backslash
        esc = self._current()
        if esc in _ESCAPE_MAP:
            self._pos += 1
            return _ESCAPE_MAP[esc]
        if esc in ("x", "X"):
            return self._scan_code_point(2, esc_start, is_bytes)
        if esc == "u" and not is_bytes:
            return self._scan_code_point(4, esc_start, is_bytes)
        if esc == "U" and not is_bytes:
            return self._scan_code_point(8, esc_start, is_bytes)
        if esc in "0123" and all(c in "01234567" for c in self._source[self._pos : self._pos + 3]):
            value = int(self._source[self._pos : self._pos + 3], 8)
            self._pos += 3
            return bytes([value]) if is_bytes else chr(value)
        raise self._error(f"Invalid escape sequence '\\{esc}'", esc_start)

    def _scan_code_point(self, width: int, esc_start: int, is_bytes: bool) -> str | bytes:
        self._pos += 1  # x / u / U
        digits = self._source[self._pos : self._pos + width]
        if len(digits) != width or not all(c in "0123456789abcdefABCDEF" for c in digits):
            raise self._error("Invalid hexadecimal escape", esc_start)
        self._pos += width
        value = int(digits, 16)
        if is_bytes:
            return bytes([value])
        if 0xD800 <= value <= 0xDFFF or value > 0x10FFFF:
            raise self._error("Invalid unicode code point", esc_start)
        return chr(value)

    def _scan_number(self, start: int) -> None:
        match = _NUMBER.match(self._source, self._pos)
        if match is None:
            raise self._error("Invalid number literal", start)
        text = match.group(0)
        self._pos = match.end()
        unsigned = text[-1] in ("u", "U")
        body = text[:-1] if unsigned else text
        if body[:2].lower() == "0x":
            value = int(body, 16)
            self._tokens.append(Token(TokenType.UINT if unsigned else TokenType.INT, text, start, value))
            return
        if any(c in body for c in ".eE"):
            if unsigned:
                raise self._error(f"Invalid unsigned literal {text!r}", start)
            self._tokens.append(Token(TokenType.DOUBLE, text, start, float(body)))
            return
        value = int(body)
        self._tokens.append(Token(TokenType.UINT if unsigned else TokenType.INT, text, start, value))

    def _scan_ident_or_keyword(self, start: int) -> None:
        while self._pos < len(self._source) and _IDENT_CONT.match(self._current()):
            self._pos += 1
        word = self._source[start : self._pos]
        if word in RESERVED:
            raise self._error(f"Reserved word {word!r} cannot be used as an identifier", start)
        token_type = KEYWORDS.get(word, TokenType.IDENT)
        literal = (word == "true") if token_type is TokenType.BOOL else None
        self._tokens.append(Token(token_type, word, start, literal))


# ---------------------------------------------------------------------------
# Module-level convenience function
# ---------------------------------------------------------------------------


def tokenize(source: str) -> list[Token]:
    """Tokenize an expression and return the token list, terminated by EOF.

    Raises
    ------
    ExpressionSyntaxError
        If the source contains invalid characters or malformed literals.

    Example
    -------
    ::

        from protorules.expr.lexer import tokenize
        tokens = tokenize("this.size() > 3 && this.startsWith('a')")
    """
    return Lexer(source).tokenize()
