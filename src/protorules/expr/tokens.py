"""Token definitions for the rule expression language.

Defines the complete token vocabulary used by the expression lexer.
Every literal kind, keyword and operator is a member of ``TokenType``,
and every scanned token is a ``Token`` dataclass carrying its type,
raw text, decoded literal value and source offset.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class TokenType(Enum):
    """Exhaustive enumeration of expression token types."""

    # -----------------------------------------------------------------
    # Literals
    # -----------------------------------------------------------------
    INT = auto()
    UINT = auto()
    DOUBLE = auto()
    STRING = auto()
    BYTES = auto()
    BOOL = auto()
    NULL = auto()

    # -----------------------------------------------------------------
    # Identifiers and keywords
    # -----------------------------------------------------------------
    IDENT = auto()
    IN = auto()

    # -----------------------------------------------------------------
    # Arithmetic operators
    # -----------------------------------------------------------------
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()

    # -----------------------------------------------------------------
    # Comparison operators
    # -----------------------------------------------------------------
    EQ = auto()       # ==
    NEQ = auto()      # !=
    LT = auto()       # <
    GT = auto()       # >
    LTE = auto()      # <=
    GTE = auto()      # >=

    # -----------------------------------------------------------------
    # Logical operators
    # -----------------------------------------------------------------
    AND = auto()      # &&
    OR = auto()       # ||
    NOT = auto()      # !
    QUESTION = auto()  # ?

    # -----------------------------------------------------------------
    # Punctuation
    # -----------------------------------------------------------------
    COLON = auto()
    DOT = auto()
    COMMA = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()

    EOF = auto()


# Mapping from literal keyword text to its TokenType.
KEYWORDS: dict[str, TokenType] = {
    "true": TokenType.BOOL,
    "false": TokenType.BOOL,
    "null": TokenType.NULL,
    "in": TokenType.IN,
}

# Words the language reserves; they may not be used as identifiers.
RESERVED: frozenset[str] = frozenset({
    "as", "break", "const", "continue", "else", "for", "function", "if",
    "import", "let", "loop", "package", "namespace", "return", "var", "void", "while",
})


@dataclass(frozen=True, slots=True)
class Token:
    """A single scanned token with its source offset.

    Parameters
    ----------
    type:
        The ``TokenType`` variant for this token.
    value:
        The raw text as it appeared in the source.
    offset:
        0-based character offset from the start of the expression.
    literal:
        The decoded value for literal tokens (``int``, ``float``,
        ``str``, ``bytes``, ``bool``); ``None`` otherwise.
    """

    type: TokenType
    value: str
    offset: int
    literal: Any = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, @{self.offset})"
