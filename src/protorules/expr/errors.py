"""Error types for the expression language.

Syntax and type errors are compile-time problems: the schema compiler
turns them into ``SchemaError`` records.  ``EvaluationError`` is the
only error that can surface while evaluating a checked program.
"""
from __future__ import annotations

from protorules.errors import ProtorulesError


class ExpressionError(ProtorulesError):
    """Base class for expression errors.

    Parameters
    ----------
    message:
        Human-readable description of the problem.
    offset:
        0-based character offset in the expression source, or ``-1``
        when no position is known.
    """

    def __init__(self, message: str, offset: int = -1) -> None:
        location = f" at offset {offset}" if offset >= 0 else ""
        super().__init__(f"{self.kind}{location}: {message}")
        self.detail = message
        self.offset = offset

    kind = "ExpressionError"


class ExpressionSyntaxError(ExpressionError):
    """Raised by the lexer and parser on malformed source text."""

    kind = "SyntaxError"


class ExpressionTypeError(ExpressionError):
    """Raised by the checker when an expression does not bind or typecheck."""

    kind = "TypeError"


class EvaluationError(ExpressionError):
    """Raised when a checked program fails on a particular input."""

    kind = "EvaluationError"
