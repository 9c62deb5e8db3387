"""Exception types shared across protorules.

Two disjoint error classes exist.  Schema problems (bad rules, bad
expressions, unresolvable types) are raised as exceptions at compile
time.  Rule failures on a well-typed message are never exceptions:
they are collected as ``Violation`` records in a ``ValidationResult``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from protorules.validator.violations import ValidationResult


class ProtorulesError(Exception):
    """Base class for every error raised by protorules."""


@dataclass(frozen=True)
class SchemaError(ProtorulesError):
    """A single schema problem detected while loading or compiling.

    Parameters
    ----------
    message:
        Human-readable description of the problem.
    path:
        Dotted location inside the schema, e.g.
        ``"acme.v1.User.email.string.pattern"``.
    """

    message: str
    path: str = ""

    def __str__(self) -> str:
        if self.path:
            return f"SchemaError at {self.path}: {self.message}"
        return f"SchemaError: {self.message}"

    # dataclass(frozen=True) doesn't call Exception.__init__ automatically
    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (str(self),))


@dataclass
class SchemaErrorCollection(ProtorulesError):
    """Aggregates every ``SchemaError`` found in one compilation run.

    The compiler keeps going past a bad rule so that one run surfaces
    all independent problems in the schema.
    """

    errors: list[SchemaError] = field(default_factory=list)

    def add(self, error: SchemaError) -> None:
        """Append a new error to the collection."""
        self.errors.append(error)

    @property
    def has_errors(self) -> bool:
        """Return True if any errors were recorded."""
        return bool(self.errors)

    def __str__(self) -> str:
        if not self.errors:
            return "SchemaErrorCollection (no errors)"
        lines = [f"SchemaErrorCollection ({len(self.errors)} error(s)):"]
        for err in self.errors:
            lines.append(f"  {err}")
        return "\n".join(lines)


class DecodeError(ProtorulesError):
    """Raised when a plain dict cannot be decoded into a ``Message``."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(f"DecodeError at {path}: {message}" if path else f"DecodeError: {message}")
        self.decode_message = message
        self.path = path


class ValidationError(ProtorulesError):
    """Raised by ``Validator.check`` when a message has violations."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        lines = [f"{len(result)} violation(s):"]
        lines.extend(f"  {v}" for v in result)
        super().__init__("\n".join(lines))
