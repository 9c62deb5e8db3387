"""Diagnostic types for the protorules schema linter.

A ``Diagnostic`` is a quality finding attached to a location inside a
schema, such as ``"acme.User.status"``.  Unlike ``SchemaError`` it
never prevents compilation; it points at rules that compile but
probably do not mean what their author intended.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostics, aligned with LSP conventions."""

    ERROR = auto()
    WARNING = auto()
    INFORMATION = auto()
    HINT = auto()


@dataclass(frozen=True)
class Diagnostic:
    """A single lint finding.

    Parameters
    ----------
    severity:
        How serious this finding is.
    code:
        A short machine-readable identifier, e.g. ``"PRL001"``.
    message:
        Human-readable description of the problem.
    path:
        Dotted schema location of the offending rule.
    suggestion:
        Optional human-readable fix suggestion.
    rule:
        The lint rule name that produced this diagnostic.
    """

    severity: DiagnosticSeverity
    code: str
    message: str
    path: str
    suggestion: str | None = field(default=None)
    rule: str = field(default="")

    def __str__(self) -> str:
        prefix = f"[{self.code}] {self.severity.name}"
        suggestion_part = f" (hint: {self.suggestion})" if self.suggestion else ""
        return f"{prefix} at {self.path}: {self.message}{suggestion_part}"

    @property
    def is_error(self) -> bool:
        """Return True if this diagnostic should fail a lint run."""
        return self.severity == DiagnosticSeverity.ERROR
