"""Schema linter: quality findings that do not block compilation."""
from __future__ import annotations

from protorules.linter.diagnostics import Diagnostic, DiagnosticSeverity
from protorules.linter.linter import SchemaLinter, lint
from protorules.linter.rules import (
    ALL_LINT_RULES,
    LintRule,
    rule_cel_message,
    rule_inverted_bounds,
    rule_required_enum_form,
    rule_required_ignored,
    rule_unguarded_optional,
)

__all__ = [
    "ALL_LINT_RULES",
    "Diagnostic",
    "DiagnosticSeverity",
    "LintRule",
    "SchemaLinter",
    "lint",
    "rule_cel_message",
    "rule_inverted_bounds",
    "rule_required_enum_form",
    "rule_required_ignored",
    "rule_unguarded_optional",
]
