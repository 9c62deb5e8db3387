"""Protorules Linter: quality checks for constraint schemas.

The ``SchemaLinter`` runs a configurable set of lint rules against a
``Schema`` and returns ``Diagnostic`` objects.  Unlike the schema
compiler (which rejects rules that cannot work), the linter flags
rules that work but probably do not say what their author meant.

Usage
-----
::

    from protorules import load_schema
    from protorules.linter import SchemaLinter

    schema = load_schema(Path("user.yaml"))
    diagnostics = SchemaLinter().lint(schema)
"""
from __future__ import annotations

from protorules.linter.diagnostics import Diagnostic, DiagnosticSeverity
from protorules.linter.rules import ALL_LINT_RULES, LintRule
from protorules.schema.schema import Schema

_SEVERITY_ORDER = {
    DiagnosticSeverity.ERROR: 0,
    DiagnosticSeverity.WARNING: 1,
    DiagnosticSeverity.INFORMATION: 2,
    DiagnosticSeverity.HINT: 3,
}


class SchemaLinter:
    """Configurable schema linter.

    Parameters
    ----------
    rules:
        Lint rules to run.  Defaults to all built-in rules.
    include_hints:
        If ``False``, HINT-level diagnostics are suppressed.
    """

    def __init__(
        self,
        rules: list[LintRule] | None = None,
        include_hints: bool = True,
    ) -> None:
        self._rules: list[LintRule] = rules if rules is not None else list(ALL_LINT_RULES)
        self._include_hints = include_hints

    def lint(self, schema: Schema) -> list[Diagnostic]:
        """Run all lint rules against ``schema``.

        Parameters
        ----------
        schema:
            The ``Schema`` to lint.

        Returns
        -------
        list[Diagnostic]
            All lint findings, sorted by schema path then severity.
        """
        all_diagnostics: list[Diagnostic] = []
        for rule in self._rules:
            try:
                all_diagnostics.extend(rule(schema))
            except Exception as exc:  # noqa: BLE001
                all_diagnostics.append(
                    Diagnostic(
                        severity=DiagnosticSeverity.ERROR,
                        code="PRL999",
                        message=f"Internal linter error in rule {rule.__name__!r}: {exc}",
                        path=schema.package,
                        suggestion="Please report this as a bug",
                        rule=rule.__name__,
                    )
                )

        if not self._include_hints:
            all_diagnostics = [
                d for d in all_diagnostics if d.severity != DiagnosticSeverity.HINT
            ]

        all_diagnostics.sort(key=lambda d: (d.path, _SEVERITY_ORDER[d.severity], d.code))
        return all_diagnostics

    def add_rule(self, rule: LintRule) -> None:
        """Add a custom lint rule.

        Parameters
        ----------
        rule:
            A callable ``(Schema) -> list[Diagnostic]``.
        """
        self._rules.append(rule)

    @property
    def rule_count(self) -> int:
        """Return the number of rules currently registered."""
        return len(self._rules)


def lint(schema: Schema, include_hints: bool = True) -> list[Diagnostic]:
    """Convenience function: lint a ``Schema`` with all default rules."""
    return SchemaLinter(include_hints=include_hints).lint(schema)
