"""Built-in lint rules for protorules schemas.

Each rule is a callable ``(Schema) -> list[Diagnostic]``.  Rules look
for constraints that compile cleanly but are probably mistakes.

Rule codes:
    PRL001  Required enum relies on defined_only without not_in [0]
    PRL002  required combined with ignore: ALWAYS
    PRL003  Lower length or count bound greater than the upper bound
    PRL004  Boolean cel rule without a message
    PRL005  Cross-field cel rule reads an explicit-presence field without has()
"""
from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from protorules.errors import SchemaError
from protorules.expr.checker import TypeEnv
from protorules.expr.errors import ExpressionError
from protorules.expr.nodes import unguarded_reads
from protorules.expr.parser import parse_expression
from protorules.expr.program import compile_expression
from protorules.expr.types import BOOL, CelType, from_field, from_field_type, message_type
from protorules.linter.diagnostics import Diagnostic, DiagnosticSeverity
from protorules.schema.descriptors import (
    CelRule,
    FieldDescriptor,
    FieldRules,
    Ignore,
    TypeKind,
)
from protorules.schema.schema import Schema

LintRule = Callable[[Schema], list[Diagnostic]]

_BOUND_PAIRS: tuple[tuple[str, str, str], ...] = (
    ("string", "min_len", "max_len"),
    ("string", "min_bytes", "max_bytes"),
    ("bytes", "min_len", "max_len"),
    ("repeated", "min_items", "max_items"),
    ("map", "min_pairs", "max_pairs"),
)


@dataclass(frozen=True)
class _RuleSite:
    """One rule set in the schema: a field's own, or a nested element's."""

    path: str
    field: FieldDescriptor
    rules: FieldRules
    this: CelType


def _sites(schema: Schema) -> Iterator[_RuleSite]:
    for md in schema.messages.values():
        for fd in md.fields:
            path = f"{md.full_name}.{fd.name}"
            yield _RuleSite(path, fd, fd.rules, from_field(fd, schema))
            nested: list[tuple[str, Any, Any]] = []
            if fd.is_repeated:
                nested.append(("items", fd.rules.type_rules.get("repeated", {}).get("items"), fd.type))
            elif fd.is_map:
                map_rules = fd.rules.type_rules.get("map", {})
                nested.append(("keys", map_rules.get("keys"), fd.key_type))
                nested.append(("values", map_rules.get("values"), fd.type))
            for name, rules, ftype in nested:
                if isinstance(rules, FieldRules):
                    yield _RuleSite(
                        f"{path}.{name}", fd, rules, from_field_type(ftype, schema)
                    )


def _diag(
    code: str,
    severity: DiagnosticSeverity,
    message: str,
    path: str,
    suggestion: str | None = None,
    rule: str = "",
) -> Diagnostic:
    return Diagnostic(
        severity=severity,
        code=code,
        message=message,
        path=path,
        suggestion=suggestion,
        rule=rule,
    )


# ---------------------------------------------------------------------------
# PRL001
# ---------------------------------------------------------------------------


def _rejects_zero(schema: Schema, fd: FieldDescriptor, not_in: Any) -> bool:
    if not isinstance(not_in, (list, tuple)):
        return False
    try:
        enum = schema.enum(fd.type.type_name or "")
    except SchemaError:
        enum = None
    for item in not_in:
        if isinstance(item, int) and not isinstance(item, bool) and item == 0:
            return True
        if isinstance(item, str) and enum is not None and enum.number_of(item) == 0:
            return True
    return False


def rule_required_enum_form(schema: Schema) -> list[Diagnostic]:
    """PRL001: A required enum needs ``not_in: [0]`` as well as ``defined_only``."""
    diagnostics: list[Diagnostic] = []
    for site in _sites(schema):
        if site.field.type.kind is not TypeKind.ENUM:
            continue
        params = site.rules.type_rules.get("enum", {})
        if not params.get("defined_only"):
            continue
        if not site.rules.required or _rejects_zero(schema, site.field, params.get("not_in")):
            continue
        diagnostics.append(
            _diag(
                "PRL001",
                DiagnosticSeverity.WARNING,
                "required enum relies on defined_only, which accepts the zero enumerant",
                site.path,
                suggestion="add 'not_in: [0]' next to 'defined_only: true'",
                rule="required_enum_form",
            )
        )
    return diagnostics


# ---------------------------------------------------------------------------
# PRL002
# ---------------------------------------------------------------------------


def rule_required_ignored(schema: Schema) -> list[Diagnostic]:
    """PRL002: ``required`` never fires on a field with ``ignore: ALWAYS``."""
    diagnostics: list[Diagnostic] = []
    for site in _sites(schema):
        if site.rules.required and site.rules.ignore is Ignore.ALWAYS:
            diagnostics.append(
                _diag(
                    "PRL002",
                    DiagnosticSeverity.WARNING,
                    "required has no effect because the field is always ignored",
                    site.path,
                    suggestion="remove 'required' or 'ignore: ALWAYS'",
                    rule="required_ignored",
                )
            )
    return diagnostics


# ---------------------------------------------------------------------------
# PRL003
# ---------------------------------------------------------------------------


def rule_inverted_bounds(schema: Schema) -> list[Diagnostic]:
    """PRL003: A lower length or count bound must not exceed its upper bound."""
    diagnostics: list[Diagnostic] = []
    for site in _sites(schema):
        for family, low_key, high_key in _BOUND_PAIRS:
            params = site.rules.type_rules.get(family, {})
            low, high = params.get(low_key), params.get(high_key)
            if not isinstance(low, int) or not isinstance(high, int):
                continue
            if low > high:
                diagnostics.append(
                    _diag(
                        "PRL003",
                        DiagnosticSeverity.ERROR,
                        f"{family}.{low_key} ({low}) is greater than {family}.{high_key} ({high}); "
                        "no value can satisfy both",
                        site.path,
                        suggestion=f"swap the values of {low_key} and {high_key}",
                        rule="inverted_bounds",
                    )
                )
    return diagnostics


# ---------------------------------------------------------------------------
# PRL004
# ---------------------------------------------------------------------------


def _cel_sites(schema: Schema) -> Iterator[tuple[str, CelRule, CelType]]:
    for md in schema.messages.values():
        for cel in md.rules.cel:
            yield md.full_name, cel, message_type(md)
    for site in _sites(schema):
        for cel in site.rules.cel:
            yield site.path, cel, site.this


def rule_cel_message(schema: Schema) -> list[Diagnostic]:
    """PRL004: Boolean cel rules should carry a message for their violations."""
    diagnostics: list[Diagnostic] = []
    for path, cel, this in _cel_sites(schema):
        if cel.message:
            continue
        try:
            program = compile_expression(cel.expression, TypeEnv.for_value(this, schema), rule=True)
        except ExpressionError:
            continue
        if program.result_type != BOOL:
            continue
        diagnostics.append(
            _diag(
                "PRL004",
                DiagnosticSeverity.HINT,
                f"cel rule {cel.id!r} has no message; violations will read "
                f"'value violates rule {cel.id}'",
                path,
                suggestion="add a 'message' describing the constraint",
                rule="cel_message",
            )
        )
    return diagnostics


# ---------------------------------------------------------------------------
# PRL005
# ---------------------------------------------------------------------------


def rule_unguarded_optional(schema: Schema) -> list[Diagnostic]:
    """PRL005: Message cel reading an explicit-presence field should test ``has()`` first.

    Optional scalars, message fields (well-known types included) and
    oneof members can be unset.  A message rule that reads one without
    a presence test is skipped while that field is unset, which is
    rarely what a cross-field rule means.
    """
    diagnostics: list[Diagnostic] = []
    for md in schema.messages.values():
        optional = md.explicit_presence_fields
        if not optional:
            continue
        for cel in md.rules.cel:
            try:
                ast = parse_expression(cel.expression)
            except ExpressionError:
                continue
            for name in unguarded_reads(ast, optional):
                diagnostics.append(
                    _diag(
                        "PRL005",
                        DiagnosticSeverity.WARNING,
                        f"cel rule {cel.id!r} reads field {name!r} without has(this.{name}); "
                        f"the rule is skipped while it is unset",
                        md.full_name,
                        suggestion=f"guard the read with '!has(this.{name}) || ...'",
                        rule="unguarded_optional",
                    )
                )
    return diagnostics


ALL_LINT_RULES: list[LintRule] = [
    rule_required_enum_form,
    rule_required_ignored,
    rule_inverted_bounds,
    rule_cel_message,
    rule_unguarded_optional,
]
