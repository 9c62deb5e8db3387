"""Checks backed by expressions: ``cel`` rules and predefined rule kinds.

Both kinds compile an expression once, against the static type of the
value it will see as ``this``, and wrap the resulting ``Program`` in a
``Check``.  A ``false`` result is a violation rendered with the rule's
message; a non-empty string result is itself the violation message.
"""
from __future__ import annotations

from collections.abc import Collection
from typing import TYPE_CHECKING, Any

from protorules.errors import SchemaError
from protorules.expr.checker import TypeEnv
from protorules.expr.errors import EvaluationError, ExpressionError
from protorules.expr.nodes import unguarded_reads
from protorules.expr.program import Program, compile_expression
from protorules.expr.types import (
    BOOL,
    BYTES,
    DOUBLE,
    DYN,
    INT,
    STRING,
    CelType,
    from_field,
    from_field_type,
    list_of,
    map_of,
)
from protorules.rules.base import Check, CompileContext, EvalContext
from protorules.schema.descriptors import Cardinality, CelRule

if TYPE_CHECKING:
    from protorules.schema.schema import PredefinedRule, Schema


def value_type(value: Any) -> CelType:
    """Static type of a literal rule parameter."""
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT
    if isinstance(value, float):
        return DOUBLE
    if isinstance(value, str):
        return STRING
    if isinstance(value, bytes):
        return BYTES
    if isinstance(value, (list, tuple)):
        return list_of(DYN)
    if isinstance(value, dict):
        return map_of(DYN, DYN)
    return DYN


def target_type(ctx: CompileContext) -> CelType:
    """Static type of ``this`` for rules attached to ``ctx.target``."""
    target = ctx.target
    if target.cardinality is Cardinality.SINGULAR:
        return from_field_type(target.type, ctx.schema)
    return from_field(target.field, ctx.schema)


def expression_check(
    rule_id: str, program: Program, message: str, extra: dict[str, Any] | None = None
) -> Check:
    """Wrap a compiled program as a ``Check``.

    ``extra`` holds additional bindings fixed at compile time, such as
    ``rule`` for predefined rules.
    """
    fixed = dict(extra or {})
    fallback = message or f"value violates rule {rule_id}"

    def evaluate(value: Any, ctx: EvalContext) -> str | None:
        result = program.evaluate({"this": value, "now": ctx.now, **fixed})
        if isinstance(result, bool):
            return None if result else fallback
        if isinstance(result, str):
            return result or None
        raise EvaluationError(
            f"expression must evaluate to bool or string, got {type(result).__name__}"
        )

    return Check(rule_id, evaluate)


def presence_guarded(check: Check, fields: frozenset[str]) -> Check:
    """Skip ``check`` for a message while any of ``fields`` is unset."""

    def evaluate(message: Any, ctx: EvalContext) -> str | None:
        if not all(message.is_assigned(name) for name in fields):
            return None
        return check(message, ctx)

    return Check(check.rule_id, evaluate)


def compile_cel_rule(
    rule: CelRule,
    this: CelType,
    schema: "Schema",
    path: str,
    skip_unset: Collection[str] = (),
) -> Check:
    """Compile a ``cel`` rule with ``this`` of the given static type.

    Field rules bind ``this`` to the field value; message rules bind it
    to the whole message, which is how cross-field rules see siblings.
    A message rule passes ``skip_unset``, the message's explicit-presence
    fields: the rule is skipped while any of them that it reads without
    a ``has()`` test is unset.

    Raises
    ------
    SchemaError
        If the expression does not parse or typecheck.
    """
    env = TypeEnv.for_value(this, schema)
    try:
        program = compile_expression(rule.expression, env, rule=True)
    except ExpressionError as exc:
        raise SchemaError(f"cel rule {rule.id!r}: {exc}", path=path) from None
    check = expression_check(rule.id, program, rule.message)
    unguarded = frozenset(unguarded_reads(program.ast, skip_unset))
    if not unguarded:
        return check
    return presence_guarded(check, unguarded)


def compile_predefined(rule: "PredefinedRule", param: Any, ctx: CompileContext) -> Check:
    """Compile a schema-declared rule kind used at one site with ``param``.

    The expression sees ``this`` (the field value) and ``rule`` (the
    parameter given at the use site).
    """
    env = TypeEnv.for_value(target_type(ctx), ctx.schema, rule=value_type(param))
    try:
        program = compile_expression(rule.expression, env, rule=True)
    except ExpressionError as exc:
        raise SchemaError(f"predefined rule {rule.rule_id!r}: {exc}", path=ctx.path) from None
    return expression_check(rule.rule_id, program, rule.message, {"rule": param})
