"""protorules: declarative constraint validation for protobuf-style messages.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
::

    import protorules

    schema = protorules.load_schema('''
        package: acme.v1
        messages:
          User:
            fields:
              email: {type: string, rules: {required: true, string: {email: true}}}
              age: {type: uint32, optional: true, rules: {uint32: {lte: 150}}}
    ''')

    # Validate a decoded document
    result = protorules.validate(schema, {"email": "nope", "age": 200}, "User")
    result.rule_ids()
    ['string.email', 'uint32.lte']

    # Raise instead of returning violations
    protorules.Validator(schema).check({"email": "a@example.com"}, "User")

    # Lint the schema for suspicious rules
    findings = protorules.lint(schema)

    # Evaluate a one-off rule expression
    protorules.evaluate("size(this) > 2", this="abc")
    True

    protorules.__version__
    '0.1.0'
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from protorules.errors import (
    DecodeError,
    ProtorulesError,
    SchemaError,
    SchemaErrorCollection,
    ValidationError,
)
from protorules.schema import Message, Schema, decode_message, load_schema
from protorules.validator import ValidationResult, Validator, Violation, compile_schema

__version__: str = "0.1.0"

if TYPE_CHECKING:
    from collections.abc import Mapping

    from protorules.linter.diagnostics import Diagnostic


def validate(
    schema: Schema,
    instance: "Message | Mapping[str, Any]",
    type_name: str | None = None,
    *,
    fail_fast: bool = False,
) -> ValidationResult:
    """Validate a message (or a mapping decoded as ``type_name``).

    Parameters
    ----------
    schema:
        The schema whose rules to enforce.
    instance:
        A populated ``Message`` or a JSON-like mapping.
    type_name:
        Message type name, required when ``instance`` is a mapping.
    fail_fast:
        Stop at the first violation.

    Returns
    -------
    ValidationResult
        Every violation found, in traversal order.

    Raises
    ------
    SchemaErrorCollection
        If the schema's rules do not compile.
    DecodeError
        If a mapping does not decode as ``type_name``.
    """
    from protorules.validator.validator import validate as _validate

    return _validate(schema, instance, type_name, fail_fast=fail_fast)


def lint(schema: Schema, include_hints: bool = True) -> list["Diagnostic"]:
    """Lint a ``Schema`` for rules that are probably mistakes.

    Parameters
    ----------
    schema:
        The schema to lint.
    include_hints:
        If ``False``, HINT-level findings are suppressed.

    Returns
    -------
    list[Diagnostic]
        All lint findings, sorted by schema path.
    """
    from protorules.linter.linter import lint as _lint

    return _lint(schema, include_hints=include_hints)


def evaluate(expression: str, this: Any = None, **variables: Any) -> Any:
    """Evaluate a one-off rule expression with dynamically typed inputs.

    Raises
    ------
    protorules.expr.ExpressionError
        On syntax, type or evaluation errors.
    """
    from protorules.expr.program import evaluate_expression

    return evaluate_expression(expression, this, **variables)


__all__ = [
    "__version__",
    "DecodeError",
    "Message",
    "ProtorulesError",
    "Schema",
    "SchemaError",
    "SchemaErrorCollection",
    "ValidationError",
    "ValidationResult",
    "Validator",
    "Violation",
    "compile_schema",
    "decode_message",
    "evaluate",
    "lint",
    "load_schema",
    "validate",
]
