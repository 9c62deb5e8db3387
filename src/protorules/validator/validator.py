"""Protorules Validator: evaluate compiled rules against message instances.

The ``Validator`` walks a populated ``Message`` depth-first, running the
checks its ``CompiledSchema`` holds for every field, collection element
and nested message, and returns every violation it finds as a
``ValidationResult``.  Violations are data; only schema problems and
undecodable input raise.

Usage
-----
::

    from protorules import Validator, load_schema

    schema = load_schema(Path("user.yaml"))
    validator = Validator(schema)
    result = validator.validate({"email": "x"}, "acme.User")
    for violation in result:
        print(violation)
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from protorules.errors import SchemaError, ValidationError
from protorules.expr.errors import EvaluationError
from protorules.rules.base import Check, EvalContext
from protorules.rules.registry import RuleRegistry
from protorules.schema.descriptors import Ignore
from protorules.schema.message import Message, decode_message
from protorules.schema.schema import Schema
from protorules.schema.wkt import Timestamp
from protorules.validator.compiler import (
    CompiledSchema,
    FieldPlan,
    MessagePlan,
    ValuePlan,
    compile_schema,
)
from protorules.validator.presence import FieldState, is_missing, is_zero_element, resolve_presence
from protorules.validator.violations import ValidationResult, Violation

logger = logging.getLogger(__name__)

NowFn = Callable[[], "Timestamp | datetime"]


class _FailFast(Exception):
    """Raised internally to unwind after the first violation."""


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _key_segment(key: Any) -> str:
    if isinstance(key, str):
        return f"[{json.dumps(key)}]"
    if isinstance(key, bool):
        return "[true]" if key else "[false]"
    return f"[{key}]"


def _render_names(names: tuple[str, ...]) -> str:
    return ", ".join(names)


class _Run:
    """State of one validation call."""

    def __init__(self, compiled: CompiledSchema, ctx: EvalContext, fail_fast: bool) -> None:
        self.compiled = compiled
        self.ctx = ctx
        self.fail_fast = fail_fast
        self.violations: list[Violation] = []

    def report(self, path: str, rule_id: str, message: str, for_key: bool = False) -> None:
        self.violations.append(Violation(path, rule_id, message, for_key))
        if self.fail_fast:
            raise _FailFast

    def run_checks(
        self, checks: tuple[Check, ...], value: Any, path: str, for_key: bool = False
    ) -> None:
        for check in checks:
            try:
                failure = check(value, self.ctx)
            except EvaluationError as exc:
                failure = f"evaluation error: {exc.detail}"
            if failure is not None:
                self.report(path, check.rule_id, failure, for_key)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def message(self, message: Message, path: str) -> None:
        plan = self.compiled.plan(message.descriptor.full_name)
        if plan.disabled:
            return
        for field_plan in plan.fields:
            self.field(field_plan, message, path)
        self.oneofs(plan, message, path)
        self.run_checks(plan.checks, message, path)

    def oneofs(self, plan: MessagePlan, message: Message, path: str) -> None:
        for name in plan.required_oneofs:
            if message.which_oneof(name) is None:
                self.report(_join(path, name), "required", "exactly one field is required in oneof")
        for rule in plan.message_oneofs:
            populated = [name for name in rule.fields if message.has(name)]
            if len(populated) > 1:
                self.report(
                    path, "message.oneof", f"only one of {_render_names(rule.fields)} can be set"
                )
            elif rule.required and not populated:
                self.report(
                    path, "message.oneof", f"one of {_render_names(rule.fields)} must be set"
                )

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def field(self, plan: FieldPlan, message: Message, prefix: str) -> None:
        fd = plan.field
        if plan.ignore is Ignore.ALWAYS:
            return
        path = _join(prefix, fd.name)
        state = resolve_presence(fd, message)
        if plan.ignore is Ignore.IF_ZERO_VALUE and self._skip_zero(plan, state):
            return
        if plan.required and is_missing(fd, state):
            self.report(path, "required", "value is required")
            return
        if state is FieldState.UNSET:
            return
        value = message.get(fd.name)
        self.run_checks(plan.checks, value, path)
        if plan.items is not None:
            if plan.items.is_trivial:
                return
            for index, item in enumerate(value):
                self.element(plan.items, fd.type, item, f"{path}[{index}]")
        elif plan.keys is not None and plan.values is not None:
            if plan.keys.is_trivial and plan.values.is_trivial:
                return
            key_type = fd.map_key_type
            for key, item in value.items():
                item_path = path + _key_segment(key)
                self.element(plan.keys, key_type, key, item_path, for_key=True)
                self.element(plan.values, fd.type, item, item_path)
        elif plan.message is not None and isinstance(value, Message):
            self.message(value, path)

    @staticmethod
    def _skip_zero(plan: FieldPlan, state: FieldState) -> bool:
        if state is FieldState.UNSET:
            return True
        return state is FieldState.SET_TO_DEFAULT and not plan.field.is_message

    def element(
        self, plan: ValuePlan, ftype: Any, value: Any, path: str, for_key: bool = False
    ) -> None:
        if plan.ignore is Ignore.ALWAYS:
            return
        if plan.ignore is Ignore.IF_ZERO_VALUE and is_zero_element(ftype, value):
            return
        self.run_checks(plan.checks, value, path, for_key)
        if plan.message is not None and isinstance(value, Message):
            self.message(value, path)


class Validator:
    """Constraint validator for messages of one schema.

    Parameters
    ----------
    schema:
        The schema whose rules to enforce.  It is compiled (or fetched
        from the compiled-schema cache) on construction, so schema
        problems surface here as ``SchemaErrorCollection``.
    fail_fast:
        When ``True``, stop at the first violation.
    now:
        Callable returning the evaluation time bound to ``now`` in
        expressions and used by ``gt_now``/``lt_now``/``within``.
        Defaults to the current UTC time.  Called once per validation.
    registry:
        Rule families to compile against.  Defaults to the built-in
        families plus installed entry-points.
    """

    def __init__(
        self,
        schema: Schema,
        *,
        fail_fast: bool = False,
        now: NowFn | None = None,
        registry: RuleRegistry | None = None,
    ) -> None:
        self._schema = schema
        self._compiled = compile_schema(schema, registry)
        self._fail_fast = fail_fast
        self._now: NowFn = now or Timestamp.now

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def fail_fast(self) -> bool:
        return self._fail_fast

    def _timestamp(self) -> Timestamp:
        now = self._now()
        if isinstance(now, datetime):
            return Timestamp.from_datetime(now)
        return now

    def _coerce(self, instance: Message | Mapping[str, Any], type_name: str | None) -> Message:
        if isinstance(instance, Message):
            expected = self._schema.message(type_name).full_name if type_name else None
            if expected is not None and expected != instance.descriptor.full_name:
                raise SchemaError(
                    f"message is a {instance.descriptor.full_name}, not {type_name}"
                )
            return instance
        if type_name is None:
            raise TypeError("type_name is required when validating a mapping")
        return decode_message(self._schema, type_name, instance)

    def validate(
        self, instance: Message | Mapping[str, Any], type_name: str | None = None
    ) -> ValidationResult:
        """Validate ``instance`` and return every violation found.

        Parameters
        ----------
        instance:
            A populated ``Message``, or a JSON-like mapping to decode
            as ``type_name``.
        type_name:
            Full or package-relative message type name.  Required for
            mappings; checked against the descriptor for messages.

        Returns
        -------
        ValidationResult
            Violations in traversal order.  Empty when valid.

        Raises
        ------
        DecodeError
            If a mapping does not decode as ``type_name``.
        """
        message = self._coerce(instance, type_name)
        run = _Run(self._compiled, EvalContext(self._timestamp()), self._fail_fast)
        try:
            run.message(message, "")
        except _FailFast:
            pass
        logger.debug(
            "Validated %s: %d violation(s)", message.descriptor.full_name, len(run.violations)
        )
        return ValidationResult(tuple(run.violations))

    def check(
        self, instance: Message | Mapping[str, Any], type_name: str | None = None
    ) -> None:
        """Validate ``instance`` and raise if it has any violation.

        Raises
        ------
        ValidationError
            Carrying the ``ValidationResult``.
        """
        result = self.validate(instance, type_name)
        if not result.valid:
            raise ValidationError(result)


def validate(
    schema: Schema,
    instance: Message | Mapping[str, Any],
    type_name: str | None = None,
    *,
    fail_fast: bool = False,
) -> ValidationResult:
    """Convenience function: validate ``instance`` against ``schema``.

    Parameters
    ----------
    schema:
        The schema to enforce.
    instance:
        A ``Message`` or a mapping to decode as ``type_name``.
    type_name:
        Message type for mappings.
    fail_fast:
        Stop at the first violation.

    Returns
    -------
    ValidationResult
    """
    return Validator(schema, fail_fast=fail_fast).validate(instance, type_name)
