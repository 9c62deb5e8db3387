"""Schema compilation: rules and expressions bound once, reused per call.

``compile_schema`` walks every message of a ``Schema``, asks the rule
registry to compile each field's rule families, and type-checks every
expression.  All problems are collected into one
``SchemaErrorCollection``; a schema that compiles is guaranteed not to
raise schema errors during validation.

Compiled schemas are immutable and cached per (schema, registry) pair on
the schema itself, so a released schema takes its compiled forms with
it. The cache is the only shared mutable state; it is written under a
lock so concurrent first calls compile once.
"""
from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from protorules.errors import SchemaError, SchemaErrorCollection
from protorules.expr.types import message_type
from protorules.rules.base import Check, CompileContext, RuleTarget, family_for
from protorules.rules.expression import compile_cel_rule, target_type
from protorules.rules.registry import RuleFamilyNotFoundError, RuleRegistry, default_registry
from protorules.schema.descriptors import (
    FieldDescriptor,
    FieldRules,
    FieldType,
    Ignore,
    MessageDescriptor,
    MessageOneofRule,
    TypeKind,
)
from protorules.schema.schema import Schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValuePlan:
    """Checks for one list item, map key or map value.

    ``message`` names the message type to recurse into, if any.
    """

    checks: tuple[Check, ...] = ()
    ignore: Ignore = Ignore.UNSPECIFIED
    message: str | None = None

    @property
    def is_trivial(self) -> bool:
        return not self.checks and self.message is None


@dataclass(frozen=True)
class FieldPlan:
    """Everything the validator runs for one field."""

    field: FieldDescriptor
    required: bool
    ignore: Ignore
    checks: tuple[Check, ...]
    items: ValuePlan | None = None
    keys: ValuePlan | None = None
    values: ValuePlan | None = None
    message: str | None = None


@dataclass(frozen=True)
class MessagePlan:
    """Compiled rules for one message type, in evaluation order."""

    descriptor: MessageDescriptor
    disabled: bool
    fields: tuple[FieldPlan, ...]
    required_oneofs: tuple[str, ...]
    message_oneofs: tuple[MessageOneofRule, ...]
    checks: tuple[Check, ...]


@dataclass(frozen=True)
class CompiledSchema:
    """A schema with every rule bound and every expression checked.

    Safe for concurrent read-only use by any number of validations.
    """

    schema: Schema
    registry: RuleRegistry
    messages: Mapping[str, MessagePlan]

    def plan(self, full_name: str) -> MessagePlan:
        try:
            return self.messages[full_name]
        except KeyError:
            raise SchemaError(f"message type {full_name!r} is not part of this schema") from None


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


def _recurse_target(schema: Schema, ftype: FieldType) -> str | None:
    if ftype.kind is not TypeKind.MESSAGE or ftype.is_well_known:
        return None
    if not schema.has_message(ftype.type_name):
        return None
    return schema.message(ftype.type_name).full_name


class SchemaCompiler:
    """Compiles one schema against one registry.

    Parameters
    ----------
    schema:
        The schema to compile.
    registry:
        Rule families available to field rules.
    """

    def __init__(self, schema: Schema, registry: RuleRegistry) -> None:
        self._schema = schema
        self._registry = registry
        self._errors = SchemaErrorCollection()

    def compile(self) -> CompiledSchema:
        """Compile every message.

        Raises
        ------
        SchemaErrorCollection
            If any rule or expression in the schema is invalid.
        """
        for error in self._schema.verify():
            self._errors.add(error)
        plans = {name: self._message(md) for name, md in self._schema.messages.items()}
        if self._errors.has_errors:
            raise self._errors
        return CompiledSchema(self._schema, self._registry, MappingProxyType(plans))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _message(self, md: MessageDescriptor) -> MessagePlan:
        rules = md.rules
        if rules.disabled:
            return MessagePlan(md, True, (), (), (), ())
        fields = tuple(self._field(md, fd) for fd in md.fields)
        for oneof_rule in rules.oneofs:
            for name in oneof_rule.fields:
                if md.field(name) is None:
                    self._errors.add(
                        SchemaError(f"message oneof rule names unknown field {name!r}", md.full_name)
                    )
        checks: list[Check] = []
        for cel in rules.cel:
            try:
                checks.append(
                    compile_cel_rule(
                        cel,
                        message_type(md),
                        self._schema,
                        md.full_name,
                        skip_unset=md.explicit_presence_fields,
                    )
                )
            except SchemaError as exc:
                self._errors.add(exc)
        self._check_unique_ids(checks, md.full_name)
        return MessagePlan(
            descriptor=md,
            disabled=False,
            fields=fields,
            required_oneofs=tuple(o.name for o in md.oneofs if o.required),
            message_oneofs=rules.oneofs,
            checks=tuple(checks),
        )

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def _field(self, md: MessageDescriptor, fd: FieldDescriptor) -> FieldPlan:
        path = f"{md.full_name}.{fd.name}"
        rules = fd.rules
        checks = self._rule_set(rules, RuleTarget.of_field(fd), path)
        items = keys = values = None
        if fd.is_repeated:
            nested = rules.type_rules.get("repeated", {})
            items = self._element(fd, fd.type, nested.get("items"), f"{path}.items")
        elif fd.is_map:
            nested = rules.type_rules.get("map", {})
            keys = self._element(fd, fd.map_key_type, nested.get("keys"), f"{path}.keys")
            values = self._element(fd, fd.type, nested.get("values"), f"{path}.values")
        return FieldPlan(
            field=fd,
            required=rules.required,
            ignore=rules.ignore,
            checks=tuple(checks),
            items=items,
            keys=keys,
            values=values,
            message=_recurse_target(self._schema, fd.type) if fd.is_message else None,
        )

    def _element(
        self, fd: FieldDescriptor, ftype: FieldType, rules: FieldRules | None, path: str
    ) -> ValuePlan:
        message = _recurse_target(self._schema, ftype)
        if rules is None:
            return ValuePlan(message=message)
        if rules.required:
            self._errors.add(SchemaError("required is not allowed on collection elements", path))
        checks = self._rule_set(rules, RuleTarget.element(fd, ftype), path)
        return ValuePlan(checks=tuple(checks), ignore=rules.ignore, message=message)

    def _rule_set(self, rules: FieldRules, target: RuleTarget, path: str) -> list[Check]:
        ctx = CompileContext(self._schema, target, path)
        checks: list[Check] = []
        for family_name, params in rules.type_rules.items():
            try:
                family = self._registry.get(family_name)
            except RuleFamilyNotFoundError:
                self._errors.add(SchemaError(f"unknown rule family {family_name!r}", path))
                continue
            if not family.applies_to(target):
                expected = family_for(target.type, target.cardinality) or "no type rules"
                self._errors.add(
                    SchemaError(
                        f"{family_name} rules do not apply to a field of type "
                        f"{_describe(target)} (expected {expected})",
                        path,
                    )
                )
                continue
            try:
                checks.extend(family.compile_rules(params, ctx))
            except SchemaError as exc:
                self._errors.add(exc)
        for cel in rules.cel:
            try:
                checks.append(compile_cel_rule(cel, target_type(ctx), self._schema, path))
            except SchemaError as exc:
                self._errors.add(exc)
        self._check_unique_ids(checks, path)
        return checks

    def _check_unique_ids(self, checks: list[Check], path: str) -> None:
        seen: set[str] = set()
        for check in checks:
            if check.rule_id in seen:
                self._errors.add(SchemaError(f"duplicate rule id {check.rule_id!r}", path))
            seen.add(check.rule_id)


def _describe(target: RuleTarget) -> str:
    if target.cardinality is target.field.cardinality:
        return target.field.describe_type()
    return str(target.type)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

# Compiled forms live on ``Schema.compile_cache``; this map only tracks
# which live schemas hold any, so dropping a schema drops its entries.
_schemas: weakref.WeakValueDictionary[int, Schema] = weakref.WeakValueDictionary()
_cache_lock = threading.Lock()
_DEFAULT_REGISTRY_KEY = 0


def _cached(schema: Schema, key: int, registry: RuleRegistry | None) -> CompiledSchema | None:
    cached = schema.compile_cache.get(key)
    if cached is not None and (registry is None or cached.registry is registry):
        return cached
    return None


def compile_schema(schema: Schema, registry: RuleRegistry | None = None) -> CompiledSchema:
    """Return the compiled form of ``schema``, compiling it on first use.

    Parameters
    ----------
    schema:
        The schema to compile.
    registry:
        Rule families to compile against.  ``None`` uses the built-in
        families (plus installed entry-points).

    Raises
    ------
    SchemaErrorCollection
        If the schema has any invalid rule or expression.
    """
    key = id(registry) if registry is not None else _DEFAULT_REGISTRY_KEY
    cached = _cached(schema, key, registry)
    if cached is not None:
        logger.debug("Compiled schema cache hit for package %r", schema.package)
        return cached
    with _cache_lock:
        cached = _cached(schema, key, registry)
        if cached is not None:
            return cached
        compiled = SchemaCompiler(
            schema, registry if registry is not None else default_registry()
        ).compile()
        schema.compile_cache[key] = compiled
        _schemas[id(schema)] = schema
        logger.debug(
            "Compiled schema for package %r: %d message(s)", schema.package, len(compiled.messages)
        )
        return compiled


def cache_size() -> int:
    """Return the number of compiled schemas held by live schemas."""
    with _cache_lock:
        return sum(len(schema.compile_cache) for schema in _schemas.values())


def clear_cache() -> None:
    """Drop every cached compiled schema."""
    with _cache_lock:
        for schema in _schemas.values():
            schema.compile_cache.clear()
        _schemas.clear()
