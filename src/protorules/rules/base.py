"""Core abstractions shared by every rule family.

A *rule family* (``string``, ``int32``, ``repeated`` ...) owns a closed
set of rule kinds.  At schema-compile time a family turns the
parameters attached to one field (``{"min_len": 3, "email": True}``)
into a list of ``Check`` objects; at validation time each ``Check`` is
called with the field value and returns a rendered violation message
or ``None``.

Families are registered by name in a ``RuleRegistry``; see
``protorules.rules.registry``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from protorules.errors import SchemaError
from protorules.schema.descriptors import (
    Cardinality,
    FieldDescriptor,
    FieldRules,
    FieldType,
    TypeKind,
)
from protorules.schema.wkt import Timestamp

if TYPE_CHECKING:
    from protorules.schema.schema import PredefinedRule, Schema


@dataclass(frozen=True, slots=True)
class EvalContext:
    """Per-validation-call state visible to checks.

    Attributes
    ----------
    now:
        The evaluation timestamp bound to ``now``; fixed for the whole
        call so that every ``gt_now``/``lt_now`` check agrees.
    """

    now: Timestamp


CheckFn = Callable[[Any, EvalContext], "str | None"]


@dataclass(frozen=True, slots=True)
class Check:
    """One compiled predicate.

    ``evaluate`` returns ``None`` when the value passes and the
    rendered violation message when it does not.
    """

    rule_id: str
    evaluate: CheckFn

    def __call__(self, value: Any, ctx: EvalContext) -> str | None:
        return self.evaluate(value, ctx)


@dataclass(frozen=True, slots=True)
class RuleTarget:
    """What a rule set is attached to.

    For a field's own rules ``type`` and ``cardinality`` are the
    field's.  For ``repeated.items`` and ``map.keys``/``map.values``
    they describe a single element (cardinality ``SINGULAR``).
    """

    field: FieldDescriptor
    type: FieldType
    cardinality: Cardinality

    @classmethod
    def of_field(cls, fd: FieldDescriptor) -> "RuleTarget":
        return cls(fd, fd.type, fd.cardinality)

    @classmethod
    def element(cls, fd: FieldDescriptor, ftype: FieldType) -> "RuleTarget":
        return cls(fd, ftype, Cardinality.SINGULAR)


@dataclass
class CompileContext:
    """State handed to ``RuleFamily.compile``.

    Parameters
    ----------
    schema:
        The schema being compiled; used to resolve enum types and
        predefined rules.
    target:
        The field (or element) the rules apply to.
    path:
        Human-readable location used in ``SchemaError`` messages,
        e.g. ``"acme.User.email"`` or ``"acme.User.tags.items"``.
    """

    schema: "Schema"
    target: RuleTarget
    path: str

    def error(self, message: str) -> SchemaError:
        return SchemaError(message, path=self.path)

    def predefined(self, family: str, name: str) -> "PredefinedRule | None":
        for rule in self.schema.predefined:
            if rule.family == family and rule.name == name:
                return rule
        return None


def family_for(ftype: FieldType, cardinality: Cardinality) -> str | None:
    """Return the name of the built-in family that applies to a target.

    ``None`` means only generic rules (``required``, ``cel``) apply,
    e.g. for a plain message-typed field.
    """
    if cardinality is Cardinality.REPEATED:
        return "repeated"
    if cardinality is Cardinality.MAP:
        return "map"
    if ftype.scalar is not None:
        return ftype.scalar.value
    if ftype.kind is TypeKind.ENUM:
        return "enum"
    if ftype.is_timestamp:
        return "timestamp"
    if ftype.is_duration:
        return "duration"
    if ftype.is_any:
        return "any"
    if ftype.is_field_mask:
        return "field_mask"
    return None


class RuleFamily(ABC):
    """Base class for rule families.

    Subclasses declare ``name`` (the key used in schemas), ``rules``
    (the closed set of rule kinds, in evaluation order) and ``nested``
    (rule kinds whose parameter is a sub-rule-set handled by the
    validator compiler rather than the family itself).
    """

    name: ClassVar[str] = ""
    rules: ClassVar[tuple[str, ...]] = ()
    nested: ClassVar[tuple[str, ...]] = ()

    def applies_to(self, target: RuleTarget) -> bool:
        """Return True if this family's rules may be attached to ``target``."""
        return family_for(target.type, target.cardinality) == self.name

    def rule_id(self, kind: str) -> str:
        return f"{self.name}.{kind}"

    def compile_rules(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        """Compile all ``params`` for this family, built-in and predefined.

        Raises
        ------
        SchemaError
            On an unknown rule kind or a bad parameter.
        """
        from protorules.rules.expression import compile_predefined

        builtin: dict[str, Any] = {}
        extra: list[Check] = []
        for kind, param in params.items():
            if kind in self.nested:
                if not isinstance(param, FieldRules):
                    raise ctx.error(f"{self.rule_id(kind)} must be a rule set")
                continue
            if kind in self.rules:
                builtin[kind] = param
                continue
            predefined = ctx.predefined(self.name, kind)
            if predefined is None:
                raise ctx.error(f"unknown rule {self.rule_id(kind)!r}")
            extra.append(compile_predefined(predefined, param, ctx))
        return self.compile(builtin, ctx) + extra

    @abstractmethod
    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        """Turn built-in rule parameters into checks."""


# ---------------------------------------------------------------------------
# Parameter helpers shared by families
# ---------------------------------------------------------------------------


def require_bool(param: Any, rule_id: str, ctx: CompileContext) -> bool:
    if not isinstance(param, bool):
        raise ctx.error(f"{rule_id} expects a bool, got {param!r}")
    return param


def require_count(param: Any, rule_id: str, ctx: CompileContext) -> int:
    if isinstance(param, bool) or not isinstance(param, int) or param < 0:
        raise ctx.error(f"{rule_id} expects a non-negative integer, got {param!r}")
    return param


def require_str(param: Any, rule_id: str, ctx: CompileContext) -> str:
    if not isinstance(param, str):
        raise ctx.error(f"{rule_id} expects a string, got {param!r}")
    return param


def require_list(
    param: Any, rule_id: str, ctx: CompileContext, item: Callable[[Any], Any]
) -> tuple[Any, ...]:
    """Coerce a list parameter, applying ``item`` to every element."""
    if not isinstance(param, (list, tuple)):
        raise ctx.error(f"{rule_id} expects a list, got {param!r}")
    return tuple(item(p) for p in param)


def render_list(values: Iterable[Any]) -> str:
    return "[" + ", ".join(str(v) for v in values) + "]"
