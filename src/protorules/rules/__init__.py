"""Constraint rule families and their registry."""
from __future__ import annotations

from protorules.rules.base import (
    Check,
    CompileContext,
    EvalContext,
    RuleFamily,
    RuleTarget,
    family_for,
)
from protorules.rules.containers import MapRules, RepeatedRules
from protorules.rules.enums import BoolRules, EnumRules
from protorules.rules.expression import compile_cel_rule, compile_predefined, expression_check
from protorules.rules.numeric import NUMERIC_FAMILIES, NumericRules, OrderedFamily
from protorules.rules.registry import (
    ENTRYPOINT_GROUP,
    RuleFamilyAlreadyRegisteredError,
    RuleFamilyNotFoundError,
    RuleRegistry,
    default_registry,
)
from protorules.rules.strings import BytesRules, StringRules
from protorules.rules.wellknown import AnyRules, DurationRules, FieldMaskRules, TimestampRules

__all__ = [
    "AnyRules",
    "BoolRules",
    "BytesRules",
    "Check",
    "CompileContext",
    "DurationRules",
    "ENTRYPOINT_GROUP",
    "EnumRules",
    "EvalContext",
    "FieldMaskRules",
    "MapRules",
    "NUMERIC_FAMILIES",
    "NumericRules",
    "OrderedFamily",
    "RepeatedRules",
    "RuleFamily",
    "RuleFamilyAlreadyRegisteredError",
    "RuleFamilyNotFoundError",
    "RuleRegistry",
    "RuleTarget",
    "StringRules",
    "TimestampRules",
    "compile_cel_rule",
    "compile_predefined",
    "default_registry",
    "expression_check",
    "family_for",
]
