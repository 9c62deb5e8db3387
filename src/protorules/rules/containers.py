"""``repeated`` and ``map`` rule families.

Only the size and uniqueness checks live here.  The ``items``,
``keys`` and ``values`` sub-rule-sets are compiled by the validator
into per-element plans, because they apply whole rule sets (including
``cel`` and nested families) rather than single predicates.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from protorules.expr.functions import is_unique
from protorules.rules.base import Check, CompileContext, RuleFamily, require_bool, require_count
from protorules.schema.descriptors import TypeKind


def _count_checks(
    family: RuleFamily,
    params: Mapping[str, Any],
    ctx: CompileContext,
    kinds: tuple[str, str],
    noun: str,
) -> list[Check]:
    low_kind, high_kind = kinds
    checks: list[Check] = []
    low = high = None
    if low_kind in params:
        low = require_count(params[low_kind], family.rule_id(low_kind), ctx)
    if high_kind in params:
        high = require_count(params[high_kind], family.rule_id(high_kind), ctx)
    if low is not None and high is not None and low > high:
        raise ctx.error(
            f"{family.rule_id(low_kind)} ({low}) is greater than {family.rule_id(high_kind)} ({high})"
        )
    if low is not None:
        msg = f"value must contain at least {low} {noun}"
        checks.append(
            Check(family.rule_id(low_kind), lambda v, _ctx: None if len(v) >= low else msg)
        )
    if high is not None:
        msg = f"value must contain no more than {high} {noun}"
        checks.append(
            Check(family.rule_id(high_kind), lambda v, _ctx: None if len(v) <= high else msg)
        )
    return checks


class RepeatedRules(RuleFamily):
    """Rules for repeated fields.

    ``unique`` compares items by value and is only defined for scalar
    and enum items.
    """

    name = "repeated"
    rules = ("min_items", "max_items", "unique")
    nested = ("items",)

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks = _count_checks(self, params, ctx, ("min_items", "max_items"), "item(s)")
        if "unique" in params and require_bool(params["unique"], self.rule_id("unique"), ctx):
            if ctx.target.type.kind is TypeKind.MESSAGE:
                raise ctx.error(
                    "repeated.unique requires scalar or enum items, "
                    f"not {ctx.target.type.type_name}"
                )
            checks.append(
                Check(
                    self.rule_id("unique"),
                    lambda v, _ctx: None
                    if is_unique(v)
                    else "repeated value must contain unique items",
                )
            )
        return checks


class MapRules(RuleFamily):
    """Rules for map fields."""

    name = "map"
    rules = ("min_pairs", "max_pairs")
    nested = ("keys", "values")

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        return _count_checks(self, params, ctx, ("min_pairs", "max_pairs"), "pair(s)")
