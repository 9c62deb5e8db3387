"""``enum`` and ``bool`` rule families.

A "required" enum is expressed as ``not_in: [0]`` combined with
``defined_only: true``: the first rejects the unspecified zero value,
the second rejects numbers the enum does not declare.  Either rule on
its own lets one of those through.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from protorules.errors import SchemaError
from protorules.rules.base import (
    Check,
    CompileContext,
    RuleFamily,
    render_list,
    require_bool,
    require_list,
)
from protorules.schema.descriptors import EnumDescriptor


class EnumRules(RuleFamily):
    """Rules for enum-typed fields.

    ``const``, ``in`` and ``not_in`` accept enumerant numbers or names.
    """

    name = "enum"
    rules = ("const", "defined_only", "in", "not_in")

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        enum = self._enum(ctx)
        checks: list[Check] = []
        if "const" in params:
            expected = self._number(params["const"], enum, "const", ctx)
            msg = f"value must equal {expected}"
            checks.append(
                Check(self.rule_id("const"), lambda v, _ctx: None if v == expected else msg)
            )
        if "defined_only" in params and require_bool(
            params["defined_only"], self.rule_id("defined_only"), ctx
        ):
            defined = enum.numbers
            checks.append(
                Check(
                    self.rule_id("defined_only"),
                    lambda v, _ctx: None
                    if v in defined
                    else "value must be one of the defined enum values",
                )
            )
        for kind in ("in", "not_in"):
            if kind not in params:
                continue
            rule_id = self.rule_id(kind)
            numbers = frozenset(
                require_list(params[kind], rule_id, ctx, lambda p, k=kind: self._number(p, enum, k, ctx))
            )
            shown = render_list(sorted(numbers))
            if kind == "in":
                msg = f"value must be in list {shown}"
                checks.append(Check(rule_id, lambda v, _ctx, ns=numbers, m=msg: None if v in ns else m))
            else:
                msg = f"value must not be in list {shown}"
                checks.append(Check(rule_id, lambda v, _ctx, ns=numbers, m=msg: m if v in ns else None))
        return checks

    def _enum(self, ctx: CompileContext) -> EnumDescriptor:
        type_name = ctx.target.type.type_name
        try:
            return ctx.schema.enum(type_name)
        except SchemaError:
            raise ctx.error(f"unresolved enum type {type_name!r}") from None

    def _number(self, param: Any, enum: EnumDescriptor, kind: str, ctx: CompileContext) -> int:
        if isinstance(param, str):
            number = enum.number_of(param)
            if number is None:
                raise ctx.error(f"{self.rule_id(kind)}: {enum.full_name} has no value {param!r}")
            return number
        if isinstance(param, bool) or not isinstance(param, int):
            raise ctx.error(f"{self.rule_id(kind)} expects an enum number or name, got {param!r}")
        return param


class BoolRules(RuleFamily):
    """Rules for ``bool`` fields."""

    name = "bool"
    rules = ("const",)

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        if "const" not in params:
            return []
        expected = require_bool(params["const"], self.rule_id("const"), ctx)
        msg = f"value must equal {'true' if expected else 'false'}"
        return [Check(self.rule_id("const"), lambda v, _ctx: None if v is expected else msg)]
