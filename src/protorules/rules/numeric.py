"""Numeric rule families and the shared ordered-value rule shape.

All twelve numeric kinds (``int32`` ... ``double``) share one rule
shape: ``const``, the bounds ``gt``/``gte``/``lt``/``lte``, and the
value sets ``in``/``not_in``; ``float`` and ``double`` add ``finite``.
``duration`` and ``timestamp`` reuse the same shape through
``OrderedFamily``.

A lower and an upper bound on the same field compile into a single
range check.  When the upper bound lies below the lower one the range
is *exclusive*: the value must fall outside ``[upper, lower]``, and the
rule id gets an ``_exclusive`` suffix, e.g. ``int32.gt_lt_exclusive``.
"""
from __future__ import annotations

import math
import operator
from abc import abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from protorules.rules.base import (
    Check,
    CompileContext,
    RuleFamily,
    render_list,
    require_bool,
    require_list,
)
from protorules.schema.descriptors import ScalarKind

_COMPARATORS: dict[str, tuple[Callable[[Any, Any], bool], str]] = {
    "gt": (operator.gt, "greater than"),
    "gte": (operator.ge, "greater than or equal to"),
    "lt": (operator.lt, "less than"),
    "lte": (operator.le, "less than or equal to"),
}


class OrderedFamily(RuleFamily):
    """Rule shape for totally ordered values.

    Subclasses implement ``coerce`` to validate and convert a schema
    parameter into a value comparable with field values, and may
    override ``render`` for messages and ``compile_extra`` for
    additional kinds.
    """

    rules: ClassVar[tuple[str, ...]] = ("const", "gt", "gte", "lt", "lte", "in", "not_in")

    @abstractmethod
    def coerce(self, param: Any, rule_id: str, ctx: CompileContext) -> Any:
        """Convert a rule parameter, raising ``SchemaError`` if unusable."""

    def render(self, value: Any) -> str:
        return str(value)

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        if "const" in params:
            expected = self.coerce(params["const"], self.rule_id("const"), ctx)
            msg = f"value must equal {self.render(expected)}"
            checks.append(
                Check(self.rule_id("const"), lambda v, _ctx: None if v == expected else msg)
            )
        bound = self._bounds(params, ctx)
        if bound is not None:
            checks.append(bound)
        for kind in ("in", "not_in"):
            if kind not in params:
                continue
            rule_id = self.rule_id(kind)
            values = require_list(params[kind], rule_id, ctx, lambda p: self.coerce(p, rule_id, ctx))
            shown = render_list(self.render(v) for v in values)
            if kind == "in":
                msg = f"value must be in list {shown}"
                checks.append(Check(rule_id, lambda v, _ctx, vs=values, m=msg: None if v in vs else m))
            else:
                msg = f"value must not be in list {shown}"
                checks.append(Check(rule_id, lambda v, _ctx, vs=values, m=msg: m if v in vs else None))
        checks.extend(self.compile_extra(params, ctx))
        return checks

    def compile_extra(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        return []

    def _pick(self, params: Mapping[str, Any], kinds: tuple[str, str], ctx: CompileContext) -> str | None:
        present = [k for k in kinds if k in params]
        if len(present) > 1:
            raise ctx.error(
                f"{self.rule_id(kinds[0])} and {self.rule_id(kinds[1])} are mutually exclusive"
            )
        return present[0] if present else None

    def _bound(self, params: Mapping[str, Any], kind: str, ctx: CompileContext) -> Check:
        bound = self.coerce(params[kind], self.rule_id(kind), ctx)
        compare, words = _COMPARATORS[kind]
        msg = f"value must be {words} {self.render(bound)}"
        return Check(self.rule_id(kind), lambda v, _ctx: None if compare(v, bound) else msg)

    def _bounds(self, params: Mapping[str, Any], ctx: CompileContext) -> Check | None:
        lower_kind = self._pick(params, ("gt", "gte"), ctx)
        upper_kind = self._pick(params, ("lt", "lte"), ctx)
        if lower_kind is None:
            return None if upper_kind is None else self._bound(params, upper_kind, ctx)
        if upper_kind is None:
            return self._bound(params, lower_kind, ctx)

        lower = self.coerce(params[lower_kind], self.rule_id(lower_kind), ctx)
        upper = self.coerce(params[upper_kind], self.rule_id(upper_kind), ctx)
        lower_ok, lower_words = _COMPARATORS[lower_kind]
        upper_ok, upper_words = _COMPARATORS[upper_kind]
        inclusive = lower_kind == "gte" and upper_kind == "lte"
        exclusive = upper < lower or (upper == lower and not inclusive)
        rule_id = self.rule_id(f"{lower_kind}_{upper_kind}" + ("_exclusive" if exclusive else ""))
        joiner = "or" if exclusive else "and"
        msg = (
            f"value must be {lower_words} {self.render(lower)} "
            f"{joiner} {upper_words} {self.render(upper)}"
        )
        if exclusive:
            return Check(
                rule_id,
                lambda v, _ctx: None if lower_ok(v, lower) or upper_ok(v, upper) else msg,
            )
        return Check(
            rule_id, lambda v, _ctx: None if lower_ok(v, lower) and upper_ok(v, upper) else msg
        )


class NumericRules(OrderedFamily):
    """Rules for one numeric scalar kind; see ``NUMERIC_FAMILIES``."""

    kind: ClassVar[ScalarKind]

    def coerce(self, param: Any, rule_id: str, ctx: CompileContext) -> Any:
        if isinstance(param, bool) or not isinstance(param, (int, float)):
            raise ctx.error(f"{rule_id} expects a number, got {param!r}")
        if self.kind.is_float:
            return float(param)
        if not isinstance(param, int):
            raise ctx.error(f"{rule_id} expects an integer, got {param!r}")
        low, high = self.kind.int_range
        if not low <= param <= high:
            raise ctx.error(f"{rule_id} value {param} is out of range for {self.kind.value}")
        return param

    def render(self, value: Any) -> str:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def compile_extra(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        if "finite" in params and require_bool(params["finite"], self.rule_id("finite"), ctx):
            return [
                Check(
                    self.rule_id("finite"),
                    lambda v, _ctx: "value must be finite"
                    if math.isnan(v) or math.isinf(v)
                    else None,
                )
            ]
        return []


def _numeric_family(kind: ScalarKind) -> type[NumericRules]:
    rules = NumericRules.rules + (("finite",) if kind.is_float else ())
    return type(
        f"{kind.value.capitalize()}Rules",
        (NumericRules,),
        {"name": kind.value, "kind": kind, "rules": rules, "__doc__": f"Rules for ``{kind.value}`` fields."},
    )


NUMERIC_FAMILIES: tuple[type[NumericRules], ...] = tuple(
    _numeric_family(kind) for kind in ScalarKind if kind.is_numeric
)

