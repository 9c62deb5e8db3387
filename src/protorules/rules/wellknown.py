"""Rule families for the well-known types Timestamp, Duration, Any and FieldMask."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

from protorules.rules.base import (
    Check,
    CompileContext,
    RuleFamily,
    render_list,
    require_bool,
    require_list,
    require_str,
)
from protorules.rules.numeric import OrderedFamily
from protorules.schema.wkt import AnyValue, Duration, FieldMask, Timestamp


def coerce_duration(param: Any, rule_id: str, ctx: CompileContext) -> Duration:
    """Accept ``Duration``, ``timedelta``, ``"1.5s"``-style text or ``{seconds, nanos}``."""
    if isinstance(param, Duration):
        return param
    if isinstance(param, timedelta):
        return Duration.from_timedelta(param)
    if isinstance(param, Mapping):
        return Duration(seconds=int(param.get("seconds", 0)), nanos=int(param.get("nanos", 0)))
    if isinstance(param, str):
        try:
            return Duration.parse(param)
        except ValueError as exc:
            raise ctx.error(f"{rule_id}: {exc}") from None
    raise ctx.error(f"{rule_id} expects a duration, got {param!r}")


def coerce_timestamp(param: Any, rule_id: str, ctx: CompileContext) -> Timestamp:
    """Accept ``Timestamp``, ``datetime``, RFC 3339 text, or ``{seconds, nanos}``."""
    if isinstance(param, Timestamp):
        return param
    if isinstance(param, datetime):
        return Timestamp.from_datetime(param)
    if isinstance(param, date):
        return Timestamp.from_datetime(datetime(param.year, param.month, param.day))
    if isinstance(param, Mapping):
        return Timestamp(seconds=int(param.get("seconds", 0)), nanos=int(param.get("nanos", 0)))
    if isinstance(param, str):
        try:
            return Timestamp.parse(param)
        except ValueError as exc:
            raise ctx.error(f"{rule_id}: {exc}") from None
    raise ctx.error(f"{rule_id} expects a timestamp, got {param!r}")


class DurationRules(OrderedFamily):
    """Rules for ``google.protobuf.Duration`` fields."""

    name = "duration"

    def coerce(self, param: Any, rule_id: str, ctx: CompileContext) -> Any:
        return coerce_duration(param, rule_id, ctx)


class TimestampRules(OrderedFamily):
    """Rules for ``google.protobuf.Timestamp`` fields.

    ``gt_now``, ``lt_now`` and ``within`` compare against the
    evaluation time of the validation call, not the wall clock at
    compile time.
    """

    name = "timestamp"
    rules = ("const", "gt", "gte", "lt", "lte", "gt_now", "lt_now", "within")

    def coerce(self, param: Any, rule_id: str, ctx: CompileContext) -> Any:
        return coerce_timestamp(param, rule_id, ctx)

    def compile_extra(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        if "gt_now" in params and "lt_now" in params:
            raise ctx.error("timestamp.gt_now and timestamp.lt_now are mutually exclusive")
        if "gt_now" in params and require_bool(params["gt_now"], self.rule_id("gt_now"), ctx):
            checks.append(
                Check(
                    self.rule_id("gt_now"),
                    lambda v, ctx_: None if v > ctx_.now else "value must be greater than now",
                )
            )
        if "lt_now" in params and require_bool(params["lt_now"], self.rule_id("lt_now"), ctx):
            checks.append(
                Check(
                    self.rule_id("lt_now"),
                    lambda v, ctx_: None if v < ctx_.now else "value must be less than now",
                )
            )
        if "within" in params:
            window = coerce_duration(params["within"], self.rule_id("within"), ctx)
            if window.total_nanos <= 0:
                raise ctx.error("timestamp.within must be a positive duration")
            msg = f"value must be within {window} of now"
            checks.append(
                Check(
                    self.rule_id("within"),
                    lambda v, ctx_: None
                    if abs(v.total_nanos - ctx_.now.total_nanos) <= window.total_nanos
                    else msg,
                )
            )
        return checks


class AnyRules(RuleFamily):
    """Rules for ``google.protobuf.Any``: allow and block lists of type URLs."""

    name = "any"
    rules = ("in", "not_in")

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        if "in" in params:
            allowed = frozenset(self._urls(params["in"], "in", ctx))
            checks.append(
                Check(
                    self.rule_id("in"),
                    lambda v, _ctx: None
                    if _type_url(v) in allowed
                    else "type URL must be in the allow list",
                )
            )
        if "not_in" in params:
            blocked = frozenset(self._urls(params["not_in"], "not_in", ctx))
            checks.append(
                Check(
                    self.rule_id("not_in"),
                    lambda v, _ctx: "type URL must not be in the block list"
                    if _type_url(v) in blocked
                    else None,
                )
            )
        return checks

    def _urls(self, param: Any, kind: str, ctx: CompileContext) -> tuple[str, ...]:
        rule_id = self.rule_id(kind)
        return require_list(param, rule_id, ctx, lambda p: require_str(p, rule_id, ctx))


def _type_url(value: Any) -> str:
    return value.type_url if isinstance(value, AnyValue) else ""


class FieldMaskRules(RuleFamily):
    """Rules for ``google.protobuf.FieldMask``.

    ``in`` allows a path or any sub-path of it (``a`` admits ``a.b``);
    ``not_in`` rejects the path and its sub-paths.
    """

    name = "field_mask"
    rules = ("const", "in", "not_in")

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        if "const" in params:
            expected = self._paths(params["const"], "const", ctx)
            msg = f"value must equal paths {render_list(expected)}"
            checks.append(
                Check(self.rule_id("const"), lambda v, _ctx: None if _paths_of(v) == expected else msg)
            )
        if "in" in params:
            allowed = self._paths(params["in"], "in", ctx)
            msg = f"value must only contain paths in {render_list(allowed)}"
            checks.append(
                Check(
                    self.rule_id("in"),
                    lambda v, _ctx: None
                    if all(_covered(p, allowed) for p in _paths_of(v))
                    else msg,
                )
            )
        if "not_in" in params:
            blocked = self._paths(params["not_in"], "not_in", ctx)
            msg = f"value must not contain any paths in {render_list(blocked)}"
            checks.append(
                Check(
                    self.rule_id("not_in"),
                    lambda v, _ctx: msg if any(_covered(p, blocked) for p in _paths_of(v)) else None,
                )
            )
        return checks

    def _paths(self, param: Any, kind: str, ctx: CompileContext) -> tuple[str, ...]:
        rule_id = self.rule_id(kind)
        return require_list(param, rule_id, ctx, lambda p: require_str(p, rule_id, ctx))


def _paths_of(value: Any) -> tuple[str, ...]:
    return tuple(value.paths) if isinstance(value, FieldMask) else ()


def _covered(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == p or path.startswith(p + ".") for p in prefixes)
