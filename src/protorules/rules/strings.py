"""``string`` and ``bytes`` rule families."""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from protorules.expr import formats
from protorules.rules.base import (
    Check,
    CompileContext,
    EvalContext,
    RuleFamily,
    render_list,
    require_bool,
    require_count,
    require_list,
    require_str,
)

# Format rule kind -> (predicate, message, has an ``_empty`` variant).
_STRING_FORMATS: dict[str, tuple[Callable[[str], bool], str, bool]] = {
    "email": (formats.is_email, "value must be a valid email address", True),
    "hostname": (formats.is_hostname, "value must be a valid hostname", True),
    "ip": (formats.is_ip, "value must be a valid IP address", True),
    "ipv4": (lambda v: formats.is_ip(v, 4), "value must be a valid IPv4 address", True),
    "ipv6": (lambda v: formats.is_ip(v, 6), "value must be a valid IPv6 address", True),
    "ip_with_prefixlen": (
        formats.is_ip_prefix,
        "value must be a valid IP address with prefix length",
        True,
    ),
    "ipv4_with_prefixlen": (
        lambda v: formats.is_ip_prefix(v, 4),
        "value must be a valid IPv4 address with prefix length",
        True,
    ),
    "ipv6_with_prefixlen": (
        lambda v: formats.is_ip_prefix(v, 6),
        "value must be a valid IPv6 address with prefix length",
        True,
    ),
    "ip_prefix": (
        lambda v: formats.is_ip_prefix(v, 0, True),
        "value must be a valid IP prefix",
        True,
    ),
    "ipv4_prefix": (
        lambda v: formats.is_ip_prefix(v, 4, True),
        "value must be a valid IPv4 prefix",
        True,
    ),
    "ipv6_prefix": (
        lambda v: formats.is_ip_prefix(v, 6, True),
        "value must be a valid IPv6 prefix",
        True,
    ),
    "uri": (formats.is_uri, "value must be a valid URI", True),
    "uri_ref": (formats.is_uri_ref, "value must be a valid URI Reference", False),
    "uuid": (formats.is_uuid, "value must be a valid UUID", True),
    "tuuid": (formats.is_tuuid, "value must be a valid trimmed UUID", True),
    "address": (formats.is_address, "value must be a valid hostname, or ip address", True),
    "host_and_port": (
        formats.is_host_and_port,
        "value must be a valid host (hostname or IP address) and port pair",
        True,
    ),
}

_BYTE_LENGTH_KINDS = {"len_bytes": "len", "min_bytes": "min_len", "max_bytes": "max_len"}


def compile_pattern(pattern: str, rule_id: str, ctx: CompileContext) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ctx.error(f"{rule_id} has an invalid regular expression {pattern!r}: {exc}") from None


def _format_checks(
    rule_id: str, predicate: Callable[[str], bool], message: str, empty: bool
) -> list[Check]:
    checks = []
    if empty:
        empty_message = "value is empty, which is not a valid " + message.split("valid ", 1)[1]
        checks.append(
            Check(f"{rule_id}_empty", lambda v, _ctx: empty_message if v == "" else None)
        )
    checks.append(
        Check(
            rule_id,
            lambda v, _ctx: message if (v != "" or not empty) and not predicate(v) else None,
        )
    )
    return checks


class StringRules(RuleFamily):
    """Rules for ``string`` fields.

    Lengths are counted in Unicode code points (``len``, ``min_len``,
    ``max_len``) or UTF-8 bytes (``len_bytes``, ``min_bytes``,
    ``max_bytes``).  ``pattern`` is an unanchored search.
    """

    name = "string"
    rules = (
        "const",
        "len",
        "min_len",
        "max_len",
        "len_bytes",
        "min_bytes",
        "max_bytes",
        "pattern",
        "prefix",
        "suffix",
        "contains",
        "not_contains",
        "in",
        "not_in",
        *_STRING_FORMATS,
    )

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        for kind in self.rules:
            if kind not in params:
                continue
            rule_id = self.rule_id(kind)
            param = params[kind]
            if kind in _STRING_FORMATS:
                if require_bool(param, rule_id, ctx):
                    checks.extend(_format_checks(rule_id, *_STRING_FORMATS[kind]))
                continue
            checks.append(Check(rule_id, self._build(kind, rule_id, param, ctx)))
        return checks

    def _build(
        self, kind: str, rule_id: str, param: Any, ctx: CompileContext
    ) -> Callable[[Any, EvalContext], str | None]:
        if kind in ("len", "min_len", "max_len"):
            n = require_count(param, rule_id, ctx)
            return _length_check(kind, n, len, "characters")
        if kind in ("len_bytes", "min_bytes", "max_bytes"):
            n = require_count(param, rule_id, ctx)
            return _length_check(
                _BYTE_LENGTH_KINDS[kind], n, lambda v: len(v.encode("utf-8")), "bytes"
            )
        if kind == "pattern":
            regex = compile_pattern(require_str(param, rule_id, ctx), rule_id, ctx)
            msg = f"value does not match regex pattern `{regex.pattern}`"
            return lambda v, _ctx: None if regex.search(v) else msg
        if kind in ("in", "not_in"):
            allowed = frozenset(require_list(param, rule_id, ctx, lambda p: require_str(p, rule_id, ctx)))
            return _membership_check(kind, allowed, render_list(param))
        text = require_str(param, rule_id, ctx)
        if kind == "const":
            msg = f"value must equal `{text}`"
            return lambda v, _ctx: None if v == text else msg
        if kind == "prefix":
            msg = f"value does not have prefix `{text}`"
            return lambda v, _ctx: None if v.startswith(text) else msg
        if kind == "suffix":
            msg = f"value does not have suffix `{text}`"
            return lambda v, _ctx: None if v.endswith(text) else msg
        if kind == "contains":
            msg = f"value does not contain substring `{text}`"
            return lambda v, _ctx: None if text in v else msg
        msg = f"value contains substring `{text}`"
        return lambda v, _ctx: msg if text in v else None


# ---------------------------------------------------------------------------
# bytes
# ---------------------------------------------------------------------------


def _to_bytes(param: Any, rule_id: str, ctx: CompileContext) -> bytes:
    if isinstance(param, bytes):
        return param
    if isinstance(param, str):
        return param.encode("utf-8")
    raise ctx.error(f"{rule_id} expects bytes or a string, got {param!r}")


_BYTES_IP: dict[str, tuple[tuple[int, ...], str]] = {
    "ip": ((4, 16), "value must be a valid IP address"),
    "ipv4": ((4,), "value must be a valid IPv4 address"),
    "ipv6": ((16,), "value must be a valid IPv6 address"),
}


class BytesRules(RuleFamily):
    """Rules for ``bytes`` fields; lengths are in bytes."""

    name = "bytes"
    rules = (
        "const",
        "len",
        "min_len",
        "max_len",
        "pattern",
        "prefix",
        "suffix",
        "contains",
        "in",
        "not_in",
        "ip",
        "ipv4",
        "ipv6",
    )

    def compile(self, params: Mapping[str, Any], ctx: CompileContext) -> list[Check]:
        checks: list[Check] = []
        for kind in self.rules:
            if kind not in params:
                continue
            rule_id = self.rule_id(kind)
            param = params[kind]
            if kind in _BYTES_IP:
                if require_bool(param, rule_id, ctx):
                    sizes, msg = _BYTES_IP[kind]
                    empty_msg = "value is empty, which is not a valid " + msg.split("valid ", 1)[1]
                    checks.append(
                        Check(f"{rule_id}_empty", lambda v, _ctx, m=empty_msg: m if not v else None)
                    )
                    checks.append(
                        Check(
                            rule_id,
                            lambda v, _ctx, s=sizes, m=msg: m if v and len(v) not in s else None,
                        )
                    )
                continue
            checks.append(Check(rule_id, self._build(kind, rule_id, param, ctx)))
        return checks

    def _build(
        self, kind: str, rule_id: str, param: Any, ctx: CompileContext
    ) -> Callable[[Any, EvalContext], str | None]:
        if kind in ("len", "min_len", "max_len"):
            return _length_check(kind, require_count(param, rule_id, ctx), len, "bytes")
        if kind == "pattern":
            regex = compile_pattern(require_str(param, rule_id, ctx), rule_id, ctx)
            msg = f"value must match regex pattern `{regex.pattern}`"

            def pattern(value: bytes, _ctx: EvalContext) -> str | None:
                try:
                    text = value.decode("utf-8")
                except UnicodeDecodeError:
                    return "value must be valid UTF-8 to apply regexp"
                return None if regex.search(text) else msg

            return pattern
        if kind in ("in", "not_in"):
            allowed = frozenset(require_list(param, rule_id, ctx, lambda p: _to_bytes(p, rule_id, ctx)))
            return _membership_check(kind, allowed, render_list(p.hex() for p in sorted(allowed)))
        data = _to_bytes(param, rule_id, ctx)
        if kind == "const":
            msg = f"value must be {data.hex()}"
            return lambda v, _ctx: None if v == data else msg
        if kind == "prefix":
            msg = f"value does not have prefix {data.hex()}"
            return lambda v, _ctx: None if v.startswith(data) else msg
        if kind == "suffix":
            msg = f"value does not have suffix {data.hex()}"
            return lambda v, _ctx: None if v.endswith(data) else msg
        msg = f"value does not contain {data.hex()}"
        return lambda v, _ctx: None if data in v else msg


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------


def _length_check(
    kind: str, n: int, measure: Callable[[Any], int], unit: str
) -> Callable[[Any, EvalContext], str | None]:
    if kind == "len":
        msg = f"value length must be {n} {unit}"
        return lambda v, _ctx: None if measure(v) == n else msg
    if kind == "min_len":
        msg = f"value length must be at least {n} {unit}"
        return lambda v, _ctx: None if measure(v) >= n else msg
    msg = f"value length must be at most {n} {unit}"
    return lambda v, _ctx: None if measure(v) <= n else msg


def _membership_check(
    kind: str, values: frozenset[Any], shown: str
) -> Callable[[Any, EvalContext], str | None]:
    if kind == "in":
        msg = f"value must be in list {shown}"
        return lambda v, _ctx: None if v in values else msg
    msg = f"value must not be in list {shown}"
    return lambda v, _ctx: msg if v in values else None
