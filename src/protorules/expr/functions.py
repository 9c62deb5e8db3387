"""Built-in functions of the expression language.

Each ``Function`` pairs its static overloads (used by the checker to
bind calls at schema-compile time) with a single implementation that
receives already-evaluated arguments, receiver first for member-style
calls.  Implementations raise ``EvaluationError`` on bad input; they
never see ill-typed arguments because the checker rejects those.
"""
from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from protorules.expr import formats
from protorules.expr.errors import EvaluationError
from protorules.expr.types import (
    BOOL,
    BYTES,
    DOUBLE,
    DURATION,
    DYN,
    INT,
    STRING,
    TIMESTAMP,
    UINT,
    CelType,
    is_assignable,
    list_of,
    map_of,
)
from protorules.schema.wkt import Duration, Timestamp

INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1
UINT64_MAX = 2**64 - 1


@dataclass(frozen=True, slots=True)
class Overload:
    """One accepted signature of a function.

    ``params`` includes the receiver as its first entry when ``member``
    is set.
    """

    params: tuple[CelType, ...]
    result: CelType
    member: bool = False


@dataclass(frozen=True, slots=True)
class Function:
    """A named function with its overloads and implementation."""

    name: str
    overloads: tuple[Overload, ...]
    impl: Callable[..., Any]


def _member(*params: CelType, result: CelType) -> Overload:
    return Overload(params=params, result=result, member=True)


def _global(*params: CelType, result: CelType) -> Overload:
    return Overload(params=params, result=result, member=False)


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def compile_regex(pattern: str) -> re.Pattern[str]:
    """Compile and cache a regular expression, raising ``EvaluationError``."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise EvaluationError(f"invalid regular expression {pattern!r}: {exc}") from None


def _size(value: Any) -> int:
    if isinstance(value, (str, bytes, list, tuple, Mapping)):
        return len(value)
    raise EvaluationError(f"size() not supported on {type(value).__name__}")


def _matches(value: str, pattern: str) -> bool:
    return compile_regex(pattern).search(value) is not None


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise EvaluationError("int() does not accept bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise EvaluationError("int() cannot convert NaN or infinity")
        result = int(value)
    elif isinstance(value, str):
        try:
            result = int(value, 10)
        except ValueError:
            raise EvaluationError(f"int() cannot parse {value!r}") from None
    elif isinstance(value, Timestamp):
        result = value.seconds
    else:
        raise EvaluationError(f"int() not supported on {type(value).__name__}")
    if not INT64_MIN <= result <= INT64_MAX:
        raise EvaluationError("int() result out of range")
    return result


def _to_uint(value: Any) -> int:
    if isinstance(value, bool):
        raise EvaluationError("uint() does not accept bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise EvaluationError("uint() cannot convert NaN or infinity")
        result = int(value)
    elif isinstance(value, str):
        try:
            result = int(value, 10)
        except ValueError:
            raise EvaluationError(f"uint() cannot parse {value!r}") from None
    else:
        raise EvaluationError(f"uint() not supported on {type(value).__name__}")
    if not 0 <= result <= UINT64_MAX:
        raise EvaluationError("uint() result out of range")
    return result


def _to_double(value: Any) -> float:
    if isinstance(value, bool):
        raise EvaluationError("double() does not accept bool")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise EvaluationError(f"double() cannot parse {value!r}") from None
    raise EvaluationError(f"double() not supported on {type(value).__name__}")


def to_string(value: Any) -> str:
    """Render a value the way ``string()`` does."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            raise EvaluationError("string() requires valid UTF-8 bytes") from None
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "+Inf" if value > 0 else "-Inf"
        return repr(value)
    if isinstance(value, (int, Timestamp, Duration)):
        return str(value)
    if value is None:
        return "null"
    raise EvaluationError(f"string() not supported on {type(value).__name__}")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise EvaluationError(f"bytes() not supported on {type(value).__name__}")


def _timestamp(value: Any) -> Timestamp:
    if isinstance(value, Timestamp):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Timestamp(seconds=value)
    try:
        return Timestamp.parse(value)
    except ValueError as exc:
        raise EvaluationError(str(exc)) from None


def _duration(value: Any) -> Duration:
    if isinstance(value, Duration):
        return value
    try:
        return Duration.parse(value)
    except ValueError as exc:
        raise EvaluationError(str(exc)) from None


def _ascii_case(upper: bool) -> Callable[[str], str]:
    def convert(value: str) -> str:
        return "".join(
            (c.upper() if upper else c.lower()) if c.isascii() else c for c in value
        )

    return convert


def is_unique(values: Any) -> bool:
    """Return True if no two items of ``values`` are equal.

    ``1`` and ``1.0`` and ``True`` collide in a Python set, so items
    are keyed by their type as well as their value.
    """
    seen: set[tuple[type, Any]] = set()
    items = list(values)
    try:
        for item in items:
            key = (type(item), item)
            if key in seen:
                return False
            seen.add(key)
    except TypeError:
        # Unhashable items (maps, lists) fall back to pairwise comparison.
        return not any(
            type(a) is type(b) and a == b
            for i, a in enumerate(items)
            for b in items[i + 1 :]
        )
    return True


def _is_inf(value: float, sign: int = 0) -> bool:
    if not math.isinf(value):
        return False
    if sign == 0:
        return True
    return (value > 0) == (sign > 0)


def _get_seconds(value: Any) -> int:
    if isinstance(value, Duration):
        return value.seconds
    if isinstance(value, Timestamp):
        return value.seconds % 60
    raise EvaluationError(f"getSeconds() not supported on {type(value).__name__}")


def _contains(value: Any, part: Any) -> bool:
    return part in value


def _starts_with(value: Any, part: Any) -> bool:
    return value.startswith(part)


def _ends_with(value: Any, part: Any) -> bool:
    return value.endswith(part)


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

_LIST = list_of(DYN)
_MAP = map_of(DYN, DYN)

_FUNCTIONS: list[Function] = [
    Function(
        "size",
        tuple(
            o
            for t in (STRING, BYTES, _LIST, _MAP)
            for o in (_global(t, result=INT), _member(t, result=INT))
        ),
        _size,
    ),
    Function(
        "matches",
        (_member(STRING, STRING, result=BOOL), _global(STRING, STRING, result=BOOL)),
        _matches,
    ),
    Function(
        "startsWith",
        (_member(STRING, STRING, result=BOOL), _member(BYTES, BYTES, result=BOOL)),
        _starts_with,
    ),
    Function(
        "endsWith",
        (_member(STRING, STRING, result=BOOL), _member(BYTES, BYTES, result=BOOL)),
        _ends_with,
    ),
    Function(
        "contains",
        (_member(STRING, STRING, result=BOOL), _member(BYTES, BYTES, result=BOOL)),
        _contains,
    ),
    Function("lowerAscii", (_member(STRING, result=STRING),), _ascii_case(upper=False)),
    Function("upperAscii", (_member(STRING, result=STRING),), _ascii_case(upper=True)),
    Function("trim", (_member(STRING, result=STRING),), lambda v: v.strip()),
    Function(
        "int",
        tuple(_global(t, result=INT) for t in (INT, UINT, DOUBLE, STRING, TIMESTAMP)),
        _to_int,
    ),
    Function("uint", tuple(_global(t, result=UINT) for t in (INT, UINT, DOUBLE, STRING)), _to_uint),
    Function(
        "double", tuple(_global(t, result=DOUBLE) for t in (INT, UINT, DOUBLE, STRING)), _to_double
    ),
    Function(
        "string",
        tuple(
            _global(t, result=STRING)
            for t in (INT, UINT, DOUBLE, BOOL, STRING, BYTES, TIMESTAMP, DURATION)
        ),
        to_string,
    ),
    Function("bytes", (_global(STRING, result=BYTES), _global(BYTES, result=BYTES)), _to_bytes),
    Function(
        "timestamp",
        (_global(STRING, result=TIMESTAMP), _global(INT, result=TIMESTAMP), _global(TIMESTAMP, result=TIMESTAMP)),
        _timestamp,
    ),
    Function(
        "duration", (_global(STRING, result=DURATION), _global(DURATION, result=DURATION)), _duration
    ),
    Function("dyn", (_global(DYN, result=DYN),), lambda v: v),
    Function("isEmail", (_member(STRING, result=BOOL),), formats.is_email),
    Function("isHostname", (_member(STRING, result=BOOL),), formats.is_hostname),
    Function(
        "isIp",
        (_member(STRING, result=BOOL), _member(STRING, INT, result=BOOL)),
        formats.is_ip,
    ),
    Function(
        "isIpPrefix",
        (
            _member(STRING, result=BOOL),
            _member(STRING, INT, result=BOOL),
            _member(STRING, BOOL, result=BOOL),
            _member(STRING, INT, BOOL, result=BOOL),
        ),
        lambda v, *opts: formats.is_ip_prefix(
            v,
            next((o for o in opts if not isinstance(o, bool)), 0),
            next((o for o in opts if isinstance(o, bool)), False),
        ),
    ),
    Function("isUri", (_member(STRING, result=BOOL),), formats.is_uri),
    Function("isUriRef", (_member(STRING, result=BOOL),), formats.is_uri_ref),
    Function(
        "isHostAndPort", (_member(STRING, BOOL, result=BOOL),), formats.is_host_and_port
    ),
    Function("unique", (_member(_LIST, result=BOOL),), is_unique),
    Function("isNan", (_member(DOUBLE, result=BOOL),), math.isnan),
    Function(
        "isInf", (_member(DOUBLE, result=BOOL), _member(DOUBLE, INT, result=BOOL)), _is_inf
    ),
    Function(
        "getSeconds",
        (_member(DURATION, result=INT), _member(TIMESTAMP, result=INT)),
        _get_seconds,
    ),
]

STANDARD_FUNCTIONS: Mapping[str, Function] = MappingProxyType({f.name: f for f in _FUNCTIONS})


def result_type_of(function: Function, member: bool, args: list[CelType]) -> CelType | None:
    """Return the result type of the first overload accepting ``args``.

    Returns ``None`` when no overload matches.  Arguments of type
    ``dyn`` match any parameter, so the first overload of the right
    shape wins for them.
    """
    for overload in function.overloads:
        if overload.member != member or len(overload.params) != len(args):
            continue
        if all(is_assignable(p, a) for p, a in zip(overload.params, args)):
            return overload.result
    return None


def accepts_member(function: Function) -> bool:
    return any(o.member for o in function.overloads)
