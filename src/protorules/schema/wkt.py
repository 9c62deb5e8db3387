"""Well-known protobuf value types.

``Timestamp`` and ``Duration`` are stored as normalized seconds+nanos
pairs so that comparisons follow protobuf semantics exactly. Their
canonical JSON text forms are read and written through the
``google.protobuf`` well-known type messages; the Go-style compound
duration form (``"2h30m"``, ``"250ms"``) is parsed here.
``AnyValue`` and ``FieldMask`` are thin frozen carriers.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import total_ordering
from typing import Final

from google.protobuf import duration_pb2, timestamp_pb2

NANOS_PER_SECOND: Final[int] = 1_000_000_000

TIMESTAMP_TYPE: Final[str] = "google.protobuf.Timestamp"
DURATION_TYPE: Final[str] = "google.protobuf.Duration"
ANY_TYPE: Final[str] = "google.protobuf.Any"
FIELD_MASK_TYPE: Final[str] = "google.protobuf.FieldMask"

WELL_KNOWN_TYPES: Final[frozenset[str]] = frozenset(
    {TIMESTAMP_TYPE, DURATION_TYPE, ANY_TYPE, FIELD_MASK_TYPE}
)

# 0001-01-01T00:00:00Z .. 9999-12-31T23:59:59Z
_MIN_TIMESTAMP_SECONDS: Final[int] = -62135596800
_MAX_TIMESTAMP_SECONDS: Final[int] = 253402300799

# The protobuf JSON form: signed whole seconds, up to nine fractional digits.
_SECONDS_FORM: Final[re.Pattern[str]] = re.compile(r"[+-]?\d+(?:\.\d{1,9})?s")
_DURATION_PART: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d+)?|\.\d+)(h|ms|us|µs|ns|m|s)")
_UNIT_NANOS: Final[dict[str, int]] = {
    "h": 3600 * NANOS_PER_SECOND,
    "m": 60 * NANOS_PER_SECOND,
    "s": NANOS_PER_SECOND,
    "ms": 1_000_000,
    "us": 1_000,
    "µs": 1_000,
    "ns": 1,
}


def _split_nanos(total: int) -> tuple[int, int]:
    """Split total nanoseconds into a sign-consistent (seconds, nanos) pair."""
    sign = -1 if total < 0 else 1
    seconds, nanos = divmod(abs(total), NANOS_PER_SECOND)
    return sign * seconds, sign * nanos


def _parse_compound(text: str, body: str, negative: bool) -> int:
    """Sum the ``<number><unit>`` parts of a Go-style duration into nanos."""
    total = 0
    pos = 0
    for match in _DURATION_PART.finditer(body):
        if match.start() != pos:
            raise ValueError(f"invalid duration {text!r}")
        number, unit = match.groups()
        whole, _, frac = number.partition(".")
        scale = _UNIT_NANOS[unit]
        total += int(whole or "0") * scale
        if frac:
            total += int(frac) * scale // (10 ** len(frac))
        pos = match.end()
    if pos != len(body):
        raise ValueError(f"invalid duration {text!r}")
    return -total if negative else total


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class Duration:
    """A signed span of time with nanosecond precision."""

    seconds: int = 0
    nanos: int = 0

    @classmethod
    def from_nanos(cls, total: int) -> "Duration":
        seconds, nanos = _split_nanos(total)
        return cls(seconds=seconds, nanos=nanos)

    @classmethod
    def from_proto(cls, proto: duration_pb2.Duration) -> "Duration":
        return cls(seconds=proto.seconds, nanos=proto.nanos)

    @classmethod
    def from_timedelta(cls, delta: timedelta) -> "Duration":
        proto = duration_pb2.Duration()
        proto.FromTimedelta(delta)
        return cls.from_proto(proto)

    @classmethod
    def parse(cls, text: str) -> "Duration":
        """Parse ``"1.5s"``, ``"-2h30m"``, ``"250ms"`` and similar forms.

        The protobuf JSON form (``"-1.5s"``) is handed to
        ``duration_pb2.Duration.FromJsonString``; anything else is read
        as a sequence of ``<number><unit>`` parts.

        Raises
        ------
        ValueError
            If ``text`` is not a valid duration string.
        """
        raw = text.strip()
        negative = raw.startswith("-")
        body = raw[1:] if raw[:1] in ("-", "+") else raw
        if body == "0":
            return cls()
        if not body:
            raise ValueError(f"invalid duration {text!r}")
        if _SECONDS_FORM.fullmatch(raw):
            proto = duration_pb2.Duration()
            try:
                proto.FromJsonString(raw)
            except ValueError as exc:
                raise ValueError(f"invalid duration {text!r}: {exc}") from exc
            return cls.from_proto(proto)
        return cls.from_nanos(_parse_compound(text, body, negative))

    @property
    def total_nanos(self) -> int:
        return self.seconds * NANOS_PER_SECOND + self.nanos

    def to_proto(self) -> duration_pb2.Duration:
        return duration_pb2.Duration(seconds=self.seconds, nanos=self.nanos)

    def to_timedelta(self) -> timedelta:
        return self.to_proto().ToTimedelta()
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.total_nanos == other.total_nanos

    def __lt__(self, other: "Duration") -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.total_nanos < other.total_nanos

    def __hash__(self) -> int:
        return hash(("Duration", self.total_nanos))

    def __add__(self, other: "Duration") -> "Duration":
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration.from_nanos(self.total_nanos + other.total_nanos)

    def __sub__(self, other: "Duration") -> "Duration":
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration.from_nanos(self.total_nanos - other.total_nanos)

    def __neg__(self) -> "Duration":
        return Duration.from_nanos(-self.total_nanos)

    def __str__(self) -> str:
        return self.to_proto().ToJsonString()


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class Timestamp:
    """A point in time as seconds and nanos since the Unix epoch (UTC)."""

    seconds: int = 0
    nanos: int = 0

    @classmethod
    def from_nanos(cls, total: int) -> "Timestamp":
        seconds, nanos = divmod(total, NANOS_PER_SECOND)
        return cls(seconds=seconds, nanos=nanos)

    @classmethod
    def from_proto(cls, proto: timestamp_pb2.Timestamp) -> "Timestamp":
        return cls(seconds=proto.seconds, nanos=proto.nanos)

    @classmethod
    def from_datetime(cls, value: datetime) -> "Timestamp":
        """Convert ``value``; a naive datetime is taken to be UTC."""
        proto = timestamp_pb2.Timestamp()
        proto.FromDatetime(value)
        return cls.from_proto(proto)

    @classmethod
    def now(cls) -> "Timestamp":
        proto = timestamp_pb2.Timestamp()
        proto.GetCurrentTime()
        return cls.from_proto(proto)

    @classmethod
    def parse(cls, text: str) -> "Timestamp":
        """Parse an RFC 3339 timestamp such as ``2024-05-01T12:00:00.5Z``.

        Raises
        ------
        ValueError
            If ``text`` is not RFC 3339 or lies outside years 1..9999.
        """
        proto = timestamp_pb2.Timestamp()
        try:
            proto.FromJsonString(text.strip())
        except ValueError as exc:
            raise ValueError(f"invalid timestamp {text!r}: {exc}") from exc
        ts = cls.from_proto(proto)
        if not ts.is_valid:
            raise ValueError(f"timestamp {text!r} out of range")
        return ts

    @property
    def total_nanos(self) -> int:
        return self.seconds * NANOS_PER_SECOND + self.nanos

    @property
    def is_valid(self) -> bool:
        return (
            _MIN_TIMESTAMP_SECONDS <= self.seconds <= _MAX_TIMESTAMP_SECONDS
            and 0 <= self.nanos < NANOS_PER_SECOND
        )

    def to_proto(self) -> timestamp_pb2.Timestamp:
        return timestamp_pb2.Timestamp(seconds=self.seconds, nanos=self.nanos)

    def to_datetime(self) -> datetime:
        return self.to_proto().ToDatetime(tzinfo=timezone.utc)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self.total_nanos == other.total_nanos

    def __lt__(self, other: "Timestamp") -> bool:
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self.total_nanos < other.total_nanos

    def __hash__(self) -> int:
        return hash(("Timestamp", self.total_nanos))

    def __add__(self, other: Duration) -> "Timestamp":
        if not isinstance(other, Duration):
            return NotImplemented
        return Timestamp.from_nanos(self.total_nanos + other.total_nanos)

    __radd__ = __add__

    def __sub__(self, other: "Timestamp | Duration") -> "Timestamp | Duration":
        if isinstance(other, Timestamp):
            return Duration.from_nanos(self.total_nanos - other.total_nanos)
        if isinstance(other, Duration):
            return Timestamp.from_nanos(self.total_nanos - other.total_nanos)
        return NotImplemented

    def __str__(self) -> str:
        return self.to_proto().ToJsonString()


@dataclass(frozen=True, slots=True)
class AnyValue:
    """A packed ``google.protobuf.Any``; only the type URL is inspected."""

    type_url: str = ""
    value: bytes = b""


@dataclass(frozen=True, slots=True)
class FieldMask:
    """A ``google.protobuf.FieldMask`` holding dotted field paths."""

    paths: tuple[str, ...] = ()
