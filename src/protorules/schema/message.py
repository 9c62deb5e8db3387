"""Populated message instances and the dict decoder that builds them.

``Message`` is a dynamic protobuf message: it stores field values by
name and tracks explicit presence, i.e. whether a field was assigned at
all.  Implicit-presence fields are never "unset"; reading them yields
the type's zero value when nothing was assigned.

``decode_message`` is the bridge from JSON/YAML documents (protobuf
JSON mapping conventions) to ``Message`` instances.
"""
from __future__ import annotations

import base64
import binascii
import math
from collections.abc import Iterator, Mapping
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

from protorules.errors import DecodeError, SchemaError
from protorules.schema.descriptors import (
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    ScalarKind,
    TypeKind,
)
from protorules.schema.schema import Schema
from protorules.schema.wkt import AnyValue, Duration, FieldMask, Timestamp

_EMPTY_MAP: Mapping[Any, Any] = MappingProxyType({})
_FLOAT32_MAX = 3.4028234663852886e38


def default_value(ftype: FieldType) -> Any:
    """Return the proto3 default for a singular value of ``ftype``.

    Plain message types have no standalone default here and yield
    ``None``; callers that know the schema build an empty ``Message``.
    """
    if ftype.kind is TypeKind.SCALAR:
        return ftype.scalar_kind.zero
    if ftype.kind is TypeKind.ENUM:
        return 0
    if ftype.is_timestamp:
        return Timestamp()
    if ftype.is_duration:
        return Duration()
    if ftype.is_any:
        return AnyValue()
    if ftype.is_field_mask:
        return FieldMask()
    return None


class Message:
    """A populated instance of a ``MessageDescriptor``.

    Parameters
    ----------
    descriptor:
        The message type.
    values:
        Initial field values keyed by field name.
    schema:
        Optional schema used to build empty nested messages on read.

    Example
    -------
    ::

        user = Message(user_descriptor, {"email": "a@example.com"})
        user.has("email")      # True
        user.get("nickname")   # "" (implicit default)
    """

    __slots__ = ("_descriptor", "_values", "_schema")

    def __init__(
        self,
        descriptor: MessageDescriptor,
        values: Mapping[str, Any] | None = None,
        *,
        schema: Schema | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._values: dict[str, Any] = {}
        self._schema = schema
        for name, value in (values or {}).items():
            self.set(name, value)

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    @property
    def descriptor(self) -> MessageDescriptor:
        return self._descriptor

    @property
    def schema(self) -> Schema | None:
        return self._schema

    def _field(self, name: str) -> FieldDescriptor:
        fd = self._descriptor.field(name)
        if fd is None:
            raise KeyError(f"{self._descriptor.full_name} has no field {name!r}")
        return fd

    def set(self, name: str, value: Any) -> None:
        """Assign a field; setting a oneof member clears its siblings."""
        fd = self._field(name)
        if fd.oneof is not None:
            oneof = self._descriptor.oneof(fd.oneof)
            for member in oneof.fields if oneof else ():
                self._values.pop(member, None)
        if fd.is_repeated:
            value = list(value)
        elif fd.is_map:
            value = dict(value)
        self._values[name] = value

    def clear(self, name: str) -> None:
        """Return a field to the unset state."""
        self._field(name)
        self._values.pop(name, None)

    def is_assigned(self, name: str) -> bool:
        """Return True if the field was ever assigned (explicit presence bit)."""
        self._field(name)
        return name in self._values

    def has(self, name: str) -> bool:
        """Return True if the field is populated.

        Explicit-presence fields are populated once assigned; implicit
        ones only when they differ from the zero value; repeated and
        map fields only when non-empty.
        """
        fd = self._field(name)
        if fd.is_repeated or fd.is_map:
            return bool(self._values.get(name))
        if fd.has_explicit_presence:
            return name in self._values
        return name in self._values and self._values[name] != default_value(fd.type)

    def get(self, name: str) -> Any:
        """Return the field value, or its default when not assigned."""
        fd = self._field(name)
        if name in self._values:
            return self._values[name]
        if fd.is_repeated:
            return ()
        if fd.is_map:
            return _EMPTY_MAP
        value = default_value(fd.type)
        if value is None and self._schema is not None and fd.type.type_name:
            return Message(self._schema.message(fd.type.type_name), schema=self._schema)
        return value

    def which_oneof(self, oneof_name: str) -> str | None:
        """Return the name of the set member of a oneof, if any."""
        oneof = self._descriptor.oneof(oneof_name)
        if oneof is None:
            raise KeyError(f"{self._descriptor.full_name} has no oneof {oneof_name!r}")
        for member in oneof.fields:
            if member in self._values:
                return member
        return None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get(name)
        except KeyError:
            raise AttributeError(name) from None

    def __iter__(self) -> Iterator[str]:
        """Iterate over the names of populated fields in declaration order."""
        return (fd.name for fd in self._descriptor.fields if self.has(fd.name))

    # ------------------------------------------------------------------
    # Comparison and display
    # ------------------------------------------------------------------

    def _canonical(self) -> tuple[tuple[str, Any], ...]:
        items: list[tuple[str, Any]] = []
        for name in self:
            value = self._values[name]
            if isinstance(value, list):
                value = tuple(value)
            elif isinstance(value, dict):
                value = tuple(sorted(value.items(), key=lambda kv: repr(kv[0])))
            items.append((name, value))
        return tuple(items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return (
            self._descriptor.full_name == other._descriptor.full_name
            and self._canonical() == other._canonical()
        )

    def __hash__(self) -> int:
        return hash((self._descriptor.full_name, self._canonical()))

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._canonical())
        return f"{self._descriptor.name}({body})"

    def to_dict(self) -> dict[str, Any]:
        """Return the populated fields as plain Python values."""
        out: dict[str, Any] = {}
        for name in self:
            out[name] = _plain(self._values[name])
        return out


def _plain(value: Any) -> Any:
    if isinstance(value, Message):
        return value.to_dict()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (Timestamp, Duration)):
        return str(value)
    if isinstance(value, FieldMask):
        return ",".join(value.paths)
    if isinstance(value, AnyValue):
        return {"@type": value.type_url}
    return value


# ---------------------------------------------------------------------------
# Decoding from plain dicts
# ---------------------------------------------------------------------------


def _json_name(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def decode_message(schema: Schema, type_name: str, data: Mapping[str, Any]) -> Message:
    """Decode a JSON-like mapping into a ``Message`` of ``type_name``.

    Field keys may use either the declared name or its lowerCamelCase
    JSON name.  ``None`` values leave a field unset.

    Raises
    ------
    DecodeError
        On unknown fields or values of the wrong shape or type.
    SchemaError
        If ``type_name`` does not name a message in ``schema``.
    """
    return _Decoder(schema).message(schema.message(type_name), data, "")


class _Decoder:
    def __init__(self, schema: Schema) -> None:
        self._schema = schema

    def message(self, descriptor: MessageDescriptor, data: Any, path: str) -> Message:
        if isinstance(data, Message):
            return data
        if not isinstance(data, Mapping):
            raise DecodeError(f"expected an object for {descriptor.full_name}", path)
        by_json = {_json_name(fd.name): fd for fd in descriptor.fields}
        msg = Message(descriptor, schema=self._schema)
        for key, raw in data.items():
            fd = descriptor.field(key) or by_json.get(key)
            field_path = f"{path}.{key}" if path else str(key)
            if fd is None:
                raise DecodeError(f"unknown field {key!r} in {descriptor.full_name}", field_path)
            if raw is None:
                continue
            if fd.is_repeated:
                if not isinstance(raw, (list, tuple)):
                    raise DecodeError("expected a list", field_path)
                msg.set(fd.name, [self.value(fd.type, item, f"{field_path}[{i}]") for i, item in enumerate(raw)])
            elif fd.is_map:
                if not isinstance(raw, Mapping):
                    raise DecodeError("expected an object", field_path)
                key_type = fd.map_key_type
                msg.set(
                    fd.name,
                    {
                        self.map_key(key_type, k, field_path): self.value(fd.type, v, f"{field_path}[{k!r}]")
                        for k, v in raw.items()
                    },
                )
            else:
                msg.set(fd.name, self.value(fd.type, raw, field_path))
        return msg

    def map_key(self, ftype: FieldType, raw: Any, path: str) -> Any:
        scalar = ftype.scalar_kind
        if scalar is ScalarKind.BOOL and isinstance(raw, str):
            if raw in ("true", "false"):
                return raw == "true"
            raise DecodeError(f"invalid bool map key {raw!r}", path)
        if scalar.is_integer and isinstance(raw, str):
            try:
                raw = int(raw)
            except ValueError:
                raise DecodeError(f"invalid integer map key {raw!r}", path) from None
        return self.scalar(scalar, raw, path)

    def value(self, ftype: FieldType, raw: Any, path: str) -> Any:
        if ftype.kind is TypeKind.SCALAR:
            return self.scalar(ftype.scalar_kind, raw, path)
        if ftype.kind is TypeKind.ENUM:
            return self.enum(ftype, raw, path)
        if ftype.is_timestamp:
            return self.timestamp(raw, path)
        if ftype.is_duration:
            return self.duration(raw, path)
        if ftype.is_any:
            return self.any(raw, path)
        if ftype.is_field_mask:
            return self.field_mask(raw, path)
        try:
            descriptor = self._schema.message(ftype.type_name or "")
        except SchemaError as exc:
            raise DecodeError(exc.message, path) from None
        return self.message(descriptor, raw, path)

    def scalar(self, kind: ScalarKind, raw: Any, path: str) -> Any:
        if kind is ScalarKind.BOOL:
            if not isinstance(raw, bool):
                raise DecodeError(f"expected bool, got {type(raw).__name__}", path)
            return raw
        if kind is ScalarKind.STRING:
            if not isinstance(raw, str):
                raise DecodeError(f"expected string, got {type(raw).__name__}", path)
            return raw
        if kind is ScalarKind.BYTES:
            if isinstance(raw, (bytes, bytearray)):
                return bytes(raw)
            if isinstance(raw, str):
                padded = raw + "=" * (-len(raw) % 4)
                altchars = b"-_" if ("-" in raw or "_" in raw) else None
                try:
                    return base64.b64decode(padded, altchars=altchars, validate=True)
                except (binascii.Error, ValueError):
                    raise DecodeError("invalid base64 bytes value", path) from None
            raise DecodeError(f"expected bytes, got {type(raw).__name__}", path)
        if isinstance(raw, bool):
            raise DecodeError(f"expected {kind.value}, got bool", path)
        if kind.is_float:
            return self.floating(kind, raw, path)
        # integer kinds
        if isinstance(raw, str):
            try:
                raw = int(raw)
            except ValueError:
                raise DecodeError(f"invalid {kind.value} value {raw!r}", path) from None
        if isinstance(raw, float):
            if not raw.is_integer():
                raise DecodeError(f"{kind.value} value {raw} is not integral", path)
            raw = int(raw)
        if not isinstance(raw, int):
            raise DecodeError(f"expected {kind.value}, got {type(raw).__name__}", path)
        low, high = kind.int_range
        if not low <= raw <= high:
            raise DecodeError(f"{kind.value} value {raw} out of range", path)
        return raw

    def floating(self, kind: ScalarKind, raw: Any, path: str) -> float:
        if isinstance(raw, str):
            special = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}
            if raw in special:
                return special[raw]
            try:
                value = float(raw)
            except ValueError:
                raise DecodeError(f"invalid {kind.value} value {raw!r}", path) from None
        elif isinstance(raw, (int, float)):
            try:
                value = float(raw)
            except OverflowError:
                raise DecodeError(f"{kind.value} value {raw} out of range", path) from None
        else:
            raise DecodeError(f"expected {kind.value}, got {type(raw).__name__}", path)
        if kind is ScalarKind.FLOAT and math.isfinite(value) and abs(value) > _FLOAT32_MAX:
            raise DecodeError(f"float value {raw} out of range", path)
        return value

    def enum(self, ftype: FieldType, raw: Any, path: str) -> int:
        try:
            descriptor = self._schema.enum(ftype.type_name or "")
        except SchemaError as exc:
            raise DecodeError(exc.message, path) from None
        if isinstance(raw, str):
            number = descriptor.number_of(raw)
            if number is None:
                raise DecodeError(f"unknown {descriptor.full_name} value {raw!r}", path)
            return number
        if isinstance(raw, int) and not isinstance(raw, bool):
            # Open enum semantics: undeclared numbers are kept as-is.
            return raw
        raise DecodeError(f"expected enum name or number, got {type(raw).__name__}", path)

    def timestamp(self, raw: Any, path: str) -> Timestamp:
        if isinstance(raw, Timestamp):
            return raw
        if isinstance(raw, datetime):
            return Timestamp.from_datetime(raw)
        if isinstance(raw, str):
            try:
                return Timestamp.parse(raw)
            except ValueError as exc:
                raise DecodeError(str(exc), path) from None
        if isinstance(raw, Mapping):
            return Timestamp(seconds=int(raw.get("seconds", 0)), nanos=int(raw.get("nanos", 0)))
        raise DecodeError("expected an RFC 3339 timestamp", path)

    def duration(self, raw: Any, path: str) -> Duration:
        if isinstance(raw, Duration):
            return raw
        if isinstance(raw, timedelta):
            return Duration.from_timedelta(raw)
        if isinstance(raw, str):
            try:
                return Duration.parse(raw)
            except ValueError as exc:
                raise DecodeError(str(exc), path) from None
        if isinstance(raw, Mapping):
            return Duration(seconds=int(raw.get("seconds", 0)), nanos=int(raw.get("nanos", 0)))
        raise DecodeError("expected a duration string such as '1.5s'", path)

    def any(self, raw: Any, path: str) -> AnyValue:
        if isinstance(raw, AnyValue):
            return raw
        if isinstance(raw, Mapping):
            type_url = raw.get("@type", raw.get("type_url", ""))
            if not isinstance(type_url, str):
                raise DecodeError("Any type URL must be a string", path)
            return AnyValue(type_url=type_url)
        raise DecodeError("expected an object with '@type'", path)

    def field_mask(self, raw: Any, path: str) -> FieldMask:
        if isinstance(raw, FieldMask):
            return raw
        if isinstance(raw, str):
            return FieldMask(tuple(p for p in raw.split(",") if p))
        if isinstance(raw, (list, tuple)):
            return FieldMask(tuple(str(p) for p in raw))
        if isinstance(raw, Mapping):
            return FieldMask(tuple(str(p) for p in raw.get("paths", ())))
        raise DecodeError("expected a comma-separated path list", path)
