"""Descriptor types for the protorules schema model.

Every descriptor is a frozen dataclass, so a loaded schema is
immutable and can be shared by any number of validators.  A
``FieldDescriptor`` carries both the declared protobuf type and the
constraint annotations (``FieldRules``) attached to it.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from types import MappingProxyType
from typing import Any

from protorules.errors import SchemaError
from protorules.schema.wkt import (
    ANY_TYPE,
    DURATION_TYPE,
    FIELD_MASK_TYPE,
    TIMESTAMP_TYPE,
    WELL_KNOWN_TYPES,
)

_INT32 = (-(2**31), 2**31 - 1)
_INT64 = (-(2**63), 2**63 - 1)
_UINT32 = (0, 2**32 - 1)
_UINT64 = (0, 2**64 - 1)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ScalarKind(Enum):
    """Protobuf scalar value kinds."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"

    @property
    def is_float(self) -> bool:
        return self in (ScalarKind.DOUBLE, ScalarKind.FLOAT)

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_RANGES

    @property
    def is_unsigned(self) -> bool:
        return self in (ScalarKind.UINT32, ScalarKind.UINT64, ScalarKind.FIXED32, ScalarKind.FIXED64)

    @property
    def is_numeric(self) -> bool:
        return self.is_float or self.is_integer

    @property
    def int_range(self) -> tuple[int, int]:
        """Inclusive value range of an integer kind."""
        return _INTEGER_RANGES[self]

    @property
    def zero(self) -> Any:
        """The proto3 default value for this kind."""
        if self.is_float:
            return 0.0
        if self.is_integer:
            return 0
        if self is ScalarKind.BOOL:
            return False
        if self is ScalarKind.STRING:
            return ""
        return b""


_INTEGER_RANGES: dict[ScalarKind, tuple[int, int]] = {
    ScalarKind.INT32: _INT32,
    ScalarKind.SINT32: _INT32,
    ScalarKind.SFIXED32: _INT32,
    ScalarKind.INT64: _INT64,
    ScalarKind.SINT64: _INT64,
    ScalarKind.SFIXED64: _INT64,
    ScalarKind.UINT32: _UINT32,
    ScalarKind.FIXED32: _UINT32,
    ScalarKind.UINT64: _UINT64,
    ScalarKind.FIXED64: _UINT64,
}

_SCALAR_NAMES: dict[str, ScalarKind] = {k.value: k for k in ScalarKind}


class TypeKind(Enum):
    """Top-level classification of a field's element type."""

    SCALAR = auto()
    ENUM = auto()
    MESSAGE = auto()


class Cardinality(Enum):
    """Whether a field holds one value, a list, or a map."""

    SINGULAR = auto()
    REPEATED = auto()
    MAP = auto()


class PresenceDiscipline(Enum):
    """Whether a field tracks "set" independently of its value."""

    EXPLICIT = auto()
    IMPLICIT = auto()


class Ignore(Enum):
    """When a field's rules are skipped entirely."""

    UNSPECIFIED = "IGNORE_UNSPECIFIED"
    IF_ZERO_VALUE = "IGNORE_IF_ZERO_VALUE"
    ALWAYS = "IGNORE_ALWAYS"

    @classmethod
    def parse(cls, text: str) -> "Ignore":
        key = text.strip().upper()
        if not key.startswith("IGNORE_"):
            key = f"IGNORE_{key}"
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"unknown ignore mode {text!r}")


# ---------------------------------------------------------------------------
# Rule annotations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CelRule:
    """A custom expression rule attached to a field or a message.

    The expression must evaluate to ``bool`` (``false`` is a violation
    rendered with ``message``) or ``string`` (a non-empty string is the
    violation message).
    """

    id: str
    expression: str
    message: str = ""


@dataclass(frozen=True)
class FieldRules:
    """Constraint annotations for one field, item, map key or map value.

    Parameters
    ----------
    required:
        Whether the field must be populated.
    ignore:
        When to skip all rules for the field.
    type_rules:
        Rule family name (``"string"``, ``"int32"``, ``"repeated"``...)
        mapped to that family's parameters.  ``repeated.items``,
        ``map.keys`` and ``map.values`` parameters are ``FieldRules``.
    cel:
        Custom expression rules evaluated with ``this`` bound to the
        field value.
    """

    required: bool = False
    ignore: Ignore = Ignore.UNSPECIFIED
    type_rules: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    cel: tuple[CelRule, ...] = ()

    def __post_init__(self) -> None:
        frozen = {k: MappingProxyType(dict(v)) for k, v in self.type_rules.items()}
        object.__setattr__(self, "type_rules", MappingProxyType(frozen))

    @property
    def is_empty(self) -> bool:
        return not (self.required or self.type_rules or self.cel) and self.ignore is Ignore.UNSPECIFIED


@dataclass(frozen=True, slots=True)
class MessageOneofRule:
    """A message-level group of fields of which at most one may be set."""

    fields: tuple[str, ...]
    required: bool = False


@dataclass(frozen=True, slots=True)
class MessageRules:
    """Constraint annotations for a whole message."""

    disabled: bool = False
    cel: tuple[CelRule, ...] = ()
    oneofs: tuple[MessageOneofRule, ...] = ()


# ---------------------------------------------------------------------------
# Types and descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldType:
    """The element type of a field: a scalar, an enum or a message."""

    kind: TypeKind
    scalar: ScalarKind | None = None
    type_name: str | None = None

    @classmethod
    def of_scalar(cls, scalar: ScalarKind) -> "FieldType":
        return cls(kind=TypeKind.SCALAR, scalar=scalar)

    @classmethod
    def parse(cls, text: str, enum_names: frozenset[str] = frozenset()) -> "FieldType":
        """Classify a type name; names not in ``enum_names`` are messages."""
        name = text.strip()
        if name in _SCALAR_NAMES:
            return cls.of_scalar(_SCALAR_NAMES[name])
        if name in enum_names:
            return cls(kind=TypeKind.ENUM, type_name=name)
        return cls(kind=TypeKind.MESSAGE, type_name=name)

    @property
    def is_well_known(self) -> bool:
        return self.kind is TypeKind.MESSAGE and self.type_name in WELL_KNOWN_TYPES

    @property
    def is_timestamp(self) -> bool:
        return self.type_name == TIMESTAMP_TYPE

    @property
    def is_duration(self) -> bool:
        return self.type_name == DURATION_TYPE

    @property
    def is_any(self) -> bool:
        return self.type_name == ANY_TYPE

    @property
    def is_field_mask(self) -> bool:
        return self.type_name == FIELD_MASK_TYPE

    @property
    def scalar_kind(self) -> ScalarKind:
        """The scalar kind of a scalar type.

        Raises
        ------
        SchemaError
            If this is an enum or message type.
        """
        if self.scalar is None:
            raise SchemaError(f"type {self} is not a scalar type")
        return self.scalar

    def __str__(self) -> str:
        if self.scalar is not None:
            return self.scalar.value
        return self.type_name or "?"


@dataclass(frozen=True)
class FieldDescriptor:
    """One field of a message.

    Parameters
    ----------
    name:
        Field name as declared.
    number:
        Field number (informational; used for ordering in tooling).
    type:
        Element type; for maps, the value type.
    cardinality:
        Singular, repeated or map.
    key_type:
        Key type for map fields, ``None`` otherwise.
    presence:
        Explicit or implicit presence.  Derived by ``make_field`` when
        not given explicitly.
    oneof:
        Name of the enclosing oneof, if any.
    rules:
        Constraint annotations.
    """

    name: str
    number: int
    type: FieldType
    cardinality: Cardinality = Cardinality.SINGULAR
    key_type: FieldType | None = None
    presence: PresenceDiscipline = PresenceDiscipline.IMPLICIT
    oneof: str | None = None
    rules: FieldRules = field(default_factory=FieldRules)

    @property
    def is_repeated(self) -> bool:
        return self.cardinality is Cardinality.REPEATED

    @property
    def is_map(self) -> bool:
        return self.cardinality is Cardinality.MAP

    @property
    def is_message(self) -> bool:
        return self.cardinality is Cardinality.SINGULAR and self.type.kind is TypeKind.MESSAGE

    @property
    def has_explicit_presence(self) -> bool:
        return self.presence is PresenceDiscipline.EXPLICIT

    @property
    def map_key_type(self) -> FieldType:
        """The key type of a map field.

        Raises
        ------
        SchemaError
            If the field is not a map.
        """
        if self.key_type is None:
            raise SchemaError(f"field {self.name!r} is not a map field")
        return self.key_type

    def describe_type(self) -> str:
        if self.is_map:
            return f"map<{self.key_type}, {self.type}>"
        if self.is_repeated:
            return f"repeated {self.type}"
        return str(self.type)


def make_field(
    name: str,
    number: int,
    type: FieldType,
    *,
    cardinality: Cardinality = Cardinality.SINGULAR,
    key_type: FieldType | None = None,
    optional: bool = False,
    oneof: str | None = None,
    presence: PresenceDiscipline | None = None,
    rules: FieldRules | None = None,
) -> FieldDescriptor:
    """Build a ``FieldDescriptor``, deriving presence the proto3 way.

    Message-typed singular fields, ``optional`` fields and oneof
    members get explicit presence; everything else is implicit unless
    ``presence`` overrides it.

    Raises
    ------
    SchemaError
        If the combination of options is impossible, such as an
        optional repeated field or a map with a non-scalar key.
    """
    if cardinality is not Cardinality.SINGULAR and (optional or oneof):
        raise SchemaError(f"{cardinality.name.lower()} field cannot be optional or in a oneof", name)
    if cardinality is Cardinality.MAP:
        if key_type is None or key_type.kind is not TypeKind.SCALAR or key_type.scalar in (
            ScalarKind.DOUBLE,
            ScalarKind.FLOAT,
            ScalarKind.BYTES,
        ):
            raise SchemaError("map keys must be an integral, bool or string scalar", name)
    if presence is None:
        if cardinality is not Cardinality.SINGULAR:
            presence = PresenceDiscipline.IMPLICIT
        elif optional or oneof or type.kind is TypeKind.MESSAGE:
            presence = PresenceDiscipline.EXPLICIT
        else:
            presence = PresenceDiscipline.IMPLICIT
    elif presence is PresenceDiscipline.IMPLICIT and (
        cardinality is Cardinality.SINGULAR and (oneof or type.kind is TypeKind.MESSAGE)
    ):
        raise SchemaError("message fields and oneof members always have explicit presence", name)
    return FieldDescriptor(
        name=name,
        number=number,
        type=type,
        cardinality=cardinality,
        key_type=key_type,
        presence=presence,
        oneof=oneof,
        rules=rules or FieldRules(),
    )


@dataclass(frozen=True, slots=True)
class OneofDescriptor:
    """A real protobuf oneof: at most one member is set at a time."""

    name: str
    fields: tuple[str, ...]
    required: bool = False


@dataclass(frozen=True)
class EnumDescriptor:
    """An enum type and its declared enumerants."""

    full_name: str
    values: Mapping[str, int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def numbers(self) -> frozenset[int]:
        return frozenset(self.values.values())

    def number_of(self, name: str) -> int | None:
        return self.values.get(name)


@dataclass(frozen=True)
class MessageDescriptor:
    """A message type: its fields, oneofs and message-level rules."""

    full_name: str
    fields: tuple[FieldDescriptor, ...] = ()
    oneofs: tuple[OneofDescriptor, ...] = ()
    rules: MessageRules = field(default_factory=MessageRules)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for fd in self.fields:
            if fd.name in seen:
                raise SchemaError(f"duplicate field name {fd.name!r}", self.full_name)
            seen.add(fd.name)
        for oneof in self.oneofs:
            for member in oneof.fields:
                if member not in seen:
                    raise SchemaError(
                        f"oneof {oneof.name!r} references unknown field {member!r}",
                        self.full_name,
                    )

    @property
    def name(self) -> str:
        return self.full_name.rsplit(".", 1)[-1]

    def field(self, name: str) -> FieldDescriptor | None:
        for fd in self.fields:
            if fd.name == name:
                return fd
        return None

    def oneof(self, name: str) -> OneofDescriptor | None:
        for oneof in self.oneofs:
            if oneof.name == name:
                return oneof
        return None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(fd.name for fd in self.fields)

    @property
    def explicit_presence_fields(self) -> frozenset[str]:
        """Names of fields that can be told apart as unset."""
        return frozenset(fd.name for fd in self.fields if fd.has_explicit_presence)
