"""Static types used by the expression checker.

A ``CelType`` is a small frozen value: a ``TypeName`` plus type
parameters for lists and maps, or a message descriptor for message
types.  ``DYN`` is assignable to and from everything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from protorules.schema.descriptors import FieldDescriptor, FieldType, ScalarKind, TypeKind

if TYPE_CHECKING:
    from protorules.schema.descriptors import MessageDescriptor
    from protorules.schema.schema import Schema


class TypeName(Enum):
    INT = "int"
    UINT = "uint"
    DOUBLE = "double"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    NULL = "null_type"
    TIMESTAMP = "google.protobuf.Timestamp"
    DURATION = "google.protobuf.Duration"
    LIST = "list"
    MAP = "map"
    MESSAGE = "message"
    DYN = "dyn"


@dataclass(frozen=True)
class CelType:
    """A static expression type."""

    name: TypeName
    params: tuple["CelType", ...] = ()
    message: "MessageDescriptor | None" = field(default=None, compare=False, hash=False)
    message_name: str = ""

    def __str__(self) -> str:
        if self.name is TypeName.LIST:
            return f"list({self.params[0]})"
        if self.name is TypeName.MAP:
            return f"map({self.params[0]}, {self.params[1]})"
        if self.name is TypeName.MESSAGE:
            return self.message_name
        return self.name.value

    @property
    def is_dyn(self) -> bool:
        return self.name is TypeName.DYN

    @property
    def is_numeric(self) -> bool:
        return self.name in (TypeName.INT, TypeName.UINT, TypeName.DOUBLE)

    @property
    def element(self) -> "CelType":
        """Element type of a list, key type of a map, ``DYN`` otherwise."""
        if self.name in (TypeName.LIST, TypeName.MAP):
            return self.params[0]
        return DYN


INT = CelType(TypeName.INT)
UINT = CelType(TypeName.UINT)
DOUBLE = CelType(TypeName.DOUBLE)
BOOL = CelType(TypeName.BOOL)
STRING = CelType(TypeName.STRING)
BYTES = CelType(TypeName.BYTES)
NULL = CelType(TypeName.NULL)
TIMESTAMP = CelType(TypeName.TIMESTAMP)
DURATION = CelType(TypeName.DURATION)
DYN = CelType(TypeName.DYN)


def list_of(element: CelType) -> CelType:
    return CelType(TypeName.LIST, (element,))


def map_of(key: CelType, value: CelType) -> CelType:
    return CelType(TypeName.MAP, (key, value))


def message_type(descriptor: "MessageDescriptor") -> CelType:
    return CelType(TypeName.MESSAGE, message=descriptor, message_name=descriptor.full_name)


def is_assignable(target: CelType, actual: CelType) -> bool:
    """Return True if a value of ``actual`` type may be used as ``target``."""
    if target.is_dyn or actual.is_dyn:
        return True
    if target.name is not actual.name:
        return False
    if target.name is TypeName.MESSAGE:
        return target.message_name == actual.message_name
    return all(is_assignable(t, a) for t, a in zip(target.params, actual.params))


def common_type(types: list[CelType]) -> CelType:
    """Return the shared type of list/map literal elements, or ``DYN``."""
    if not types:
        return DYN
    first = types[0]
    if all(t == first for t in types[1:]):
        return first
    return DYN


_SCALAR_TYPES: dict[ScalarKind, CelType] = {
    ScalarKind.DOUBLE: DOUBLE,
    ScalarKind.FLOAT: DOUBLE,
    ScalarKind.INT32: INT,
    ScalarKind.INT64: INT,
    ScalarKind.SINT32: INT,
    ScalarKind.SINT64: INT,
    ScalarKind.SFIXED32: INT,
    ScalarKind.SFIXED64: INT,
    ScalarKind.UINT32: UINT,
    ScalarKind.UINT64: UINT,
    ScalarKind.FIXED32: UINT,
    ScalarKind.FIXED64: UINT,
    ScalarKind.BOOL: BOOL,
    ScalarKind.STRING: STRING,
    ScalarKind.BYTES: BYTES,
}


def from_field_type(ftype: FieldType, schema: "Schema | None") -> CelType:
    """Map a protobuf element type to its expression type."""
    if ftype.kind is TypeKind.SCALAR:
        return _SCALAR_TYPES[ftype.scalar_kind]
    if ftype.kind is TypeKind.ENUM:
        return INT
    if ftype.is_timestamp:
        return TIMESTAMP
    if ftype.is_duration:
        return DURATION
    if ftype.is_well_known or schema is None or not ftype.type_name:
        return DYN
    if not schema.has_message(ftype.type_name):
        return DYN
    return message_type(schema.message(ftype.type_name))


def from_field(fd: FieldDescriptor, schema: "Schema | None") -> CelType:
    """Map a whole field (including cardinality) to its expression type."""
    element = from_field_type(fd.type, schema)
    if fd.is_repeated:
        return list_of(element)
    if fd.is_map:
        return map_of(from_field_type(fd.map_key_type, schema), element)
    return element
