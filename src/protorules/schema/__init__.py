"""Schema model: descriptors, well-known values, message instances, loader."""
from __future__ import annotations

from protorules.schema.descriptors import (
    Cardinality,
    CelRule,
    EnumDescriptor,
    FieldDescriptor,
    FieldRules,
    FieldType,
    Ignore,
    MessageDescriptor,
    MessageOneofRule,
    MessageRules,
    OneofDescriptor,
    PresenceDiscipline,
    ScalarKind,
    TypeKind,
    make_field,
)
from protorules.schema.loader import SchemaLoader, load_schema
from protorules.schema.message import Message, decode_message, default_value
from protorules.schema.schema import PredefinedRule, Schema
from protorules.schema.wkt import AnyValue, Duration, FieldMask, Timestamp

__all__ = [
    "AnyValue",
    "Cardinality",
    "CelRule",
    "Duration",
    "EnumDescriptor",
    "FieldDescriptor",
    "FieldMask",
    "FieldRules",
    "FieldType",
    "Ignore",
    "Message",
    "MessageDescriptor",
    "MessageOneofRule",
    "MessageRules",
    "OneofDescriptor",
    "PredefinedRule",
    "PresenceDiscipline",
    "ScalarKind",
    "Schema",
    "SchemaLoader",
    "Timestamp",
    "TypeKind",
    "decode_message",
    "default_value",
    "load_schema",
    "make_field",
]
