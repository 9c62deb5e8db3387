"""Presence resolution: does a field count as set?

Explicit-presence fields (``optional`` scalars, message fields, oneof
members) remember whether they were assigned, so they distinguish
``UNSET`` from ``SET_TO_DEFAULT``.  Implicit-presence fields (bare
proto3 scalars, repeated and map fields) cannot: a field holding its
zero value looks exactly like one never assigned, and both resolve to
``SET_TO_DEFAULT``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from protorules.schema.descriptors import FieldDescriptor, FieldType, TypeKind
from protorules.schema.message import Message, default_value


class FieldState(Enum):
    UNSET = "unset"
    SET_TO_DEFAULT = "set_to_default"
    SET_TO_NON_DEFAULT = "set_to_non_default"


def is_zero_element(ftype: FieldType, value: Any) -> bool:
    """Return True if a single value of ``ftype`` is its type's zero value.

    A plain message is zero when none of its fields is populated.
    """
    if value is None:
        return True
    if isinstance(value, Message):
        return next(iter(value), None) is None
    if ftype.kind is TypeKind.MESSAGE and not ftype.is_well_known:
        return False
    zero = default_value(ftype)
    if isinstance(value, bool) or isinstance(zero, bool):
        return value is zero
    return bool(value == zero)


def is_zero_value(field: FieldDescriptor, value: Any) -> bool:
    """Return True if ``value`` is the zero value of the whole field.

    Repeated and map fields are zero when empty.
    """
    if field.is_repeated or field.is_map:
        return len(value) == 0
    return is_zero_element(field.type, value)


def resolve_presence(field: FieldDescriptor, message: Message) -> FieldState:
    """Classify ``field`` of ``message`` as unset, default, or non-default.

    Parameters
    ----------
    field:
        A field of ``message``'s descriptor.
    message:
        The populated instance.

    Returns
    -------
    FieldState
        ``UNSET`` only for explicit-presence fields never assigned.

    Example
    -------
    ::

        resolve_presence(nickname_fd, Message(user, {}))          # UNSET (optional)
        resolve_presence(name_fd, Message(user, {}))              # SET_TO_DEFAULT
        resolve_presence(name_fd, Message(user, {"name": "Al"}))  # SET_TO_NON_DEFAULT
    """
    if field.has_explicit_presence and not message.is_assigned(field.name):
        return FieldState.UNSET
    if is_zero_value(field, message.get(field.name)):
        return FieldState.SET_TO_DEFAULT
    return FieldState.SET_TO_NON_DEFAULT


def is_missing(field: FieldDescriptor, state: FieldState) -> bool:
    """Return True if ``state`` fails a ``required`` rule on ``field``.

    Explicit presence fails only when unset; implicit presence (and
    repeated or map fields) fails on the zero value.
    """
    if field.has_explicit_presence:
        return state is FieldState.UNSET
    return state is not FieldState.SET_TO_NON_DEFAULT
