"""The ``Schema``: a resolved set of message and enum descriptors."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from protorules.errors import SchemaError
from protorules.schema.descriptors import EnumDescriptor, MessageDescriptor, TypeKind
from protorules.schema.wkt import WELL_KNOWN_TYPES


@dataclass(frozen=True, slots=True)
class PredefinedRule:
    """A schema-declared rule kind that extends a built-in family.

    ``family.name`` becomes usable in field rules exactly like a
    built-in rule; the expression sees ``this`` (the value) and
    ``rule`` (the parameter given at the use site).
    """

    family: str
    name: str
    expression: str
    message: str = ""

    @property
    def rule_id(self) -> str:
        return f"{self.family}.{self.name}"


@dataclass(frozen=True)
class Schema:
    """A resolved protobuf schema annotated with constraint rules.

    Parameters
    ----------
    package:
        Proto package used to resolve relative type names.
    messages:
        Message descriptors keyed by full name.
    enums:
        Enum descriptors keyed by full name.
    predefined:
        Extra rule kinds declared by the schema.
    compile_cache:
        Compiled forms of this schema keyed by rule registry, filled by
        ``protorules.validator.compile_schema``. Released with the schema.
    """

    package: str = ""
    messages: Mapping[str, MessageDescriptor] = field(default_factory=dict)
    enums: Mapping[str, EnumDescriptor] = field(default_factory=dict)
    predefined: tuple[PredefinedRule, ...] = ()
    compile_cache: dict[int, Any] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", MappingProxyType(dict(self.messages)))
        object.__setattr__(self, "enums", MappingProxyType(dict(self.enums)))

    @classmethod
    def of(
        cls,
        messages: Iterable[MessageDescriptor],
        enums: Iterable[EnumDescriptor] = (),
        *,
        package: str = "",
        predefined: Iterable[PredefinedRule] = (),
    ) -> "Schema":
        """Build a schema from descriptor lists."""
        return cls(
            package=package,
            messages={m.full_name: m for m in messages},
            enums={e.full_name: e for e in enums},
            predefined=tuple(predefined),
        )

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def _candidates(self, name: str) -> list[str]:
        name = name.lstrip(".")
        if not self.package:
            return [name]
        return [f"{self.package}.{name}", name]

    def message(self, name: str) -> MessageDescriptor:
        """Return the message named ``name`` (full or package-relative).

        Raises
        ------
        SchemaError
            If no such message exists.
        """
        for candidate in self._candidates(name):
            if candidate in self.messages:
                return self.messages[candidate]
        raise SchemaError(f"unknown message type {name!r}")

    def enum(self, name: str) -> EnumDescriptor:
        """Return the enum named ``name`` (full or package-relative).

        Raises
        ------
        SchemaError
            If no such enum exists.
        """
        for candidate in self._candidates(name):
            if candidate in self.enums:
                return self.enums[candidate]
        raise SchemaError(f"unknown enum type {name!r}")

    def has_message(self, name: str) -> bool:
        return any(c in self.messages for c in self._candidates(name))

    def verify(self) -> list[SchemaError]:
        """Return every unresolvable type reference in the schema."""
        errors: list[SchemaError] = []
        for message in self.messages.values():
            for fd in message.fields:
                path = f"{message.full_name}.{fd.name}"
                type_name = fd.type.type_name
                if fd.type.kind is TypeKind.ENUM:
                    if not any(c in self.enums for c in self._candidates(type_name or "")):
                        errors.append(SchemaError(f"unknown enum type {type_name!r}", path))
                elif fd.type.kind is TypeKind.MESSAGE and type_name not in WELL_KNOWN_TYPES:
                    if not self.has_message(type_name or ""):
                        errors.append(SchemaError(f"unknown message type {type_name!r}", path))
        return errors

    def describe(self) -> dict[str, Any]:
        """Return a short summary used by the CLI."""
        return {
            "package": self.package,
            "messages": sorted(self.messages),
            "enums": sorted(self.enums),
            "predefined": [p.rule_id for p in self.predefined],
        }
