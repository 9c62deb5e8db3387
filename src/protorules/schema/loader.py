"""Schema document loader.

Builds a ``Schema`` from a YAML or JSON document.  The document mirrors
a ``.proto`` file annotated with validation options::

    package: acme.v1
    enums:
      Status: {STATUS_UNSPECIFIED: 0, STATUS_ACTIVE: 1}
    predefined:
      string:
        is_slug:
          expression: "this.matches('^[a-z0-9-]+$') == rule"
          message: "value must be a slug"
    messages:
      User:
        fields:
          email: {type: string, rules: {required: true, string: {email: true}}}
          nickname: {type: string, optional: true, rules: {string: {max_len: 32}}}
          tags: {type: string, repeated: true, rules: {repeated: {unique: true}}}
          labels: {type: "map<string, string>", rules: {map: {max_pairs: 8}}}
          status: {type: Status, rules: {enum: {defined_only: true, not_in: [0]}}}
          created_at: {type: google.protobuf.Timestamp}
        oneofs:
          contact: {fields: [email_addr, phone], required: true}
        rules:
          cel:
            - id: created_before_now
              expression: "!has(this.created_at) || this.created_at < now"
              message: "created_at must be in the past"

Usage
-----
::

    from protorules.schema import load_schema

    schema = load_schema(Path("schema.yaml"))
"""
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from protorules.errors import SchemaError
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
    TypeKind,
    make_field,
)
from protorules.schema.schema import PredefinedRule, Schema

_MAP_TYPE = re.compile(r"map\s*<\s*([\w.]+)\s*,\s*([\w.]+)\s*>")
_NESTED_RULE_KEYS: dict[str, tuple[str, ...]] = {
    "repeated": ("items",),
    "map": ("keys", "values"),
}
_RESERVED_RULE_KEYS = frozenset({"required", "ignore", "cel", "cel_expression"})


class SchemaLoader:
    """Converts schema documents (dicts, YAML, JSON) into ``Schema`` objects."""

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def from_dict(self, data: Mapping[str, Any]) -> Schema:
        """Build a ``Schema`` from a parsed document.

        Raises
        ------
        SchemaError
            If the document is structurally invalid.
        """
        if not isinstance(data, Mapping):
            raise SchemaError("schema document must be a mapping")
        package = str(data.get("package", "") or "")
        enum_docs = _mapping(data.get("enums", {}), "enums")
        message_docs = _mapping(data.get("messages", {}), "messages")

        enums = [self._enum(package, name, doc) for name, doc in enum_docs.items()]
        enum_names = frozenset(e.full_name for e in enums) | frozenset(
            e.full_name[len(package) + 1 :] for e in enums if package
        )
        message_names = frozenset(_qualify(package, n) for n in message_docs)
        messages = [
            self._message(package, name, doc, enum_names, message_names)
            for name, doc in message_docs.items()
        ]
        predefined = self._predefined(data.get("predefined", {}))
        return Schema.of(messages, enums, package=package, predefined=predefined)

    def from_yaml(self, text: str) -> Schema:
        """Build a ``Schema`` from YAML text."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SchemaError(f"invalid YAML: {exc}") from exc
        return self.from_dict(data or {})

    def from_json(self, text: str) -> Schema:
        """Build a ``Schema`` from JSON text."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"invalid JSON: {exc}") from exc
        return self.from_dict(data)

    def from_path(self, path: Path) -> Schema:
        """Load a ``.yaml``/``.yml``/``.json`` schema file."""
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return self.from_json(text)
        return self.from_yaml(text)

    # ------------------------------------------------------------------
    # Enums and predefined rules
    # ------------------------------------------------------------------

    def _enum(self, package: str, name: str, doc: Any) -> EnumDescriptor:
        full_name = _qualify(package, name)
        values = doc.get("values", doc) if isinstance(doc, Mapping) else None
        if not isinstance(values, Mapping) or not values:
            raise SchemaError("enum must declare at least one value", full_name)
        for key, number in values.items():
            if not isinstance(number, int) or isinstance(number, bool):
                raise SchemaError(f"enum value {key!r} must be an integer", full_name)
        return EnumDescriptor(full_name=full_name, values={str(k): v for k, v in values.items()})

    def _predefined(self, doc: Any) -> list[PredefinedRule]:
        rules: list[PredefinedRule] = []
        for family, entries in _mapping(doc, "predefined").items():
            for name, entry in _mapping(entries, f"predefined.{family}").items():
                path = f"predefined.{family}.{name}"
                if isinstance(entry, str):
                    entry = {"expression": entry}
                if not isinstance(entry, Mapping) or "expression" not in entry:
                    raise SchemaError("predefined rule needs an 'expression'", path)
                rules.append(
                    PredefinedRule(
                        family=str(family),
                        name=str(name),
                        expression=str(entry["expression"]),
                        message=str(entry.get("message", "")),
                    )
                )
        return rules

    # ------------------------------------------------------------------
    # Messages and fields
    # ------------------------------------------------------------------

    def _message(
        self,
        package: str,
        name: str,
        doc: Any,
        enum_names: frozenset[str],
        message_names: frozenset[str],
    ) -> MessageDescriptor:
        full_name = _qualify(package, name)
        doc = _mapping(doc, full_name)
        field_docs = doc.get("fields", {})
        if isinstance(field_docs, list):
            field_docs = {str(_mapping(f, full_name).get("name", "")): f for f in field_docs}
        field_docs = _mapping(field_docs, f"{full_name}.fields")

        fields: list[FieldDescriptor] = []
        for index, (field_name, field_doc) in enumerate(field_docs.items(), start=1):
            path = f"{full_name}.{field_name}"
            fields.append(
                self._field(package, str(field_name), index, field_doc, enum_names, message_names, path)
            )

        oneofs = self._oneofs(doc.get("oneofs", {}), fields, full_name)
        rules = self._message_rules(doc.get("rules", {}), full_name)
        return MessageDescriptor(full_name=full_name, fields=tuple(fields), oneofs=oneofs, rules=rules)

    def _field(
        self,
        package: str,
        name: str,
        default_number: int,
        doc: Any,
        enum_names: frozenset[str],
        message_names: frozenset[str],
        path: str,
    ) -> FieldDescriptor:
        if isinstance(doc, str):
            doc = {"type": doc}
        doc = _mapping(doc, path)
        type_text = str(doc.get("type", "")).strip()
        if not type_text:
            raise SchemaError("field needs a 'type'", path)

        cardinality = Cardinality.SINGULAR
        key_type: FieldType | None = None
        if type_text.startswith("repeated "):
            cardinality = Cardinality.REPEATED
            type_text = type_text[len("repeated ") :].strip()
        elif doc.get("repeated"):
            cardinality = Cardinality.REPEATED
        map_match = _MAP_TYPE.fullmatch(type_text)
        if map_match:
            cardinality = Cardinality.MAP
            key_type = FieldType.parse(map_match.group(1))
            type_text = map_match.group(2)

        ftype = self._resolve_type(package, type_text, enum_names, message_names)
        presence: PresenceDiscipline | None = None
        if doc.get("presence"):
            try:
                presence = PresenceDiscipline[str(doc["presence"]).upper()]
            except KeyError:
                raise SchemaError(
                    f"unknown presence {doc['presence']!r}; use explicit or implicit", path
                ) from None
        rules = self._field_rules(doc.get("rules", {}), path)
        try:
            return make_field(
                name,
                int(doc.get("number", default_number)),
                ftype,
                cardinality=cardinality,
                key_type=key_type,
                optional=bool(doc.get("optional", False)),
                oneof=doc.get("oneof"),
                presence=presence,
                rules=rules,
            )
        except SchemaError as exc:
            raise SchemaError(exc.message, path) from None

    def _resolve_type(
        self,
        package: str,
        type_text: str,
        enum_names: frozenset[str],
        message_names: frozenset[str],
    ) -> FieldType:
        ftype = FieldType.parse(type_text, enum_names)
        if ftype.kind is TypeKind.SCALAR or ftype.is_well_known:
            return ftype
        qualified = _qualify(package, type_text)
        if ftype.kind is TypeKind.ENUM:
            full = qualified if qualified in enum_names else type_text
            return FieldType(kind=TypeKind.ENUM, type_name=full)
        full = qualified if qualified in message_names else type_text
        return FieldType(kind=TypeKind.MESSAGE, type_name=full)

    def _oneofs(
        self, doc: Any, fields: list[FieldDescriptor], message_name: str
    ) -> tuple[OneofDescriptor, ...]:
        declared: dict[str, dict[str, Any]] = {}
        if isinstance(doc, list):
            doc = {str(_mapping(o, message_name).get("name", "")): o for o in doc}
        for name, entry in _mapping(doc, f"{message_name}.oneofs").items():
            declared[str(name)] = dict(_mapping(entry or {}, f"{message_name}.oneofs.{name}"))

        members: dict[str, list[str]] = {name: [] for name in declared}
        for fd in fields:
            if fd.oneof is not None:
                members.setdefault(fd.oneof, []).append(fd.name)
        for name, entry in declared.items():
            for member in entry.get("fields", ()):
                if member not in members[name]:
                    raise SchemaError(
                        f"field {member!r} listed in oneof {name!r} must declare 'oneof: {name}'",
                        message_name,
                    )
        return tuple(
            OneofDescriptor(
                name=name,
                fields=tuple(member_names),
                required=bool(declared.get(name, {}).get("required", False)),
            )
            for name, member_names in members.items()
        )

    def _message_rules(self, doc: Any, path: str) -> MessageRules:
        doc = _mapping(doc or {}, f"{path}.rules")
        oneofs = tuple(
            MessageOneofRule(
                fields=tuple(str(f) for f in _mapping(entry, f"{path}.rules.oneof").get("fields", ())),
                required=bool(entry.get("required", False)),
            )
            for entry in doc.get("oneof", ())
        )
        return MessageRules(
            disabled=bool(doc.get("disabled", False)),
            cel=self._cel_rules(doc, path),
            oneofs=oneofs,
        )

    def _field_rules(self, doc: Any, path: str) -> FieldRules:
        doc = _mapping(doc or {}, f"{path}.rules")
        ignore = Ignore.UNSPECIFIED
        if "ignore" in doc:
            try:
                ignore = Ignore.parse(str(doc["ignore"]))
            except ValueError as exc:
                raise SchemaError(str(exc), f"{path}.rules.ignore") from None

        type_rules: dict[str, dict[str, Any]] = {}
        for family, params in doc.items():
            if family in _RESERVED_RULE_KEYS:
                continue
            params = dict(_mapping(params, f"{path}.rules.{family}"))
            for nested in _NESTED_RULE_KEYS.get(family, ()):
                if nested in params:
                    params[nested] = self._field_rules(params[nested], f"{path}.{family}.{nested}")
            type_rules[str(family)] = params

        return FieldRules(
            required=bool(doc.get("required", False)),
            ignore=ignore,
            type_rules=type_rules,
            cel=self._cel_rules(doc, path),
        )

    def _cel_rules(self, doc: Mapping[str, Any], path: str) -> tuple[CelRule, ...]:
        rules: list[CelRule] = []
        for entry in doc.get("cel", ()) or ():
            entry = _mapping(entry, f"{path}.cel")
            if "expression" not in entry:
                raise SchemaError("cel rule needs an 'expression'", f"{path}.cel")
            rules.append(
                CelRule(
                    id=str(entry.get("id", "")),
                    expression=str(entry["expression"]),
                    message=str(entry.get("message", "")),
                )
            )
        for expression in doc.get("cel_expression", ()) or ():
            rules.append(CelRule(id=str(expression), expression=str(expression)))
        return tuple(rules)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _qualify(package: str, name: str) -> str:
    if not package or name.startswith(f"{package}.") or "." in name:
        return name
    return f"{package}.{name}"


def _mapping(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SchemaError(f"expected a mapping, got {type(value).__name__}", path)
    return value


def load_schema(source: Path | str | Mapping[str, Any]) -> Schema:
    """Load a schema from a file path, YAML/JSON text, or a parsed mapping.

    Parameters
    ----------
    source:
        A ``Path`` to a schema file, schema text (YAML is a superset of
        JSON so either works), or an already-parsed document.

    Returns
    -------
    Schema
        The loaded, type-resolved schema.

    Raises
    ------
    SchemaError
        If the document is malformed or references unknown types.
    """
    loader = SchemaLoader()
    if isinstance(source, Path):
        schema = loader.from_path(source)
    elif isinstance(source, str):
        schema = loader.from_yaml(source)
    else:
        schema = loader.from_dict(source)
    unresolved = schema.verify()
    if unresolved:
        raise unresolved[0]
    return schema
