"""Unit tests for the protorules linter: diagnostics, the built-in lint
rules (PRL001 to PRL005) and the SchemaLinter class.
"""
from __future__ import annotations

from typing import Any

import pytest

from protorules.linter import (
    ALL_LINT_RULES,
    Diagnostic,
    DiagnosticSeverity,
    SchemaLinter,
    lint,
    rule_cel_message,
    rule_inverted_bounds,
    rule_required_enum_form,
    rule_required_ignored,
    rule_unguarded_optional,
)
from protorules.schema import Schema, load_schema

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _schema(fields: dict[str, Any], rules: dict[str, Any] | None = None) -> Schema:
    message: dict[str, Any] = {"fields": fields}
    if rules is not None:
        message["rules"] = rules
    return load_schema({
        "package": "t",
        "enums": {"Kind": {"KIND_UNSPECIFIED": 0, "KIND_A": 1}},
        "messages": {"M": message},
    })


def _codes(diagnostics: list[Diagnostic]) -> list[str]:
    return [d.code for d in diagnostics]


def _exploding_rule(schema: Schema) -> list[Diagnostic]:
    raise RuntimeError("boom")


# ---------------------------------------------------------------------------
# Diagnostic
# ---------------------------------------------------------------------------


class TestDiagnostic:
    def test_str_with_suggestion(self) -> None:
        diag = Diagnostic(DiagnosticSeverity.WARNING, "PRL002", "no effect", "t.M.a", suggestion="drop it")
        assert str(diag) == "[PRL002] WARNING at t.M.a: no effect (hint: drop it)"

    def test_str_without_suggestion(self) -> None:
        diag = Diagnostic(DiagnosticSeverity.HINT, "PRL004", "add a message", "t.M")
        assert str(diag) == "[PRL004] HINT at t.M: add a message"

    @pytest.mark.parametrize("severity, expected", [
        (DiagnosticSeverity.ERROR, True),
        (DiagnosticSeverity.WARNING, False),
        (DiagnosticSeverity.INFORMATION, False),
        (DiagnosticSeverity.HINT, False),
    ])
    def test_is_error(self, severity: DiagnosticSeverity, expected: bool) -> None:
        assert Diagnostic(severity, "X", "m", "p").is_error is expected


# ---------------------------------------------------------------------------
# PRL001
# ---------------------------------------------------------------------------


class TestRuleRequiredEnumForm:
    def test_defined_only_alone_is_flagged(self) -> None:
        schema = _schema({"kind": {"type": "Kind", "rules": {"required": True, "enum": {"defined_only": True}}}})
        diagnostics = rule_required_enum_form(schema)
        assert _codes(diagnostics) == ["PRL001"]
        assert diagnostics[0].path == "t.M.kind"
        assert diagnostics[0].severity is DiagnosticSeverity.WARNING
        assert "not_in: [0]" in (diagnostics[0].suggestion or "")

    def test_not_in_zero_by_number(self) -> None:
        schema = _schema({
            "kind": {"type": "Kind", "rules": {"required": True, "enum": {"defined_only": True, "not_in": [0]}}}
        })
        assert rule_required_enum_form(schema) == []

    def test_not_in_zero_by_name(self) -> None:
        schema = _schema({
            "kind": {
                "type": "Kind",
                "rules": {"required": True, "enum": {"defined_only": True, "not_in": ["KIND_UNSPECIFIED"]}},
            }
        })
        assert rule_required_enum_form(schema) == []

    def test_not_required_is_ignored(self) -> None:
        schema = _schema({"kind": {"type": "Kind", "rules": {"enum": {"defined_only": True}}}})
        assert rule_required_enum_form(schema) == []

    def test_non_enum_fields_are_ignored(self) -> None:
        schema = _schema({"n": {"type": "int32", "rules": {"required": True}}})
        assert rule_required_enum_form(schema) == []


# ---------------------------------------------------------------------------
# PRL002
# ---------------------------------------------------------------------------


class TestRuleRequiredIgnored:
    def test_required_and_always_ignored(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"required": True, "ignore": "ALWAYS"}}})
        diagnostics = rule_required_ignored(schema)
        assert _codes(diagnostics) == ["PRL002"]
        assert diagnostics[0].rule == "required_ignored"

    def test_if_zero_value_is_fine(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"required": True, "ignore": "IF_ZERO_VALUE"}}})
        assert rule_required_ignored(schema) == []


# ---------------------------------------------------------------------------
# PRL003
# ---------------------------------------------------------------------------


class TestRuleInvertedBounds:
    def test_string_lengths(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"string": {"min_len": 5, "max_len": 2}}}})
        diagnostics = rule_inverted_bounds(schema)
        assert _codes(diagnostics) == ["PRL003"]
        assert diagnostics[0].is_error
        assert diagnostics[0].message.startswith("string.min_len (5) is greater than string.max_len (2)")

    def test_equal_bounds_are_fine(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"string": {"min_len": 2, "max_len": 2}}}})
        assert rule_inverted_bounds(schema) == []

    def test_repeated_counts(self) -> None:
        schema = _schema({
            "a": {"type": "int32", "repeated": True, "rules": {"repeated": {"min_items": 3, "max_items": 1}}}
        })
        assert _codes(rule_inverted_bounds(schema)) == ["PRL003"]

    def test_item_rules_are_inspected(self) -> None:
        schema = _schema({
            "a": {
                "type": "string",
                "repeated": True,
                "rules": {"repeated": {"items": {"string": {"min_len": 4, "max_len": 1}}}},
            }
        })
        assert [d.path for d in rule_inverted_bounds(schema)] == ["t.M.a.items"]

    def test_map_values_are_inspected(self) -> None:
        schema = _schema({
            "a": {
                "type": "map<string, bytes>",
                "rules": {"map": {"values": {"bytes": {"min_len": 9, "max_len": 1}}}},
            }
        })
        assert [d.path for d in rule_inverted_bounds(schema)] == ["t.M.a.values"]


# ---------------------------------------------------------------------------
# PRL004
# ---------------------------------------------------------------------------


class TestRuleCelMessage:
    def test_boolean_rule_without_message(self) -> None:
        schema = _schema({"a": "int32"}, {"cel": [{"id": "positive", "expression": "this.a > 0"}]})
        diagnostics = rule_cel_message(schema)
        assert _codes(diagnostics) == ["PRL004"]
        assert diagnostics[0].severity is DiagnosticSeverity.HINT
        assert diagnostics[0].path == "t.M"

    def test_boolean_rule_with_message(self) -> None:
        schema = _schema(
            {"a": "int32"},
            {"cel": [{"id": "positive", "expression": "this.a > 0", "message": "a must be positive"}]},
        )
        assert rule_cel_message(schema) == []

    def test_string_rule_needs_no_message(self) -> None:
        schema = _schema(
            {"a": "int32"},
            {"cel": [{"id": "positive", "expression": "this.a > 0 ? '' : 'a must be positive'"}]},
        )
        assert rule_cel_message(schema) == []

    def test_field_rule_without_message(self) -> None:
        schema = _schema({"a": {"type": "int32", "rules": {"cel": [{"id": "even", "expression": "this % 2 == 0"}]}}})
        assert [d.path for d in rule_cel_message(schema)] == ["t.M.a"]


# ---------------------------------------------------------------------------
# PRL005
# ---------------------------------------------------------------------------


class TestRuleUnguardedOptional:
    def test_unguarded_read(self) -> None:
        schema = _schema(
            {"nick": {"type": "string", "optional": True}},
            {"cel": [{"id": "nick", "expression": "this.nick != 'root'", "message": "m"}]},
        )
        diagnostics = rule_unguarded_optional(schema)
        assert _codes(diagnostics) == ["PRL005"]
        assert "has(this.nick)" in diagnostics[0].message

    def test_guarded_read(self) -> None:
        schema = _schema(
            {"nick": {"type": "string", "optional": True}},
            {"cel": [{"id": "nick", "expression": "!has(this.nick) || this.nick != 'root'", "message": "m"}]},
        )
        assert rule_unguarded_optional(schema) == []

    def test_implicit_fields_are_not_flagged(self) -> None:
        schema = _schema({"nick": "string"}, {"cel": [{"id": "nick", "expression": "this.nick != 'root'"}]})
        assert rule_unguarded_optional(schema) == []

    def test_each_field_reported_once(self) -> None:
        schema = _schema(
            {"lo": {"type": "int32", "optional": True}, "hi": {"type": "int32", "optional": True}},
            {"cel": [{"id": "order", "expression": "this.lo <= this.hi && this.lo >= 0", "message": "m"}]},
        )
        assert [d.message.split("'")[3] for d in rule_unguarded_optional(schema)] == ["lo", "hi"]

    def test_message_fields_are_flagged(self) -> None:
        schema = _schema(
            {"start": "google.protobuf.Timestamp", "end": "google.protobuf.Timestamp"},
            {"cel": [{"id": "order", "expression": "this.end > this.start", "message": "m"}]},
        )
        diagnostics = rule_unguarded_optional(schema)
        assert [d.message.split("'")[3] for d in diagnostics] == ["end", "start"]
        assert "skipped while it is unset" in diagnostics[0].message

    def test_oneof_members_are_flagged(self) -> None:
        schema = _schema(
            {"a": {"type": "string", "oneof": "pick"}, "b": {"type": "int32", "oneof": "pick"}},
            {"cel": [{"id": "short", "expression": "size(this.a) < 5", "message": "m"}]},
        )
        assert _codes(rule_unguarded_optional(schema)) == ["PRL005"]


# ---------------------------------------------------------------------------
# SchemaLinter
# ---------------------------------------------------------------------------


class TestSchemaLinter:
    def test_default_rule_count(self) -> None:
        assert SchemaLinter().rule_count == len(ALL_LINT_RULES) == 5

    def test_clean_sample_schema(self, schema: Schema) -> None:
        assert SchemaLinter().lint(schema) == []

    def test_empty_rule_list(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"required": True, "ignore": "ALWAYS"}}})
        assert SchemaLinter(rules=[]).lint(schema) == []

    def test_add_rule(self) -> None:
        linter = SchemaLinter(rules=[])
        linter.add_rule(rule_required_ignored)
        assert linter.rule_count == 1

    def test_hints_can_be_suppressed(self) -> None:
        schema = _schema({"a": "int32"}, {"cel": [{"id": "positive", "expression": "this.a > 0"}]})
        assert _codes(SchemaLinter().lint(schema)) == ["PRL004"]
        assert SchemaLinter(include_hints=False).lint(schema) == []

    def test_failing_rule_becomes_prl999(self) -> None:
        diagnostics = SchemaLinter(rules=[_exploding_rule]).lint(_schema({"a": "string"}))
        assert _codes(diagnostics) == ["PRL999"]
        assert diagnostics[0].is_error
        assert diagnostics[0].path == "t"
        assert "boom" in diagnostics[0].message

    def test_sorted_by_path_then_severity(self) -> None:
        schema = _schema(
            {
                "b": {"type": "string", "rules": {"required": True, "ignore": "ALWAYS"}},
                "a": {"type": "string", "rules": {"string": {"min_len": 3, "max_len": 1}}},
            },
            {"cel": [{"id": "x", "expression": "this.a != ''"}]},
        )
        assert [(d.path, d.code) for d in SchemaLinter().lint(schema)] == [
            ("t.M", "PRL004"),
            ("t.M.a", "PRL003"),
            ("t.M.b", "PRL002"),
        ]


class TestLintConvenienceFunction:
    def test_returns_diagnostics(self) -> None:
        schema = _schema({"a": {"type": "string", "rules": {"required": True, "ignore": "ALWAYS"}}})
        assert _codes(lint(schema)) == ["PRL002"]

    def test_include_hints_flag(self) -> None:
        schema = _schema({"a": "int32"}, {"cel": [{"id": "positive", "expression": "this.a > 0"}]})
        assert lint(schema, include_hints=False) == []
