"""Unit tests for protorules.expr.checker and compile_expression."""
from __future__ import annotations

import dataclasses

import pytest

from protorules.expr.checker import TypeEnv
from protorules.expr.errors import ExpressionTypeError
from protorules.expr.functions import STANDARD_FUNCTIONS
from protorules.expr.program import compile_expression
from protorules.expr.types import (
    BOOL,
    DOUBLE,
    DURATION,
    DYN,
    INT,
    STRING,
    TIMESTAMP,
    UINT,
    CelType,
    list_of,
    map_of,
    message_type,
)
from protorules.schema import Schema


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def type_of(source: str, this: CelType = DYN, schema: Schema | None = None) -> CelType:
    return compile_expression(source, TypeEnv.for_value(this, schema)).result_type


# ---------------------------------------------------------------------------
# Literals and operators
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("source, expected", [
    ("1", INT),
    ("1u", UINT),
    ("1.5", DOUBLE),
    ("'a'", STRING),
    ("true", BOOL),
    ("[1, 2]", list_of(INT)),
    ("[1, 'a']", list_of(DYN)),
    ("{'a': 1}", map_of(STRING, INT)),
    ("1 + 2", INT),
    ("1 + 2.0", DOUBLE),
    ("'a' + 'b'", STRING),
    ("1 < 2.5", BOOL),
    ("true ? 1 : 2", INT),
    ("now", TIMESTAMP),
    ("now - now", DURATION),
    ("now + duration('1s')", TIMESTAMP),
])
def test_result_types(source: str, expected: CelType) -> None:
    assert type_of(source) == expected


class TestOperatorErrors:
    def test_adding_string_and_int_fails(self) -> None:
        with pytest.raises(ExpressionTypeError, match="no matching overload for '\\+'"):
            type_of("'a' + 1")

    def test_and_requires_bools(self) -> None:
        with pytest.raises(ExpressionTypeError, match="must be bool"):
            type_of("1 && true")

    def test_double_modulus_fails(self) -> None:
        with pytest.raises(ExpressionTypeError):
            type_of("1.5 % 2.0")

    def test_comparing_string_and_int_fails(self) -> None:
        with pytest.raises(ExpressionTypeError):
            type_of("'a' < 1")

    def test_conditional_branches_must_agree(self) -> None:
        with pytest.raises(ExpressionTypeError, match="different types"):
            type_of("true ? 'a' : 1")

    def test_cannot_negate_string(self) -> None:
        with pytest.raises(ExpressionTypeError, match="cannot negate"):
            type_of("-'a'")

    def test_error_carries_offset(self) -> None:
        with pytest.raises(ExpressionTypeError) as info:
            type_of("1 + missing")
        assert info.value.offset == 4


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class TestReferences:
    def test_undeclared_variable(self) -> None:
        with pytest.raises(ExpressionTypeError, match="undeclared reference to 'x'"):
            type_of("x > 1")

    def test_undeclared_function(self) -> None:
        with pytest.raises(ExpressionTypeError, match="function 'nope'"):
            type_of("nope(1)")

    def test_wrong_overload(self) -> None:
        with pytest.raises(ExpressionTypeError, match="no matching overload for method 'startsWith'"):
            type_of("this.startsWith(1)", STRING)

    def test_this_is_typed(self) -> None:
        assert type_of("size(this) > 3", STRING) == BOOL

    def test_dyn_this_allows_anything(self) -> None:
        assert type_of("this.anything.goes", DYN) == DYN

    def test_rule_variable(self) -> None:
        env = TypeEnv.for_value(STRING, rule=INT)
        assert compile_expression("size(this) <= rule", env).result_type == BOOL


class TestMessageFields:
    def test_field_selection_is_typed(self, schema: Schema) -> None:
        user = message_type(schema.message("User"))
        assert type_of("this.email", user, schema) == STRING
        assert type_of("this.tags", user, schema) == list_of(STRING)
        assert type_of("this.labels", user, schema) == map_of(STRING, STRING)
        assert type_of("this.status", user, schema) == INT
        assert type_of("this.created_at", user, schema) == TIMESTAMP

    def test_nested_message_field(self, schema: Schema) -> None:
        user = message_type(schema.message("User"))
        assert type_of("this.address.city", user, schema) == STRING

    def test_has_is_bool(self, schema: Schema) -> None:
        user = message_type(schema.message("User"))
        assert type_of("has(this.nickname)", user, schema) == BOOL

    def test_unknown_field(self, schema: Schema) -> None:
        user = message_type(schema.message("User"))
        with pytest.raises(ExpressionTypeError, match="undefined field 'phone'"):
            type_of("this.phone", user, schema)

    def test_selection_on_scalar(self) -> None:
        with pytest.raises(ExpressionTypeError, match="non-message type"):
            type_of("this.x", STRING)


# ---------------------------------------------------------------------------
# Comprehensions
# ---------------------------------------------------------------------------


class TestComprehensions:
    def test_all_is_bool(self) -> None:
        assert type_of("this.all(x, x > 0)", list_of(INT)) == BOOL

    def test_map_produces_list_of_body(self) -> None:
        assert type_of("this.map(x, string(x))", list_of(INT)) == list_of(STRING)

    def test_filter_keeps_element_type(self) -> None:
        assert type_of("this.filter(x, x > 0)", list_of(INT)) == list_of(INT)

    def test_map_ranges_over_keys(self) -> None:
        assert type_of("this.all(k, k.startsWith('x'))", map_of(STRING, INT)) == BOOL

    def test_body_must_be_bool(self) -> None:
        with pytest.raises(ExpressionTypeError, match="predicate of all"):
            type_of("this.all(x, x + 1)", list_of(INT))

    def test_range_must_be_collection(self) -> None:
        with pytest.raises(ExpressionTypeError, match="requires a list or map"):
            type_of("this.all(x, true)", STRING)

    def test_variable_may_not_shadow_this(self) -> None:
        with pytest.raises(ExpressionTypeError, match="shadows"):
            type_of("this.all(this, true)", list_of(INT))


# ---------------------------------------------------------------------------
# Rule result shape
# ---------------------------------------------------------------------------


class TestRuleResults:
    def test_bool_and_string_results_are_accepted(self) -> None:
        env = TypeEnv.for_value(STRING)
        assert compile_expression("this == ''", env, rule=True).result_type == BOOL
        assert compile_expression("this == '' ? 'empty' : ''", env, rule=True).result_type == STRING

    def test_int_result_is_rejected_for_rules(self) -> None:
        with pytest.raises(ExpressionTypeError, match="bool or string"):
            compile_expression("size(this)", TypeEnv.for_value(STRING), rule=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class TestTypeEnv:
    def test_default_functions_are_the_standard_table(self) -> None:
        assert TypeEnv().functions is STANDARD_FUNCTIONS
        assert "size" in TypeEnv.for_value(STRING).functions

    def test_functions_default_is_a_factory(self) -> None:
        (functions,) = [f for f in dataclasses.fields(TypeEnv) if f.name == "functions"]
        assert functions.default is dataclasses.MISSING
        assert functions.default_factory() is STANDARD_FUNCTIONS  # type: ignore[misc]

    def test_with_variable_keeps_functions(self) -> None:
        env = TypeEnv.for_value(INT).with_variable("x", STRING)
        assert env.variables["x"] == STRING
        assert env.functions is STANDARD_FUNCTIONS
