"""Unit tests for protorules.expr.evaluator: runtime semantics of expressions."""
from __future__ import annotations

import math

import pytest

from protorules.expr import EvaluationError, evaluate_expression, values_equal
from protorules.expr.checker import TypeEnv
from protorules.expr.program import compile_expression
from protorules.expr.types import INT, UINT, message_type
from protorules.schema import Message, Schema, decode_message
from protorules.schema.wkt import Duration, Timestamp


def ev(source: str, this: object = None, **variables: object) -> object:
    return evaluate_expression(source, this, **variables)


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("source, expected", [
    ("1 + 2 * 3", 7),
    ("7 / 2", 3),
    ("-7 / 2", -3),
    ("7 % 3", 1),
    ("-7 % 3", -1),
    ("1.5 * 2.0", 3.0),
    ("1 + 0.5", 1.5),
    ("'ab' + 'cd'", "abcd"),
    ("b'ab' + b'c'", b"abc"),
    ("[1] + [2, 3]", [1, 2, 3]),
])
def test_arithmetic(source: str, expected: object) -> None:
    assert ev(source) == expected


class TestArithmeticErrors:
    def test_integer_division_by_zero(self) -> None:
        with pytest.raises(EvaluationError, match="division by zero"):
            ev("1 / 0")

    def test_integer_modulus_by_zero(self) -> None:
        with pytest.raises(EvaluationError, match="modulus by zero"):
            ev("1 % 0")

    def test_int64_overflow(self) -> None:
        with pytest.raises(EvaluationError, match="integer overflow"):
            ev("9223372036854775807 + 1")

    def test_negating_int64_min_overflows(self) -> None:
        with pytest.raises(EvaluationError, match="overflow"):
            ev("-(-9223372036854775808)")

    def test_uint_underflow(self) -> None:
        program = compile_expression("this - 2u", TypeEnv.for_value(UINT))
        with pytest.raises(EvaluationError, match="unsigned integer overflow"):
            program.evaluate({"this": 1, "now": Timestamp()})

    def test_float_division_by_zero_is_infinite(self) -> None:
        assert ev("1.0 / 0.0") == math.inf
        assert ev("-1.0 / 0.0") == -math.inf

    def test_zero_over_zero_is_nan(self) -> None:
        assert math.isnan(ev("0.0 / 0.0"))


# ---------------------------------------------------------------------------
# Equality and comparison
# ---------------------------------------------------------------------------


class TestEquality:
    def test_int_equals_double_by_value(self) -> None:
        assert ev("1 == 1.0") is True

    def test_bool_never_equals_number(self) -> None:
        assert values_equal(True, 1) is False

    def test_lists_compare_elementwise(self) -> None:
        assert ev("[1, 2] == [1, 2]") is True
        assert ev("[1, 2] == [2, 1]") is False

    def test_maps_compare_by_entries(self) -> None:
        assert ev("{'a': 1, 'b': 2} == {'b': 2, 'a': 1}") is True

    def test_string_ordering(self) -> None:
        assert ev("'abc' < 'abd'") is True

    def test_mixed_dyn_comparison_fails_at_runtime(self) -> None:
        with pytest.raises(EvaluationError, match="cannot compare"):
            ev("this < 1", "a")

    def test_in_list(self) -> None:
        assert ev("2 in [1, 2, 3]") is True

    def test_in_map_checks_keys(self) -> None:
        assert ev("'a' in {'a': 1}") is True
        assert ev("'b' in {'a': 1}") is False


# ---------------------------------------------------------------------------
# Logical operators absorb errors
# ---------------------------------------------------------------------------


class TestErrorAbsorption:
    def test_false_and_error_is_false(self) -> None:
        assert ev("false && 1 / 0 == 1") is False

    def test_error_and_false_is_false(self) -> None:
        assert ev("1 / 0 == 1 && false") is False

    def test_true_or_error_is_true(self) -> None:
        assert ev("1 / 0 == 1 || true") is True

    def test_error_and_true_raises(self) -> None:
        with pytest.raises(EvaluationError):
            ev("1 / 0 == 1 && true")

    def test_exists_absorbs_error_when_another_item_matches(self) -> None:
        assert ev("this.exists(x, 10 / x == 5)", [0, 2]) is True

    def test_all_raises_when_no_item_decides(self) -> None:
        with pytest.raises(EvaluationError):
            ev("this.all(x, 10 / x > 0)", [0, 2])

    def test_conditional_only_evaluates_taken_branch(self) -> None:
        assert ev("true ? 1 : 1 / 0") == 1


# ---------------------------------------------------------------------------
# Comprehensions, indexing and selection
# ---------------------------------------------------------------------------


class TestComprehensions:
    def test_all(self) -> None:
        assert ev("this.all(x, x > 0)", [1, 2, 3]) is True
        assert ev("this.all(x, x > 1)", [1, 2, 3]) is False

    def test_exists_one(self) -> None:
        assert ev("this.exists_one(x, x == 2)", [1, 2, 3]) is True
        assert ev("this.exists_one(x, x > 1)", [1, 2, 3]) is False

    def test_map_and_filter(self) -> None:
        assert ev("this.map(x, x * 2)", [1, 2]) == [2, 4]
        assert ev("this.filter(x, x % 2 == 1)", [1, 2, 3]) == [1, 3]
        assert ev("this.map(x, x > 1, x * 10)", [1, 2, 3]) == [20, 30]

    def test_all_over_empty_list_is_true(self) -> None:
        assert ev("this.all(x, false)", []) is True


class TestIndexing:
    def test_list_index(self) -> None:
        assert ev("this[1]", ["a", "b"]) == "b"

    def test_list_index_out_of_range(self) -> None:
        with pytest.raises(EvaluationError, match="out of range"):
            ev("this[5]", ["a"])

    def test_map_index_missing_key(self) -> None:
        with pytest.raises(EvaluationError, match="no such key"):
            ev("this['x']", {"a": 1})

    def test_map_field_selection(self) -> None:
        assert ev("this.a", {"a": 1}) == 1

    def test_has_on_map(self) -> None:
        assert ev("has(this.a)", {"a": 1}) is True
        assert ev("has(this.b)", {"a": 1}) is False


class TestMessages:
    def test_selects_fields_of_messages(self, schema: Schema) -> None:
        user = decode_message(schema, "User", {"email": "a@b.co", "tags": ["x"]})
        assert ev("this.email", user) == "a@b.co"
        assert ev("size(this.tags)", user) == 1

    def test_has_distinguishes_unset_optional(self, schema: Schema) -> None:
        user = decode_message(schema, "User", {"nickname": ""})
        assert ev("has(this.nickname)", user) is True
        assert ev("has(this.age)", user) is False

    def test_unset_message_field_reads_as_empty_message(self, schema: Schema) -> None:
        user = decode_message(schema, "User", {})
        program = compile_expression(
            "this.address.city == ''",
            TypeEnv.for_value(message_type(schema.message("User")), schema),
        )
        assert program.evaluate({"this": user, "now": Timestamp()}) is True

    def test_empty_message_is_a_message(self, schema: Schema) -> None:
        user = decode_message(schema, "User", {})
        assert isinstance(ev("this.address", user), Message)


# ---------------------------------------------------------------------------
# Time values
# ---------------------------------------------------------------------------


class TestTime:
    def test_timestamp_arithmetic(self) -> None:
        result = ev("timestamp('2024-01-01T00:00:00Z') + duration('1h')")
        assert result == Timestamp.parse("2024-01-01T01:00:00Z")

    def test_timestamp_difference_is_duration(self) -> None:
        result = ev("timestamp('2024-01-02T00:00:00Z') - timestamp('2024-01-01T00:00:00Z')")
        assert result == Duration(seconds=86400)

    def test_now_is_bound(self) -> None:
        fixed = Timestamp(seconds=100)
        assert ev("now", now=fixed) == fixed

    def test_timestamp_out_of_range(self) -> None:
        with pytest.raises(EvaluationError, match="out of range"):
            ev("timestamp('9999-12-31T23:59:59Z') + duration('1s')")


class TestTypedPrograms:
    def test_program_is_reusable(self) -> None:
        program = compile_expression("this * 2", TypeEnv.for_value(INT))
        assert program.evaluate({"this": 2, "now": Timestamp()}) == 4
        assert program.evaluate({"this": 5, "now": Timestamp()}) == 10
