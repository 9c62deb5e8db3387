"""Unit tests for protorules.schema.message: Message and decode_message."""
from __future__ import annotations

import math

import pytest

from protorules.errors import DecodeError, SchemaError
from protorules.schema import Message, Schema, decode_message, load_schema
from protorules.schema.wkt import AnyValue, Duration, FieldMask, Timestamp

KITCHEN_SINK = """
package: k
enums:
  Color: {COLOR_UNSPECIFIED: 0, RED: 1}
messages:
  Inner:
    fields:
      n: int32
  Sink:
    fields:
      i32: int32
      u32: uint32
      f: double
      f32: float
      b: bool
      raw: bytes
      opt: {type: string, optional: true}
      color: Color
      inner: Inner
      nums: {type: int32, repeated: true}
      counts: "map<int64, string>"
      flags: "map<bool, string>"
      when: google.protobuf.Timestamp
      took: google.protobuf.Duration
      any: google.protobuf.Any
      mask: google.protobuf.FieldMask
      text: {type: string, oneof: choice}
      number: {type: int64, oneof: choice}
"""


@pytest.fixture()
def sink_schema() -> Schema:
    return load_schema(KITCHEN_SINK)


def sink(schema: Schema, **values: object) -> Message:
    return decode_message(schema, "Sink", values)


# ---------------------------------------------------------------------------
# Presence and defaults
# ---------------------------------------------------------------------------


class TestPresence:
    def test_implicit_zero_is_not_populated(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, i32=0)
        assert msg.is_assigned("i32")
        assert not msg.has("i32")

    def test_implicit_nonzero_is_populated(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, i32=3).has("i32")

    def test_explicit_zero_is_populated(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, opt="")
        assert msg.has("opt")

    def test_unset_explicit_field(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema)
        assert not msg.has("opt")
        assert msg.get("opt") == ""

    def test_empty_repeated_is_not_populated(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, nums=[])
        assert not msg.has("nums")
        assert msg.get("nums") == []

    def test_defaults(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema)
        assert msg.get("i32") == 0
        assert msg.get("f") == 0.0
        assert msg.get("b") is False
        assert msg.get("raw") == b""
        assert msg.get("nums") == ()
        assert dict(msg.get("counts")) == {}
        assert msg.get("when") == Timestamp()
        assert msg.get("took") == Duration()

    def test_unset_message_field_reads_as_empty_message(self, sink_schema: Schema) -> None:
        inner = sink(sink_schema).get("inner")
        assert isinstance(inner, Message)
        assert inner.descriptor.full_name == "k.Inner"
        assert list(inner) == []

    def test_clear(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, opt="x")
        msg.clear("opt")
        assert not msg.is_assigned("opt")

    def test_unknown_field_access(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema)
        with pytest.raises(KeyError):
            msg.get("ghost")
        with pytest.raises(AttributeError):
            msg.ghost  # noqa: B018

    def test_attribute_access(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, i32=5).i32 == 5


class TestOneof:
    def test_setting_a_member_clears_siblings(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, text="a")
        msg.set("number", 7)
        assert msg.which_oneof("choice") == "number"
        assert not msg.is_assigned("text")

    def test_unset_oneof(self, sink_schema: Schema) -> None:
        assert sink(sink_schema).which_oneof("choice") is None

    def test_unknown_oneof(self, sink_schema: Schema) -> None:
        with pytest.raises(KeyError):
            sink(sink_schema).which_oneof("ghost")


class TestEqualityAndDisplay:
    def test_equal_messages(self, sink_schema: Schema) -> None:
        a = sink(sink_schema, i32=1, nums=[1, 2], counts={"1": "x"})
        b = sink(sink_schema, i32=1, nums=[1, 2], counts={1: "x"})
        assert a == b
        assert hash(a) == hash(b)

    def test_zero_implicit_value_does_not_affect_equality(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, i32=0) == sink(sink_schema)

    def test_iteration_yields_populated_fields(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, u32=1, i32=2, opt="")
        assert list(msg) == ["i32", "u32", "opt"]

    def test_repr(self, sink_schema: Schema) -> None:
        assert repr(sink(sink_schema, i32=1)) == "Sink(i32=1)"

    def test_to_dict(self, sink_schema: Schema) -> None:
        msg = sink(
            sink_schema,
            inner={"n": 2},
            when="2024-01-01T00:00:00Z",
            took="1.5s",
            mask="a,b.c",
            any={"@type": "type.googleapis.com/x.Y"},
        )
        assert msg.to_dict() == {
            "inner": {"n": 2},
            "when": "2024-01-01T00:00:00Z",
            "took": "1.500s",
            "any": {"@type": "type.googleapis.com/x.Y"},
            "mask": "a,b.c",
        }


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestDecode:
    def test_camel_case_keys(self) -> None:
        schema = load_schema({"messages": {"M": {"fields": {"created_at": "google.protobuf.Timestamp"}}}})
        msg = decode_message(schema, "M", {"createdAt": "2024-01-01T00:00:00Z"})
        assert msg.get("created_at") == Timestamp.parse("2024-01-01T00:00:00Z")

    def test_none_leaves_field_unset(self, sink_schema: Schema) -> None:
        assert not sink(sink_schema, opt=None).is_assigned("opt")

    def test_enum_by_name_and_number(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, color="RED").get("color") == 1
        assert sink(sink_schema, color=1).get("color") == 1

    def test_undeclared_enum_number_is_kept(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, color=42).get("color") == 42

    def test_bytes_from_base64(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, raw="aGk=").get("raw") == b"hi"
        assert sink(sink_schema, raw="aGk").get("raw") == b"hi"

    def test_special_floats(self, sink_schema: Schema) -> None:
        assert math.isnan(sink(sink_schema, f="NaN").get("f"))
        assert sink(sink_schema, f="-Infinity").get("f") == -math.inf
        assert sink(sink_schema, f=2).get("f") == 2.0

    def test_float_range(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, f32=3.4e38).get("f32") == 3.4e38
        assert sink(sink_schema, f32="Infinity").get("f32") == math.inf
        assert sink(sink_schema, f=1e300).get("f") == 1e300

    def test_integers_from_strings_and_integral_floats(self, sink_schema: Schema) -> None:
        assert sink(sink_schema, i32="12").get("i32") == 12
        assert sink(sink_schema, i32=3.0).get("i32") == 3

    def test_map_keys_are_converted(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, counts={"7": "a"}, flags={"true": "y"})
        assert msg.get("counts") == {7: "a"}
        assert msg.get("flags") == {True: "y"}

    def test_nested_message(self, sink_schema: Schema) -> None:
        inner = sink(sink_schema, inner={"n": 4}).get("inner")
        assert inner.get("n") == 4

    def test_well_known_values(self, sink_schema: Schema) -> None:
        msg = sink(
            sink_schema,
            took="2h",
            any={"@type": "type.googleapis.com/a.B"},
            mask=["a", "b"],
        )
        assert msg.get("took") == Duration(seconds=7200)
        assert msg.get("any") == AnyValue(type_url="type.googleapis.com/a.B")
        assert msg.get("mask") == FieldMask(("a", "b"))

    def test_existing_message_passes_through(self, sink_schema: Schema) -> None:
        msg = sink(sink_schema, i32=1)
        assert decode_message(sink_schema, "Sink", {"inner": msg.get("inner")}).has("inner")

    def test_unknown_type_name(self, sink_schema: Schema) -> None:
        with pytest.raises(SchemaError):
            decode_message(sink_schema, "Ghost", {})


@pytest.mark.parametrize("values, fragment, path", [
    ({"ghost": 1}, "unknown field 'ghost' in k.Sink", "ghost"),
    ({"i32": 2**31}, "int32 value 2147483648 out of range", "i32"),
    ({"u32": -1}, "uint32 value -1 out of range", "u32"),
    ({"i32": True}, "expected int32, got bool", "i32"),
    ({"i32": 1.5}, "not integral", "i32"),
    ({"i32": "x"}, "invalid int32 value", "i32"),
    ({"b": "true"}, "expected bool, got str", "b"),
    ({"opt": 3}, "expected string, got int", "opt"),
    ({"raw": "!!"}, "invalid base64", "raw"),
    ({"color": "BLUE"}, "unknown k.Color value 'BLUE'", "color"),
    ({"nums": 1}, "expected a list", "nums"),
    ({"nums": [1, "x"]}, "invalid int32 value", "nums[1]"),
    ({"counts": {"x": "a"}}, "invalid integer map key", "counts"),
    ({"inner": 5}, "expected an object for k.Inner", "inner"),
    ({"inner": {"m": 1}}, "unknown field 'm'", "inner.m"),
    ({"when": "yesterday"}, "invalid timestamp", "when"),
    ({"took": "soon"}, "invalid duration", "took"),
    ({"f32": 1e300}, "float value 1e+300 out of range", "f32"),
    ({"f32": "-1e39"}, "float value -1e39 out of range", "f32"),
    ({"f": 10**400}, "double value", "f"),
])
def test_decode_errors(values: dict[str, object], fragment: str, path: str, sink_schema: Schema) -> None:
    with pytest.raises(DecodeError) as info:
        decode_message(sink_schema, "Sink", values)
    assert fragment in info.value.decode_message
    assert info.value.path == path
    assert str(info.value).startswith(f"DecodeError at {path}: ")
