"""Test that the quickstart API works for protorules."""
from __future__ import annotations

import pytest

QUICKSTART_SCHEMA = """
package: acme.v1
messages:
  User:
    fields:
      email: {type: string, rules: {required: true, string: {email: true}}}
      age: {type: uint32, optional: true, rules: {uint32: {lte: 150}}}
"""


def test_quickstart_imports() -> None:
    import protorules

    assert callable(protorules.load_schema)
    assert callable(protorules.validate)
    assert callable(protorules.lint)
    assert callable(protorules.evaluate)


def test_quickstart_version(package_name: str, expected_version: str) -> None:
    import importlib

    module = importlib.import_module(package_name)
    assert module.__version__ == expected_version


def test_quickstart_validate() -> None:
    import protorules

    schema = protorules.load_schema(QUICKSTART_SCHEMA)
    result = protorules.validate(schema, {"email": "nope", "age": 200}, "User")
    assert result.rule_ids() == ["string.email", "uint32.lte"]


def test_quickstart_valid_document() -> None:
    import protorules

    schema = protorules.load_schema(QUICKSTART_SCHEMA)
    assert protorules.validate(schema, {"email": "ada@example.com"}, "User").valid


def test_quickstart_check_raises() -> None:
    import protorules

    schema = protorules.load_schema(QUICKSTART_SCHEMA)
    protorules.Validator(schema).check({"email": "a@example.com"}, "User")
    with pytest.raises(protorules.ValidationError):
        protorules.Validator(schema).check({}, "User")


def test_quickstart_lint() -> None:
    import protorules

    findings = protorules.lint(protorules.load_schema(QUICKSTART_SCHEMA))
    assert findings == []


def test_quickstart_evaluate() -> None:
    import protorules

    assert protorules.evaluate("size(this) > 2", this="abc") is True


def test_quickstart_errors_share_a_base() -> None:
    import protorules

    for error in (
        protorules.SchemaError,
        protorules.SchemaErrorCollection,
        protorules.DecodeError,
        protorules.ValidationError,
    ):
        assert issubclass(error, protorules.ProtorulesError)


def test_quickstart_bad_schema_rules() -> None:
    import protorules

    schema = protorules.load_schema({"messages": {"M": {"fields": {"a": {"type": "int32", "rules": {"string": {}}}}}}})
    with pytest.raises(protorules.SchemaErrorCollection):
        protorules.Validator(schema)
