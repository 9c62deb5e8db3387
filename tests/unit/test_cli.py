"""Unit tests for the protorules command-line interface."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from protorules import __version__
from protorules.cli.main import cli

SCHEMA = """
package: shop
messages:
  Item:
    fields:
      sku: {type: string, rules: {required: true, string: {min_len: 3}}}
      qty: {type: int32, rules: {int32: {gt: 0}}}
      tags:
        type: "map<string, string>"
        rules: {map: {keys: {string: {max_len: 3}}}}
"""

INVERTED = """
package: shop
messages:
  Item:
    fields:
      sku: {type: string, rules: {string: {min_len: 5, max_len: 2}}}
"""

HINT_ONLY = """
package: shop
messages:
  Item:
    fields:
      qty: int32
    rules:
      cel:
        - {id: positive, expression: "this.qty > 0"}
"""

BROKEN = """
package: shop
messages:
  Item:
    fields:
      qty: {type: int32, rules: {nope: {}}}
"""


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _in_tmp_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every command from a scratch directory so file names stay short."""
    monkeypatch.chdir(tmp_path)


def _write(tmp_path: Path, name: str, text: str) -> str:
    (tmp_path / name).write_text(text, encoding="utf-8")
    return name


# ---------------------------------------------------------------------------
# version / rules
# ---------------------------------------------------------------------------


class TestVersionCommand:
    def test_prints_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert f"v{__version__}" in result.output
        assert "Python" in result.output


class TestRulesCommand:
    def test_lists_builtin_families(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["rules", "--no-plugins"])
        assert result.exit_code == 0
        assert "timestamp" in result.output
        assert "22 rule family(ies)" in result.output


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


class TestCheckCommand:
    def test_clean_schema(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", SCHEMA)
        result = runner.invoke(cli, ["check", path])
        assert result.exit_code == 0
        assert "OK" in result.output
        assert "1 message(s)" in result.output

    def test_json_schema(self, runner: CliRunner, tmp_path: Path) -> None:
        doc = {"package": "shop", "messages": {"Item": {"fields": {"qty": "int32"}}}}
        path = _write(tmp_path, "schema.json", json.dumps(doc))
        assert runner.invoke(cli, ["check", path]).exit_code == 0

    def test_lint_error_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", INVERTED)
        result = runner.invoke(cli, ["check", path])
        assert result.exit_code == 1
        assert "PRL003" in result.output

    def test_hints_do_not_fail(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", HINT_ONLY)
        result = runner.invoke(cli, ["check", path])
        assert result.exit_code == 0
        assert "PRL004" in result.output

    def test_no_hints(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", HINT_ONLY)
        result = runner.invoke(cli, ["check", path, "--no-hints"])
        assert result.exit_code == 0
        assert "PRL004" not in result.output

    def test_compile_errors_exit_two(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", BROKEN)
        result = runner.invoke(cli, ["check", path])
        assert result.exit_code == 2
        assert "unknown rule family 'nope'" in result.output

    def test_invalid_yaml(self, runner: CliRunner, tmp_path: Path) -> None:
        path = _write(tmp_path, "schema.yaml", "package: [unclosed")
        result = runner.invoke(cli, ["check", path])
        assert result.exit_code == 2
        assert "Schema error" in result.output

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["check", "ghost.yaml"])
        assert result.exit_code == 2
        assert "File not found" in result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidateCommand:
    def test_valid_document(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.json", json.dumps({"sku": "abc-1", "qty": 2}))
        result = runner.invoke(cli, ["validate", schema, "Item", data])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_violations_exit_one(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: ab\nqty: 0\n")
        result = runner.invoke(cli, ["validate", schema, "shop.Item", data])
        assert result.exit_code == 1
        assert "string.min_len" in result.output
        assert "int32.gt" in result.output
        assert "2 violation(s)" in result.output

    def test_key_violations_are_marked(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.json", json.dumps({"sku": "abc", "qty": 1, "tags": {"long": "x"}}))
        result = runner.invoke(cli, ["validate", schema, "Item", data])
        assert result.exit_code == 1
        assert "(key)" in result.output

    def test_fail_fast(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: ab\nqty: 0\n")
        result = runner.invoke(cli, ["validate", schema, "Item", data, "--fail-fast"])
        assert result.exit_code == 1
        assert "1 violation(s)" in result.output

    def test_json_format(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: abc\nqty: 0\n")
        result = runner.invoke(cli, ["validate", schema, "Item", data, "--format", "json"])
        assert result.exit_code == 1
        assert '"valid": false' in result.output
        assert '"rule_id": "int32.gt"' in result.output

    def test_undecodable_data_exits_two(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: abc\nweight: 3\n")
        result = runner.invoke(cli, ["validate", schema, "Item", data])
        assert result.exit_code == 2
        assert "unknown field 'weight'" in result.output

    def test_unknown_type_exits_two(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: abc\n")
        assert runner.invoke(cli, ["validate", schema, "Ghost", data]).exit_code == 2

    def test_unparseable_data_exits_two(self, runner: CliRunner, tmp_path: Path) -> None:
        schema = _write(tmp_path, "schema.yaml", SCHEMA)
        data = _write(tmp_path, "item.yaml", "sku: [oops")
        result = runner.invoke(cli, ["validate", schema, "Item", data])
        assert result.exit_code == 2
        assert "Cannot parse" in result.output


# ---------------------------------------------------------------------------
# eval
# ---------------------------------------------------------------------------


class TestEvalCommand:
    def test_this_binding(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "size(this) > 3", "--this", '"hello"'])
        assert result.exit_code == 0
        assert result.output.strip() == "true"

    def test_variables(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "a + b", "--var", "a=1", "--var", "b=2"])
        assert result.exit_code == 0
        assert result.output.strip() == "3"

    def test_string_result_is_json(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "'ab' + 'c'"])
        assert result.output.strip() == '"abc"'

    def test_evaluation_error_exits_one(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "1 / 0"])
        assert result.exit_code == 1
        assert "division by zero" in result.output

    def test_syntax_error_exits_one(self, runner: CliRunner) -> None:
        assert runner.invoke(cli, ["eval", "1 +"]).exit_code == 1

    def test_bad_var_is_usage_error(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "a", "--var", "a"])
        assert result.exit_code == 2

    def test_bad_json_is_usage_error(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["eval", "this", "--this", "{nope"])
        assert result.exit_code == 2
