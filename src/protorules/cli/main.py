"""CLI entry point for protorules.

Invoked as::

    protorules [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m protorules.cli.main

Commands
--------
check       Load, compile and lint a schema file
validate    Validate a YAML/JSON document against a message type
eval        Evaluate a one-off rule expression
rules       List registered rule families
version     Show version information

Exit codes: 0 on success, 1 when violations (or lint errors) are
found, 2 when the schema or input cannot be loaded.
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

if TYPE_CHECKING:
    from protorules.schema.schema import Schema
    from protorules.validator.violations import ValidationResult

console = Console()
err_console = Console(stderr=True)

EXIT_VIOLATIONS = 1
EXIT_INPUT_ERROR = 2


def _read_source(path: str) -> str:
    """Read a text file, exiting on error."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        err_console.print(f"[red]Error:[/red] File not found: {path}")
        sys.exit(EXIT_INPUT_ERROR)
    except OSError as exc:
        err_console.print(f"[red]Error:[/red] Cannot read {path}: {escape(str(exc))}")
        sys.exit(EXIT_INPUT_ERROR)


def _load_or_exit(path: str) -> "Schema":
    """Load a schema file, printing errors and exiting on failure."""
    from protorules.errors import SchemaError
    from protorules.schema import SchemaLoader

    source = _read_source(path)
    loader = SchemaLoader()
    try:
        if path.lower().endswith(".json"):
            schema = loader.from_json(source)
        else:
            schema = loader.from_yaml(source)
    except SchemaError as exc:
        err_console.print(f"[red]Schema error[/red] in {path}: {escape(str(exc))}")
        sys.exit(EXIT_INPUT_ERROR)
    return schema


def _compile_or_exit(schema: "Schema", path: str) -> None:
    """Compile every rule of ``schema``, printing all errors on failure."""
    from protorules.errors import SchemaErrorCollection
    from protorules.validator import compile_schema

    try:
        compile_schema(schema)
    except SchemaErrorCollection as exc:
        err_console.print(f"[red]Schema errors[/red] in {path}:")
        for error in exc.errors:
            err_console.print(f"  {escape(str(error))}")
        sys.exit(EXIT_INPUT_ERROR)


def _severity_color(severity_name: str) -> str:
    """Map a DiagnosticSeverity name to a Rich color string."""
    colors = {
        "ERROR": "red",
        "WARNING": "yellow",
        "INFORMATION": "blue",
        "HINT": "dim",
    }
    return colors.get(severity_name, "white")


def _to_json(value: Any) -> str:
    """Render an expression result as JSON, stringifying rich types."""
    from protorules.schema.message import Message

    def default(obj: Any) -> Any:
        if isinstance(obj, Message):
            return obj.to_dict()
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        return str(obj)

    return json.dumps(value, default=default, sort_keys=True)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="protorules")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Protobuf-style constraint validation: schemas, rules, expressions."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


# ---------------------------------------------------------------------------
# version command
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from protorules import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]protorules[/bold]", f"v{__version__}")
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("Platform", sys.platform)
    console.print(table)


# ---------------------------------------------------------------------------
# rules command
# ---------------------------------------------------------------------------


@cli.command(name="rules")
@click.option(
    "--no-plugins", is_flag=True, default=False, help="Skip rule families installed as entry-points"
)
def rules_command(no_plugins: bool) -> None:
    """List all registered rule families and their rule kinds."""
    from protorules.rules import default_registry

    registry = default_registry(load_plugins=not no_plugins)
    table = Table(title="Rule families")
    table.add_column("Family", style="bold")
    table.add_column("Rules")
    table.add_column("Nested")
    for name in registry.list_families():
        family = registry.get(name)
        table.add_row(name, ", ".join(family.rules), ", ".join(family.nested))
    console.print(table)
    console.print(f"\n[bold]{len(registry)}[/bold] rule family(ies)")


# ---------------------------------------------------------------------------
# check command
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.argument("schema_file", type=click.Path(exists=False))
@click.option("--no-hints", is_flag=True, default=False, help="Suppress HINT-level findings")
def check_command(schema_file: str, no_hints: bool) -> None:
    """Load, compile and lint a schema file.

    SCHEMA_FILE is the path to a .yaml/.yml/.json schema document.
    """
    from protorules.linter import SchemaLinter

    schema = _load_or_exit(schema_file)
    _compile_or_exit(schema, schema_file)

    diagnostics = SchemaLinter(include_hints=not no_hints).lint(schema)
    if not diagnostics:
        console.print(
            f"[green]OK[/green] {schema_file}: {len(schema.messages)} message(s), no issues found"
        )
        sys.exit(0)

    table = Table(title=f"Check: {schema_file}", show_lines=True)
    table.add_column("Severity", style="bold", min_width=10)
    table.add_column("Code", min_width=8)
    table.add_column("Location", min_width=10)
    table.add_column("Message")

    for d in diagnostics:
        color = _severity_color(d.severity.name)
        table.add_row(
            f"[{color}]{d.severity.name}[/{color}]",
            d.code,
            d.path,
            escape(d.message) + (f"\n[dim]hint: {escape(d.suggestion)}[/dim]" if d.suggestion else ""),
        )

    console.print(table)
    errors = [d for d in diagnostics if d.is_error]
    console.print(f"\n[bold]{len(diagnostics)}[/bold] lint finding(s)")

    if errors:
        sys.exit(EXIT_VIOLATIONS)


# ---------------------------------------------------------------------------
# validate command
# ---------------------------------------------------------------------------


def _print_violations(result: "ValidationResult", data_file: str) -> None:
    table = Table(title=f"Violations: {data_file}", show_lines=True)
    table.add_column("Field", min_width=10)
    table.add_column("Rule", style="bold", min_width=10)
    table.add_column("Message")
    for v in result:
        field = v.field_path or "(message)"
        key = ""
        if v.for_key:
            key = " [dim](key)[/dim]"
        table.add_row(escape(field) + key, v.rule_id, escape(v.message))
    console.print(table)
    console.print(f"\n[bold]{len(result)}[/bold] violation(s)")


@cli.command(name="validate")
@click.argument("schema_file", type=click.Path(exists=False))
@click.argument("type_name")
@click.argument("data_file", type=click.Path(exists=False))
@click.option("--fail-fast", is_flag=True, default=False, help="Stop at the first violation")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format for violations",
)
def validate_command(
    schema_file: str, type_name: str, data_file: str, fail_fast: bool, output_format: str
) -> None:
    """Validate a YAML/JSON document as a message of TYPE_NAME.

    SCHEMA_FILE is the schema document; DATA_FILE holds the message in
    protobuf JSON form (YAML is accepted too).

    Examples:

    \b
        protorules validate schema.yaml acme.v1.User user.json
        protorules validate schema.yaml User user.yaml --format json
    """
    from protorules.errors import DecodeError, SchemaError
    from protorules.validator import Validator

    schema = _load_or_exit(schema_file)
    _compile_or_exit(schema, schema_file)

    try:
        data = yaml.safe_load(_read_source(data_file))
    except yaml.YAMLError as exc:
        err_console.print(f"[red]Error:[/red] Cannot parse {data_file}: {escape(str(exc))}")
        sys.exit(EXIT_INPUT_ERROR)

    validator = Validator(schema, fail_fast=fail_fast)
    try:
        result = validator.validate(data or {}, type_name)
    except (DecodeError, SchemaError) as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(EXIT_INPUT_ERROR)

    if output_format == "json":
        text = json.dumps({"valid": result.valid, "violations": result.to_dicts()}, indent=2)
        console.print(Syntax(text, "json"))
    elif result.valid:
        console.print(f"[green]OK[/green] {data_file} is a valid {type_name}")
    else:
        _print_violations(result, data_file)

    if not result.valid:
        sys.exit(EXIT_VIOLATIONS)


# ---------------------------------------------------------------------------
# eval command
# ---------------------------------------------------------------------------


def _parse_json_option(text: str | None, name: str) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint=name) from exc


@cli.command(name="eval")
@click.argument("expression")
@click.option("--this", "this_json", default=None, help="JSON value bound to 'this'")
@click.option(
    "--var",
    "variables",
    multiple=True,
    metavar="NAME=JSON",
    help="Additional variable binding (repeatable)",
)
def eval_command(expression: str, this_json: str | None, variables: tuple[str, ...]) -> None:
    """Evaluate a one-off rule expression and print its result as JSON.

    Examples:

    \b
        protorules eval "size(this) > 3" --this '"hello"'
        protorules eval "this.all(x, x > 0)" --this "[1, 2, 3]"
        protorules eval "a + b" --var a=1 --var b=2
    """
    from protorules.expr import ExpressionError, evaluate_expression

    bindings: dict[str, Any] = {}
    for item in variables:
        name, sep, raw = item.partition("=")
        if not sep or not name.isidentifier():
            raise click.BadParameter(f"expected NAME=JSON, got {item!r}", param_hint="--var")
        bindings[name] = _parse_json_option(raw, "--var")
    this = _parse_json_option(this_json, "--this")

    try:
        result = evaluate_expression(expression, this, **bindings)
    except ExpressionError as exc:
        err_console.print(f"[red]{exc.kind}:[/red] {escape(exc.detail)}")
        sys.exit(EXIT_VIOLATIONS)

    console.print(_to_json(result), markup=False, highlight=False)


if __name__ == "__main__":
    cli()
