"""The rule expression language: lexer, parser, checker and evaluator."""
from __future__ import annotations

from protorules.expr.checker import Checker, TypeEnv, check_expression
from protorules.expr.errors import (
    EvaluationError,
    ExpressionError,
    ExpressionSyntaxError,
    ExpressionTypeError,
)
from protorules.expr.evaluator import Evaluator, values_equal
from protorules.expr.functions import STANDARD_FUNCTIONS, Function, Overload
from protorules.expr.lexer import Lexer, tokenize
from protorules.expr.parser import Parser, parse_expression
from protorules.expr.program import Program, compile_expression, evaluate_expression
from protorules.expr.types import CelType, TypeName, from_field, from_field_type

__all__ = [
    "CelType",
    "Checker",
    "EvaluationError",
    "Evaluator",
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionTypeError",
    "Function",
    "Lexer",
    "Overload",
    "Parser",
    "Program",
    "STANDARD_FUNCTIONS",
    "TypeEnv",
    "TypeName",
    "check_expression",
    "compile_expression",
    "evaluate_expression",
    "from_field",
    "from_field_type",
    "parse_expression",
    "tokenize",
    "values_equal",
]
