"""Compiled expressions.

``compile_expression`` runs the full pipeline (lex, parse, check) and
returns a ``Program``: an immutable, thread-safe object that can be
evaluated any number of times against different bindings.

Example
-------
::

    env = TypeEnv.for_value(STRING)
    program = compile_expression("this.startsWith('x')", env)
    program.evaluate({"this": "xyz", "now": Timestamp.now()})  # True
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from protorules.expr.checker import TypeEnv, check_expression
from protorules.expr.errors import ExpressionTypeError
from protorules.expr.evaluator import Evaluator
from protorules.expr.nodes import Expr
from protorules.expr.parser import parse_expression
from protorules.expr.types import DYN, TIMESTAMP, CelType, TypeName
from protorules.schema.wkt import Timestamp

logger = logging.getLogger(__name__)

_RULE_RESULTS = (TypeName.BOOL, TypeName.STRING, TypeName.DYN)


@dataclass(frozen=True)
class Program:
    """A parsed and type-checked expression.

    Attributes
    ----------
    source:
        The expression text.
    ast:
        Root node of the parsed expression.
    result_type:
        Static type of the whole expression.
    """

    source: str
    ast: Expr
    result_type: CelType
    env: TypeEnv = field(repr=False)
    types: Mapping[int, CelType] = field(repr=False, compare=False)

    def evaluate(self, bindings: Mapping[str, Any]) -> Any:
        """Evaluate against ``bindings`` (variable name to value).

        Raises
        ------
        EvaluationError
            If evaluation fails on this particular input.
        """
        evaluator = Evaluator(self.types, self.env.functions, self.env.schema)
        return evaluator.evaluate(self.ast, bindings)


def compile_expression(source: str, env: TypeEnv, *, rule: bool = False) -> Program:
    """Parse and check ``source`` against ``env``.

    Parameters
    ----------
    source:
        Expression text.
    env:
        Declarations the expression may reference.
    rule:
        When True the expression must produce ``bool`` or ``string``,
        the two result shapes a constraint expression may have.

    Raises
    ------
    ExpressionSyntaxError
        On malformed source.
    ExpressionTypeError
        On unresolved references, ill-typed operations, or (with
        ``rule``) a result of the wrong type.
    """
    ast = parse_expression(source)
    result_type, types = check_expression(ast, env)
    if rule and result_type.name not in _RULE_RESULTS:
        raise ExpressionTypeError(
            f"expression must evaluate to bool or string, not {result_type}"
        )
    logger.debug("Compiled expression %r -> %s", source, result_type)
    return Program(source=source, ast=ast, result_type=result_type, env=env, types=types)


def evaluate_expression(source: str, this: Any = None, **variables: Any) -> Any:
    """Compile and evaluate a one-off expression with dynamically typed inputs.

    ``this`` and any extra ``variables`` are bound with type ``dyn``;
    ``now`` is bound to the current time unless given.
    """
    bindings = {"this": this, "now": Timestamp.now(), **variables}
    declared = {name: DYN for name in bindings}
    declared["now"] = TIMESTAMP
    program = compile_expression(source, TypeEnv(variables=declared))
    return program.evaluate(bindings)
