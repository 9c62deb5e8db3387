"""Tree-walking evaluator for checked expressions.

The evaluator dispatches on node type, the same way the checker does.
It assumes the AST passed the checker, so most dynamic type guards only
matter for ``dyn``-typed sub-expressions.  Every runtime failure
surfaces as ``EvaluationError``.

Logical operators absorb errors the way CEL does: ``false && error``
and ``error && false`` are both ``false``; likewise ``true || error``.
``all()`` and ``exists()`` treat their elements the same way.
"""
from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from protorules.expr.errors import EvaluationError
from protorules.expr.functions import INT64_MAX, INT64_MIN, UINT64_MAX, Function
from protorules.expr.nodes import (
    Binary,
    BinaryOp,
    Call,
    Comprehension,
    Conditional,
    Expr,
    Ident,
    Index,
    ListExpr,
    Literal,
    Macro,
    MapExpr,
    Select,
    Unary,
    UnaryOp,
)
from protorules.expr.types import UINT, CelType
from protorules.schema.message import Message
from protorules.schema.wkt import Duration, Timestamp

if TYPE_CHECKING:
    from protorules.schema.schema import Schema


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, float)


def values_equal(left: Any, right: Any) -> bool:
    """Expression-language equality.

    Booleans never equal numbers, numbers of different kinds compare by
    value, and lists and maps compare element-wise.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if len(left) != len(right):
            return False
        return all(k in right and values_equal(v, right[k]) for k, v in left.items())
    if type(left) is not type(right):
        return False
    return bool(left == right)


class Evaluator:
    """Evaluate one checked AST against variable bindings.

    Parameters
    ----------
    types:
        Per-node static types recorded by the checker, keyed by
        ``id(node)``.
    functions:
        Functions available to calls.
    schema:
        Schema used to materialize empty nested messages on read.
    """

    def __init__(
        self,
        types: Mapping[int, CelType],
        functions: Mapping[str, Function],
        schema: "Schema | None" = None,
    ) -> None:
        self._types = types
        self._functions = functions
        self._schema = schema

    def evaluate(self, node: Expr, scope: Mapping[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Ident):
            try:
                return scope[node.name]
            except KeyError:
                raise EvaluationError(f"no value bound to '{node.name}'", node.offset) from None
        if isinstance(node, Select):
            return self._select(node, scope)
        if isinstance(node, Index):
            return self._index(node, scope)
        if isinstance(node, Call):
            return self._call(node, scope)
        if isinstance(node, ListExpr):
            return [self.evaluate(item, scope) for item in node.items]
        if isinstance(node, MapExpr):
            return {self.evaluate(k, scope): self.evaluate(v, scope) for k, v in node.entries}
        if isinstance(node, Unary):
            return self._unary(node, scope)
        if isinstance(node, Binary):
            return self._binary(node, scope)
        if isinstance(node, Conditional):
            if self._as_bool(self.evaluate(node.condition, scope), node):
                return self.evaluate(node.then, scope)
            return self.evaluate(node.otherwise, scope)
        if isinstance(node, Comprehension):
            return self._comprehension(node, scope)
        raise EvaluationError(f"unsupported expression node {type(node).__name__}")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _select(self, node: Select, scope: Mapping[str, Any]) -> Any:
        operand = self.evaluate(node.operand, scope)
        if isinstance(operand, Message):
            try:
                if node.test_only:
                    return operand.has(node.field)
                value = operand.get(node.field)
            except KeyError:
                raise EvaluationError(f"no such field '{node.field}'", node.offset) from None
            if value is None:
                return self._empty_message(operand, node.field)
            return value
        if isinstance(operand, Mapping):
            if node.test_only:
                return node.field in operand
            try:
                return operand[node.field]
            except KeyError:
                raise EvaluationError(f"no such key: '{node.field}'", node.offset) from None
        if dataclasses.is_dataclass(operand) and not isinstance(operand, type):
            names = {f.name for f in dataclasses.fields(operand)}
            if node.field in names:
                value = getattr(operand, node.field)
                return bool(value) if node.test_only else value
        raise EvaluationError(
            f"no such field '{node.field}' on {type(operand).__name__}", node.offset
        )

    def _empty_message(self, parent: Message, name: str) -> Any:
        fd = parent.descriptor.field(name)
        schema = parent.schema or self._schema
        if fd is None or schema is None or not fd.type.type_name:
            return None
        return Message(schema.message(fd.type.type_name), schema=schema)

    def _index(self, node: Index, scope: Mapping[str, Any]) -> Any:
        operand = self.evaluate(node.operand, scope)
        index = self.evaluate(node.index, scope)
        if isinstance(operand, (list, tuple)):
            if not _is_int(index):
                raise EvaluationError(f"invalid list index {index!r}", node.offset)
            if not 0 <= index < len(operand):
                raise EvaluationError(
                    f"index {index} out of range for list of size {len(operand)}", node.offset
                )
            return operand[index]
        if isinstance(operand, Mapping):
            try:
                return operand[index]
            except (KeyError, TypeError):
                raise EvaluationError(f"no such key: {index!r}", node.offset) from None
        raise EvaluationError(f"{type(operand).__name__} does not support indexing", node.offset)

    def _call(self, node: Call, scope: Mapping[str, Any]) -> Any:
        function = self._functions[node.function]
        args = [] if node.target is None else [self.evaluate(node.target, scope)]
        args.extend(self.evaluate(arg, scope) for arg in node.args)
        try:
            return function.impl(*args)
        except EvaluationError:
            raise
        except (TypeError, ValueError, AttributeError, OverflowError) as exc:
            raise EvaluationError(
                f"{node.function}() failed on {', '.join(type(a).__name__ for a in args)}: {exc}",
                node.offset,
            ) from exc

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _unary(self, node: Unary, scope: Mapping[str, Any]) -> Any:
        value = self.evaluate(node.operand, scope)
        if node.op is UnaryOp.NOT:
            return not self._as_bool(value, node)
        if _is_int(value):
            return self._int_result(-value, node)
        if isinstance(value, (float, Duration)):
            return -value
        raise EvaluationError(f"cannot negate {type(value).__name__}", node.offset)

    def _binary(self, node: Binary, scope: Mapping[str, Any]) -> Any:
        op = node.op
        if op is BinaryOp.AND:
            return self._logical(node, scope, decisive=False)
        if op is BinaryOp.OR:
            return self._logical(node, scope, decisive=True)

        left = self.evaluate(node.left, scope)
        right = self.evaluate(node.right, scope)
        if op is BinaryOp.EQ:
            return values_equal(left, right)
        if op is BinaryOp.NEQ:
            return not values_equal(left, right)
        if op is BinaryOp.IN:
            return self._contains(node, left, right)
        if op.is_relation:
            return self._compare(node, left, right)
        return self._arithmetic(node, left, right)

    def _logical(self, node: Binary, scope: Mapping[str, Any], decisive: bool) -> bool:
        """Evaluate ``&&`` (decisive value False) or ``||`` (decisive value True)."""
        left_error: EvaluationError | None = None
        try:
            left = self._as_bool(self.evaluate(node.left, scope), node)
        except EvaluationError as exc:
            left_error = exc
        else:
            if left is decisive:
                return decisive
        right = self._as_bool(self.evaluate(node.right, scope), node)
        if right is decisive:
            return decisive
        if left_error is not None:
            raise left_error
        return not decisive

    def _contains(self, node: Binary, item: Any, container: Any) -> bool:
        if isinstance(container, (list, tuple)):
            return any(values_equal(item, candidate) for candidate in container)
        if isinstance(container, Mapping):
            return any(values_equal(item, key) for key in container)
        raise EvaluationError(f"'in' not supported on {type(container).__name__}", node.offset)

    def _compare(self, node: Binary, left: Any, right: Any) -> bool:
        comparable = (_is_number(left) and _is_number(right)) or (
            type(left) is type(right)
            and isinstance(left, (str, bytes, bool, Timestamp, Duration))
        )
        if not comparable:
            raise EvaluationError(
                f"cannot compare {type(left).__name__} and {type(right).__name__}", node.offset
            )
        op = node.op
        if op is BinaryOp.LT:
            return left < right
        if op is BinaryOp.LTE:
            return left <= right
        if op is BinaryOp.GT:
            return left > right
        return left >= right

    def _arithmetic(self, node: Binary, left: Any, right: Any) -> Any:
        op = node.op
        if _is_int(left) and _is_int(right):
            return self._int_result(self._int_op(node, left, right), node)
        if _is_number(left) and _is_number(right):
            return self._float_op(node, float(left), float(right))
        if op is BinaryOp.ADD:
            if type(left) is type(right) and isinstance(left, (str, bytes)):
                return left + right
            if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
                return [*left, *right]
            if isinstance(left, Duration) and isinstance(right, Timestamp):
                left, right = right, left
            if isinstance(left, (Timestamp, Duration)) and isinstance(right, Duration):
                return self._time_result(left + right, node)
        if op is BinaryOp.SUB and isinstance(left, (Timestamp, Duration)):
            if isinstance(right, Duration) or (
                isinstance(left, Timestamp) and isinstance(right, Timestamp)
            ):
                return self._time_result(left - right, node)
        raise EvaluationError(
            f"no such overload: {type(left).__name__} {op.value} {type(right).__name__}",
            node.offset,
        )

    @staticmethod
    def _int_op(node: Binary, left: int, right: int) -> int:
        op = node.op
        if op is BinaryOp.ADD:
            return left + right
        if op is BinaryOp.SUB:
            return left - right
        if op is BinaryOp.MUL:
            return left * right
        if right == 0:
            raise EvaluationError(
                "division by zero" if op is BinaryOp.DIV else "modulus by zero", node.offset
            )
        # Both truncate toward zero.
        quotient = abs(left) // abs(right)
        if (left < 0) != (right < 0):
            quotient = -quotient
        if op is BinaryOp.DIV:
            return quotient
        return left - right * quotient

    @staticmethod
    def _float_op(node: Binary, left: float, right: float) -> float:
        op = node.op
        if op is BinaryOp.ADD:
            return left + right
        if op is BinaryOp.SUB:
            return left - right
        if op is BinaryOp.MUL:
            return left * right
        if op is BinaryOp.DIV:
            if right == 0.0:
                if left == 0.0 or math.isnan(left):
                    return math.nan
                return math.copysign(math.inf, left) * math.copysign(1.0, right)
            return left / right
        raise EvaluationError("no such overload: double % double", node.offset)

    def _int_result(self, value: int, node: Expr) -> int:
        if self._types.get(id(node)) == UINT:
            if not 0 <= value <= UINT64_MAX:
                raise EvaluationError("unsigned integer overflow", node.offset)
        elif not INT64_MIN <= value <= INT64_MAX:
            raise EvaluationError("integer overflow", node.offset)
        return value

    @staticmethod
    def _time_result(value: Any, node: Binary) -> Any:
        if isinstance(value, Timestamp) and not value.is_valid:
            raise EvaluationError("timestamp out of range", node.offset)
        return value

    # ------------------------------------------------------------------
    # Comprehensions
    # ------------------------------------------------------------------

    def _comprehension(self, node: Comprehension, scope: Mapping[str, Any]) -> Any:
        source = self.evaluate(node.range, scope)
        if isinstance(source, Mapping):
            items = list(source.keys())
        elif isinstance(source, (list, tuple)):
            items = list(source)
        else:
            raise EvaluationError(
                f"{node.macro.value}() cannot range over {type(source).__name__}", node.offset
            )

        def body(item: Any) -> Any:
            return self.evaluate(node.body, {**scope, node.var: item})

        macro = node.macro
        if macro is Macro.ALL or macro is Macro.EXISTS:
            decisive = macro is Macro.EXISTS
            first_error: EvaluationError | None = None
            for item in items:
                try:
                    if self._as_bool(body(item), node) is decisive:
                        return decisive
                except EvaluationError as exc:
                    first_error = first_error or exc
            if first_error is not None:
                raise first_error
            return not decisive
        if macro is Macro.EXISTS_ONE:
            return sum(1 for item in items if self._as_bool(body(item), node)) == 1
        if macro is Macro.FILTER:
            return [item for item in items if self._as_bool(body(item), node)]
        results = []
        for item in items:
            if node.predicate is not None:
                keep = self.evaluate(node.predicate, {**scope, node.var: item})
                if not self._as_bool(keep, node):
                    continue
            results.append(body(item))
        return results

    @staticmethod
    def _as_bool(value: Any, node: Expr) -> bool:
        if not isinstance(value, bool):
            raise EvaluationError(f"expected bool, got {type(value).__name__}", node.offset)
        return value
