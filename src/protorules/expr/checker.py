"""Static checker for parsed expressions.

The checker binds every identifier, field selection and function call
in an AST against a ``TypeEnv`` and computes the static type of each
node.  It runs once, when a schema is compiled; evaluation never sees
an expression that failed here.

Typing is deliberately lenient about numbers: ``int``, ``uint`` and
``double`` may be mixed in comparisons and arithmetic.  Everything
else must line up exactly unless one side is ``dyn``.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from protorules.expr.errors import ExpressionTypeError
from protorules.expr.functions import STANDARD_FUNCTIONS, Function, result_type_of
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
    LiteralKind,
    Macro,
    MapExpr,
    Select,
    Unary,
    UnaryOp,
)
from protorules.expr.types import (
    BOOL,
    BYTES,
    DOUBLE,
    DURATION,
    DYN,
    INT,
    NULL,
    STRING,
    TIMESTAMP,
    UINT,
    CelType,
    TypeName,
    common_type,
    from_field,
    is_assignable,
    list_of,
    map_of,
)

if TYPE_CHECKING:
    from protorules.schema.schema import Schema

_LITERAL_TYPES: dict[LiteralKind, CelType] = {
    LiteralKind.INT: INT,
    LiteralKind.UINT: UINT,
    LiteralKind.DOUBLE: DOUBLE,
    LiteralKind.STRING: STRING,
    LiteralKind.BYTES: BYTES,
    LiteralKind.BOOL: BOOL,
    LiteralKind.NULL: NULL,
}

_ORDERED = (TypeName.STRING, TypeName.BYTES, TypeName.BOOL, TypeName.TIMESTAMP, TypeName.DURATION)


@dataclass(frozen=True)
class TypeEnv:
    """Declarations visible to an expression.

    Parameters
    ----------
    variables:
        Variable name to static type, e.g. ``{"this": INT, "now": TIMESTAMP}``.
    schema:
        Schema used to resolve message-typed field selections.
    functions:
        Callable functions by name.
    """

    variables: Mapping[str, CelType] = field(default_factory=dict)
    schema: "Schema | None" = None
    functions: Mapping[str, Function] = field(default_factory=lambda: STANDARD_FUNCTIONS)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    @classmethod
    def for_value(
        cls,
        this: CelType,
        schema: "Schema | None" = None,
        rule: CelType | None = None,
    ) -> "TypeEnv":
        """Build the standard environment: ``this``, ``now`` and optionally ``rule``."""
        variables = {"this": this, "now": TIMESTAMP}
        if rule is not None:
            variables["rule"] = rule
        return cls(variables=variables, schema=schema)

    def with_variable(self, name: str, type_: CelType) -> "TypeEnv":
        return TypeEnv({**self.variables, name: type_}, self.schema, self.functions)


def _numeric_result(left: CelType, right: CelType) -> CelType:
    if left == right:
        return left
    if DOUBLE in (left, right):
        return DOUBLE
    return INT


def _comparable(left: CelType, right: CelType) -> bool:
    if left.is_dyn or right.is_dyn:
        return True
    if left.is_numeric and right.is_numeric:
        return True
    if TypeName.NULL in (left.name, right.name):
        return True
    return is_assignable(left, right)


class Checker:
    """Compute and record the static type of every node of an AST.

    Parameters
    ----------
    env:
        The declarations visible at the root of the expression.

    Example
    -------
    ::

        checker = Checker(TypeEnv.for_value(STRING))
        result = checker.check(parse_expression("size(this) > 3"))
        # result == BOOL; checker.types maps id(node) -> CelType
    """

    def __init__(self, env: TypeEnv) -> None:
        self._env = env
        self.types: dict[int, CelType] = {}

    def check(self, node: Expr) -> CelType:
        return self._check(node, self._env)

    def _check(self, node: Expr, env: TypeEnv) -> CelType:
        result = self._dispatch(node, env)
        self.types[id(node)] = result
        return result

    def _dispatch(self, node: Expr, env: TypeEnv) -> CelType:
        if isinstance(node, Literal):
            return _LITERAL_TYPES[node.kind]
        if isinstance(node, Ident):
            return self._ident(node, env)
        if isinstance(node, Select):
            return self._select(node, env)
        if isinstance(node, Index):
            return self._index(node, env)
        if isinstance(node, Call):
            return self._call(node, env)
        if isinstance(node, ListExpr):
            return list_of(common_type([self._check(item, env) for item in node.items]))
        if isinstance(node, MapExpr):
            keys = [self._check(k, env) for k, _ in node.entries]
            values = [self._check(v, env) for _, v in node.entries]
            return map_of(common_type(keys), common_type(values))
        if isinstance(node, Unary):
            return self._unary(node, env)
        if isinstance(node, Binary):
            return self._binary(node, env)
        if isinstance(node, Conditional):
            return self._conditional(node, env)
        if isinstance(node, Comprehension):
            return self._comprehension(node, env)
        raise ExpressionTypeError(f"unsupported expression node {type(node).__name__}")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _ident(self, node: Ident, env: TypeEnv) -> CelType:
        try:
            return env.variables[node.name]
        except KeyError:
            raise ExpressionTypeError(
                f"undeclared reference to '{node.name}'", node.offset
            ) from None

    def _select(self, node: Select, env: TypeEnv) -> CelType:
        operand = self._check(node.operand, env)
        if operand.is_dyn:
            return BOOL if node.test_only else DYN
        if operand.name is TypeName.MAP:
            if not is_assignable(operand.params[0], STRING):
                raise ExpressionTypeError(
                    f"field selection on map with non-string keys ({operand})", node.offset
                )
            return BOOL if node.test_only else operand.params[1]
        if operand.name is TypeName.MESSAGE:
            if operand.message is None:
                raise ExpressionTypeError(
                    f"field selection on unresolved message type {operand}", node.offset
                )
            fd = operand.message.field(node.field)
            if fd is None:
                raise ExpressionTypeError(
                    f"undefined field '{node.field}' on {operand}", node.offset
                )
            return BOOL if node.test_only else from_field(fd, env.schema)
        verb = "has() on" if node.test_only else "field selection on"
        raise ExpressionTypeError(f"{verb} non-message type {operand}", node.offset)

    def _index(self, node: Index, env: TypeEnv) -> CelType:
        operand = self._check(node.operand, env)
        index = self._check(node.index, env)
        if operand.is_dyn:
            return DYN
        if operand.name is TypeName.LIST:
            if not (index.is_dyn or index.name in (TypeName.INT, TypeName.UINT)):
                raise ExpressionTypeError(f"list index must be an integer, not {index}", node.offset)
            return operand.params[0]
        if operand.name is TypeName.MAP:
            if not _comparable(operand.params[0], index):
                raise ExpressionTypeError(
                    f"map key of type {index} does not match {operand}", node.offset
                )
            return operand.params[1]
        raise ExpressionTypeError(f"type {operand} does not support indexing", node.offset)

    def _call(self, node: Call, env: TypeEnv) -> CelType:
        function = env.functions.get(node.function)
        if function is None:
            raise ExpressionTypeError(
                f"undeclared reference to function '{node.function}'", node.offset
            )
        args = [self._check(arg, env) for arg in node.args]
        member = node.target is not None
        if node.target is not None:
            args.insert(0, self._check(node.target, env))
        result = result_type_of(function, member, args)
        if result is None:
            shown = ", ".join(str(a) for a in args)
            style = "method" if member else "function"
            raise ExpressionTypeError(
                f"found no matching overload for {style} '{node.function}' applied to ({shown})",
                node.offset,
            )
        return result

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _unary(self, node: Unary, env: TypeEnv) -> CelType:
        operand = self._check(node.operand, env)
        if node.op is UnaryOp.NOT:
            self._require_bool(operand, "operand of '!'", node.offset)
            return BOOL
        if operand.is_dyn or operand.name in (TypeName.INT, TypeName.DOUBLE, TypeName.DURATION):
            return operand
        raise ExpressionTypeError(f"cannot negate {operand}", node.offset)

    def _binary(self, node: Binary, env: TypeEnv) -> CelType:
        left = self._check(node.left, env)
        right = self._check(node.right, env)
        op = node.op

        if op in (BinaryOp.AND, BinaryOp.OR):
            self._require_bool(left, f"left operand of '{op.value}'", node.offset)
            self._require_bool(right, f"right operand of '{op.value}'", node.offset)
            return BOOL

        if op in (BinaryOp.EQ, BinaryOp.NEQ):
            if not _comparable(left, right):
                raise self._mismatch(op, left, right, node.offset)
            return BOOL

        if op.is_relation:
            if left.is_dyn or right.is_dyn or (left.is_numeric and right.is_numeric):
                return BOOL
            if left.name is right.name and left.name in _ORDERED:
                return BOOL
            raise self._mismatch(op, left, right, node.offset)

        if op is BinaryOp.IN:
            if right.is_dyn:
                return BOOL
            if right.name in (TypeName.LIST, TypeName.MAP) and _comparable(right.params[0], left):
                return BOOL
            raise self._mismatch(op, left, right, node.offset)

        return self._arithmetic(node, left, right)

    def _arithmetic(self, node: Binary, left: CelType, right: CelType) -> CelType:
        op = node.op
        if left.is_dyn or right.is_dyn:
            return DYN
        if left.is_numeric and right.is_numeric:
            if op is BinaryOp.MOD and DOUBLE in (left, right):
                raise self._mismatch(op, left, right, node.offset)
            return _numeric_result(left, right)
        pair = (left.name, right.name)
        if op is BinaryOp.ADD:
            if left.name is right.name and left.name in (TypeName.STRING, TypeName.BYTES):
                return left
            if left.name is TypeName.LIST and right.name is TypeName.LIST:
                return left if left == right else list_of(DYN)
            if pair in ((TypeName.TIMESTAMP, TypeName.DURATION), (TypeName.DURATION, TypeName.TIMESTAMP)):
                return TIMESTAMP
            if pair == (TypeName.DURATION, TypeName.DURATION):
                return DURATION
        if op is BinaryOp.SUB:
            if pair == (TypeName.TIMESTAMP, TypeName.TIMESTAMP):
                return DURATION
            if pair == (TypeName.TIMESTAMP, TypeName.DURATION):
                return TIMESTAMP
            if pair == (TypeName.DURATION, TypeName.DURATION):
                return DURATION
        raise self._mismatch(op, left, right, node.offset)

    def _conditional(self, node: Conditional, env: TypeEnv) -> CelType:
        condition = self._check(node.condition, env)
        self._require_bool(condition, "condition of '?:'", node.offset)
        then = self._check(node.then, env)
        otherwise = self._check(node.otherwise, env)
        if then.is_dyn or otherwise.is_dyn:
            return DYN
        if then == otherwise:
            return then
        if then.is_numeric and otherwise.is_numeric:
            return _numeric_result(then, otherwise)
        if then.name is TypeName.NULL:
            return otherwise
        if otherwise.name is TypeName.NULL:
            return then
        raise ExpressionTypeError(
            f"branches of '?:' have different types ({then}, {otherwise})", node.offset
        )

    def _comprehension(self, node: Comprehension, env: TypeEnv) -> CelType:
        range_type = self._check(node.range, env)
        if range_type.is_dyn:
            element = DYN
        elif range_type.name in (TypeName.LIST, TypeName.MAP):
            element = range_type.params[0]
        else:
            raise ExpressionTypeError(
                f"{node.macro.value}() requires a list or map, not {range_type}", node.offset
            )
        if node.var in ("this", "now", "rule"):
            raise ExpressionTypeError(
                f"comprehension variable '{node.var}' shadows a built-in variable", node.offset
            )
        scope = env.with_variable(node.var, element)
        if node.predicate is not None:
            predicate = self._check(node.predicate, scope)
            self._require_bool(predicate, f"filter of {node.macro.value}()", node.offset)
        body = self._check(node.body, scope)
        if node.macro is Macro.MAP:
            return list_of(body)
        self._require_bool(body, f"predicate of {node.macro.value}()", node.offset)
        if node.macro is Macro.FILTER:
            return list_of(element)
        return BOOL

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_bool(type_: CelType, what: str, offset: int) -> None:
        if not (type_.is_dyn or type_ == BOOL):
            raise ExpressionTypeError(f"{what} must be bool, not {type_}", offset)

    @staticmethod
    def _mismatch(op: BinaryOp, left: CelType, right: CelType, offset: int) -> ExpressionTypeError:
        return ExpressionTypeError(
            f"found no matching overload for '{op.value}' applied to ({left}, {right})", offset
        )


def check_expression(node: Expr, env: TypeEnv) -> tuple[CelType, dict[int, CelType]]:
    """Type-check ``node`` and return its type plus the per-node type table."""
    checker = Checker(env)
    result = checker.check(node)
    return result, checker.types
