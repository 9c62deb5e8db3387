"""AST node definitions for the rule expression language.

Every node produced by the parser is a frozen dataclass so that parsed
expressions are immutable and can be shared between threads once the
schema is compiled.  The ``Expr`` union covers all node variants;
downstream code dispatches on node type.

All nodes carry the 0-based ``offset`` of their first character so the
checker can report precise positions.
"""
from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Union


class LiteralKind(Enum):
    """Kinds of literal values."""

    INT = auto()
    UINT = auto()
    DOUBLE = auto()
    STRING = auto()
    BYTES = auto()
    BOOL = auto()
    NULL = auto()


class UnaryOp(Enum):
    """Unary operator kinds."""

    NOT = "!"
    NEG = "-"


class BinaryOp(Enum):
    """Binary operator kinds."""

    OR = "||"
    AND = "&&"
    EQ = "=="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"

    @property
    def is_relation(self) -> bool:
        return self in (BinaryOp.LT, BinaryOp.LTE, BinaryOp.GT, BinaryOp.GTE)

    @property
    def is_arithmetic(self) -> bool:
        return self in (BinaryOp.ADD, BinaryOp.SUB, BinaryOp.MUL, BinaryOp.DIV, BinaryOp.MOD)


class Macro(Enum):
    """Comprehension macros over lists and maps."""

    ALL = "all"
    EXISTS = "exists"
    EXISTS_ONE = "exists_one"
    MAP = "map"
    FILTER = "filter"


@dataclass(frozen=True, slots=True)
class Literal:
    """A constant, e.g. ``42``, ``3u``, ``'abc'``, ``b'\\x00'``, ``null``."""

    kind: LiteralKind
    value: Any
    offset: int


@dataclass(frozen=True, slots=True)
class Ident:
    """A bare identifier reference, e.g. ``this`` or ``now``."""

    name: str
    offset: int


@dataclass(frozen=True, slots=True)
class Select:
    """Field selection ``operand.field``.

    With ``test_only`` set the node is a ``has(operand.field)``
    presence test rather than a read.
    """

    operand: "Expr"
    field: str
    offset: int
    test_only: bool = False


@dataclass(frozen=True, slots=True)
class Index:
    """Index access ``operand[index]`` on lists and maps."""

    operand: "Expr"
    index: "Expr"
    offset: int


@dataclass(frozen=True, slots=True)
class Call:
    """A global call ``f(args)`` or a method call ``target.f(args)``."""

    function: str
    args: tuple["Expr", ...]
    offset: int
    target: "Expr | None" = None


@dataclass(frozen=True, slots=True)
class ListExpr:
    """A list literal ``[a, b, c]``."""

    items: tuple["Expr", ...]
    offset: int


@dataclass(frozen=True, slots=True)
class MapExpr:
    """A map literal ``{k1: v1, k2: v2}``."""

    entries: tuple[tuple["Expr", "Expr"], ...]
    offset: int


@dataclass(frozen=True, slots=True)
class Unary:
    """A unary operator expression, e.g. ``!ok`` or ``-x``."""

    op: UnaryOp
    operand: "Expr"
    offset: int


@dataclass(frozen=True, slots=True)
class Binary:
    """A binary operator expression, e.g. ``a < b`` or ``x && y``."""

    op: BinaryOp
    left: "Expr"
    right: "Expr"
    offset: int


@dataclass(frozen=True, slots=True)
class Conditional:
    """The ternary ``cond ? then : otherwise``."""

    condition: "Expr"
    then: "Expr"
    otherwise: "Expr"
    offset: int


@dataclass(frozen=True, slots=True)
class Comprehension:
    """A macro such as ``items.all(x, x > 0)``.

    ``predicate`` is the filter of the three-argument ``map`` form
    (``items.map(x, x > 0, x * 2)``); ``body`` is the per-element
    expression in every form.
    """

    macro: Macro
    range: "Expr"
    var: str
    body: "Expr"
    offset: int
    predicate: "Expr | None" = None


Expr = Union[
    Literal,
    Ident,
    Select,
    Index,
    Call,
    ListExpr,
    MapExpr,
    Unary,
    Binary,
    Conditional,
    Comprehension,
]


def children(node: Expr) -> tuple[Expr, ...]:
    """Return the direct sub-expressions of ``node`` in source order."""
    if isinstance(node, Select):
        return (node.operand,)
    if isinstance(node, Index):
        return (node.operand, node.index)
    if isinstance(node, Call):
        return ((node.target,) if node.target is not None else ()) + node.args
    if isinstance(node, ListExpr):
        return node.items
    if isinstance(node, MapExpr):
        return tuple(part for entry in node.entries for part in entry)
    if isinstance(node, Unary):
        return (node.operand,)
    if isinstance(node, Binary):
        return (node.left, node.right)
    if isinstance(node, Conditional):
        return (node.condition, node.then, node.otherwise)
    if isinstance(node, Comprehension):
        extra = (node.predicate,) if node.predicate is not None else ()
        return (node.range, *extra, node.body)
    return ()


def walk(node: Expr) -> list[Expr]:
    """Return ``node`` and all of its descendants, pre-order."""
    out: list[Expr] = [node]
    for child in children(node):
        out.extend(walk(child))
    return out


def unguarded_reads(node: Expr, names: Collection[str], root: str = "this") -> list[str]:
    """Return fields of ``root`` in ``names`` read without a ``has()`` test.

    A read is guarded when ``has(root.<field>)`` appears anywhere in the
    expression.  Field names come back in first-read order.
    """
    reads: list[str] = []
    guarded: set[str] = set()
    for sub in walk(node):
        if not isinstance(sub, Select) or sub.field not in names:
            continue
        if not isinstance(sub.operand, Ident) or sub.operand.name != root:
            continue
        if sub.test_only:
            guarded.add(sub.field)
        elif sub.field not in reads:
            reads.append(sub.field)
    return [name for name in reads if name not in guarded]
