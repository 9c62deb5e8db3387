"""Recursive-descent parser for the rule expression language.

Converts the flat token list from the lexer into an ``Expr`` tree.
Parsing stops at the first error: rule expressions are short, and a
malformed one is a schema error that the compiler reports with the
rule's location.

Precedence, lowest to highest::

    ?:  >  ||  >  &&  >  == != < <= > >= in  >  + -  >  * / %
        >  unary ! -  >  member . [] ()  >  primary

Macros are recognised at parse time: ``has(a.b)`` becomes a test-only
``Select``, and ``x.all(v, p)``, ``x.exists(v, p)``,
``x.exists_one(v, p)``, ``x.map(v, e)``, ``x.map(v, p, e)`` and
``x.filter(v, p)`` become ``Comprehension`` nodes.
"""
from __future__ import annotations

from protorules.expr.errors import ExpressionSyntaxError
from protorules.expr.lexer import tokenize
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
from protorules.expr.tokens import Token, TokenType

# ---------------------------------------------------------------------------
# Operator tables
# ---------------------------------------------------------------------------

_RELATION_OPS: dict[TokenType, BinaryOp] = {
    TokenType.EQ: BinaryOp.EQ,
    TokenType.NEQ: BinaryOp.NEQ,
    TokenType.LT: BinaryOp.LT,
    TokenType.LTE: BinaryOp.LTE,
    TokenType.GT: BinaryOp.GT,
    TokenType.GTE: BinaryOp.GTE,
    TokenType.IN: BinaryOp.IN,
}
_ADDITIVE_OPS: dict[TokenType, BinaryOp] = {
    TokenType.PLUS: BinaryOp.ADD,
    TokenType.MINUS: BinaryOp.SUB,
}
_MULTIPLICATIVE_OPS: dict[TokenType, BinaryOp] = {
    TokenType.STAR: BinaryOp.MUL,
    TokenType.SLASH: BinaryOp.DIV,
    TokenType.PERCENT: BinaryOp.MOD,
}
_LITERAL_KINDS: dict[TokenType, LiteralKind] = {
    TokenType.INT: LiteralKind.INT,
    TokenType.UINT: LiteralKind.UINT,
    TokenType.DOUBLE: LiteralKind.DOUBLE,
    TokenType.STRING: LiteralKind.STRING,
    TokenType.BYTES: LiteralKind.BYTES,
    TokenType.BOOL: LiteralKind.BOOL,
    TokenType.NULL: LiteralKind.NULL,
}
_MACROS: dict[str, Macro] = {m.value: m for m in Macro}

_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1
_MAX_DEPTH = 48


class Parser:
    """Recursive descent parser producing an ``Expr`` from tokens.

    Parameters
    ----------
    tokens:
        The flat token list produced by the lexer.  Must include the
        terminal ``EOF`` token.
    """

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens: list[Token] = tokens
        self._pos: int = 0
        self._depth: int = 0

    # ------------------------------------------------------------------
    # Navigation helpers
    # ------------------------------------------------------------------

    def _current(self) -> Token:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return self._tokens[-1]  # EOF

    def _advance(self) -> Token:
        tok = self._current()
        if tok.type is not TokenType.EOF:
            self._pos += 1
        return tok

    def _check(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _match(self, *types: TokenType) -> Token | None:
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, message: str) -> Token:
        tok = self._current()
        if tok.type is token_type:
            return self._advance()
        found = tok.value or "end of expression"
        raise ExpressionSyntaxError(f"{message}, found {found!r}", tok.offset)

    # ------------------------------------------------------------------
    # Top-level parse
    # ------------------------------------------------------------------

    def parse(self) -> Expr:
        """Parse the whole token stream as one expression.

        Raises
        ------
        ExpressionSyntaxError
            On the first syntax error.
        """
        if self._check(TokenType.EOF):
            raise ExpressionSyntaxError("Empty expression", 0)
        expr = self._parse_expression()
        self._expect(TokenType.EOF, "Expected end of expression")
        return expr

    def _parse_expression(self) -> Expr:
        """Parse: ``or_expr ('?' or_expr ':' expression)?``"""
        self._depth += 1
        if self._depth > _MAX_DEPTH:
            raise ExpressionSyntaxError("Expression nested too deeply", self._current().offset)
        try:
            condition = self._parse_or()
            if self._match(TokenType.QUESTION):
                then = self._parse_or()
                self._expect(TokenType.COLON, "Expected ':' in conditional expression")
                otherwise = self._parse_expression()
                return Conditional(condition, then, otherwise, _offset(condition))
            return condition
        finally:
            self._depth -= 1

    def _parse_or(self) -> Expr:
        """Parse: ``and_expr ('||' and_expr)*``"""
        left = self._parse_and()
        while self._match(TokenType.OR):
            right = self._parse_and()
            left = Binary(BinaryOp.OR, left, right, _offset(left))
        return left

    def _parse_and(self) -> Expr:
        """Parse: ``relation ('&&' relation)*``"""
        left = self._parse_relation()
        while self._match(TokenType.AND):
            right = self._parse_relation()
            left = Binary(BinaryOp.AND, left, right, _offset(left))
        return left

    def _parse_relation(self) -> Expr:
        """Parse: ``addition (relop addition)*``"""
        left = self._parse_addition()
        while self._current().type in _RELATION_OPS:
            op = _RELATION_OPS[self._advance().type]
            right = self._parse_addition()
            left = Binary(op, left, right, _offset(left))
        return left

    def _parse_addition(self) -> Expr:
        """Parse: ``multiplication (('+' | '-') multiplication)*``"""
        left = self._parse_multiplication()
        while self._current().type in _ADDITIVE_OPS:
            op = _ADDITIVE_OPS[self._advance().type]
            right = self._parse_multiplication()
            left = Binary(op, left, right, _offset(left))
        return left

    def _parse_multiplication(self) -> Expr:
        """Parse: ``unary (('*' | '/' | '%') unary)*``"""
        left = self._parse_unary()
        while self._current().type in _MULTIPLICATIVE_OPS:
            op = _MULTIPLICATIVE_OPS[self._advance().type]
            right = self._parse_unary()
            left = Binary(op, left, right, _offset(left))
        return left

    def _parse_unary(self) -> Expr:
        """Parse: ``'!' unary | '-' unary | member``"""
        if self._check(TokenType.NOT):
            op_tok = self._advance()
            return Unary(UnaryOp.NOT, self._parse_unary(), op_tok.offset)
        if self._check(TokenType.MINUS):
            op_tok = self._advance()
            # Fold negative numeric literals so that INT64_MIN is representable.
            if self._check(TokenType.INT, TokenType.DOUBLE):
                num = self._advance()
                kind = _LITERAL_KINDS[num.type]
                value = -num.literal
                if kind is LiteralKind.INT and value < -_INT64_MAX - 1:
                    raise ExpressionSyntaxError(f"Integer literal {num.value} out of range", num.offset)
                return self._parse_member_suffix(Literal(kind, value, op_tok.offset))
            return Unary(UnaryOp.NEG, self._parse_unary(), op_tok.offset)
        return self._parse_member()

    def _parse_member(self) -> Expr:
        return self._parse_member_suffix(self._parse_primary())

    def _parse_member_suffix(self, expr: Expr) -> Expr:
        """Parse: ``( '.' IDENT [ '(' args ')' ] | '[' expression ']' )*``"""
        while True:
            if self._match(TokenType.DOT):
                name_tok = self._expect(TokenType.IDENT, "Expected field or method name after '.'")
                if self._match(TokenType.LPAREN):
                    args = self._parse_arguments(TokenType.RPAREN)
                    expr = self._method_call(expr, name_tok, args)
                else:
                    expr = Select(expr, name_tok.value, name_tok.offset)
            elif self._check(TokenType.LBRACKET):
                open_tok = self._advance()
                index = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' to close index")
                expr = Index(expr, index, open_tok.offset)
            else:
                return expr

    def _parse_arguments(self, closing: TokenType) -> tuple[Expr, ...]:
        args: list[Expr] = []
        while not self._check(closing, TokenType.EOF):
            args.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(closing, "Expected ')' to close argument list")
        return tuple(args)

    def _method_call(self, target: Expr, name_tok: Token, args: tuple[Expr, ...]) -> Expr:
        macro = _MACROS.get(name_tok.value)
        if macro is None:
            return Call(name_tok.value, args, name_tok.offset, target)
        expected = (2, 3) if macro is Macro.MAP else (2,)
        if len(args) not in expected:
            raise ExpressionSyntaxError(
                f"Macro {macro.value}() takes {' or '.join(map(str, expected))} arguments",
                name_tok.offset,
            )
        var = args[0]
        if not isinstance(var, Ident):
            raise ExpressionSyntaxError(
                f"First argument of {macro.value}() must be a variable name", name_tok.offset
            )
        if len(args) == 3:
            return Comprehension(macro, target, var.name, args[2], name_tok.offset, predicate=args[1])
        return Comprehension(macro, target, var.name, args[1], name_tok.offset)

    def _parse_primary(self) -> Expr:
        """Parse a literal, identifier, call, grouped, list or map expression."""
        tok = self._current()

        if tok.type in _LITERAL_KINDS:
            self._advance()
            kind = _LITERAL_KINDS[tok.type]
            if kind is LiteralKind.INT and tok.literal > _INT64_MAX:
                raise ExpressionSyntaxError(f"Integer literal {tok.value} out of range", tok.offset)
            if kind is LiteralKind.UINT and tok.literal > _UINT64_MAX:
                raise ExpressionSyntaxError(f"Unsigned literal {tok.value} out of range", tok.offset)
            return Literal(kind, tok.literal, tok.offset)

        if tok.type is TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' to close grouped expression")
            return expr

        if tok.type is TokenType.LBRACKET:
            self._advance()
            items = self._parse_list_items()
            return ListExpr(items, tok.offset)

        if tok.type is TokenType.LBRACE:
            self._advance()
            return MapExpr(self._parse_map_entries(), tok.offset)

        # A leading '.' marks a root-scoped identifier; treated as plain.
        if tok.type is TokenType.DOT and self._tokens[self._pos + 1].type is TokenType.IDENT:
            self._advance()
            tok = self._current()

        if tok.type is TokenType.IDENT:
            self._advance()
            if self._match(TokenType.LPAREN):
                args = self._parse_arguments(TokenType.RPAREN)
                if tok.value == "has":
                    return self._has_macro(tok, args)
                return Call(tok.value, args, tok.offset)
            return Ident(tok.value, tok.offset)

        found = tok.value or "end of expression"
        raise ExpressionSyntaxError(f"Expected expression, found {found!r}", tok.offset)

    def _parse_list_items(self) -> tuple[Expr, ...]:
        items: list[Expr] = []
        while not self._check(TokenType.RBRACKET, TokenType.EOF):
            items.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET, "Expected ']' to close list")
        return tuple(items)

    def _parse_map_entries(self) -> tuple[tuple[Expr, Expr], ...]:
        entries: list[tuple[Expr, Expr]] = []
        while not self._check(TokenType.RBRACE, TokenType.EOF):
            key = self._parse_expression()
            self._expect(TokenType.COLON, "Expected ':' after map key")
            entries.append((key, self._parse_expression()))
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE, "Expected '}' to close map")
        return tuple(entries)

    def _has_macro(self, tok: Token, args: tuple[Expr, ...]) -> Expr:
        if len(args) != 1 or not isinstance(args[0], Select):
            raise ExpressionSyntaxError("has() requires a single field selection argument", tok.offset)
        arg = args[0]
        return Select(arg.operand, arg.field, tok.offset, test_only=True)


def _offset(expr: Expr) -> int:
    return expr.offset


# ---------------------------------------------------------------------------
# Module-level convenience function
# ---------------------------------------------------------------------------


def parse_expression(source: str) -> Expr:
    """Parse an expression string and return its AST.

    Raises
    ------
    ExpressionSyntaxError
        If the source contains lexical or syntactic errors.

    Example
    -------
    ::

        from protorules.expr.parser import parse_expression
        ast = parse_expression("this.end_date > this.start_date")
    """
    return Parser(tokenize(source)).parse()
