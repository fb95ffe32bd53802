"""Recursive-descent parser producing the expression syntax tree.

Precedence, loosest first::

    or      ||  or
    and     &&  and
    compare <  >  <=  >=  ==  !=  <>  ===  !==
    sum     +  -
    product *  /  %
    unary   -  +  !  not
    primary number | string | true | false | name | call | ( expr )
"""

from collections.abc import Callable

from ._ast import Binary, Call, Expr, Literal, Name, Unary
from ._lexer import ExpressionSyntaxError, Token, TokenKind, tokenize

_COMPARISONS = {"<", ">", "<=", ">=", "==", "!=", "<>", "===", "!=="}

# Parentheses, calls and unary operators nested deeper than this are rejected
MAX_NESTING = 64

# Spellings that mean the same operator
_CANONICAL = {
    "===": "==",
    "!==": "!=",
    "<>": "!=",
    "&&": "and",
    "||": "or",
    "!": "not",
}


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._depth = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind != TokenKind.END:
            self._pos += 1
        return token

    def _at_operator(self, *ops: str) -> bool:
        token = self._current
        if token.kind == TokenKind.OPERATOR and token.text in ops:
            return True
        # Word operators are lexed as names
        return token.kind == TokenKind.NAME and token.text in ops

    def _nested(self, parse: Callable[[], Expr]) -> Expr:
        self._depth += 1
        if self._depth > MAX_NESTING:
            token = self._current
            msg = f"Expression nested deeper than {MAX_NESTING} levels at position {token.position}"
            raise ExpressionSyntaxError(msg)
        try:
            return parse()
        finally:
            self._depth -= 1

    def _expect(self, kind: TokenKind) -> Token:
        token = self._current
        if token.kind != kind:
            found = token.text or "end of expression"
            msg = f"Expected {kind} at position {token.position}, found {found!r}"
            raise ExpressionSyntaxError(msg)
        return self._advance()

    def parse(self) -> Expr:
        if self._current.kind == TokenKind.END:
            msg = "Empty expression"
            raise ExpressionSyntaxError(msg)
        expr = self._or()
        if self._current.kind != TokenKind.END:
            token = self._current
            msg = f"Unexpected {token.text!r} at position {token.position}"
            raise ExpressionSyntaxError(msg)
        return expr

    def _or(self) -> Expr:
        left = self._and()
        while self._at_operator("||", "or"):
            op = self._advance().text
            left = Binary(_CANONICAL.get(op, op), left, self._and())
        return left

    def _and(self) -> Expr:
        left = self._comparison()
        while self._at_operator("&&", "and"):
            op = self._advance().text
            left = Binary(_CANONICAL.get(op, op), left, self._comparison())
        return left

    def _comparison(self) -> Expr:
        left = self._sum()
        while self._at_operator(*_COMPARISONS):
            op = self._advance().text
            left = Binary(_CANONICAL.get(op, op), left, self._sum())
        return left

    def _sum(self) -> Expr:
        left = self._product()
        while self._at_operator("+", "-"):
            op = self._advance().text
            left = Binary(op, left, self._product())
        return left

    def _product(self) -> Expr:
        left = self._unary()
        while self._at_operator("*", "/", "%"):
            op = self._advance().text
            left = Binary(op, left, self._unary())
        return left

    def _unary(self) -> Expr:
        if self._at_operator("-", "+", "!", "not"):
            op = self._advance().text
            return Unary(_CANONICAL.get(op, op), self._nested(self._unary))
        return self._primary()

    def _primary(self) -> Expr:
        token = self._current

        match token.kind:
            case TokenKind.NUMBER:
                self._advance()
                return Literal(float(token.text))
            case TokenKind.STRING:
                self._advance()
                return Literal(token.text)
            case TokenKind.LPAREN:
                self._advance()
                expr = self._nested(self._or)
                self._expect(TokenKind.RPAREN)
                return expr
            case TokenKind.NAME:
                self._advance()
                if token.text in ("true", "false"):
                    return Literal(token.text == "true")
                if self._current.kind == TokenKind.LPAREN:
                    return Call(token.text, self._arguments())
                return Name(token.text)
            case _:
                found = token.text or "end of expression"
                msg = f"Unexpected {found!r} at position {token.position}"
                raise ExpressionSyntaxError(msg)

    def _arguments(self) -> tuple[Expr, ...]:
        self._expect(TokenKind.LPAREN)
        args: list[Expr] = []
        if self._current.kind == TokenKind.RPAREN:
            self._advance()
            return ()
        while True:
            args.append(self._nested(self._or))
            if self._current.kind == TokenKind.COMMA:
                self._advance()
                continue
            self._expect(TokenKind.RPAREN)
            return tuple(args)


def parse(source: str) -> Expr:
    """Parse an expression string into a syntax tree.

    Raises:
        ExpressionSyntaxError: If the expression is malformed.

    """
    return _Parser(tokenize(source)).parse()
