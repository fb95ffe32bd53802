"""Sandboxed evaluation of compute expressions.

Expressions are parsed into an immutable syntax tree and interpreted against
a resolver; nothing is compiled into Python code, so an expression can only
reach the values the resolver hands out and the fixed function library.
"""

from __future__ import annotations

import logging
import math
import operator
from typing import TYPE_CHECKING, Any, TypeAlias

from livecompute._coerce import DEFAULT_LOCALE, NumberLocale, auto_coerce, plain_string, to_number
from livecompute._names import expand_wildcard, is_wildcard

from ._ast import Binary, Call, Expr, Literal, Name, Unary
from ._lexer import ExpressionSyntaxError
from ._library import EvaluationError, get_function
from ._parser import parse

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    Resolver: TypeAlias = Callable[[str], Any | None]

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 5

_ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": math.fmod,
}

_COMPARE: dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def _is_text_literal(expr: Expr) -> bool:
    return isinstance(expr, Literal) and isinstance(expr.value, str)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


class _Interpreter:
    """Walks a syntax tree for one evaluation."""

    def __init__(self, resolver: Resolver, indices: frozenset[int], locale: NumberLocale) -> None:
        self._resolver = resolver
        self._indices = indices
        self._locale = locale

    def _lookup(self, name: str) -> Any | None:
        return self._resolver(name)

    def number(self, value: Any) -> float:
        return to_number(value, locale=self._locale)

    def raw(self, expr: Expr) -> Any:
        if isinstance(expr, Name):
            value = self._lookup(expr.name)
            return "" if value is None else value
        return self.evaluate(expr)

    def expand(self, expr: Expr, *, raw: bool = False) -> list[tuple[int | None, Any]]:
        """Values an aggregate argument stands for, keyed by row index."""
        if isinstance(expr, Name) and is_wildcard(expr.name):
            rows: list[tuple[int | None, Any]] = []
            for index, variable in zip(
                sorted(self._indices),
                expand_wildcard(expr.name, self._indices),
                strict=True,
            ):
                value = self._lookup(variable)
                if value is None:
                    continue
                rows.append((index, value if raw else self.number(value)))
            return rows
        return [(None, self.raw(expr) if raw else self.evaluate(expr))]

    def evaluate(self, expr: Expr) -> Any:  # noqa: C901, PLR0911
        match expr:
            case Literal(value):
                return value
            case Name(name):
                if is_wildcard(name):
                    msg = f"Row wildcard '{name}' is only allowed inside an aggregate"
                    raise EvaluationError(msg)
                return self.number(self._lookup(name))
            case Unary(op, operand):
                value = self.evaluate(operand)
                if op == "not":
                    return not _truthy(value)
                number = self.number(value)
                return -number if op == "-" else number
            case Binary("and", left, right):
                return _truthy(self.evaluate(left)) and _truthy(self.evaluate(right))
            case Binary("or", left, right):
                return _truthy(self.evaluate(left)) or _truthy(self.evaluate(right))
            case Binary(op, left, right) if op in _COMPARE:
                if _is_text_literal(left) or _is_text_literal(right):
                    return self._compare(op, self._scalar(left), self._scalar(right))
                return self._compare(op, self.evaluate(left), self.evaluate(right))
            case Binary(op, left, right):
                return self._arithmetic(op, self.evaluate(left), self.evaluate(right))
            case Call(name, args):
                return get_function(name)(self, args)
            case _:
                msg = f"Unknown expression node: {type(expr)}"
                raise TypeError(msg)

    def _scalar(self, expr: Expr) -> Any:
        """An operand compared against text: its raw value as text, bool or number."""
        value = self.raw(expr)
        coerced = auto_coerce(value)
        if isinstance(coerced, str | bool):
            return coerced
        return self.number(value)

    def _compare(self, op: str, left: Any, right: Any) -> bool:
        if isinstance(left, str) and isinstance(right, str):
            return _COMPARE[op](left, right)
        if isinstance(left, str) or isinstance(right, str):
            # Text never equals a number
            if op in ("==", "!="):
                return op == "!="
        return _COMPARE[op](self.number(left), self.number(right))

    def _arithmetic(self, op: str, left: Any, right: Any) -> Any:
        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            return plain_string(left) + plain_string(right)
        a = self.number(left)
        b = self.number(right)
        if op in ("/", "%") and b == 0:
            msg = "Division by zero"
            raise EvaluationError(msg)
        return _ARITHMETIC[op](a, b)


def finalize(result: Any, precision: int = DEFAULT_PRECISION) -> float | str:
    """Normalize an interpreter result into a number or a string.

    Booleans become 1/0 and numbers are rounded to ``precision`` places so
    float artifacts such as ``1.9999999998`` settle before formatting.
    """
    if isinstance(result, str):
        return result
    if isinstance(result, bool):
        return 1.0 if result else 0.0
    number = float(result)
    if not math.isfinite(number):
        msg = f"Non-finite result: {number}"
        raise EvaluationError(msg)
    rounded = round(number, precision)
    return rounded + 0.0  # Turns -0.0 into 0.0


class ExpressionEvaluator:
    """Evaluates expressions, caching parsed syntax trees by source text."""

    def __init__(
        self,
        *,
        locale: NumberLocale = DEFAULT_LOCALE,
        precision: int = DEFAULT_PRECISION,
    ) -> None:
        self.locale = locale
        self.precision = precision
        self._cache: dict[str, Expr] = {}

    def compile(self, source: str) -> Expr:
        """Parse ``source``, reusing an earlier parse of the same text.

        Raises:
            ExpressionSyntaxError: If the expression is malformed.

        """
        key = source.strip()
        tree = self._cache.get(key)
        if tree is None:
            try:
                tree = parse(key)
            except RecursionError as e:
                msg = "Expression is nested too deeply"
                raise ExpressionSyntaxError(msg) from e
            self._cache[key] = tree
        return tree

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def evaluate_strict(
        self,
        source: str,
        resolver: Resolver,
        row_indices: Iterable[int] = (),
    ) -> float | str:
        """Evaluate an expression, letting syntax and evaluation errors propagate.

        Raises:
            ExpressionSyntaxError: If the expression is malformed.
            EvaluationError: If evaluation fails (unknown function, division by zero, ...).

        """
        tree = self.compile(source)
        interpreter = _Interpreter(resolver, frozenset(row_indices), self.locale)
        try:
            result = interpreter.evaluate(tree)
        except (ArithmeticError, RecursionError) as e:
            raise EvaluationError(str(e)) from e
        return finalize(result, self.precision)

    def evaluate(
        self,
        source: str,
        resolver: Resolver,
        row_indices: Iterable[int] = (),
    ) -> float | str:
        """Evaluate an expression; any failure is logged and yields 0.

        Args:
            source: The expression text.
            resolver: Maps a variable name to its raw value, or None if unknown.
            row_indices: Known row indices for ``?`` wildcard expansion.

        Returns:
            The rounded numeric result, a string result, or 0 on failure.

        """
        try:
            return self.evaluate_strict(source, resolver, row_indices)
        except (ValueError, TypeError) as e:
            logger.warning("Failed to evaluate %r: %s", source, e)
            return 0.0


def evaluate(
    source: str,
    resolver: Resolver,
    row_indices: Iterable[int] = (),
    *,
    locale: NumberLocale = DEFAULT_LOCALE,
    precision: int = DEFAULT_PRECISION,
) -> float | str:
    """Evaluate a single expression without keeping a parse cache.

    Example:
        >>> evaluate("harga * qty", {"harga": "10.000", "qty": "2"}.get)
        20000.0

    """
    return ExpressionEvaluator(locale=locale, precision=precision).evaluate(source, resolver, row_indices)
