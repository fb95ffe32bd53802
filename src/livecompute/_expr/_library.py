"""Fixed function library available to compute expressions.

Every function receives the unevaluated argument expressions together with
the evaluation context, so aggregates can expand ``?`` row wildcards and
date functions can read raw (uncoerced) field text.
"""

from __future__ import annotations

import logging
import math
import operator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from livecompute._coerce import auto_coerce, to_date

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import date

    from ._ast import Expr

logger = logging.getLogger(__name__)


class EvaluationError(ValueError):
    """An expression failed at evaluation time."""


class EvalContext(Protocol):
    """What library functions may ask of the running interpreter."""

    def evaluate(self, expr: Expr) -> Any: ...

    def number(self, value: Any) -> float: ...

    def expand(self, expr: Expr, *, raw: bool = False) -> list[tuple[int | None, Any]]: ...

    def raw(self, expr: Expr) -> Any: ...


@dataclass(frozen=True, slots=True)
class LibraryFunction:
    """A named function with its arity bounds."""

    name: str
    impl: Callable[[EvalContext, Sequence[Expr]], Any]
    min_args: int
    max_args: int | None = None

    def __call__(self, ctx: EvalContext, args: Sequence[Expr]) -> Any:
        if len(args) < self.min_args or (self.max_args is not None and len(args) > self.max_args):
            expected = f"{self.min_args}" if self.min_args == self.max_args else f"at least {self.min_args}"
            if self.max_args is not None and self.max_args != self.min_args:
                expected = f"{self.min_args} to {self.max_args}"
            msg = f"{self.name}() takes {expected} argument(s), got {len(args)}"
            raise EvaluationError(msg)
        return self.impl(ctx, args)


# --- Aggregates ---


def _numbers(ctx: EvalContext, args: Sequence[Expr]) -> list[float]:
    return [ctx.number(value) for arg in args for _, value in ctx.expand(arg)]


def _sum(ctx: EvalContext, args: Sequence[Expr]) -> float:
    return math.fsum(_numbers(ctx, args))


def _avg(ctx: EvalContext, args: Sequence[Expr]) -> float:
    values = _numbers(ctx, args)
    return math.fsum(values) / len(values) if values else 0.0


def _min(ctx: EvalContext, args: Sequence[Expr]) -> float:
    values = _numbers(ctx, args)
    return min(values) if values else 0.0


def _max(ctx: EvalContext, args: Sequence[Expr]) -> float:
    values = _numbers(ctx, args)
    return max(values) if values else 0.0


def _count(ctx: EvalContext, args: Sequence[Expr]) -> float:
    return float(sum(len(ctx.expand(arg)) for arg in args))


_CRITERIA_OPERATORS: tuple[tuple[str, Callable[[Any, Any], bool]], ...] = (
    (">=", operator.ge),
    ("<=", operator.le),
    ("<>", operator.ne),
    ("!=", operator.ne),
    ("==", operator.eq),
    (">", operator.gt),
    ("<", operator.lt),
    ("=", operator.eq),
)


def match_criteria(value: Any, criteria: Any) -> bool:
    """Check a row value against a spreadsheet-style criteria.

    A criteria is either a plain value (equality) or a string prefixed with a
    comparison operator such as ``">100"`` or ``"<>paid"``. Numbers compare
    numerically; anything else compares as text.
    """
    compare: Callable[[Any, Any], bool] = operator.eq
    target: Any = criteria
    if isinstance(criteria, str):
        text = criteria.strip()
        for symbol, op in _CRITERIA_OPERATORS:
            if text.startswith(symbol):
                compare = op
                text = text[len(symbol) :].strip()
                break
        target = text

    left = auto_coerce(value)
    right = auto_coerce(target)
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return compare(float(left), float(right))
    if compare in (operator.eq, operator.ne):
        return compare(str(value).strip() if value is not None else "", str(target))
    # Ordering between text and numbers never matches
    return False


def _sumif(ctx: EvalContext, args: Sequence[Expr]) -> float:
    criteria_rows = ctx.expand(args[0], raw=True)
    criteria = ctx.evaluate(args[1])

    if len(args) < 3:  # noqa: PLR2004
        return math.fsum(ctx.number(value) for _, value in criteria_rows if match_criteria(value, criteria))

    sum_rows = ctx.expand(args[2])
    by_index = {index: value for index, value in sum_rows if index is not None}
    total: list[float] = []
    for position, (index, value) in enumerate(criteria_rows):
        if not match_criteria(value, criteria):
            continue
        if index is not None and by_index:
            total.append(ctx.number(by_index.get(index, 0)))
        elif position < len(sum_rows):
            total.append(ctx.number(sum_rows[position][1]))
    return math.fsum(total)


# --- Date ranges ---


def _date_args(ctx: EvalContext, args: Sequence[Expr]) -> tuple[date, date] | None:
    start = to_date(ctx.raw(args[0]))
    end = to_date(ctx.raw(args[1]))
    if start is None or end is None:
        return None
    return start, end


def _range_date(ctx: EvalContext, args: Sequence[Expr]) -> float:
    dates = _date_args(ctx, args)
    if dates is None:
        return 0.0
    start, end = dates
    return float((end - start).days)


def _range_week(ctx: EvalContext, args: Sequence[Expr]) -> float:
    dates = _date_args(ctx, args)
    if dates is None:
        return 0.0
    start, end = dates
    return float(math.ceil((end - start).days / 7))


def _range_month(ctx: EvalContext, args: Sequence[Expr]) -> float:
    dates = _date_args(ctx, args)
    if dates is None:
        return 0.0
    start, end = dates
    return float((end.year - start.year) * 12 + (end.month - start.month))


def _range_year(ctx: EvalContext, args: Sequence[Expr]) -> float:
    dates = _date_args(ctx, args)
    if dates is None:
        return 0.0
    start, end = dates
    return float(end.year - start.year)


# --- Scalars ---


def _if(ctx: EvalContext, args: Sequence[Expr]) -> Any:
    condition = ctx.evaluate(args[0])
    if isinstance(condition, str):
        condition = bool(condition.strip())
    return ctx.evaluate(args[1] if condition else args[2])


def _round(ctx: EvalContext, args: Sequence[Expr]) -> float:
    value = ctx.number(ctx.evaluate(args[0]))
    digits = int(ctx.number(ctx.evaluate(args[1]))) if len(args) > 1 else 0
    # Half away from zero, like spreadsheets
    scale = 10**digits
    return math.copysign(math.floor(abs(value) * scale + 0.5) / scale, value)


def _unary_math(fn: Callable[[float], float]) -> Callable[[EvalContext, Sequence[Expr]], float]:
    def impl(ctx: EvalContext, args: Sequence[Expr]) -> float:
        return float(fn(ctx.number(ctx.evaluate(args[0]))))

    return impl


def _parse_float(ctx: EvalContext, args: Sequence[Expr]) -> float:
    return ctx.number(ctx.raw(args[0]))


AGGREGATE_FUNCTIONS = frozenset({"sum", "avg", "min", "max", "count", "sumif"})
DATE_FUNCTIONS = frozenset({"rangeDate", "rangeWeek", "rangeMonth", "rangeYear"})

FUNCTIONS: dict[str, LibraryFunction] = {
    fn.name: fn
    for fn in (
        LibraryFunction("sum", _sum, 0),
        LibraryFunction("avg", _avg, 0),
        LibraryFunction("min", _min, 0),
        LibraryFunction("max", _max, 0),
        LibraryFunction("count", _count, 0),
        LibraryFunction("sumif", _sumif, 2, 3),
        LibraryFunction("rangeDate", _range_date, 2, 2),
        LibraryFunction("rangeWeek", _range_week, 2, 2),
        LibraryFunction("rangeMonth", _range_month, 2, 2),
        LibraryFunction("rangeYear", _range_year, 2, 2),
        LibraryFunction("if", _if, 3, 3),
        LibraryFunction("round", _round, 1, 2),
        LibraryFunction("abs", _unary_math(abs), 1, 1),
        LibraryFunction("floor", _unary_math(math.floor), 1, 1),
        LibraryFunction("ceil", _unary_math(math.ceil), 1, 1),
        LibraryFunction("parseFloat", _parse_float, 1, 1),
    )
}

FUNCTION_NAMES = frozenset(FUNCTIONS)


def get_function(name: str) -> LibraryFunction:
    """Look up a library function.

    Raises:
        EvaluationError: If no function with that name exists.

    """
    try:
        return FUNCTIONS[name]
    except KeyError:
        logger.warning("Unknown function '%s'", name)
        msg = f"Unknown function '{name}'"
        raise EvaluationError(msg) from None
