"""Field-name normalization and indexed (row) families.

Form fields are often named like ``rows[2][amount]``. Expressions refer to
them with a flattened identifier (``rows_2_amount``), and aggregate
functions address the whole family with a ``?`` wildcard
(``rows_?_amount``).
"""

import re
from collections.abc import Iterable

WILDCARD = "?"

_INDEX_PATTERN = re.compile(r"\[(\d+)\]")
_SUBSCRIPT = re.compile(r"\[([^\]]*)\]")
_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9_]")


def variable_name(field_name: str) -> str:
    """Flatten a field name into an expression identifier.

    Example:
        >>> variable_name("rows[0][amount]")
        'rows_0_amount'
        >>> variable_name("order-total")
        'order_total'

    """
    name = _SUBSCRIPT.sub(r"_\1", field_name)
    return _NON_IDENTIFIER.sub("_", name)


def row_indices(field_names: Iterable[str]) -> frozenset[int]:
    """Collect every bracketed integer index found in the field names.

    ``form[3][details][5][value]`` contributes both 3 and 5.
    """
    indices: set[int] = set()
    for name in field_names:
        indices.update(int(match) for match in _INDEX_PATTERN.findall(name))
    return frozenset(indices)


def is_wildcard(variable: str) -> bool:
    """Check whether a variable addresses an indexed family."""
    return WILDCARD in variable


def expand_wildcard(pattern: str, indices: Iterable[int]) -> list[str]:
    """Substitute every row index into a wildcard variable, in index order."""
    return [pattern.replace(WILDCARD, str(index)) for index in sorted(indices)]


def _wildcard_regex(pattern: str) -> re.Pattern[str]:
    parts = (re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(r"\d+".join(parts))


def matches_variable(dependency: str, variable: str) -> bool:
    """Check whether a dependency (possibly a wildcard) covers a concrete variable."""
    if dependency == variable:
        return True
    if not is_wildcard(dependency):
        return False
    return _wildcard_regex(dependency).fullmatch(variable) is not None


def dependencies_overlap(left: Iterable[str], right: Iterable[str]) -> bool:
    """Check whether two dependency sets share a variable (wildcards included)."""
    right = list(right)
    return any(matches_variable(a, b) or matches_variable(b, a) for a in left for b in right)
