"""Free-variable extraction from expression text."""

import re

from ._library import FUNCTION_NAMES

KEYWORDS = frozenset({"and", "or", "not", "true", "false"})

_STRING_LITERAL = re.compile(r"\"(?:[^\"\\]|\\.)*\"?|'(?:[^'\\]|\\.)*'?")
_IDENTIFIER = re.compile(r"(?<![\w.])[A-Za-z_][A-Za-z0-9_?]*")


def extract_variables(expr: str) -> frozenset[str]:
    """Return the variable names an expression references.

    String literals, numeric literals, keywords and library function names
    are excluded. Row wildcards such as ``rows_?_amount`` are returned as-is.
    Malformed expressions are scanned on a best-effort basis and never raise.

    Example:
        >>> sorted(extract_variables('sumif(rows_?_status, "paid", rows_?_amount) + fee'))
        ['fee', 'rows_?_amount', 'rows_?_status']

    """
    if not expr:
        return frozenset()
    text = _STRING_LITERAL.sub(" ", expr)
    return frozenset(
        name for name in _IDENTIFIER.findall(text) if name not in FUNCTION_NAMES and name not in KEYWORDS
    )
