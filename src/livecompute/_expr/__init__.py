"""Expression module for livecompute.

This module turns expression text into values without generating code:

- tokenize / parse: text to an immutable syntax tree
- ExpressionEvaluator: interprets the tree against a resolver, with a parse cache
- extract_variables: the free variables an expression references
- FUNCTIONS: the fixed aggregate, date and scalar function library
"""

from ._ast import Binary, Call, Expr, Literal, Name, Unary
from ._evaluator import DEFAULT_PRECISION, ExpressionEvaluator, evaluate, finalize
from ._extract import extract_variables
from ._lexer import ExpressionSyntaxError, Token, TokenKind, tokenize
from ._library import (
    AGGREGATE_FUNCTIONS,
    DATE_FUNCTIONS,
    FUNCTION_NAMES,
    FUNCTIONS,
    EvaluationError,
    match_criteria,
)
from ._parser import parse

__all__ = [
    "AGGREGATE_FUNCTIONS",
    "DATE_FUNCTIONS",
    "DEFAULT_PRECISION",
    "FUNCTIONS",
    "FUNCTION_NAMES",
    "Binary",
    "Call",
    "EvaluationError",
    "Expr",
    "ExpressionEvaluator",
    "ExpressionSyntaxError",
    "Literal",
    "Name",
    "Token",
    "TokenKind",
    "Unary",
    "evaluate",
    "extract_variables",
    "finalize",
    "match_criteria",
    "parse",
    "tokenize",
]
