"""Tokenizer for compute expressions."""

import re
from dataclasses import dataclass
from enum import StrEnum, auto


class ExpressionSyntaxError(ValueError):
    """An expression could not be tokenized or parsed."""


class TokenKind(StrEnum):
    """The lexical category of a token."""

    NUMBER = auto()
    STRING = auto()
    NAME = auto()  # Identifiers, may carry the '?' row wildcard
    OPERATOR = auto()
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    END = auto()


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    position: int


# Longest operators first so '<=' wins over '<'
OPERATORS = ("===", "!==", "==", "!=", "<>", "<=", ">=", "&&", "||", "<", ">", "+", "-", "*", "/", "%", "!")

_NUMBER = re.compile(r"\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?")
_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_?]*")
_STRING = re.compile(r"\"((?:[^\"\\]|\\.)*)\"|'((?:[^'\\]|\\.)*)'")
_ESCAPE = re.compile(r"\\(.)")


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens, terminated by an END token.

    Raises:
        ExpressionSyntaxError: On an unterminated string or unknown character.

    """
    tokens: list[Token] = []
    i = 0
    length = len(source)

    while i < length:
        char = source[i]
        if char.isspace():
            i += 1
            continue

        if char.isdigit() or (char == "." and i + 1 < length and source[i + 1].isdigit()):
            match = _NUMBER.match(source, i)
            assert match is not None  # noqa: S101
            tokens.append(Token(TokenKind.NUMBER, match.group(), i))
            i = match.end()
            continue

        if char.isalpha() or char == "_":
            match = _NAME.match(source, i)
            assert match is not None  # noqa: S101
            tokens.append(Token(TokenKind.NAME, match.group(), i))
            i = match.end()
            continue

        if char in "\"'":
            match = _STRING.match(source, i)
            if match is None:
                msg = f"Unterminated string starting at position {i}"
                raise ExpressionSyntaxError(msg)
            body = match.group(1) if match.group(1) is not None else match.group(2)
            tokens.append(Token(TokenKind.STRING, _ESCAPE.sub(r"\1", body), i))
            i = match.end()
            continue

        if char == "(":
            tokens.append(Token(TokenKind.LPAREN, char, i))
            i += 1
            continue
        if char == ")":
            tokens.append(Token(TokenKind.RPAREN, char, i))
            i += 1
            continue
        if char == ",":
            tokens.append(Token(TokenKind.COMMA, char, i))
            i += 1
            continue

        for op in OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token(TokenKind.OPERATOR, op, i))
                i += len(op)
                break
        else:
            msg = f"Unexpected character at position {i}: {char!r}"
            raise ExpressionSyntaxError(msg)

    tokens.append(Token(TokenKind.END, "", length))
    return tokens
