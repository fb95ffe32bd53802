"""Immutable syntax tree for compute expressions."""

from dataclasses import dataclass


class Expr:
    pass


@dataclass(frozen=True, slots=True)
class Literal(Expr):
    value: float | str | bool


@dataclass(frozen=True, slots=True)
class Name(Expr):
    name: str


@dataclass(frozen=True, slots=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True, slots=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Call(Expr):
    name: str
    args: tuple[Expr, ...]
