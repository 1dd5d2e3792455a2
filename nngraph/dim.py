"""Symbolic tensor dimensions built on polynomial and rational expressions."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Optional, Union

import sympy

Operand = Union["Dim", int, str]


def _symbol(name: str) -> sympy.Symbol:
    return sympy.Symbol(name, integer=True, nonnegative=True)


def _as_dim(value: Operand) -> "Dim":
    return value if isinstance(value, Dim) else Dim(value)


def _evaluate(expr: sympy.Expr, values: Mapping[str, int]) -> sympy.Expr:
    mapping = {}
    for symbol in expr.free_symbols:
        if symbol.name not in values:
            raise KeyError(symbol.name)
        mapping[symbol] = sympy.Integer(values[symbol.name])
    result = expr.xreplace(mapping)
    if not result.is_number:
        raise ValueError(f"expression {expr} did not reduce to a number")
    if result.is_finite is not True:
        raise ZeroDivisionError(f"division by zero in {expr}")
    return result


def _equivalent(a: sympy.Expr, b: sympy.Expr) -> Optional[bool]:
    """True if always equal, False if never equal, None if it depends on the variables."""
    diff = sympy.cancel(a - b)
    if diff == 0:
        return True
    if diff.is_number:
        return False
    return None


class Dim:
    """One dimension of a shape, or a value taking part in shape arithmetic."""

    __slots__ = ("_expr", "_constraints")

    def __init__(self, value: Operand) -> None:
        if isinstance(value, Dim):
            self._expr = value._expr
            self._constraints = value._constraints
            return
        if isinstance(value, bool):
            raise TypeError("a dimension cannot be built from a bool")
        if isinstance(value, int):
            if value < 0:
                raise ValueError(f"a dimension cannot be negative: {value}")
            self._expr = sympy.Integer(value)
        elif isinstance(value, str):
            if not value:
                raise ValueError("a dimension variable needs a name")
            self._expr = _symbol(value)
        else:
            raise TypeError(f"cannot build a dimension from {type(value).__name__}")
        self._constraints: tuple[sympy.Expr, ...] = ()

    @classmethod
    def _from_expr(cls, expr: sympy.Expr, constraints: Iterable[sympy.Expr] = ()) -> "Dim":
        dim = cls.__new__(cls)
        dim._expr = expr
        dim._constraints = tuple(constraints)
        return dim

    def variables(self) -> frozenset[str]:
        """Names of the variables that appear in the expression."""
        return frozenset(symbol.name for symbol in self._expr.free_symbols)

    def substitute(self, values: Mapping[str, int]) -> Optional[int]:
        """Evaluate with the given variable values; None if an equality constraint fails."""
        for constraint in self._constraints:
            if _evaluate(constraint, values) != 0:
                return None
        result = int(sympy.floor(_evaluate(self._expr, values)))
        if result < 0:
            raise ValueError(f"dimension {self._expr} evaluates to a negative value")
        return result

    def to_int(self) -> int:
        """The value of a constant dimension."""
        if self._expr.is_Integer:
            return int(self._expr)
        raise ValueError("Dim is not a constant")

    def _binary(self, other: Operand, op) -> "Dim":
        if not isinstance(other, (Dim, int, str)):
            return NotImplemented
        return Dim._from_expr(op(self._expr, _as_dim(other)._expr))

    def _reflected(self, other: Operand, op) -> "Dim":
        if not isinstance(other, (Dim, int, str)):
            return NotImplemented
        return Dim._from_expr(op(_as_dim(other)._expr, self._expr))

    def __add__(self, other: Operand) -> "Dim":
        return self._binary(other, lambda a, b: a + b)

    def __radd__(self, other: Operand) -> "Dim":
        return self._reflected(other, lambda a, b: a + b)

    def __sub__(self, other: Operand) -> "Dim":
        return self._binary(other, lambda a, b: a - b)

    def __rsub__(self, other: Operand) -> "Dim":
        return self._reflected(other, lambda a, b: a - b)

    def __mul__(self, other: Operand) -> "Dim":
        return self._binary(other, lambda a, b: a * b)

    def __rmul__(self, other: Operand) -> "Dim":
        return self._reflected(other, lambda a, b: a * b)

    def __truediv__(self, other: Operand) -> "Dim":
        return self._binary(other, lambda a, b: a / b)

    def __rtruediv__(self, other: Operand) -> "Dim":
        return self._reflected(other, lambda a, b: a / b)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, bool) or not isinstance(other, (Dim, int)):
            return NotImplemented
        return sympy.cancel(self._expr - _as_dim(other)._expr) == 0

    def __hash__(self) -> int:
        return hash(sympy.cancel(self._expr))

    def __repr__(self) -> str:
        return f"Dim({self._expr})"

    def __str__(self) -> str:
        return str(self._expr)


def make_eq(dims: Sequence[Dim]) -> Optional[Dim]:
    """Merge dimensions that must be equal.

    Returns the first dimension, carrying constraints for every pair whose
    equality depends on the variables, or None if two of them can never be equal.
    """
    if len(dims) < 2:
        raise ValueError("make_eq needs at least two dimensions")
    first = dims[0]
    constraints = list(first._constraints)
    for other in dims[1:]:
        equal = _equivalent(first._expr, other._expr)
        if equal is True:
            continue
        if equal is False:
            return None
        constraints.append(first._expr - other._expr)
    return Dim._from_expr(first._expr, constraints)