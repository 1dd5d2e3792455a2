"""Scalar arguments passed to graph operators."""

from __future__ import annotations

import operator
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .dim import Dim


class ArgKind(Enum):
    DIM = "dim"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STR = "str"
    ARR = "arr"
    DICT = "dict"


def _coerce(value: Any) -> "Arg":
    if isinstance(value, Arg):
        return value
    if isinstance(value, Dim):
        return Arg.dim(value)
    if isinstance(value, bool):
        return Arg.bool(value)
    if isinstance(value, int):
        return Arg.int(value)
    if isinstance(value, float):
        return Arg.float(value)
    if isinstance(value, str):
        return Arg.str(value)
    if isinstance(value, Mapping):
        return Arg.dict(value)
    if isinstance(value, (list, tuple)):
        return Arg.arr(value)
    raise TypeError(f"cannot convert {type(value).__name__} to an argument")


@dataclass(frozen=True)
class Arg:
    """A scalar operator argument: a dimension, primitive, array or dictionary."""

    kind: ArgKind
    value: Any

    @classmethod
    def dim(cls, value: Union[Dim, int, str]) -> "Arg":
        return cls(ArgKind.DIM, value if isinstance(value, Dim) else Dim(value))

    @classmethod
    def bool(cls, value: bool) -> "Arg":
        return cls(ArgKind.BOOL, bool(value))

    @classmethod
    def int(cls, value: int) -> "Arg":
        number = operator.index(value)
        if number < 0:
            raise ValueError(f"integer argument cannot be negative: {number}")
        return cls(ArgKind.INT, number)

    @classmethod
    def float(cls, value: float) -> "Arg":
        return cls(ArgKind.FLOAT, float(value))

    @classmethod
    def str(cls, value: str) -> "Arg":
        return cls(ArgKind.STR, str(value))

    @classmethod
    def arr(cls, values: Iterable[Any]) -> "Arg":
        return cls(ArgKind.ARR, tuple(_coerce(v) for v in values))

    @classmethod
    def dict(cls, items: Union[Mapping[str, Any], Iterable[tuple[str, Any]]]) -> "Arg":
        pairs = items.items() if isinstance(items, Mapping) else items
        return cls(ArgKind.DICT, {key: _coerce(v) for key, v in pairs})

    def substitute(self, values: Mapping[str, int]) -> "Arg":
        """Replace every dimension with its integer value."""
        if self.kind is ArgKind.DIM:
            number = self.value.substitute(values)
            if number is None:
                raise ValueError(f"equality constraint of {self.value} is not satisfied")
            return Arg(ArgKind.INT, number)
        if self.kind is ArgKind.ARR:
            return Arg(ArgKind.ARR, tuple(a.substitute(values) for a in self.value))
        if self.kind is ArgKind.DICT:
            return Arg(ArgKind.DICT, {k: v.substitute(values) for k, v in self.value.items()})
        return self

    def to_int(self) -> int:
        """The integer held by an INT argument or a constant DIM argument."""
        if self.kind is ArgKind.DIM:
            return self.value.to_int()
        if self.kind is ArgKind.INT:
            return self.value
        raise TypeError(f"{self.kind.value} argument has no integer value")

    def __getitem__(self, key: Any) -> "Arg":
        if self.kind in (ArgKind.ARR, ArgKind.DICT):
            return self.value[key]
        raise TypeError(f"{self.kind.value} argument cannot be indexed")