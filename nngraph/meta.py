"""Tensor metadata: element layouts and symbolic shapes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from .dim import Dim


@dataclass(frozen=True)
class DigitLayout:
    """Element type; quantized types pack ``group_size`` elements in ``nbytes`` bytes."""

    name: str
    nbytes: int
    group_size: int = 1

    def __str__(self) -> str:
        return self.name


BOOL = DigitLayout("bool", 1)
I8 = DigitLayout("i8", 1)
I16 = DigitLayout("i16", 2)
I32 = DigitLayout("i32", 4)
I64 = DigitLayout("i64", 8)
U8 = DigitLayout("u8", 1)
U16 = DigitLayout("u16", 2)
U32 = DigitLayout("u32", 4)
U64 = DigitLayout("u64", 8)
F16 = DigitLayout("f16", 2)
BF16 = DigitLayout("bf16", 2)
F32 = DigitLayout("f32", 4)
F64 = DigitLayout("f64", 8)
Q4_0 = DigitLayout("q4_0", 18, 32)
Q8_0 = DigitLayout("q8_0", 34, 32)


@dataclass(frozen=True)
class TensorMeta:
    """Data type and symbolic shape of a graph tensor."""

    dt: DigitLayout
    shape: tuple[Dim, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "shape", tuple(Dim(d) for d in self.shape))

    @classmethod
    def new(cls, dt: DigitLayout, shape: Iterable[Union[Dim, int, str]]) -> "TensorMeta":
        """Build metadata, counting the last axis in groups for grouped types."""
        dims = [Dim(d) for d in shape]
        if dt.group_size > 1 and dims:
            dims[-1] = dims[-1] / dt.group_size
        return cls(dt, tuple(dims))