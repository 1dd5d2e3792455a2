"""Tensor-parallel distribution of weights across devices."""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar, Generic, Optional, TypeVar

from .mem import Tensor

T = TypeVar("T")


@dataclass(frozen=True)
class Distribution:
    """The share ``start .. start + len`` of ``total`` equal parts held by one device."""

    start: int
    len: int
    total: int

    MONO: ClassVar["Distribution"]

    def __post_init__(self) -> None:
        if not (0 < self.len and self.start >= 0 and self.start + self.len <= self.total):
            raise ValueError(
                f"invalid distribution: start={self.start} len={self.len} total={self.total}"
            )

    def is_mono(self) -> bool:
        """True if this device holds every part."""
        return self.len == self.total


Distribution.MONO = Distribution(0, 1, 1)


def _contiguous_bytes(src: Tensor) -> bytes:
    if not src.is_contiguous():
        raise ValueError("weight tensor must be contiguous")
    return bytes(src.item)[src.offset : src.offset + src.nbytes]


def _gather(view: Tensor, data: bytes) -> bytes:
    """Copy the elements of a strided view into a contiguous buffer."""
    elem = view.dt.nbytes
    out = bytearray()
    for index in itertools.product(*(range(d) for d in view.shape)):
        pos = view.offset + sum(i * s for i, s in zip(index, view.strides))
        out += data[pos : pos + elem]
    return bytes(out)


def _split_rows(dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
    if len(shape) == 1:
        return (shape[0] // dist.total * dist.len,)
    if len(shape) == 2:
        return (shape[0] // dist.total * dist.len, shape[1])
    raise ValueError(f"weights have one or two dimensions, not {len(shape)}")


class WeightType(ABC):
    """How a weight is cut into parts for tensor parallelism."""

    @abstractmethod
    def move_data(self, dist: Distribution, src: Tensor) -> bytes:
        """The bytes of the part of ``src`` that belongs to ``dist``."""

    @abstractmethod
    def split_shape(self, dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
        """The shape of the part of a weight of ``shape`` that belongs to ``dist``."""


@dataclass(frozen=True)
class AttnQKV(WeightType):
    """Fused q/k/v weight of grouped-query attention; ``gqa`` q heads per kv head."""

    gqa: int

    def move_data(self, dist: Distribution, src: Tensor) -> bytes:
        data = _contiguous_bytes(src)
        groups = self.gqa + 2
        if src.shape[0] % groups != 0 or src.shape[0] // groups % dist.total != 0:
            raise ValueError("attention qkv rows cannot be split evenly")
        shard = len(data) // groups
        piece = shard // dist.total
        start, size = dist.start * piece, dist.len * piece
        q = data[self.gqa * start : self.gqa * (start + size)]
        k = data[self.gqa * shard + start : self.gqa * shard + start + size]
        v_base = (self.gqa + 1) * shard
        v = data[v_base + start : v_base + start + size]
        return q + k + v

    def split_shape(self, dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
        return _split_rows(dist, shape)


@dataclass(frozen=True)
class FfnGateUp(WeightType):
    """Fused gate/up weight of a gated feed-forward layer."""

    def move_data(self, dist: Distribution, src: Tensor) -> bytes:
        data = _contiguous_bytes(src)
        if src.shape[0] % 2 != 0 or src.shape[0] // 2 % dist.total != 0:
            raise ValueError("gate/up rows cannot be split evenly")
        shard = len(data) // 2
        piece = shard // dist.total
        start, size = dist.start * piece, dist.len * piece
        return data[start : start + size] + data[shard + start : shard + start + size]

    def split_shape(self, dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
        return _split_rows(dist, shape)


@dataclass(frozen=True)
class ColumnTPWeight(WeightType):
    """A weight split by rows (output features)."""

    def move_data(self, dist: Distribution, src: Tensor) -> bytes:
        data = _contiguous_bytes(src)
        if src.shape[0] % dist.total != 0:
            raise ValueError("rows cannot be split evenly")
        piece = len(data) // dist.total
        return data[dist.start * piece : (dist.start + dist.len) * piece]

    def split_shape(self, dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
        return _split_rows(dist, shape)


@dataclass(frozen=True)
class RowTPWeight(WeightType):
    """A weight split by columns (input features); a bias is kept whole."""

    def move_data(self, dist: Distribution, src: Tensor) -> bytes:
        data = _contiguous_bytes(src)
        if src.ndim == 1:
            return data
        if src.ndim != 2:
            raise ValueError(f"weights have one or two dimensions, not {src.ndim}")
        if src.shape[1] % dist.total != 0:
            raise ValueError("columns cannot be split evenly")
        piece = src.shape[1] // dist.total
        view = src.slice(1, dist.start * piece, 1, dist.len * piece)
        return _gather(view, bytes(src.item))

    def split_shape(self, dist: Distribution, shape: Sequence[int]) -> tuple[int, ...]:
        if len(shape) == 1:
            return (shape[0],)
        if len(shape) == 2:
            return (shape[0], shape[1] // dist.total * dist.len)
        raise ValueError(f"weights have one or two dimensions, not {len(shape)}")


@dataclass(frozen=True)
class TPAction:
    """A weight type together with the share of it to keep."""

    wt: WeightType
    dist: Distribution

    def __hash__(self) -> int:
        return hash((type(self.wt), self.dist))


@dataclass
class TPTensor(Generic[T]):
    """A weight item with the parallel action to apply to it, if any."""

    val: T
    act: Optional[TPAction] = None