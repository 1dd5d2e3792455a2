"""Storage-level graph: tensors bound to workspace blobs or external data."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, MutableSequence, Sequence
from dataclasses import dataclass, replace
from typing import Any, Generic, Optional, TypeVar, Union

from .arg import ArgKind
from .exec import ExecGraph, Operator
from .meta import DigitLayout
from .topo import Graph, GraphTopo, Named, NodeRef

T = TypeVar("T")
U = TypeVar("U")


@dataclass(eq=False)
class Internal:
    """A blob of ``size`` bytes in the shared workspace; identity tells blobs apart."""

    size: int


@dataclass
class External(Generic[T]):
    """Data supplied from outside the workspace, such as a weight."""

    name: str
    item: T


Info = Union[Internal, External]


def _contiguous_strides(shape: Sequence[int], unit: int) -> tuple[int, ...]:
    strides = []
    acc = unit
    for d in reversed(shape):
        strides.append(acc)
        acc *= d
    return tuple(reversed(strides))


@dataclass(frozen=True)
class Tensor(Generic[T]):
    """A strided view with byte strides and offset over the data held in ``item``."""

    dt: DigitLayout
    shape: tuple[int, ...]
    strides: tuple[int, ...]
    offset: int
    item: T

    @classmethod
    def from_shape(
        cls, dt: DigitLayout, shape: Iterable[int], item: Optional[Any] = None
    ) -> "Tensor":
        """A contiguous tensor; without ``item`` it holds its own size in bytes."""
        dims = tuple(int(d) for d in shape)
        if any(d < 0 for d in dims):
            raise ValueError(f"negative dimension in shape {dims}")
        tensor = cls(dt, dims, _contiguous_strides(dims, dt.nbytes), 0, None)
        return replace(tensor, item=tensor.nbytes if item is None else item)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def nbytes(self) -> int:
        return math.prod(self.shape) * self.dt.nbytes

    def map(self, fn: Callable[[T], U]) -> "Tensor[U]":
        """The same layout with the item replaced by ``fn(item)``."""
        return replace(self, item=fn(self.item))

    def slice(self, axis: int, start: int, step: int, length: int) -> "Tensor[T]":
        """A view of ``length`` elements along ``axis`` from ``start`` every ``step``."""
        if not 0 <= axis < self.ndim:
            raise IndexError(f"axis {axis} out of range for {self.ndim} dimensions")
        if step <= 0 or start < 0 or length < 0:
            raise ValueError("slice needs a positive step and non-negative start and length")
        if length and start + (length - 1) * step >= self.shape[axis]:
            raise IndexError(f"slice exceeds dimension {self.shape[axis]} of axis {axis}")
        shape = list(self.shape)
        strides = list(self.strides)
        shape[axis] = length
        offset = self.offset + start * strides[axis]
        strides[axis] *= step
        return replace(self, shape=tuple(shape), strides=tuple(strides), offset=offset)

    def is_contiguous(self) -> bool:
        expected = _contiguous_strides(self.shape, self.dt.nbytes)
        return all(
            d == 1 or s == e for d, s, e in zip(self.shape, self.strides, expected)
        )


Edge = Tensor  # an edge of a storage graph is a tensor whose item is an ``Info``


def _erase(node: Named[Operator]) -> None:
    node.value = Operator("empty", None)


def _split(node: Named[Operator], ref: NodeRef, edges: MutableSequence[Tensor]) -> None:
    if len(ref.inputs) != 1:
        raise ValueError(f"split node {node.name} must have exactly one input")
    source = edges[ref.inputs[0]]
    arg = node.value.arg
    if arg is None or arg.kind is not ArgKind.DICT:
        raise ValueError(f"split node {node.name} needs a dictionary argument")
    axis = arg["axis"].to_int()
    start = 0
    for index in ref.outputs:
        output = edges[index]
        part = output.shape[axis]
        if not isinstance(output.item, Internal):
            raise ValueError(f"split node {node.name} cannot write an external output")
        edges[index] = source.slice(axis, start, 1, part)
        start += part
    _erase(node)


def _concat(node: Named[Operator], ref: NodeRef, edges: MutableSequence[Tensor]) -> None:
    if len(ref.outputs) != 1:
        raise ValueError(f"concat node {node.name} must have exactly one output")
    target = edges[ref.outputs.start]
    arg = node.value.arg
    if arg is None or arg.kind is not ArgKind.INT:
        raise ValueError(f"concat node {node.name} needs an integer argument")
    axis = arg.value
    start = 0
    for index in ref.inputs:
        source = edges[index]
        part = source.shape[axis]
        if not isinstance(source.item, Internal):
            raise ValueError(f"concat node {node.name} cannot read an external input")
        edges[index] = target.slice(axis, start, 1, part)
        start += part
    _erase(node)


class MemGraph(Generic[T]):
    """A graph whose edges are tensors over internal blobs or external data.

    Split and concat nodes are resolved on construction: their outputs (or
    inputs) become views of a single blob and the nodes are erased.
    """

    def __init__(
        self,
        topo: GraphTopo,
        nodes: Iterable[Named[Operator]],
        edges: Iterable[Tensor],
    ) -> None:
        node_list = [Named(n.name, n.value) for n in nodes]
        edge_list = list(edges)
        for node, ref in zip(node_list, topo):
            if node.value.name == "split":
                _split(node, ref, edge_list)
            elif node.value.name == "concat":
                _concat(node, ref, edge_list)
        self.graph: Graph[Named[Operator], Tensor] = Graph(topo, node_list, edge_list)

    def lower(
        self,
        internal: Callable[[Internal], U],
        external: Callable[[Any], U],
    ) -> ExecGraph[Tensor[U]]:
        """Bind every edge to a concrete value, by blob or by external item."""

        def bind(info: Info) -> U:
            if isinstance(info, Internal):
                return internal(info)
            return external(info.item)

        edges = [tensor.map(bind) for tensor in self.graph.edges]
        return ExecGraph(Graph(self.graph.topo, list(self.graph.nodes), edges))