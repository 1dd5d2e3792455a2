"""Logical network graph with symbolic shapes, and its lowering to storage."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .exec import Operator
from .mem import External, Internal, MemGraph, Tensor
from .meta import TensorMeta
from .topo import Graph, Named

T = TypeVar("T")


@dataclass
class Edge(Generic[T]):
    """A graph tensor: its metadata and, for weights and saved outputs, external data."""

    meta: TensorMeta
    external: Optional[External[T]] = None


def _fixed_shape(meta: TensorMeta, values: Mapping[str, int]) -> tuple[int, ...]:
    shape = []
    for dim in meta.shape:
        number = dim.substitute(values)
        if number is None:
            raise ValueError(f"equality constraint of dimension {dim} is not satisfied")
        shape.append(number)
    return tuple(shape)


def _lower_edge(
    edge: Edge[T], values: Mapping[str, int], load: Callable[[T], Tensor]
) -> Tensor:
    shape = _fixed_shape(edge.meta, values)
    if edge.external is None:
        return Tensor.from_shape(edge.meta.dt, shape).map(Internal)
    name = edge.external.name
    tensor = load(edge.external.item)
    if tensor.dt != edge.meta.dt:
        raise ValueError(f"data type mismatch: {name}")
    if tuple(tensor.shape) != shape:
        raise ValueError(f"shape mismatch: {name}")
    return tensor.map(lambda item: External(name, item))


@dataclass
class NNGraph(Generic[T]):
    """The graph of operator nodes and symbolic tensors a network was built into."""

    graph: Graph[Named[Operator], Edge[T]]

    def lower(
        self, values: Mapping[str, int], load: Callable[[T], Tensor[Any]]
    ) -> MemGraph:
        """Fix every shape with ``values`` and bind external items through ``load``."""
        nodes = [
            Named(
                node.name,
                Operator(
                    node.value.name,
                    None if node.value.arg is None else node.value.arg.substitute(values),
                ),
            )
            for node in self.graph.nodes
        ]
        edges = [_lower_edge(edge, values, load) for edge in self.graph.edges]
        return MemGraph(self.graph.topo, nodes, edges)