"""Graph topology: nodes, edges and the connections between them."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar

N = TypeVar("N")
E = TypeVar("E")
T = TypeVar("T")


@dataclass(frozen=True)
class TopoNode:
    """Counts of local (weight) edges, inputs and outputs of one node."""

    n_local: int
    n_inputs: int
    n_outputs: int


@dataclass(frozen=True)
class NodeRef:
    """Edge indices consumed and produced by one node."""

    inputs: tuple[int, ...]
    outputs: range


@dataclass(frozen=True)
class GraphTopo:
    """Compact graph structure.

    Edges are numbered: global inputs first, then for every node its local
    edges followed by its outputs. ``connections`` holds the global outputs
    first, then the input edges of every node in order.
    """

    n_inputs: int
    n_outputs: int
    connections: tuple[int, ...]
    nodes: tuple[TopoNode, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "connections", tuple(self.connections))
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def n_node(self) -> int:
        return len(self.nodes)

    def n_edge(self) -> int:
        return self.n_inputs + sum(n.n_local + n.n_outputs for n in self.nodes)

    def global_inputs(self) -> range:
        return range(self.n_inputs)

    def global_outputs(self) -> tuple[int, ...]:
        return self.connections[: self.n_outputs]

    def __iter__(self) -> Iterator[NodeRef]:
        i_edge = self.n_inputs
        i_conn = self.n_outputs
        for node in self.nodes:
            i_edge += node.n_local
            yield NodeRef(
                inputs=self.connections[i_conn : i_conn + node.n_inputs],
                outputs=range(i_edge, i_edge + node.n_outputs),
            )
            i_edge += node.n_outputs
            i_conn += node.n_inputs


@dataclass
class Graph(Generic[N, E]):
    """A topology with a value for every node and every edge."""

    topo: GraphTopo
    nodes: list[N] = field(default_factory=list)
    edges: list[E] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.nodes = list(self.nodes)
        self.edges = list(self.edges)


@dataclass
class Named(Generic[T]):
    name: str
    value: T