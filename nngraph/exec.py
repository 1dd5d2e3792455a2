"""Executable form of a graph: one entry per operator with bound tensors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .arg import Arg
from .topo import Graph, Named

T = TypeVar("T")


@dataclass
class Operator:
    """An operator type with its argument."""

    name: str
    arg: Optional[Arg] = None


@dataclass
class Exec(Generic[T]):
    """One operator with the tensors it reads and writes."""

    node: Named[Operator]
    inputs: tuple[T, ...]
    outputs: tuple[T, ...]


@dataclass
class ExecGraph(Generic[T]):
    """A graph whose edges are bound to concrete tensors."""

    graph: Graph[Named[Operator], T]

    def into_exec(self) -> list[Exec[T]]:
        """Turn every node into an execution entry, in topological order."""
        edges = self.graph.edges
        return [
            Exec(
                node=node,
                inputs=tuple(edges[i] for i in ref.inputs),
                outputs=tuple(edges[i] for i in ref.outputs),
            )
            for ref, node in zip(self.graph.topo, self.graph.nodes)
        ]