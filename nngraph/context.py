"""Building network graphs: operator library, graph tensors and naming contexts."""

from __future__ import annotations

import weakref
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Optional, Union

from .arg import Arg
from .dim import Dim
from .exec import Operator as OpInfo
from .mem import External
from .meta import DigitLayout, TensorMeta
from .nn_graph import Edge, NNGraph
from .ops import OpError, OpErrorKind, Operator
from .topo import Graph, GraphTopo, Named, TopoNode

ROOT = "Ω"


class NNError(Exception):
    """An operator call inside a network failed; ``name`` is the node's full name."""

    def __init__(self, name: str, err: OpError) -> None:
        super().__init__(f"{name}: {err}")
        self.name = name
        self.err = err


class NeuralNetwork(ABC):
    """A network component that adds its operators to a graph."""

    @abstractmethod
    def launch(
        self, inputs: list["GraphTensor"], ctx: "Context"
    ) -> tuple["Context", list["GraphTensor"]]:
        """Connect the component to ``inputs`` and return the context and outputs."""


class OpLib:
    """Registered operators by name."""

    def __init__(self) -> None:
        self._ops: dict[str, Operator] = {}

    def get(self, name: str) -> Optional[Operator]:
        return self._ops.get(name)

    def _insert(self, name: str, op: Operator) -> None:
        if name in self._ops:
            raise ValueError(f"operator {name!r} is already registered")
        self._ops[name] = op

    def __contains__(self, name: object) -> bool:
        return name in self._ops

    def __len__(self) -> int:
        return len(self._ops)


class GraphTensor:
    """A tensor of a graph under construction."""

    __slots__ = ("idx", "_graph")

    def __init__(self, idx: int, graph: "weakref.ref[_GraphState]") -> None:
        self.idx = idx
        self._graph = graph

    def _state(self) -> "_GraphState":
        state = self._graph()
        if state is None:
            raise RuntimeError("the graph this tensor belongs to no longer exists")
        return state

    def dt(self) -> DigitLayout:
        return self._state().meta(self.idx).dt

    def shape(self) -> tuple[Dim, ...]:
        return self._state().meta(self.idx).shape

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphTensor):
            return NotImplemented
        return self.idx == other.idx and self._graph() is other._graph()

    def __hash__(self) -> int:
        return hash((self.idx, id(self._graph())))

    def __repr__(self) -> str:
        return f"GraphTensor({self.idx})"


@dataclass
class _OpNode:
    node: Named[OpInfo]
    inputs: tuple[int, ...]
    outputs: range


class _GraphState:
    def __init__(self, op_lib: OpLib, inputs: Iterable[TensorMeta]) -> None:
        self.op_lib = op_lib
        self.tensors: list[Edge] = [Edge(meta) for meta in inputs]
        self.n_inputs = len(self.tensors)
        self.op_nodes: list[_OpNode] = []

    def meta(self, idx: int) -> TensorMeta:
        return self.tensors[idx].meta

    def handle(self, idx: int) -> GraphTensor:
        return GraphTensor(idx, weakref.ref(self))

    def index_of(self, tensor: GraphTensor) -> int:
        if tensor._graph() is not self:
            raise ValueError("tensor belongs to another graph")
        return tensor.idx

    def load_external(
        self, name: str, dt: DigitLayout, shape: Iterable[Union[Dim, int, str]], item: Any
    ) -> GraphTensor:
        self.tensors.append(Edge(TensorMeta.new(dt, shape), External(name, item)))
        return self.handle(len(self.tensors) - 1)

    def save_external(self, name: str, tensor: GraphTensor, item: Any) -> None:
        edge = self.tensors[self.index_of(tensor)]
        if edge.external is not None:
            raise ValueError(f"tensor is already saved as {edge.external.name!r}")
        edge.external = External(name, item)

    def call(
        self, name: str, op: str, inputs: Iterable[GraphTensor], arg: Optional[Arg]
    ) -> list[GraphTensor]:
        operator = self.op_lib.get(op)
        if operator is None:
            raise OpError(OpErrorKind.NOT_EXIST)
        indices = tuple(self.index_of(t) for t in inputs)
        metas = [self.meta(i) for i in indices]
        outputs = operator.infer(metas, arg)
        start = len(self.tensors)
        self.tensors.extend(Edge(meta) for meta in outputs)
        end = len(self.tensors)
        self.op_nodes.append(_OpNode(Named(name, OpInfo(op, arg)), indices, range(start, end)))
        return [self.handle(i) for i in range(start, end)]

    def into_graph(self, global_outputs: Iterable[GraphTensor]) -> NNGraph:
        """Renumber tensors in topological order: inputs, then per node weights and outputs."""
        outputs = [self.index_of(t) for t in global_outputs]
        edge_map: list[Optional[int]] = [None] * len(self.tensors)
        edges: list[Edge] = []
        for i in range(self.n_inputs):
            edge_map[i] = i
            edges.append(self.tensors[i])

        connections: list[Optional[int]] = [None] * len(outputs)
        topo_nodes: list[TopoNode] = []
        nodes: list[Named[OpInfo]] = []
        for op in self.op_nodes:
            n_local = 0
            for i in op.inputs:
                mapped = edge_map[i]
                if mapped is None:
                    # an input that no node produced is a weight local to this node
                    mapped = len(edges)
                    edge_map[i] = mapped
                    edges.append(self.tensors[i])
                    n_local += 1
                connections.append(mapped)
            for i in op.outputs:
                if edge_map[i] is not None:
                    raise RuntimeError(f"tensor {i} is produced twice")
                edge_map[i] = len(edges)
                edges.append(self.tensors[i])
            topo_nodes.append(TopoNode(n_local, len(op.inputs), len(op.outputs)))
            nodes.append(op.node)

        for slot, i in enumerate(outputs):
            mapped = edge_map[i]
            if mapped is None:
                raise ValueError(f"global output {i} is not connected to the graph")
            connections[slot] = mapped

        topo = GraphTopo(self.n_inputs, len(outputs), tuple(connections), tuple(topo_nodes))
        return NNGraph(Graph(topo, nodes, edges))


class _NameDecorator:
    """Makes repeated names unique: ``a``, ``a-2``, ``a-3`` ..."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def decorate(self, name: str) -> str:
        count = self._counts.get(name)
        if count is None:
            self._counts[name] = 1
            return name
        count += 1
        self._counts[name] = count
        return f"{name}-{count}"


def _trap(
    path: str, state: _GraphState, nn: NeuralNetwork, inputs: Iterable[GraphTensor]
) -> list[GraphTensor]:
    _, outputs = nn.launch(list(inputs), Context(path, state))
    return list(outputs)


class GraphBuilder:
    """Holds the operator library and builds graphs from networks."""

    def __init__(self) -> None:
        self.op_lib = OpLib()

    def register_op(self, name: str, op: Operator) -> "GraphBuilder":
        """Register ``op`` under ``name``; a name can be registered only once."""
        self.op_lib._insert(str(name), op)
        return self

    def build(self, nn: NeuralNetwork, inputs: Iterable[TensorMeta]) -> NNGraph:
        """Launch ``nn`` on global inputs described by ``inputs`` and collect the graph."""
        state = _GraphState(self.op_lib, inputs)
        handles = [state.handle(i) for i in range(state.n_inputs)]
        outputs = _trap(ROOT, state, nn, handles)
        return state.into_graph(outputs)


class Context:
    """The naming scope a network component is launched in."""

    def __init__(self, path: str, graph: _GraphState) -> None:
        self._path = path
        self._graph = graph
        self._tensor_names: set[str] = set()
        self._sub = _NameDecorator()
        self._ops = _NameDecorator()

    def path(self) -> str:
        return self._path

    def trap(
        self, name: object, nn: NeuralNetwork, inputs: Iterable[GraphTensor]
    ) -> list[GraphTensor]:
        """Launch a sub-component in a nested scope named after ``name``."""
        name = self._sub.decorate(str(name))
        return _trap(f"{self._path}.{name}", self._graph, nn, inputs)

    def _claim(self, name: object) -> str:
        name = str(name)
        if name in self._tensor_names:
            raise ValueError(f"tensor name {name!r} is already used in {self._path}")
        self._tensor_names.add(name)
        return f"{self._path}.{name}"

    def load_external(
        self,
        name: object,
        dt: DigitLayout,
        shape: Iterable[Union[Dim, int, str]],
        item: Any,
    ) -> GraphTensor:
        """Add a tensor whose data comes from outside, such as a weight."""
        return self._graph.load_external(self._claim(name), dt, shape, item)

    def save_external(self, name: object, tensor: GraphTensor, item: Any) -> None:
        """Mark ``tensor`` to be stored into external ``item``."""
        self._graph.save_external(self._claim(name), tensor, item)

    def call(
        self,
        name: object,
        op: str,
        arg: Optional[Arg],
        inputs: Iterable[GraphTensor],
    ) -> list[GraphTensor]:
        """Add an operator node; an empty name falls back to the operator name."""
        name = str(name) or str(op)
        full = f"{self._path}:{self._ops.decorate(name)}"
        try:
            return self._graph.call(full, str(op), inputs, arg)
        except OpError as err:
            raise NNError(full, err) from err