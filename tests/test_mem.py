import math

import pytest

from nngraph.arg import Arg
from nngraph.exec import Operator
from nngraph.mem import External, Internal, MemGraph, Tensor
from nngraph.meta import F32
from nngraph.topo import GraphTopo, Named, TopoNode


def internal(*shape):
    return Tensor.from_shape(F32, shape).map(Internal)


def external(name, *shape):
    return Tensor.from_shape(F32, shape, External(name, name + "-data"))


def split_graph(outputs=None):
    edges = [internal(4, 6)] + (outputs or [internal(4, 2), internal(4, 4)])
    topo = GraphTopo(1, 2, (1, 2, 0), (TopoNode(0, 1, 2),))
    arg = Arg.dict({"axis": Arg.int(1), "parts": Arg.arr([Arg.dim(1), Arg.dim(2)])})
    nodes = [Named("s", Operator("split", arg))]
    return edges, MemGraph(topo, nodes, edges)


def test_from_shape_holds_size_and_is_contiguous():
    t = Tensor.from_shape(F32, (3, 5))
    assert t.item == t.nbytes == math.prod(t.shape) * F32.nbytes
    assert t.strides[-1] == F32.nbytes
    assert t.offset == 0
    assert t.is_contiguous()


def test_from_shape_keeps_given_item():
    t = Tensor.from_shape(F32, (2, 2), "payload")
    assert t.item == "payload"


def test_map_keeps_layout():
    t = Tensor.from_shape(F32, (2, 3))
    mapped = t.map(lambda n: n * 2)
    assert mapped.item == t.item * 2
    assert (mapped.shape, mapped.strides, mapped.offset) == (t.shape, t.strides, t.offset)


def test_slice_moves_offset_and_shares_item():
    t = internal(4, 6)
    view = t.slice(1, 2, 1, 3)
    assert view.shape == (4, 3)
    assert view.offset == t.offset + 2 * t.strides[1]
    assert view.item is t.item
    assert not view.is_contiguous()


def test_slice_with_step_scales_stride():
    t = internal(8)
    view = t.slice(0, 1, 2, 3)
    assert view.strides[0] == t.strides[0] * 2
    assert view.shape == (3,)


def test_slice_out_of_range():
    t = internal(4, 6)
    with pytest.raises(IndexError):
        t.slice(1, 4, 1, 3)
    with pytest.raises(IndexError):
        t.slice(2, 0, 1, 1)


def test_split_becomes_views_of_input():
    original, graph = split_graph()
    edges = graph.graph.edges
    assert edges[1].item is edges[0].item
    assert edges[2].item is edges[0].item
    assert edges[1].offset == edges[0].offset
    assert edges[2].offset == edges[0].offset + original[1].shape[1] * edges[0].strides[1]
    assert edges[1].shape == original[1].shape
    assert edges[2].shape == original[2].shape
    assert graph.graph.nodes[0].value.name == "empty"
    assert graph.graph.nodes[0].name == "s"


def test_split_external_output_rejected():
    with pytest.raises(ValueError):
        split_graph([internal(4, 2), external("w", 4, 4)])


def test_split_needs_one_input():
    edges = [internal(4, 6), internal(4, 6), internal(4, 6)]
    topo = GraphTopo(2, 1, (2, 0, 1), (TopoNode(0, 2, 1),))
    arg = Arg.dict({"axis": Arg.int(1)})
    with pytest.raises(ValueError):
        MemGraph(topo, [Named("s", Operator("split", arg))], edges)


def test_concat_inputs_become_views_of_output():
    edges = [internal(4, 2), internal(4, 4), internal(4, 6)]
    topo = GraphTopo(2, 1, (2, 0, 1), (TopoNode(0, 2, 1),))
    graph = MemGraph(topo, [Named("c", Operator("concat", Arg.int(1)))], edges)
    out = graph.graph.edges
    assert out[0].item is out[2].item
    assert out[1].item is out[2].item
    assert out[1].offset == out[2].offset + edges[0].shape[1] * out[2].strides[1]
    assert graph.graph.nodes[0].value.name == "empty"


def test_other_nodes_untouched():
    edges = [internal(2, 2), internal(2, 2)]
    topo = GraphTopo(1, 1, (1, 0), (TopoNode(0, 1, 1),))
    op = Operator("gelu", None)
    graph = MemGraph(topo, [Named("g", op)], edges)
    assert graph.graph.nodes[0].value == op
    assert graph.graph.edges[1].item is edges[1].item


def test_lower_binds_internal_and_external():
    edges = [internal(2, 4), external("w", 4, 4), internal(2, 4)]
    topo = GraphTopo(1, 1, (2, 0, 1), (TopoNode(1, 2, 1),))
    graph = MemGraph(topo, [Named("l", Operator("linear", Arg.bool(False)))], edges)
    seen = []

    def on_internal(blob):
        seen.append(blob)
        return ("ws", blob.size)

    exec_graph = graph.lower(on_internal, lambda item: ("ext", item))
    lowered = exec_graph.graph.edges
    assert lowered[1].item == ("ext", "w-data")
    assert lowered[0].item == ("ws", edges[0].item.size)
    assert seen == [edges[0].item, edges[2].item]
    entries = exec_graph.into_exec()
    assert len(entries) == 1
    assert entries[0].inputs == (lowered[0], lowered[1])
    assert entries[0].outputs == (lowered[2],)