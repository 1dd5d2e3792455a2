import pytest

from nngraph.analyze import (
    Action,
    BlobLifeTime,
    Operation,
    blob_lifetime,
    mem_range_map,
    print_lifetime,
    to_actions,
)
from nngraph.arg import Arg
from nngraph.exec import Operator
from nngraph.mem import External, Internal, MemGraph, Tensor
from nngraph.meta import F32
from nngraph.topo import GraphTopo, Named, TopoNode


def internal(*shape):
    return Tensor.from_shape(F32, shape).map(Internal)


def chain_graph(size=16):
    edges = [internal(size), internal(size), internal(size)]
    topo = GraphTopo(1, 1, (2, 0, 1), (TopoNode(0, 1, 1), TopoNode(0, 1, 1)))
    nodes = [Named("a", Operator("relu")), Named("b", Operator("relu"))]
    return MemGraph(topo, nodes, edges)


def blobs(graph):
    return [e.item for e in graph.graph.edges]


def spans(lifetimes):
    return {id(lt.blob): (lt.start, lt.end) for lt in lifetimes}


def test_chain_lifetimes():
    graph = chain_graph()
    e0, e1, e2 = blobs(graph)
    result = spans(blob_lifetime(graph))
    assert result == {id(e0): (0, 0), id(e1): (0, 1), id(e2): (1, 2)}


def test_global_output_lives_past_last_node():
    graph = chain_graph()
    out_blob = graph.graph.edges[graph.graph.topo.global_outputs()[0]].item
    lt = next(lt for lt in blob_lifetime(graph) if lt.blob is out_blob)
    assert lt.end == graph.graph.topo.n_node()


def test_external_edges_ignored():
    edges = [internal(4), Tensor.from_shape(F32, (4,), External("w", b"")), internal(4)]
    topo = GraphTopo(1, 1, (2, 0, 1), (TopoNode(1, 2, 1),))
    graph = MemGraph(topo, [Named("n", Operator("add"))], edges)
    lifetimes = blob_lifetime(graph)
    assert {id(lt.blob) for lt in lifetimes} == {id(edges[0].item), id(edges[2].item)}


def test_empty_nodes_skipped_and_views_share_blob():
    edges = [internal(4, 6), internal(4, 3), internal(4, 3), internal(4, 3)]
    topo = GraphTopo(
        1, 1, (3, 0, 1, 2), (TopoNode(0, 1, 2), TopoNode(0, 2, 1))
    )
    arg = Arg.dict({"axis": Arg.int(1)})
    nodes = [Named("s", Operator("split", arg)), Named("m", Operator("mul"))]
    graph = MemGraph(topo, nodes, edges)
    lifetimes = blob_lifetime(graph)
    assert len(lifetimes) == 2
    shared = next(lt for lt in lifetimes if lt.blob is edges[0].item)
    assert shared.start == 0
    assert shared.end == 1


def test_actions_sorted_and_paired():
    graph = chain_graph()
    actions = to_actions(graph)
    assert actions == sorted(actions)
    for blob in blobs(graph):
        ops = [a for a in actions if a.blob is blob]
        assert [a.op for a in ops] == [Operation.ALLOC, Operation.FREE]
        assert ops[0].i_node <= ops[1].i_node


def test_action_ordering_alloc_before_free():
    blob = Internal(8)
    free = Action(3, Operation.FREE, blob)
    alloc = Action(3, Operation.ALLOC, Internal(8))
    assert Operation.ALLOC < Operation.FREE
    assert alloc < free
    assert Action(3, Operation.FREE, blob) == free
    assert Action(2, Operation.FREE, blob) < alloc


def test_lifetime_ordering_longer_first():
    a = BlobLifeTime(Internal(4), 1, 5)
    b = BlobLifeTime(Internal(4), 1, 2)
    c = BlobLifeTime(Internal(4), 0, 1)
    assert sorted([b, a, c]) == [c, a, b]
    assert BlobLifeTime(a.blob, 7, 9) == a


def test_mem_range_map_invariants():
    graph = chain_graph(size=10)
    alignment = 8
    result = mem_range_map(graph, 1 << 20, alignment)
    lifetimes = {id(lt.blob): lt for lt in blob_lifetime(graph)}
    assert set(id(b) for b in result.map) == set(lifetimes)
    for blob, area in result.map.items():
        assert len(area) == blob.size
        assert area.start % alignment == 0
        assert result.range.start <= area.start and area.stop <= result.range.stop
    items = list(result.map.items())
    for i, (a, ra) in enumerate(items):
        for b, rb in items[i + 1 :]:
            la, lb = lifetimes[id(a)], lifetimes[id(b)]
            if la.start <= lb.end and lb.start <= la.end:
                assert ra.stop <= rb.start or rb.stop <= ra.start


def test_mem_range_map_reuses_freed_space():
    graph = chain_graph(size=16)
    result = mem_range_map(graph, 1 << 20, 64)
    total = sum(b.size for b in result.map)
    assert len(result.range) < total


def test_mem_range_map_out_of_memory():
    graph = chain_graph(size=16)
    with pytest.raises(MemoryError):
        mem_range_map(graph, 64, 64)


def test_mem_range_map_without_internal_blobs():
    ext = Tensor.from_shape(F32, (4,), External("x", b""))
    topo = GraphTopo(1, 1, (0,), ())
    graph = MemGraph(topo, [], [ext])
    result = mem_range_map(graph, 1024, 64)
    assert result.map == {}
    assert len(result.range) == 0


def test_print_lifetime(capsys):
    graph = chain_graph(size=16)
    lifetimes = blob_lifetime(graph)
    print_lifetime(lifetimes)
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == len(lifetimes)
    for line, lt in zip(lines, lifetimes):
        fields = line.split()
        assert int(fields[1]) == lt.blob.size
        assert line.count("#") == lt.end - lt.start + 1
        assert line.rstrip().endswith("#")