from nngraph.topo import Graph, GraphTopo, NodeRef, TopoNode


def _topo():
    # edges: 0,1 global inputs; node0 owns weight 2 and output 3; node1 output 4
    return GraphTopo(
        n_inputs=2,
        n_outputs=1,
        connections=[4, 0, 2, 3, 1],
        nodes=[TopoNode(1, 2, 1), TopoNode(0, 2, 1)],
    )


def test_iteration_yields_node_refs():
    refs = list(_topo())
    assert refs == [
        NodeRef(inputs=(0, 2), outputs=range(3, 4)),
        NodeRef(inputs=(3, 1), outputs=range(4, 5)),
    ]


def test_counts():
    topo = _topo()
    assert topo.n_node() == len(topo.nodes)
    last = list(topo)[-1]
    assert topo.n_edge() == last.outputs.stop


def test_global_inputs_and_outputs():
    topo = _topo()
    assert topo.global_inputs() == range(2)
    assert topo.global_outputs() == (4,)


def test_every_edge_produced_once():
    topo = _topo()
    produced = list(topo.global_inputs())
    start = topo.n_inputs
    for node, ref in zip(topo.nodes, topo):
        produced.extend(range(start, start + node.n_local))
        produced.extend(ref.outputs)
        start = ref.outputs.stop
    assert produced == list(range(topo.n_edge()))


def test_empty_topology():
    topo = GraphTopo(0, 0, [], [])
    assert list(topo) == []
    assert topo.n_edge() == 0


def test_graph_holds_lists():
    graph = Graph(_topo(), ("a", "b"), ("e0", "e1"))
    graph.edges[0] = "x"
    assert graph.edges == ["x", "e1"]
    assert graph.nodes == ["a", "b"]