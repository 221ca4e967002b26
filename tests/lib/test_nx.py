import networkx as nx
import pytest

from trafficflow.aggregator import MetricsAggregator
from trafficflow.lib.nx import from_networkx, to_networkx
from trafficflow.model.topology import GraphTopology


def test_from_directed_graph():
    G = nx.DiGraph()
    G.add_edge("a", "b")
    G.add_edge("b", "c")
    G.add_node("isolated")
    topology = from_networkx(G)
    assert topology.downstream("a") == ["b"]
    assert topology.downstream("isolated") == []
    assert topology.node_ids == {"a", "b", "c", "isolated"}
    assert topology.edge_count == 2


def test_from_undirected_graph_adds_both_directions():
    topology = from_networkx(nx.path_graph(3))
    assert topology.downstream("1") == ["0", "2"]
    assert topology.edge_count == 4


def test_from_multigraph_collapses_parallel_edges():
    G = nx.MultiDiGraph()
    G.add_edge("a", "b")
    G.add_edge("a", "b")
    assert from_networkx(G).edge_count == 1


def test_from_non_graph():
    with pytest.raises(TypeError, match="Expected NetworkX graph"):
        from_networkx({"a": ["b"]})


def test_to_networkx_structure_only():
    G = to_networkx(GraphTopology.from_links([("a", "b"), ("b", "a")], node_ids=["c"]))
    assert isinstance(G, nx.DiGraph)
    assert set(G.nodes) == {"a", "b", "c"}
    assert set(G.edges) == {("a", "b"), ("b", "a")}


def test_to_networkx_with_snapshot(make_config):
    configs = {
        "S": make_config("S", "Source", max_capacity=30),
        "svc": make_config("svc", max_capacity=60),
    }
    topology = GraphTopology.from_links([("S", "svc")], node_ids=configs)
    agg = MetricsAggregator()
    agg.update_topology(topology, configs)
    snapshot = agg.calculate_metrics(16)

    G = to_networkx(agg.topology, configs, snapshot)
    assert G.nodes["svc"]["kind"] == "Service"
    assert G.nodes["svc"]["capacity_in"] == 60
    assert G.nodes["svc"]["incoming_rate"] == pytest.approx(30.0)
    assert G.edges["S", "svc"]["rate"] == pytest.approx(30.0)
    assert G.edges["S", "svc"]["latency"] == pytest.approx(10.0)
    assert "id" not in G.nodes["svc"]


def test_round_trip_preserves_edges():
    topology = GraphTopology.from_links([("x", "y"), ("y", "z"), ("z", "x")])
    back = from_networkx(to_networkx(topology))
    assert sorted(back.iter_edges()) == sorted(topology.iter_edges())
