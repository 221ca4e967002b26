"""NetworkX conversion utilities.

Converts a :class:`GraphTopology` (optionally with node configurations and a
computed snapshot) into a ``networkx.DiGraph`` for analysis or drawing, and
builds a topology back from any NetworkX graph.

Example:
    >>> import networkx as nx
    >>> from trafficflow.lib.nx import from_networkx, to_networkx
    >>>
    >>> G = nx.DiGraph()
    >>> G.add_edge("edge", "api")
    >>> topology = from_networkx(G)
    >>> topology.downstream("edge")
    ['api']
    >>>
    >>> # After a calculation, edges carry rate/latency/error_rate
    >>> G_out = to_networkx(topology, snapshot=aggregator.get_current_metrics())

NetworkX is imported lazily; install it with the ``nx`` extra.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from trafficflow.model.config import NodeConfiguration
from trafficflow.model.topology import GraphTopology, edge_key

if TYPE_CHECKING:
    import networkx as nx

    from trafficflow.aggregator import AggregatedMetrics

    NxGraph = Union[nx.DiGraph, nx.MultiDiGraph, nx.Graph, nx.MultiGraph]
else:
    NxGraph = Any


def from_networkx(G: NxGraph) -> GraphTopology:
    """Build a topology from a NetworkX graph.

    Node names are converted with ``str``. Undirected edges become a pair of
    directed edges; parallel edges collapse into one.

    Args:
        G: Any NetworkX graph.

    Returns:
        GraphTopology with every node of ``G`` registered.

    Raises:
        TypeError: If ``G`` is not a NetworkX graph.
    """
    import networkx as nx

    if not isinstance(G, (nx.DiGraph, nx.MultiDiGraph, nx.Graph, nx.MultiGraph)):
        raise TypeError(
            f"Expected NetworkX graph (DiGraph, MultiDiGraph, Graph, MultiGraph), "
            f"got {type(G).__name__}"
        )

    topology = GraphTopology.from_links((), node_ids=(str(n) for n in G.nodes()))
    for u, v in G.edges():
        topology.add_edge(str(u), str(v))
        if not G.is_directed():
            topology.add_edge(str(v), str(u))
    return topology


def to_networkx(
    topology: GraphTopology,
    configs: Optional[Mapping[str, NodeConfiguration]] = None,
    snapshot: Optional["AggregatedMetrics"] = None,
) -> "nx.DiGraph":
    """Convert a topology to a ``networkx.DiGraph``.

    Args:
        topology: Edges to convert.
        configs: When given, node attributes include the configuration fields.
        snapshot: When given, node attributes include the computed metrics and
            edge attributes carry the summed ``rate`` and ``error_rate`` and the
            maximum ``latency`` of the edge's flows.

    Returns:
        DiGraph with one node per topology node id.
    """
    import networkx as nx

    G = nx.DiGraph()
    for node_id in sorted(topology.node_ids):
        attrs: Dict[str, Any] = {}
        if configs is not None and node_id in configs:
            attrs.update(configs[node_id].to_dict())
            attrs.pop("id", None)
        if snapshot is not None and node_id in snapshot.node_metrics:
            attrs.update(snapshot.node_metrics[node_id].to_dict())
        G.add_node(node_id, **attrs)

    for source, target in topology.iter_edges():
        attrs = {}
        if snapshot is not None:
            flows = snapshot.edge_flows.get(edge_key(source, target), [])
            attrs = {
                "rate": sum(f.rate for f in flows),
                "error_rate": sum(f.error_rate for f in flows),
                "latency": max((f.latency for f in flows), default=0.0),
            }
        G.add_edge(source, target, **attrs)
    return G
