"""Directed topology used by the aggregation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from trafficflow.logging import get_logger

LOGGER = get_logger(__name__)


def edge_key(source: str, target: str) -> str:
    """Return the ``"source->target"`` key used for per-edge flow lookups."""
    return f"{source}->{target}"


def split_edge_key(key: str) -> Tuple[str, str]:
    """Inverse of :func:`edge_key`.

    Raises:
        ValueError: If ``key`` has no ``->`` separator.
    """
    source, sep, target = key.partition("->")
    if not sep:
        raise ValueError(f"Not an edge key: {key!r}")
    return source, target


@dataclass
class GraphTopology:
    """Mapping from node id to the ordered list of its downstream node ids.

    Order matters: routing policies emit flows in downstream order. An edge
    absent from every list is invisible to the engine.

    Attributes:
        edges: Node id -> ordered downstream node ids.
    """

    edges: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_links(
        cls, links: Iterable[Tuple[str, str]], node_ids: Iterable[str] = ()
    ) -> GraphTopology:
        """Build a topology from ``(source, target)`` pairs.

        Args:
            links: Directed edges in insertion order.
            node_ids: Nodes to register even when they have no outgoing edges.
        """
        topology = cls()
        for node_id in node_ids:
            topology.edges.setdefault(node_id, [])
        for source, target in links:
            topology.add_edge(source, target)
        return topology

    def add_edge(self, source: str, target: str) -> None:
        """Append ``target`` to ``source``'s downstream list (duplicates ignored)."""
        targets = self.edges.setdefault(source, [])
        if target not in targets:
            targets.append(target)

    def downstream(self, node_id: str) -> List[str]:
        """Downstream ids of ``node_id`` (empty for unknown nodes)."""
        return list(self.edges.get(node_id, ()))

    def upstream(self, node_id: str) -> List[str]:
        """Ids of nodes that list ``node_id`` as a downstream target."""
        return [src for src, targets in self.edges.items() if node_id in targets]

    @property
    def node_ids(self) -> Set[str]:
        """Every id appearing as a source or a target."""
        ids: Set[str] = set(self.edges)
        for targets in self.edges.values():
            ids.update(targets)
        return ids

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.edges.values())

    def iter_edges(self) -> Iterable[Tuple[str, str]]:
        """Yield ``(source, target)`` pairs in insertion order."""
        for source, targets in self.edges.items():
            for target in targets:
                yield source, target

    def restricted_to(self, node_ids: Iterable[str]) -> GraphTopology:
        """Return a copy keeping only edges whose endpoints are in ``node_ids``.

        Repeated targets in a downstream list are kept once, as in
        :meth:`add_edge`.
        """
        allowed = set(node_ids)
        restricted = GraphTopology()
        dropped = 0
        for source, targets in self.edges.items():
            if source not in allowed:
                dropped += len(targets)
                continue
            kept = list(dict.fromkeys(t for t in targets if t in allowed))
            dropped += len(targets) - len(kept)
            restricted.edges[source] = kept
        if dropped:
            LOGGER.debug("Ignoring %d repeated or unconfigured edge(s)", dropped)
        return restricted
