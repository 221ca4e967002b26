"""Node configuration records.

A :class:`NodeConfiguration` describes one node for the lifetime of a topology.
Configurations are frozen: the aggregator decides whether to keep a node
instance by comparing configurations with ``==``, which for dataclasses is a
deep, field-by-field comparison including the routing weights.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from trafficflow.types.base import NodeKind

#: Cache hit ratio used when a Cache node does not configure one.
DEFAULT_HIT_RATIO = 0.8


@dataclass(frozen=True)
class RoutingConfig:
    """Routing block of a node configuration.

    Attributes:
        policy: Routing policy name (e.g. ``"replicate_all"``, ``"weighted"``).
        weights: Per-target weights for the ``weighted`` policy.
        params: Policy-specific parameters not interpreted by the engine
            (e.g. ``stickySessionTtl``).
    """

    policy: str = "replicate_all"
    weights: Optional[Dict[str, float]] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RoutingConfig:
        """Build a routing block from a document mapping.

        Unknown keys are kept in ``params``.
        """
        extra = {k: v for k, v in data.items() if k not in ("policy", "weights")}
        weights = data.get("weights")
        return cls(
            policy=str(data.get("policy", "replicate_all")),
            weights={str(k): float(v) for k, v in weights.items()}
            if weights
            else None,
            params=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe mapping."""
        out: Dict[str, Any] = {"policy": self.policy}
        if self.weights is not None:
            out["weights"] = dict(self.weights)
        out.update(self.params)
        return out


@dataclass(frozen=True)
class NodeConfiguration:
    """Static description of one node.

    Attributes:
        id: Unique node identifier.
        kind: Kind name; unknown names behave like ``Service``.
        max_capacity: Legacy single capacity. For generators it is the
            generation rate in requests/second.
        capacity_in: Ceiling on accepted incoming rate; ``max_capacity`` when None.
        capacity_out: Ceiling on emitted outgoing rate; ``max_capacity`` when None.
        concurrency: Parallel workers (informational).
        base_latency: Base service time in milliseconds.
        latency_jitter: Jitter amplitude in milliseconds.
        base_error_rate: Error fraction at any load.
        error_under_load: Error growth coefficient above 80% utilization.
        degradation_threshold: Utilization at which a node becomes degraded.
        overload_threshold: Utilization at which a node becomes overloaded.
        routing: Routing block; the kind's default policy is used when None.
        hit_ratio: Cache hit ratio (Cache kind only).
        attrs: Free-form metadata carried from the model document.
    """

    id: str
    kind: str = NodeKind.SERVICE.value
    max_capacity: float = 100.0
    capacity_in: Optional[float] = None
    capacity_out: Optional[float] = None
    concurrency: int = 10
    base_latency: float = 20.0
    latency_jitter: float = 0.0
    base_error_rate: float = 0.0
    error_under_load: float = 0.0
    degradation_threshold: float = 0.7
    overload_threshold: float = 0.9
    routing: Optional[RoutingConfig] = None
    hit_ratio: Optional[float] = None
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def node_kind(self) -> NodeKind:
        """Parsed kind (unknown names map to SERVICE)."""
        return NodeKind.from_string(self.kind)

    @property
    def effective_capacity_in(self) -> float:
        """Incoming ceiling with the legacy fallback applied."""
        return self.max_capacity if self.capacity_in is None else self.capacity_in

    @property
    def effective_capacity_out(self) -> float:
        """Outgoing ceiling with the legacy fallback applied."""
        return self.max_capacity if self.capacity_out is None else self.capacity_out

    @property
    def effective_hit_ratio(self) -> float:
        return DEFAULT_HIT_RATIO if self.hit_ratio is None else self.hit_ratio

    def with_changes(self, **changes: Any) -> NodeConfiguration:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe mapping of the configuration."""
        return {
            "id": self.id,
            "kind": self.kind,
            "max_capacity": self.max_capacity,
            "capacity_in": self.effective_capacity_in,
            "capacity_out": self.effective_capacity_out,
            "concurrency": self.concurrency,
            "base_latency": self.base_latency,
            "latency_jitter": self.latency_jitter,
            "base_error_rate": self.base_error_rate,
            "error_under_load": self.error_under_load,
            "degradation_threshold": self.degradation_threshold,
            "overload_threshold": self.overload_threshold,
            "routing": self.routing.to_dict() if self.routing else None,
            "hit_ratio": self.hit_ratio,
            "attrs": dict(self.attrs),
        }
