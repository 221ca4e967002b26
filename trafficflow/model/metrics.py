"""Per-node metrics and per-edge flow records.

These are small immutable dataclasses. Nodes build new instances with
:func:`dataclasses.replace` rather than mutating, so every snapshot handed to a
caller stays valid after later calculations.

Rates are requests/second, latencies milliseconds. ``OutputFlow.error_rate`` and
``NodeMetrics.incoming_errors``/``outgoing_errors`` are absolute error rates
(errors/second); ``NodeMetrics.error_rate`` is a fraction of processed traffic.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from trafficflow.types.base import HealthState


@dataclass(frozen=True, slots=True)
class OutputFlow:
    """One directed edge's flow for a single relaxation pass.

    Attributes:
        target_node_id: Downstream node receiving the flow.
        rate: Requests/second sent over the edge.
        latency: Cumulative latency from the origin, in milliseconds.
        error_rate: Absolute errors/second carried over the edge.
        weight: Policy weight, used only for latency-weighted averaging.
    """

    target_node_id: str
    rate: float
    latency: float
    error_rate: float
    weight: float = 1.0

    def scaled(self, factor: float) -> OutputFlow:
        """Return a copy with ``rate`` and ``error_rate`` multiplied by ``factor``."""
        return OutputFlow(
            target_node_id=self.target_node_id,
            rate=self.rate * factor,
            latency=self.latency,
            error_rate=self.error_rate * factor,
            weight=self.weight,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class NodeMetrics:
    """Observable state of a node after one computation pass.

    ``last_updated`` is a wall-clock timestamp and does not take part in
    equality, so two calculations over identical inputs compare equal.
    """

    # What arrived
    incoming_rate: float = 0.0
    incoming_connections: int = 0
    incoming_latency: float = 0.0
    incoming_errors: float = 0.0

    # Processing
    utilization: float = 0.0
    queue_length: float = 0.0
    processed_rate: float = 0.0
    error_rate: float = 0.0
    average_service_time: float = 0.0

    # Capacity drops
    err_in: float = 0.0
    err_out: float = 0.0

    # What was emitted after capacity enforcement
    outgoing_rate: float = 0.0
    outgoing_connections: int = 0
    outgoing_latency: float = 0.0
    outgoing_errors: float = 0.0

    is_healthy: bool = True
    is_degraded: bool = False
    is_overloaded: bool = False

    last_updated: float = field(default_factory=time.time, compare=False)

    @property
    def health_state(self) -> HealthState:
        """Health flags collapsed into one state (first set flag wins)."""
        if self.is_healthy:
            return HealthState.HEALTHY
        if self.is_degraded:
            return HealthState.DEGRADED
        return HealthState.OVERLOADED

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe mapping of all fields."""
        return asdict(self)


@dataclass(frozen=True, slots=True)
class MetricChangeEvent:
    """Payload delivered to node metric listeners.

    Attributes:
        node_id: Node whose metrics changed.
        metrics: Snapshot of the node's metrics.
        output_flows: Capacity-enforced flows keyed by target id.
        timestamp: Wall-clock time of the notification.
    """

    node_id: str
    metrics: NodeMetrics
    output_flows: Dict[str, OutputFlow]
    timestamp: float = field(default_factory=time.time)
