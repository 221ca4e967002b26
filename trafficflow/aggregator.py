"""Flow aggregation over a possibly cyclic topology.

:class:`MetricsAggregator` owns the node instances and the topology. Each
calculation resets node inputs, runs a fixed number of relaxation passes, and
reduces the final per-node metrics into an :class:`AggregatedMetrics` snapshot.

One pass evaluates every node on its current inputs and records the resulting
per-edge flows. Between passes, flows landing on the same target are summed
into that target's next input (rate, rate-weighted latency, absolute errors,
connection count). The pass count is bounded, so cycles always terminate; a
pathological cycle may still end on a pass that is not a fixed point.

Calculations are synchronous and not reentrant. Topology updates request a
recalculation through :meth:`MetricsAggregator.schedule_update`, which coalesces
several requests made in the same event-loop tick into one calculation.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Union

from trafficflow.config import AGGREGATOR_CONFIG, AggregatorConfig
from trafficflow.logging import get_logger
from trafficflow.model.config import NodeConfiguration
from trafficflow.model.metrics import NodeMetrics, OutputFlow
from trafficflow.model.topology import GraphTopology, edge_key
from trafficflow.nodes.base import MetricNode, NodeEvaluation
from trafficflow.nodes.kinds import create_metric_node
from trafficflow.types.base import HealthState, SystemHealth

LOGGER = get_logger(__name__)


@dataclass
class AggregatedMetrics:
    """Global snapshot produced by one calculation.

    Attributes:
        total_rps: Sum of processed rates over all nodes. Fan-out counts once per
            receiving node, so this measures total load, not a conserved stream.
        total_errors: Sum of ``error_rate * processed_rate`` over all nodes.
        average_latency: Processed-rate-weighted mean service time over nodes
            with nonzero throughput.
        healthy_nodes: Nodes flagged healthy.
        degraded_nodes: Nodes flagged degraded.
        overloaded_nodes: Nodes flagged overloaded.
        node_metrics: Final metrics per node id.
        edge_flows: Final flows per ``"source->target"`` key.
        system_health: Classification of the whole topology.
        iterations: Relaxation passes performed.
        last_updated: Wall-clock time of the calculation.
    """

    total_rps: float
    total_errors: float
    average_latency: float
    healthy_nodes: int
    degraded_nodes: int
    overloaded_nodes: int
    node_metrics: Dict[str, NodeMetrics]
    edge_flows: Dict[str, List[OutputFlow]]
    system_health: SystemHealth
    iterations: int
    last_updated: float = field(default_factory=time.time)

    @property
    def total_nodes(self) -> int:
        return len(self.node_metrics)

    def edge_rate(self, source: str, target: str) -> float:
        """Total rate recorded on one edge (0 when absent)."""
        return sum(flow.rate for flow in self.edge_flows.get(edge_key(source, target), ()))

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe mapping of the snapshot."""
        return {
            "total_rps": self.total_rps,
            "total_errors": self.total_errors,
            "average_latency": self.average_latency,
            "healthy_nodes": self.healthy_nodes,
            "degraded_nodes": self.degraded_nodes,
            "overloaded_nodes": self.overloaded_nodes,
            "system_health": self.system_health.value,
            "iterations": self.iterations,
            "last_updated": self.last_updated,
            "node_metrics": {
                node_id: metrics.to_dict()
                for node_id, metrics in self.node_metrics.items()
            },
            "edge_flows": {
                key: [flow.to_dict() for flow in flows]
                for key, flows in self.edge_flows.items()
            },
        }


@dataclass(frozen=True)
class Bottleneck:
    node_id: str
    utilization: float
    queue_length: float


@dataclass
class SystemSummary:
    """Condensed view of the last snapshot for tables and consoles."""

    total_nodes: int = 0
    healthy_nodes: int = 0
    degraded_nodes: int = 0
    overloaded_nodes: int = 0
    total_rps: float = 0.0
    average_latency: float = 0.0
    system_health: str = "unknown"
    top_bottlenecks: List[Bottleneck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_nodes": self.total_nodes,
            "healthy_nodes": self.healthy_nodes,
            "degraded_nodes": self.degraded_nodes,
            "overloaded_nodes": self.overloaded_nodes,
            "total_rps": self.total_rps,
            "average_latency": self.average_latency,
            "system_health": self.system_health,
            "top_bottlenecks": [
                {
                    "node_id": b.node_id,
                    "utilization": b.utilization,
                    "queue_length": b.queue_length,
                }
                for b in self.top_bottlenecks
            ],
        }


@dataclass(frozen=True)
class CalculationStats:
    """Bookkeeping about the aggregator and its last calculation.

    Attributes:
        last_update_time: Wall-clock time of the last calculation (0 if none).
        node_count: Nodes currently owned.
        edge_count: Edges in the effective topology.
        calculation_time_ms: Duration of the last calculation, if any.
    """

    last_update_time: float
    node_count: int
    edge_count: int
    calculation_time_ms: Optional[float] = None


@dataclass
class _InputAccumulator:
    total_rate: float = 0.0
    total_errors: float = 0.0
    weighted_latency: float = 0.0
    connections: int = 0

    def add(self, flow: OutputFlow) -> None:
        self.total_rate += flow.rate
        self.total_errors += flow.error_rate
        self.weighted_latency += flow.latency * flow.rate
        self.connections += 1

    def to_input_metrics(self) -> NodeMetrics:
        latency = (
            self.weighted_latency / self.total_rate if self.total_rate > 0 else 0.0
        )
        return NodeMetrics(
            incoming_rate=self.total_rate,
            incoming_connections=self.connections,
            incoming_latency=latency,
            incoming_errors=self.total_errors,
        )


class MetricsAggregator:
    """Drives relaxation passes over the node graph and exposes the snapshot.

    Args:
        config: Engine tunables; defaults to the global ``AGGREGATOR_CONFIG``.
    """

    def __init__(self, config: Optional[AggregatorConfig] = None) -> None:
        self._config: AggregatorConfig = config or AGGREGATOR_CONFIG
        self._nodes: Dict[str, MetricNode] = {}
        self._topology: GraphTopology = GraphTopology()
        self._aggregated: Optional[AggregatedMetrics] = None
        self._last_update_time: float = 0.0
        self._last_calculation_ms: Optional[float] = None
        self._calculating: bool = False

        # Debounce state
        self._update_pending: bool = False
        self._scheduled_handle: Optional[asyncio.Handle] = None

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    @property
    def config(self) -> AggregatorConfig:
        return self._config

    @property
    def topology(self) -> GraphTopology:
        """Effective topology (edges to unconfigured nodes removed)."""
        return self._topology

    @property
    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def get_node(self, node_id: str) -> Optional[MetricNode]:
        return self._nodes.get(node_id)

    def update_topology(
        self,
        topology: GraphTopology,
        node_configs: Mapping[str, NodeConfiguration],
    ) -> None:
        """Install a new topology and node configuration set.

        Node instances whose configuration is unchanged (deep equality) are kept
        so routing state such as round-robin cursors survives unrelated edits.
        Others are created afresh; ids no longer configured are dropped. Edges
        that reference unconfigured nodes are ignored.

        Args:
            topology: Downstream lists per node id.
            node_configs: Configuration per node id.

        Raises:
            ValueError: If a mapping key differs from its configuration's id.
        """
        for node_id, config in node_configs.items():
            if node_id != config.id:
                raise ValueError(
                    f"Configuration key '{node_id}' does not match node id '{config.id}'"
                )

        effective = topology.restricted_to(node_configs.keys())
        new_nodes: Dict[str, MetricNode] = {}
        reused = 0
        for node_id, config in node_configs.items():
            existing = self._nodes.get(node_id)
            if existing is not None and existing.get_configuration() == config:
                node = existing
                reused += 1
            else:
                node = create_metric_node(config)
            node.set_topology(effective)
            new_nodes[node_id] = node

        dropped = len(set(self._nodes) - set(new_nodes))
        self._nodes = new_nodes
        self._topology = effective
        LOGGER.debug(
            "Topology updated: %d nodes (%d reused, %d dropped), %d edges",
            len(new_nodes),
            reused,
            dropped,
            effective.edge_count,
        )
        self.schedule_update()

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_metrics(self, delta_time: Optional[float] = None) -> AggregatedMetrics:
        """Run the relaxation passes and return a fresh snapshot.

        Args:
            delta_time: Elapsed milliseconds since the previous frame; defaults to
                ``config.default_delta_time_ms``.

        Returns:
            The new snapshot, also retained for the read accessors.

        Raises:
            RuntimeError: If called while a calculation is already running on
                this aggregator (e.g. from a metric listener).
        """
        if self._calculating:
            raise RuntimeError("MetricsAggregator.calculate_metrics is not reentrant")

        self._calculating = True
        try:
            started = perf_counter()
            # A fresh calculation satisfies any pending scheduled request
            self._update_pending = False
            if delta_time is None:
                delta_time = self._config.default_delta_time_ms
            iterations = max(1, self._config.max_iterations)

            self._reset_node_inputs()

            evaluations: Dict[str, NodeEvaluation] = {}
            edge_flows: Dict[str, List[OutputFlow]] = {}
            for iteration in range(iterations):
                evaluations = {
                    node_id: node.evaluate(delta_time)
                    for node_id, node in self._nodes.items()
                }
                edge_flows = self._collect_edge_flows(evaluations)
                if iteration < iterations - 1:
                    self._propagate_flows(edge_flows)

            for node_id, evaluation in evaluations.items():
                self._nodes[node_id].commit(evaluation)

            aggregated = self._calculate_global_metrics(
                {node_id: ev.metrics for node_id, ev in evaluations.items()},
                edge_flows,
                iterations,
            )
            self._aggregated = aggregated
            self._last_update_time = aggregated.last_updated
            self._last_calculation_ms = (perf_counter() - started) * 1000.0
            LOGGER.debug(
                "Calculated metrics for %d nodes in %.3f ms: %.3f rps, health=%s",
                aggregated.total_nodes,
                self._last_calculation_ms,
                aggregated.total_rps,
                aggregated.system_health.value,
            )
            return aggregated
        finally:
            self._calculating = False

    def _reset_node_inputs(self) -> None:
        # Generators ignore their inputs, so resetting them is harmless
        for node in self._nodes.values():
            node.set_input_metrics(NodeMetrics())

    @staticmethod
    def _collect_edge_flows(
        evaluations: Mapping[str, NodeEvaluation],
    ) -> Dict[str, List[OutputFlow]]:
        edge_flows: Dict[str, List[OutputFlow]] = {}
        for node_id, evaluation in evaluations.items():
            for target_id, flow in evaluation.flows.items():
                edge_flows.setdefault(edge_key(node_id, target_id), []).append(flow)
        return edge_flows

    def _propagate_flows(self, edge_flows: Mapping[str, List[OutputFlow]]) -> None:
        """Sum flows per target and install them as next-pass inputs."""
        inputs: Dict[str, _InputAccumulator] = {}
        for flows in edge_flows.values():
            for flow in flows:
                inputs.setdefault(flow.target_node_id, _InputAccumulator()).add(flow)

        for node_id, accumulator in inputs.items():
            node = self._nodes.get(node_id)
            if node is None:
                continue
            node.set_input_metrics(accumulator.to_input_metrics())

    def _calculate_global_metrics(
        self,
        node_metrics: Dict[str, NodeMetrics],
        edge_flows: Dict[str, List[OutputFlow]],
        iterations: int,
    ) -> AggregatedMetrics:
        total_rps = 0.0
        total_errors = 0.0
        weighted_latency = 0.0
        total_processed = 0.0
        healthy = degraded = overloaded = 0

        for metrics in node_metrics.values():
            total_rps += metrics.processed_rate
            total_errors += metrics.error_rate * metrics.processed_rate
            if metrics.processed_rate > 0:
                weighted_latency += metrics.average_service_time * metrics.processed_rate
                total_processed += metrics.processed_rate

            if metrics.is_healthy:
                healthy += 1
            elif metrics.is_degraded:
                degraded += 1
            elif metrics.is_overloaded:
                overloaded += 1

        return AggregatedMetrics(
            total_rps=total_rps,
            total_errors=total_errors,
            average_latency=(
                weighted_latency / total_processed if total_processed > 0 else 0.0
            ),
            healthy_nodes=healthy,
            degraded_nodes=degraded,
            overloaded_nodes=overloaded,
            node_metrics=node_metrics,
            edge_flows=edge_flows,
            system_health=self._config.classify(
                overloaded, degraded, len(node_metrics)
            ),
            iterations=iterations,
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def has_pending_update(self) -> bool:
        return self._update_pending

    def schedule_update(self) -> None:
        """Request a recalculation, coalescing repeated requests.

        Inside a running asyncio loop, at most one recalculation is queued with
        ``loop.call_soon`` no matter how many requests arrive before it runs.
        Without a running loop the request stays pending until
        :meth:`flush_pending_update` or the next :meth:`calculate_metrics`.
        """
        self._update_pending = True
        if self._scheduled_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; recalculation left pending")
            return
        self._scheduled_handle = loop.call_soon(self._run_scheduled_update)

    def _run_scheduled_update(self) -> None:
        self._scheduled_handle = None
        if self._update_pending and not self._calculating:
            self.calculate_metrics()

    def flush_pending_update(
        self, delta_time: Optional[float] = None
    ) -> Optional[AggregatedMetrics]:
        """Run a pending recalculation now.

        Returns:
            The new snapshot, or None when nothing was pending.
        """
        self._cancel_handle()
        if not self._update_pending:
            return None
        return self.calculate_metrics(delta_time)

    def cancel_pending_update(self) -> None:
        """Discard a pending recalculation request."""
        self._cancel_handle()
        self._update_pending = False

    def _cancel_handle(self) -> None:
        if self._scheduled_handle is not None:
            self._scheduled_handle.cancel()
            self._scheduled_handle = None

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def get_current_metrics(self) -> Optional[AggregatedMetrics]:
        return self._aggregated

    def get_node_metrics(self, node_id: str) -> Optional[NodeMetrics]:
        if self._aggregated is None:
            return None
        return self._aggregated.node_metrics.get(node_id)

    def get_edge_flows(self, source: str, target: str) -> List[OutputFlow]:
        if self._aggregated is None:
            return []
        return list(self._aggregated.edge_flows.get(edge_key(source, target), []))

    def get_nodes_by_health(self, state: Union[HealthState, str]) -> List[str]:
        """Ids of nodes whose health flag matches ``state``.

        Raises:
            ValueError: If a snapshot exists and ``state`` is not a known
                health state name.
        """
        if self._aggregated is None:
            return []
        health = (
            state if isinstance(state, HealthState) else HealthState.from_string(state)
        )
        flag = {
            HealthState.HEALTHY: "is_healthy",
            HealthState.DEGRADED: "is_degraded",
            HealthState.OVERLOADED: "is_overloaded",
        }[health]
        return [
            node_id
            for node_id, metrics in self._aggregated.node_metrics.items()
            if getattr(metrics, flag)
        ]

    def get_system_summary(self) -> SystemSummary:
        """Totals plus the most utilized nodes of the last snapshot."""
        if self._aggregated is None:
            return SystemSummary()

        metrics = self._aggregated
        bottlenecks = [
            Bottleneck(node_id, m.utilization, m.queue_length)
            for node_id, m in metrics.node_metrics.items()
            if m.utilization > self._config.bottleneck_utilization or m.queue_length > 0
        ]
        bottlenecks.sort(key=lambda b: b.utilization, reverse=True)

        return SystemSummary(
            total_nodes=metrics.total_nodes,
            healthy_nodes=metrics.healthy_nodes,
            degraded_nodes=metrics.degraded_nodes,
            overloaded_nodes=metrics.overloaded_nodes,
            total_rps=metrics.total_rps,
            average_latency=metrics.average_latency,
            system_health=metrics.system_health.value,
            top_bottlenecks=bottlenecks[: self._config.max_bottlenecks],
        )

    def get_calculation_stats(self) -> CalculationStats:
        return CalculationStats(
            last_update_time=self._last_update_time,
            node_count=len(self._nodes),
            edge_count=self._topology.edge_count,
            calculation_time_ms=self._last_calculation_ms,
        )

    def reset(self) -> None:
        """Reset every node and forget the last snapshot."""
        for node in self._nodes.values():
            node.reset()
        self._aggregated = None
        self._last_update_time = 0.0
        self._last_calculation_ms = None
        self.cancel_pending_update()
