"""MetricNode: the per-node metric and flow computation contract.

Every node kind supplies two operations:

- ``update_internal_metrics``: derive utilization, latency, error rate, and
  health from the node's input metrics.
- ``calculate_output_flows``: ask the node's routing policy to split the
  processed rate across downstream nodes.

Everything else lives here: capacity enforcement on the aggregate output, the
outgoing-metric roll-up, listener notification, and reset. Splitting and
capping are separate steps, so routing policies never see capacities.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple, Type

from trafficflow.logging import get_logger
from trafficflow.model.config import NodeConfiguration, RoutingConfig
from trafficflow.model.metrics import MetricChangeEvent, NodeMetrics, OutputFlow
from trafficflow.model.topology import GraphTopology
from trafficflow.routing.policy import RoutingPolicy, resolve_policy_class
from trafficflow.types.base import NodeKind, RoutingPolicyName

LOGGER = get_logger(__name__)

MetricChangeListener = Callable[[MetricChangeEvent], None]

#: Utilization above which ``error_under_load`` starts to apply.
ERROR_KNEE_UTILIZATION = 0.8


class NodeEvaluation(NamedTuple):
    """Result of evaluating a node once.

    Attributes:
        metrics: Node metrics including the outgoing roll-up and ``err_out``.
        flows: Capacity-enforced flows keyed by target id.
    """

    metrics: NodeMetrics
    flows: Dict[str, OutputFlow]


def hash_of(node_id: str) -> int:
    """Stable per-node seed: the sum of the id's character code points."""
    return sum(ord(ch) for ch in node_id)


def deterministic_jitter(node_id: str, amplitude: float, scale: float = 1.0) -> float:
    """Reproducible stand-in for random latency jitter.

    Returns ``sin(hash_of(node_id) * scale) * amplitude``.
    """
    return math.sin(hash_of(node_id) * scale) * amplitude


def calculate_error_rate(
    base_error_rate: float, utilization: float, error_under_load: float
) -> float:
    """Error fraction: base rate plus a quadratic term above 80% utilization."""
    if utilization > ERROR_KNEE_UTILIZATION:
        return base_error_rate + error_under_load * (
            utilization - ERROR_KNEE_UTILIZATION
        ) ** 2
    return base_error_rate


class MetricNode(ABC):
    """Base class for all node kinds.

    A node holds its configuration, the input metrics for the next pass, its
    last committed metrics, and (for stateful routing) its routing policy. It
    never reads or writes state outside itself: the aggregator feeds inputs
    with :meth:`set_input_metrics` and collects results from :meth:`evaluate`.

    Attributes:
        kind: Kind handled by the concrete class.
        default_policy: Policy used when the configuration has no routing block.
    """

    kind: NodeKind = NodeKind.SERVICE
    default_policy: RoutingPolicyName = RoutingPolicyName.REPLICATE_ALL

    def __init__(self, config: NodeConfiguration) -> None:
        self._config: NodeConfiguration = config
        self._metrics: NodeMetrics = self._initial_metrics()
        self._input_metrics: Optional[NodeMetrics] = None
        self._topology: Optional[GraphTopology] = None
        self._policy: Optional[RoutingPolicy] = None
        self._policy_class: Optional[Type[RoutingPolicy]] = None
        self._last_flows: Dict[str, OutputFlow] = {}
        self._listeners: List[MetricChangeListener] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.node_id!r})"

    # ------------------------------------------------------------------
    # Per-kind behavior
    # ------------------------------------------------------------------

    @abstractmethod
    def update_internal_metrics(
        self, input_metrics: NodeMetrics, delta_time: float
    ) -> NodeMetrics:
        """Compute this node's metrics from its inputs.

        Must be a pure function of ``input_metrics`` and the configuration.

        Args:
            input_metrics: What arrived at the node this pass.
            delta_time: Elapsed milliseconds since the previous calculation.

        Returns:
            Metrics with the processing fields filled in. Outgoing fields are
            filled in afterwards by :meth:`evaluate`.
        """

    @abstractmethod
    def calculate_output_flows(self, metrics: NodeMetrics) -> Dict[str, OutputFlow]:
        """Desired (uncapped) flows to downstream nodes, keyed by target id."""

    # ------------------------------------------------------------------
    # Configuration and topology
    # ------------------------------------------------------------------

    @property
    def node_id(self) -> str:
        return self._config.id

    @property
    def config(self) -> NodeConfiguration:
        return self._config

    def get_configuration(self) -> NodeConfiguration:
        return self._config

    @property
    def capacity_in(self) -> float:
        return self._config.effective_capacity_in

    @property
    def capacity_out(self) -> float:
        return self._config.effective_capacity_out

    def set_topology(self, topology: GraphTopology) -> None:
        self._topology = topology

    def get_downstream_node_ids(self) -> List[str]:
        """Ordered downstream ids from the attached topology."""
        if self._topology is None:
            return []
        return self._topology.downstream(self.node_id)

    def get_upstream_node_ids(self) -> List[str]:
        if self._topology is None:
            return []
        return self._topology.upstream(self.node_id)

    def update_config(self, **changes: Any) -> NodeMetrics:
        """Replace configuration fields and recompute from the current metrics.

        Raises:
            ValueError: If ``changes`` tries to alter the node id.
        """
        if "id" in changes and changes["id"] != self.node_id:
            raise ValueError("A node's id cannot be changed; create a new node instead")
        self._config = self._config.with_changes(**changes)
        self._policy = None
        self._policy_class = None
        return self.update_metrics({}, 0.0)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @property
    def routing_policy(self) -> RoutingPolicy:
        """Policy bound to this node.

        Stateless policies are built afresh from configuration on every access.
        A stateful policy is built once and kept until the configuration changes
        or the node is reset, so round-robin cursors persist across
        calculations. The policy name is resolved once per configuration.
        """
        if self._policy is not None:
            return self._policy
        routing = self._config.routing or RoutingConfig(
            policy=self.default_policy.value
        )
        if self._policy_class is None:
            self._policy_class = resolve_policy_class(routing)
        policy = self._policy_class(routing)
        if policy.stateful:
            self._policy = policy
        return policy

    def _route(
        self, metrics: NodeMetrics, latency: float, error_rate: float
    ) -> Dict[str, OutputFlow]:
        downstream = self.get_downstream_node_ids()
        if not downstream:
            return {}
        return self.routing_policy.calculate_flows(
            metrics, downstream, metrics.processed_rate, latency, error_rate
        )

    # ------------------------------------------------------------------
    # Shared arithmetic
    # ------------------------------------------------------------------

    def _admit(self, incoming_rate: float) -> Tuple[float, float]:
        """Clamp incoming traffic to ``capacity_in``.

        Returns:
            ``(effective_incoming, err_in)``.
        """
        capacity = self.capacity_in
        err_in = max(0.0, incoming_rate - capacity)
        return min(incoming_rate, capacity), err_in

    def _utilization(self, effective_incoming: float) -> float:
        capacity = self.capacity_in
        if capacity <= 0:
            return 0.0
        return min(effective_incoming / capacity, 1.0)

    def _health_flags(self, utilization: float) -> Dict[str, bool]:
        degradation = self._config.degradation_threshold
        overload = self._config.overload_threshold
        return {
            "is_healthy": utilization < degradation,
            "is_degraded": degradation <= utilization < overload,
            "is_overloaded": utilization >= overload,
        }

    def _error_rate(self, utilization: float) -> float:
        return calculate_error_rate(
            self._config.base_error_rate, utilization, self._config.error_under_load
        )

    def apply_output_capacity(
        self, flows: Dict[str, OutputFlow]
    ) -> Tuple[Dict[str, OutputFlow], float]:
        """Enforce ``capacity_out`` on the node's aggregate output.

        When the desired total exceeds the ceiling, every flow's rate and error
        rate are scaled by ``capacity_out / total`` (to zero when the ceiling is
        zero).

        Args:
            flows: Desired flows from the routing policy.

        Returns:
            ``(capped_flows, err_out)`` with ``err_out = max(0, total - capacity_out)``.
        """
        total_desired = sum(flow.rate for flow in flows.values())
        capacity = self.capacity_out
        if total_desired <= capacity:
            return flows, 0.0

        factor = capacity / total_desired if capacity > 0 else 0.0
        capped = {target: flow.scaled(factor) for target, flow in flows.items()}
        return capped, max(0.0, total_desired - capacity)

    @staticmethod
    def weighted_average_latency(flows: Mapping[str, OutputFlow]) -> float:
        """Mean flow latency weighted by policy weight (0 without weight)."""
        total_weight = sum(flow.weight for flow in flows.values())
        if total_weight <= 0:
            return 0.0
        return sum(flow.latency * flow.weight for flow in flows.values()) / total_weight

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _initial_metrics(self) -> NodeMetrics:
        return NodeMetrics(average_service_time=self._config.base_latency)

    def set_input_metrics(self, input_metrics: Optional[NodeMetrics]) -> None:
        """Set what arrives at the node on the next :meth:`evaluate`."""
        self._input_metrics = input_metrics

    def get_input_metrics(self) -> Optional[NodeMetrics]:
        return self._input_metrics

    def _evaluate_from(
        self, input_metrics: NodeMetrics, delta_time: float
    ) -> NodeEvaluation:
        metrics = self.update_internal_metrics(input_metrics, delta_time)
        desired = self.calculate_output_flows(metrics)
        capped, err_out = self.apply_output_capacity(desired)
        metrics = replace(
            metrics,
            err_out=err_out,
            outgoing_rate=sum(flow.rate for flow in capped.values()),
            outgoing_connections=len(capped),
            outgoing_latency=self.weighted_average_latency(capped),
            outgoing_errors=sum(flow.error_rate for flow in capped.values()),
        )
        return NodeEvaluation(metrics, capped)

    def evaluate(self, delta_time: float) -> NodeEvaluation:
        """Run one relaxation step on the current input metrics.

        Does not change the node's committed metrics or notify listeners.
        """
        input_metrics = self._input_metrics or self._initial_metrics()
        return self._evaluate_from(input_metrics, delta_time)

    def update_metrics(
        self,
        input_overrides: Optional[Mapping[str, Any]] = None,
        delta_time: float = 1000.0,
    ) -> NodeMetrics:
        """Merge ``input_overrides`` into the current metrics, recompute, and notify.

        Args:
            input_overrides: NodeMetrics field values (e.g. ``incoming_rate``).
            delta_time: Elapsed milliseconds.

        Returns:
            The newly committed metrics.
        """
        merged = replace(self._metrics, **dict(input_overrides or {}))
        evaluation = self._evaluate_from(merged, delta_time)
        self.commit(evaluation)
        return evaluation.metrics

    def commit(self, evaluation: NodeEvaluation) -> None:
        """Store an evaluation as the node's current state and notify listeners."""
        self._metrics = evaluation.metrics
        self._last_flows = dict(evaluation.flows)
        self._notify_listeners()

    def get_metrics(self) -> NodeMetrics:
        return self._metrics

    def get_output_flows(self) -> Dict[str, OutputFlow]:
        """Flows from the last committed evaluation."""
        return dict(self._last_flows)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: MetricChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: MetricChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self) -> None:
        if not self._listeners:
            return
        event = MetricChangeEvent(
            node_id=self.node_id,
            metrics=self._metrics,
            output_flows=dict(self._last_flows),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Error in metric listener for node '%s'", self.node_id)

    def reset(self) -> None:
        """Return to initial metrics and drop inputs and routing state."""
        self._metrics = self._initial_metrics()
        self._input_metrics = None
        self._policy = None
        self._policy_class = None
        self._last_flows = {}
