"""Routing policies that split a node's processed rate across downstream edges.

A policy only decides the split. Output capacity is enforced afterwards by the
node (see :meth:`trafficflow.nodes.base.MetricNode.apply_output_capacity`), so
policies never look at capacities.

At the aggregate-rate level there is no per-request state to route discretely,
so ``round_robin``, ``random``, ``least_connections`` and ``hash`` all produce
an even split. Round-robin still keeps a rotation cursor that advances once per
call and survives as long as its node instance does.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Type

from trafficflow.logging import get_logger
from trafficflow.model.config import RoutingConfig
from trafficflow.model.metrics import NodeMetrics, OutputFlow
from trafficflow.types.base import RoutingPolicyName

LOGGER = get_logger(__name__)


class RoutingPolicy(ABC):
    """Strategy deciding how a node's output is distributed.

    Attributes:
        config: Routing block the policy was built from.
        stateful: Whether the policy keeps state between calls. Nodes keep
            one instance of a stateful policy and build stateless ones afresh
            for every output computation.
    """

    stateful: bool = False

    def __init__(self, config: Optional[RoutingConfig] = None) -> None:
        self.config: RoutingConfig = config or RoutingConfig(policy=self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Canonical policy name."""

    @abstractmethod
    def calculate_flows(
        self,
        metrics: NodeMetrics,
        downstream_node_ids: Sequence[str],
        processed_rate: float,
        latency: float,
        error_rate: float,
    ) -> Dict[str, OutputFlow]:
        """Split a node's output among its downstream targets.

        Args:
            metrics: Metrics of the emitting node for this pass.
            downstream_node_ids: Ordered downstream targets.
            processed_rate: Requests/second to distribute.
            latency: Cumulative latency to stamp on every flow.
            error_rate: Absolute errors/second to distribute.

        Returns:
            Flows keyed by target id, in downstream order. Empty when there are
            no targets.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ReplicateAllPolicy(RoutingPolicy):
    """Fan-out: every target receives the full rate and the full error rate."""

    @property
    def name(self) -> str:
        return RoutingPolicyName.REPLICATE_ALL.value

    def calculate_flows(
        self,
        metrics: NodeMetrics,
        downstream_node_ids: Sequence[str],
        processed_rate: float,
        latency: float,
        error_rate: float,
    ) -> Dict[str, OutputFlow]:
        return {
            node_id: OutputFlow(
                target_node_id=node_id,
                rate=processed_rate,
                latency=latency,
                error_rate=error_rate,
                weight=1.0,
            )
            for node_id in downstream_node_ids
        }


class WeightedPolicy(RoutingPolicy):
    """Proportional split by configured weights.

    Targets without a configured weight get ``1/N`` before normalization.
    Weights are normalized over the current downstream set only, so weights for
    targets that are no longer connected are ignored. If every weight is zero
    the split is even.
    """

    @property
    def name(self) -> str:
        return RoutingPolicyName.WEIGHTED.value

    def shares(self, downstream_node_ids: Sequence[str]) -> Dict[str, float]:
        """Normalized share per target; values sum to 1 for a non-empty set."""
        count = len(downstream_node_ids)
        if count == 0:
            return {}
        configured = self.config.weights or {}
        raw: Dict[str, float] = {}
        for node_id in downstream_node_ids:
            weight = configured.get(node_id)
            raw[node_id] = (1.0 / count) if weight is None else max(float(weight), 0.0)
        total = sum(raw.values())
        if total <= 0.0:
            return {node_id: 1.0 / count for node_id in downstream_node_ids}
        return {node_id: weight / total for node_id, weight in raw.items()}

    def calculate_flows(
        self,
        metrics: NodeMetrics,
        downstream_node_ids: Sequence[str],
        processed_rate: float,
        latency: float,
        error_rate: float,
    ) -> Dict[str, OutputFlow]:
        return {
            node_id: OutputFlow(
                target_node_id=node_id,
                rate=processed_rate * share,
                latency=latency,
                error_rate=error_rate * share,
                weight=share,
            )
            for node_id, share in self.shares(downstream_node_ids).items()
        }


class UniformSplitPolicy(RoutingPolicy):
    """Even ``rate / N`` split shared by the load-balancing policies."""

    def calculate_flows(
        self,
        metrics: NodeMetrics,
        downstream_node_ids: Sequence[str],
        processed_rate: float,
        latency: float,
        error_rate: float,
    ) -> Dict[str, OutputFlow]:
        count = len(downstream_node_ids)
        if count == 0:
            return {}
        share = 1.0 / count
        rate_per_target = processed_rate / count
        errors_per_target = error_rate / count
        return {
            node_id: OutputFlow(
                target_node_id=node_id,
                rate=rate_per_target,
                latency=latency,
                error_rate=errors_per_target,
                weight=share,
            )
            for node_id in downstream_node_ids
        }


class RoundRobinPolicy(UniformSplitPolicy):
    """Even split with a persisted rotation cursor."""

    stateful = True

    def __init__(self, config: Optional[RoutingConfig] = None) -> None:
        super().__init__(config)
        self.cursor: int = 0

    @property
    def name(self) -> str:
        return RoutingPolicyName.ROUND_ROBIN.value

    def next_target(self, downstream_node_ids: Sequence[str]) -> Optional[str]:
        """Target the cursor currently points at (None without targets)."""
        if not downstream_node_ids:
            return None
        return downstream_node_ids[self.cursor % len(downstream_node_ids)]

    def calculate_flows(
        self,
        metrics: NodeMetrics,
        downstream_node_ids: Sequence[str],
        processed_rate: float,
        latency: float,
        error_rate: float,
    ) -> Dict[str, OutputFlow]:
        flows = super().calculate_flows(
            metrics, downstream_node_ids, processed_rate, latency, error_rate
        )
        if downstream_node_ids:
            self.cursor = (self.cursor + 1) % len(downstream_node_ids)
        return flows


class RandomPolicy(UniformSplitPolicy):
    @property
    def name(self) -> str:
        return RoutingPolicyName.RANDOM.value


class LeastConnectionsPolicy(UniformSplitPolicy):
    @property
    def name(self) -> str:
        return RoutingPolicyName.LEAST_CONNECTIONS.value


class HashPolicy(UniformSplitPolicy):
    @property
    def name(self) -> str:
        return RoutingPolicyName.HASH.value


_POLICY_CLASSES = {
    RoutingPolicyName.REPLICATE_ALL: ReplicateAllPolicy,
    RoutingPolicyName.WEIGHTED: WeightedPolicy,
    RoutingPolicyName.ROUND_ROBIN: RoundRobinPolicy,
    RoutingPolicyName.RANDOM: RandomPolicy,
    RoutingPolicyName.LEAST_CONNECTIONS: LeastConnectionsPolicy,
    RoutingPolicyName.HASH: HashPolicy,
}


def available_policies() -> List[str]:
    """Names accepted by :func:`create_routing_policy`."""
    return [name.value for name in _POLICY_CLASSES]


def resolve_policy_class(config: Optional[RoutingConfig]) -> Type[RoutingPolicy]:
    """Policy class named by ``config.policy``.

    Unknown names resolve to :class:`ReplicateAllPolicy` with a warning.

    Args:
        config: Routing block; ``None`` means ``replicate_all``.
    """
    if config is None:
        return ReplicateAllPolicy
    try:
        policy_name = RoutingPolicyName(config.policy)
    except ValueError:
        LOGGER.warning(
            "Unknown routing policy '%s', defaulting to replicate_all", config.policy
        )
        return ReplicateAllPolicy
    return _POLICY_CLASSES[policy_name]


def create_routing_policy(config: Optional[RoutingConfig]) -> RoutingPolicy:
    """Build the policy named by ``config.policy``.

    Unknown names fall back to ``replicate_all`` with a warning.

    Args:
        config: Routing block; ``None`` means ``replicate_all``.

    Returns:
        A new policy instance.
    """
    return resolve_policy_class(config)(config)
