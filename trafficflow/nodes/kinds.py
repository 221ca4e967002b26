"""Concrete node kinds and the kind-keyed factory.

| Kind          | Latency                                   | Error            |
|---------------|-------------------------------------------|------------------|
| Source        | base_latency                              | base_error_rate  |
| Service       | base*(1 + u^2*2) + sin(h)*jitter*0.5      | load formula     |
| LoadBalancer  | base_latency                              | load formula     |
| Cache         | base*0.1*hit + base*2*(1 - hit)           | load formula     |
| DB            | base*(1 + u^2*5) + sin(h*1.5)*jitter      | load formula     |
| Sink          | 0                                         | 0                |

``u`` is utilization of ``capacity_in`` and ``h`` is :func:`hash_of` the node
id. The load formula is :func:`calculate_error_rate`.
"""

from __future__ import annotations

import time
from abc import abstractmethod
from dataclasses import replace
from typing import Dict

from trafficflow.logging import get_logger
from trafficflow.model.config import NodeConfiguration
from trafficflow.model.metrics import NodeMetrics, OutputFlow
from trafficflow.nodes.base import MetricNode, deterministic_jitter
from trafficflow.types.base import NodeKind, RoutingPolicyName

LOGGER = get_logger(__name__)


class _ProcessingNode(MetricNode):
    """Shared admission and forwarding for kinds that receive traffic."""

    @abstractmethod
    def _service_time(self, utilization: float) -> float:
        """Average service time in milliseconds at ``utilization``."""

    def update_internal_metrics(
        self, input_metrics: NodeMetrics, delta_time: float
    ) -> NodeMetrics:
        effective_incoming, err_in = self._admit(input_metrics.incoming_rate)
        utilization = self._utilization(effective_incoming)
        return replace(
            input_metrics,
            utilization=utilization,
            queue_length=0.0,
            processed_rate=effective_incoming,
            error_rate=self._error_rate(utilization),
            average_service_time=self._service_time(utilization),
            err_in=err_in,
            err_out=0.0,
            last_updated=time.time(),
            **self._health_flags(utilization),
        )

    def calculate_output_flows(self, metrics: NodeMetrics) -> Dict[str, OutputFlow]:
        # Latency accumulates along the path; upstream errors pass through
        latency = metrics.incoming_latency + metrics.average_service_time
        errors = metrics.incoming_errors + metrics.processed_rate * metrics.error_rate
        return self._route(metrics, latency, errors)


class SourceMetricNode(MetricNode):
    """Traffic generator (Source/Ingress).

    Emits ``max_capacity`` requests/second regardless of input. ``capacity_in``
    has no meaning here; ``capacity_out`` still caps what leaves the node.
    """

    kind = NodeKind.SOURCE

    def update_internal_metrics(
        self, input_metrics: NodeMetrics, delta_time: float
    ) -> NodeMetrics:
        generation_rate = self._config.max_capacity
        utilization = 1.0 if generation_rate > 0 else 0.0
        return replace(
            input_metrics,
            incoming_rate=generation_rate,
            incoming_connections=1,
            incoming_latency=0.0,
            incoming_errors=0.0,
            utilization=utilization,
            queue_length=0.0,
            processed_rate=generation_rate,
            error_rate=self._config.base_error_rate,
            average_service_time=self._config.base_latency,
            err_in=0.0,
            err_out=0.0,
            is_healthy=True,
            is_degraded=False,
            is_overloaded=False,
            last_updated=time.time(),
        )

    def calculate_output_flows(self, metrics: NodeMetrics) -> Dict[str, OutputFlow]:
        latency = metrics.incoming_latency + self._config.base_latency
        errors = metrics.error_rate * metrics.processed_rate
        return self._route(metrics, latency, errors)


class ServiceMetricNode(_ProcessingNode):
    """Generic service with quadratic latency growth under load."""

    kind = NodeKind.SERVICE

    def _service_time(self, utilization: float) -> float:
        load_multiplier = 1 + utilization * utilization * 2
        jitter = deterministic_jitter(self.node_id, self._config.latency_jitter * 0.5)
        return self._config.base_latency * load_multiplier + jitter


class LoadBalancerMetricNode(_ProcessingNode):
    """Lightweight dispatch hop with flat latency; splits evenly by default."""

    kind = NodeKind.LOAD_BALANCER
    default_policy = RoutingPolicyName.ROUND_ROBIN

    def _service_time(self, utilization: float) -> float:
        return self._config.base_latency


class CacheMetricNode(_ProcessingNode):
    """Cache whose latency blends fast hits with slow misses."""

    kind = NodeKind.CACHE

    def _service_time(self, utilization: float) -> float:
        hit_ratio = self._config.effective_hit_ratio
        base = self._config.base_latency
        return base * 0.1 * hit_ratio + base * 2 * (1 - hit_ratio)


class DatabaseMetricNode(_ProcessingNode):
    """Database: steeper load sensitivity than a generic service."""

    kind = NodeKind.DB

    def _service_time(self, utilization: float) -> float:
        load_multiplier = 1 + utilization * utilization * 5
        jitter = deterministic_jitter(
            self.node_id, self._config.latency_jitter, scale=1.5
        )
        return self._config.base_latency * load_multiplier + jitter


class SinkMetricNode(MetricNode):
    """Terminal node: absorbs everything it receives and never emits."""

    kind = NodeKind.SINK

    def update_internal_metrics(
        self, input_metrics: NodeMetrics, delta_time: float
    ) -> NodeMetrics:
        return replace(
            input_metrics,
            utilization=0.0,
            queue_length=0.0,
            processed_rate=input_metrics.incoming_rate,
            error_rate=0.0,
            average_service_time=0.0,
            err_in=0.0,
            err_out=0.0,
            is_healthy=True,
            is_degraded=False,
            is_overloaded=False,
            last_updated=time.time(),
        )

    def calculate_output_flows(self, metrics: NodeMetrics) -> Dict[str, OutputFlow]:
        return {}


# Alias kept for documents that say Ingress
IngressMetricNode = SourceMetricNode


def create_metric_node(config: NodeConfiguration) -> MetricNode:
    """Instantiate the node class for ``config.kind``.

    Unknown kinds behave like Service.
    """
    match config.node_kind:
        case NodeKind.SOURCE | NodeKind.INGRESS:
            return SourceMetricNode(config)
        case NodeKind.LOAD_BALANCER:
            return LoadBalancerMetricNode(config)
        case NodeKind.CACHE:
            return CacheMetricNode(config)
        case NodeKind.DB | NodeKind.DATABASE:
            return DatabaseMetricNode(config)
        case NodeKind.SINK:
            return SinkMetricNode(config)
        case _:
            if config.node_kind is NodeKind.SERVICE and config.kind != "Service":
                LOGGER.debug(
                    "Node '%s' has kind '%s'; using Service behavior",
                    config.id,
                    config.kind,
                )
            return ServiceMetricNode(config)
