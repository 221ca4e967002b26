"""Shared fixtures for trafficflow tests.

Factories keep jitter and error rates at zero unless a test asks otherwise, so
expected values can be computed by hand.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Tuple

import pytest

from trafficflow.aggregator import AggregatedMetrics, MetricsAggregator
from trafficflow.config import AggregatorConfig
from trafficflow.model.config import NodeConfiguration, RoutingConfig
from trafficflow.model.topology import GraphTopology


def _make_config(node_id: str, kind: str = "Service", **overrides: Any) -> NodeConfiguration:
    policy = overrides.pop("policy", None)
    weights = overrides.pop("weights", None)
    if policy is not None or weights is not None:
        overrides["routing"] = RoutingConfig(
            policy=policy or "weighted", weights=weights
        )
    fields = {
        "max_capacity": 100.0,
        "base_latency": 10.0,
        "latency_jitter": 0.0,
        "base_error_rate": 0.0,
        "error_under_load": 0.0,
        "degradation_threshold": 0.7,
        "overload_threshold": 0.9,
    }
    fields.update(overrides)
    return NodeConfiguration(id=node_id, kind=kind, **fields)


@pytest.fixture
def make_config() -> Callable[..., NodeConfiguration]:
    """Factory: ``make_config("api", "Service", max_capacity=50, policy="weighted")``."""
    return _make_config


@pytest.fixture
def run_graph() -> Callable[..., AggregatedMetrics]:
    """Build an aggregator over configs and links and run one calculation.

    Usage: ``run_graph([cfg_a, cfg_b], [("a", "b")])``.
    """

    def _run(
        configs: Iterable[NodeConfiguration],
        links: Iterable[Tuple[str, str]],
        config: AggregatorConfig | None = None,
    ) -> AggregatedMetrics:
        config_map = {cfg.id: cfg for cfg in configs}
        topology = GraphTopology.from_links(links, node_ids=config_map)
        aggregator = MetricsAggregator(config)
        aggregator.update_topology(topology, config_map)
        return aggregator.calculate_metrics(16)

    return _run
