"""trafficflow: steady-state traffic flow over service topologies.

trafficflow models continuous request rates over a directed graph of typed
nodes (ingress generators, services, load balancers, caches, databases,
sinks) and reports per-node utilization, latency, errors, and a global health
classification.

Primary API:
    MetricsAggregator - Owns nodes and topology; computes snapshots
    NodeConfiguration, RoutingConfig - Per-node configuration
    GraphTopology - Downstream lists per node
    load_model_yaml(), load_model_file() - Build a model from a document

Example:
    from trafficflow import GraphTopology, MetricsAggregator, NodeConfiguration

    configs = {
        "edge": NodeConfiguration(id="edge", kind="Ingress", max_capacity=100),
        "api": NodeConfiguration(id="api", kind="Service", max_capacity=80),
    }
    topology = GraphTopology.from_links([("edge", "api")], node_ids=configs)

    aggregator = MetricsAggregator()
    aggregator.update_topology(topology, configs)
    snapshot = aggregator.calculate_metrics(16)
    snapshot.node_metrics["api"].err_in  # 20.0
"""

from __future__ import annotations

from trafficflow import cli, logging
from trafficflow._version import __version__
from trafficflow.aggregator import (
    AggregatedMetrics,
    Bottleneck,
    CalculationStats,
    MetricsAggregator,
    SystemSummary,
)
from trafficflow.config import AGGREGATOR_CONFIG, NODE_DEFAULTS, AggregatorConfig, NodeDefaults
from trafficflow.dsl.loader import FlowModel, load_model_file, load_model_yaml
from trafficflow.model.config import NodeConfiguration, RoutingConfig
from trafficflow.model.metrics import MetricChangeEvent, NodeMetrics, OutputFlow
from trafficflow.model.topology import GraphTopology, edge_key
from trafficflow.nodes.base import MetricNode
from trafficflow.nodes.kinds import create_metric_node
from trafficflow.routing.policy import RoutingPolicy, create_routing_policy
from trafficflow.types.base import HealthState, NodeKind, RoutingPolicyName, SystemHealth

__all__ = [
    # Version
    "__version__",
    # Model
    "NodeConfiguration",
    "RoutingConfig",
    "NodeMetrics",
    "OutputFlow",
    "MetricChangeEvent",
    "GraphTopology",
    "edge_key",
    # Engine
    "MetricNode",
    "create_metric_node",
    "RoutingPolicy",
    "create_routing_policy",
    "MetricsAggregator",
    "AggregatedMetrics",
    "SystemSummary",
    "Bottleneck",
    "CalculationStats",
    # Configuration
    "AggregatorConfig",
    "NodeDefaults",
    "AGGREGATOR_CONFIG",
    "NODE_DEFAULTS",
    # Documents
    "FlowModel",
    "load_model_yaml",
    "load_model_file",
    # Types
    "NodeKind",
    "HealthState",
    "SystemHealth",
    "RoutingPolicyName",
    # Utilities
    "cli",
    "logging",
]
