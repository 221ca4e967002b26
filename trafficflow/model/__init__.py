"""Data model for the flow engine: configurations, metrics, and topology."""

from trafficflow.model.config import DEFAULT_HIT_RATIO, NodeConfiguration, RoutingConfig
from trafficflow.model.metrics import MetricChangeEvent, NodeMetrics, OutputFlow
from trafficflow.model.topology import GraphTopology, edge_key, split_edge_key

__all__ = [
    "DEFAULT_HIT_RATIO",
    "NodeConfiguration",
    "RoutingConfig",
    "NodeMetrics",
    "OutputFlow",
    "MetricChangeEvent",
    "GraphTopology",
    "edge_key",
    "split_edge_key",
]
