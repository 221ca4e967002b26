"""Node kinds: the shared metric contract and its six variants."""

from trafficflow.nodes.base import (
    MetricChangeListener,
    MetricNode,
    NodeEvaluation,
    calculate_error_rate,
    deterministic_jitter,
    hash_of,
)
from trafficflow.nodes.kinds import (
    CacheMetricNode,
    DatabaseMetricNode,
    IngressMetricNode,
    LoadBalancerMetricNode,
    ServiceMetricNode,
    SinkMetricNode,
    SourceMetricNode,
    create_metric_node,
)

__all__ = [
    "MetricNode",
    "MetricChangeListener",
    "NodeEvaluation",
    "calculate_error_rate",
    "deterministic_jitter",
    "hash_of",
    "SourceMetricNode",
    "IngressMetricNode",
    "ServiceMetricNode",
    "LoadBalancerMetricNode",
    "CacheMetricNode",
    "DatabaseMetricNode",
    "SinkMetricNode",
    "create_metric_node",
]
