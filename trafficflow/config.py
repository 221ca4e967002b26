"""Configuration classes for trafficflow components."""

from __future__ import annotations

from dataclasses import dataclass

from trafficflow.types.base import SystemHealth


@dataclass
class AggregatorConfig:
    """Tunables for the flow aggregation engine."""

    # Relaxation passes per calculation; bounded so cycles always terminate
    max_iterations: int = 5

    # Fraction of overloaded nodes above which the system is critical
    critical_overload_ratio: float = 0.3

    # Fraction of degraded+overloaded nodes above which the system is degraded
    degraded_ratio: float = 0.1

    # Delta time (ms) used when a caller does not pass one
    default_delta_time_ms: float = 1000.0

    # Nominal per-frame delta time (ms) for a 60 fps refresh
    frame_delta_time_ms: float = 16.0

    # Bottleneck reporting in the system summary
    bottleneck_utilization: float = 0.5
    max_bottlenecks: int = 5

    def classify(self, overloaded: int, degraded: int, total: int) -> SystemHealth:
        """Classify system health from node health counts."""
        if total <= 0:
            return SystemHealth.HEALTHY
        if overloaded > total * self.critical_overload_ratio:
            return SystemHealth.CRITICAL
        if (degraded + overloaded) / total > self.degraded_ratio:
            return SystemHealth.DEGRADED
        return SystemHealth.HEALTHY


@dataclass
class NodeDefaults:
    """Defaults applied when building node configurations from a model document."""

    capacity: float = 100.0
    concurrency: int = 10
    base_ms: float = 20.0
    jitter_ms: float = 5.0
    degradation_threshold: float = 0.7
    overload_threshold: float = 0.9

    # Generation rate for Source/Ingress nodes without rateRps anywhere
    source_rate_rps: float = 10.0

    # error_under_load = p_fail * this
    error_under_load_factor: float = 2.0


# Global configuration instances
AGGREGATOR_CONFIG = AggregatorConfig()
NODE_DEFAULTS = NodeDefaults()
