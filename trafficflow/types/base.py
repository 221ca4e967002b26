"""Enums shared by the flow model, routing policies, and the aggregator."""

from __future__ import annotations

from enum import Enum


class NodeKind(str, Enum):
    """Behavioral kind of a node.

    Values are the canonical kind names found in model documents. ``Source`` and
    ``Ingress`` are both generators; ``DB`` and ``Database`` share one model.
    """

    SOURCE = "Source"
    INGRESS = "Ingress"
    SERVICE = "Service"
    LOAD_BALANCER = "LoadBalancer"
    CACHE = "Cache"
    DB = "DB"
    DATABASE = "Database"
    SINK = "Sink"

    @classmethod
    def from_string(cls, value: str) -> "NodeKind":
        """Parse a kind name, falling back to SERVICE for unknown names.

        Matching is exact first, then case-insensitive against member values.

        Args:
            value: Kind name from a node configuration.

        Returns:
            The matching NodeKind, or NodeKind.SERVICE when nothing matches.
        """
        try:
            return cls(value)
        except ValueError:
            pass
        lowered = str(value).lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.SERVICE

    @property
    def is_generator(self) -> bool:
        """Whether this kind produces traffic rather than receiving it."""
        return self in (NodeKind.SOURCE, NodeKind.INGRESS)


class HealthState(str, Enum):
    """Per-node health derived from utilization thresholds."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OVERLOADED = "overloaded"

    @classmethod
    def from_string(cls, value: str) -> "HealthState":
        """Parse a health state name (case-insensitive).

        Raises:
            ValueError: If the name is not a known health state.
        """
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(e.value for e in cls)
            raise ValueError(
                f"Invalid health state '{value}'. Valid values are: {valid}"
            ) from None


class SystemHealth(str, Enum):
    """Three-level classification of the whole topology."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class RoutingPolicyName(str, Enum):
    """Routing policy names understood by :func:`create_routing_policy`."""

    REPLICATE_ALL = "replicate_all"
    WEIGHTED = "weighted"
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"
    LEAST_CONNECTIONS = "least_connections"
    HASH = "hash"
