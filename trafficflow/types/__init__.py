"""Shared enums and type aliases."""

from trafficflow.types.base import HealthState, NodeKind, RoutingPolicyName, SystemHealth

__all__ = ["HealthState", "NodeKind", "RoutingPolicyName", "SystemHealth"]
