"""Routing policies and their factory."""

from trafficflow.routing.policy import (
    HashPolicy,
    LeastConnectionsPolicy,
    RandomPolicy,
    ReplicateAllPolicy,
    RoundRobinPolicy,
    RoutingPolicy,
    UniformSplitPolicy,
    WeightedPolicy,
    available_policies,
    create_routing_policy,
    resolve_policy_class,
)

__all__ = [
    "RoutingPolicy",
    "ReplicateAllPolicy",
    "WeightedPolicy",
    "UniformSplitPolicy",
    "RoundRobinPolicy",
    "RandomPolicy",
    "LeastConnectionsPolicy",
    "HashPolicy",
    "available_policies",
    "create_routing_policy",
    "resolve_policy_class",
]
