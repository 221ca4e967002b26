"""Tests for NodeConfiguration and RoutingConfig."""

import dataclasses

import pytest

from trafficflow.model.config import DEFAULT_HIT_RATIO, NodeConfiguration, RoutingConfig
from trafficflow.types.base import NodeKind


def test_capacity_fallback_to_max_capacity():
    cfg = NodeConfiguration(id="a", max_capacity=40)
    assert cfg.effective_capacity_in == 40
    assert cfg.effective_capacity_out == 40


def test_explicit_capacities_win():
    cfg = NodeConfiguration(id="a", max_capacity=40, capacity_in=10, capacity_out=0)
    assert cfg.effective_capacity_in == 10
    assert cfg.effective_capacity_out == 0


def test_unknown_kind_parses_as_service():
    assert NodeConfiguration(id="q", kind="Queue").node_kind is NodeKind.SERVICE


def test_hit_ratio_default():
    assert NodeConfiguration(id="c", kind="Cache").effective_hit_ratio == DEFAULT_HIT_RATIO
    assert NodeConfiguration(id="c", kind="Cache", hit_ratio=0.5).effective_hit_ratio == 0.5


def test_deep_equality_includes_routing_weights():
    a = NodeConfiguration(id="x", routing=RoutingConfig("weighted", {"b": 0.7, "c": 0.3}))
    b = NodeConfiguration(id="x", routing=RoutingConfig("weighted", {"b": 0.7, "c": 0.3}))
    c = NodeConfiguration(id="x", routing=RoutingConfig("weighted", {"b": 0.6, "c": 0.4}))
    assert a == b
    assert a is not b
    assert a != c


def test_configuration_is_frozen():
    cfg = NodeConfiguration(id="a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.max_capacity = 1  # type: ignore[misc]


def test_with_changes_returns_copy():
    cfg = NodeConfiguration(id="a", max_capacity=10)
    changed = cfg.with_changes(max_capacity=20)
    assert cfg.max_capacity == 10
    assert changed.max_capacity == 20
    assert changed.id == "a"


def test_routing_from_dict_keeps_extra_params():
    routing = RoutingConfig.from_dict(
        {"policy": "weighted", "weights": {"b": 1, "c": 3}, "stickySessionTtl": 300000}
    )
    assert routing.policy == "weighted"
    assert routing.weights == {"b": 1.0, "c": 3.0}
    assert routing.params == {"stickySessionTtl": 300000}
    assert routing.to_dict() == {
        "policy": "weighted",
        "weights": {"b": 1.0, "c": 3.0},
        "stickySessionTtl": 300000,
    }


def test_to_dict_reports_effective_capacities():
    data = NodeConfiguration(id="a", max_capacity=5, capacity_out=2).to_dict()
    assert data["capacity_in"] == 5
    assert data["capacity_out"] == 2
    assert data["routing"] is None
