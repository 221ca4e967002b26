from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from trafficflow.config import NodeDefaults
from trafficflow.dsl.loader import (
    build_flow_model,
    load_model_file,
    load_model_yaml,
    validate_model_data,
)


THREE_TIER = """
rateRps: 100
attrs:
  name: three-tier
nodes:
  - {id: edge, kind: Ingress}
  - {id: api, kind: Service, capacity: 80, base_ms: 15, jitter_ms: 0, p_fail: 0.01}
  - id: cache
    kind: Cache
    hit_ratio: 0.9
  - {id: db, kind: DB, capacity_in: 40, capacity_out: 500}
links:
  - {from: edge, to: api}
  - {from: api, to: cache}
  - {from: api, to: db}
"""


class TestLoadModelYaml:
    def test_builds_configs_and_topology(self):
        model = load_model_yaml(THREE_TIER)
        assert list(model.configs) == ["edge", "api", "cache", "db"]
        assert model.attrs == {"name": "three-tier"}
        assert model.topology.downstream("api") == ["cache", "db"]
        assert model.topology.edge_count == 3

        api = model.configs["api"]
        assert api.kind == "Service"
        assert api.max_capacity == 80
        assert api.effective_capacity_in == 80
        assert api.base_latency == 15
        assert api.latency_jitter == 0
        assert api.base_error_rate == 0.01
        assert api.error_under_load == pytest.approx(0.02)

        db = model.configs["db"]
        assert db.effective_capacity_in == 40
        assert db.effective_capacity_out == 500

        assert model.configs["cache"].effective_hit_ratio == 0.9

    def test_defaults(self):
        model = load_model_yaml("nodes: [{id: svc}]")
        svc = model.configs["svc"]
        assert svc.kind == "Service"
        assert svc.max_capacity == 100
        assert svc.concurrency == 10
        assert svc.base_latency == 20
        assert svc.latency_jitter == 5
        assert svc.base_error_rate == 0
        assert svc.error_under_load == 0
        assert svc.degradation_threshold == 0.7
        assert svc.overload_threshold == 0.9
        assert svc.routing is None

    def test_custom_defaults(self):
        model = load_model_yaml("nodes: [{id: svc}]", defaults=NodeDefaults(capacity=7, base_ms=1))
        assert model.configs["svc"].max_capacity == 7
        assert model.configs["svc"].base_latency == 1

    def test_node_rate_used_as_capacity(self):
        model = load_model_yaml("nodes: [{id: svc, rateRps: 33}]")
        assert model.configs["svc"].max_capacity == 33


class TestGenerators:
    def test_global_rate(self):
        edge = load_model_yaml(THREE_TIER).configs["edge"]
        assert edge.max_capacity == 100
        assert edge.effective_capacity_out == 100
        assert edge.effective_capacity_in == 0

    def test_node_rate_wins(self):
        model = load_model_yaml("rateRps: 100\nnodes: [{id: s, kind: Source, rateRps: 5}]")
        assert model.configs["s"].max_capacity == 5

    def test_fallback_rate(self):
        model = load_model_yaml("nodes: [{id: s, kind: Source, capacity: 999}]")
        assert model.configs["s"].max_capacity == 10
        assert model.configs["s"].effective_capacity_out == 10

    def test_explicit_capacity_out(self):
        model = load_model_yaml("nodes: [{id: s, kind: Ingress, rateRps: 50, capacity_out: 20}]")
        assert model.configs["s"].effective_capacity_out == 20


class TestRouting:
    def test_weights_and_params(self):
        model = load_model_yaml(
            """
nodes:
  - id: api
    routing: {policy: weighted, weights: {a: 3, b: 1}, sticky: true}
  - {id: a}
  - {id: b}
links:
  - {from: api, to: a}
  - {from: api, to: b}
"""
        )
        routing = model.configs["api"].routing
        assert routing.policy == "weighted"
        assert routing.weights == {"a": 3.0, "b": 1.0}
        assert routing.params == {"sticky": True}

    def test_yaml_boolean_like_ids(self):
        model = load_model_yaml(
            """
nodes:
  - {id: "lb", routing: {policy: weighted, weights: {yes: 1}}}
  - {id: "yes"}
links:
  - {from: lb, to: "yes"}
"""
        )
        assert model.configs["lb"].routing.weights == {"True": 1.0}
        assert model.topology.downstream("lb") == ["yes"]


class TestValidation:
    def test_empty_document(self):
        model = load_model_yaml("")
        assert model.configs == {}
        assert model.topology.edge_count == 0

    def test_non_mapping_root(self):
        with pytest.raises(ValueError, match="dictionary"):
            load_model_yaml("- a\n- b\n")

    @pytest.mark.parametrize(
        "document",
        [
            "links: []",
            "nodes: [{kind: Service}]",
            "nodes: [{id: a, capacity: -1}]",
            "nodes: [{id: a, p_fail: 1.5}]",
            "nodes: [{id: a, colour: red}]",
            "nodes: [{id: a, routing: {weights: {b: 1}}}]",
            "nodes: [{id: a}]\nlinks: [{from: a}]",
            "nodes: []\nunknown: 1",
        ],
    )
    def test_schema_errors(self, document):
        with pytest.raises(jsonschema.ValidationError):
            load_model_yaml(document)

    def test_duplicate_ids(self):
        with pytest.raises(ValueError, match="Duplicate node id 'a'"):
            load_model_yaml("nodes: [{id: a}, {id: a}]")

    def test_unknown_link_endpoint(self):
        with pytest.raises(ValueError, match="unknown node 'ghost'"):
            load_model_yaml("nodes: [{id: a}]\nlinks: [{from: a, to: ghost}]")

    def test_numeric_ids_are_strings(self):
        data = validate_model_data({"nodes": [{"id": 1}, {"id": 2}], "links": [{"from": 1, "to": 2}]})
        model = build_flow_model(data)
        assert list(model.configs) == ["1", "2"]
        assert model.topology.downstream("1") == ["2"]


class TestLoadModelFile:
    def test_yaml_file(self, tmp_path: Path):
        path = tmp_path / "model.yaml"
        path.write_text(THREE_TIER)
        assert len(load_model_file(path).configs) == 4

    def test_json_file(self, tmp_path: Path):
        path = tmp_path / "model.json"
        path.write_text(
            json.dumps(
                {
                    "nodes": [{"id": "s", "kind": "Source", "rateRps": 5}, {"id": "t", "kind": "Sink"}],
                    "links": [{"from": "s", "to": "t"}],
                }
            )
        )
        model = load_model_file(str(path))
        assert model.configs["s"].max_capacity == 5
        assert model.topology.downstream("s") == ["t"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_model_file(tmp_path / "absent.yaml")
