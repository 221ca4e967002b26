"""YAML loader and schema validation for model documents.

A model document lists nodes and directed links, in the same shape the
interactive editor saves::

    rateRps: 100
    nodes:
      - {id: edge, kind: Ingress}
      - {id: api, kind: Service, capacity: 80, base_ms: 15, p_fail: 0.01}
      - {id: db, kind: DB, capacity_in: 40}
    links:
      - {from: edge, to: api}
      - {from: api, to: db}

JSON documents are valid YAML and load the same way. :func:`build_flow_model`
turns the validated mapping into node configurations and a topology.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema
import yaml

from trafficflow.config import NODE_DEFAULTS, NodeDefaults
from trafficflow.logging import get_logger
from trafficflow.model.config import NodeConfiguration, RoutingConfig
from trafficflow.model.topology import GraphTopology
from trafficflow.types.base import NodeKind

LOGGER = get_logger(__name__)


@dataclass
class FlowModel:
    """Node configurations and topology built from one document.

    Attributes:
        configs: Configuration per node id, in document order.
        topology: Directed edges between configured nodes.
        attrs: Document-level metadata.
    """

    configs: Dict[str, NodeConfiguration]
    topology: GraphTopology
    attrs: Dict[str, Any]


def _load_schema() -> Dict[str, Any]:
    try:
        with (
            resources.files("trafficflow.schemas")
            .joinpath("model.json")
            .open("r", encoding="utf-8")
        ) as f:
            return json.load(f)
    except Exception as exc:  # pragma: no cover
        raise RuntimeError(
            "Failed to locate packaged schema 'trafficflow/schemas/model.json'."
        ) from exc


def _stringify_keys(data: Dict[Any, Any]) -> Dict[str, Any]:
    # YAML 1.1 turns keys like `yes`/`on` into booleans; node ids are strings
    return {str(key): value for key, value in data.items()}


def validate_model_data(data: Any) -> Dict[str, Any]:
    """Validate a parsed document and return it with normalized keys.

    Raises:
        ValueError: On structural problems (non-mapping root, duplicate node
            ids, links to unknown nodes).
        jsonschema.ValidationError: On schema violations.
    """
    if data is None:
        data = {"nodes": []}
    if not isinstance(data, dict):
        raise ValueError("The model document must map to a dictionary at top-level.")

    for node in data.get("nodes") or []:
        if isinstance(node, dict):
            routing = node.get("routing")
            if isinstance(routing, dict) and isinstance(routing.get("weights"), dict):
                routing["weights"] = _stringify_keys(routing["weights"])
            if "id" in node and not isinstance(node["id"], str):
                node["id"] = str(node["id"])
    for link in data.get("links") or []:
        if isinstance(link, dict):
            for end in ("from", "to"):
                if end in link and not isinstance(link[end], str):
                    link[end] = str(link[end])

    jsonschema.validate(data, _load_schema())

    seen: set[str] = set()
    for node in data["nodes"]:
        if node["id"] in seen:
            raise ValueError(f"Duplicate node id '{node['id']}' in model document")
        seen.add(node["id"])
    for link in data.get("links", []):
        for end in ("from", "to"):
            if link[end] not in seen:
                raise ValueError(
                    f"Link {link['from']}->{link['to']} references unknown node '{link[end]}'"
                )
    return data


def _first(*values: Any) -> Any:
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _node_configuration(
    node: Dict[str, Any], global_rate: Optional[float], defaults: NodeDefaults
) -> NodeConfiguration:
    kind = node.get("kind", NodeKind.SERVICE.value)
    capacity = _first(node.get("capacity"), node.get("rateRps"), defaults.capacity)
    p_fail = node.get("p_fail")
    routing = node.get("routing")

    max_capacity = float(capacity)
    capacity_in = float(_first(node.get("capacity_in"), capacity))
    capacity_out = float(_first(node.get("capacity_out"), capacity))

    if NodeKind.from_string(kind).is_generator:
        rate = float(_first(node.get("rateRps"), global_rate, defaults.source_rate_rps))
        max_capacity = rate
        capacity_out = float(_first(node.get("capacity_out"), rate))
        capacity_in = float(_first(node.get("capacity_in"), 0.0))

    return NodeConfiguration(
        id=node["id"],
        kind=kind,
        max_capacity=max_capacity,
        capacity_in=capacity_in,
        capacity_out=capacity_out,
        concurrency=int(_first(node.get("concurrency"), defaults.concurrency)),
        base_latency=float(_first(node.get("base_ms"), defaults.base_ms)),
        latency_jitter=float(_first(node.get("jitter_ms"), defaults.jitter_ms)),
        base_error_rate=float(p_fail) if p_fail is not None else 0.0,
        error_under_load=(
            float(p_fail) * defaults.error_under_load_factor if p_fail is not None else 0.0
        ),
        degradation_threshold=float(
            _first(node.get("degradation_threshold"), defaults.degradation_threshold)
        ),
        overload_threshold=float(
            _first(node.get("overload_threshold"), defaults.overload_threshold)
        ),
        routing=RoutingConfig.from_dict(routing) if routing else None,
        hit_ratio=node.get("hit_ratio"),
        attrs=dict(node.get("attrs") or {}),
    )


def build_flow_model(
    data: Dict[str, Any], defaults: Optional[NodeDefaults] = None
) -> FlowModel:
    """Build configurations and topology from a validated document mapping.

    Generators (Source/Ingress) take their rate from the node's ``rateRps``,
    then the document's ``rateRps``, then ``defaults.source_rate_rps``; their
    ``capacity_in`` defaults to 0.

    Args:
        data: Output of :func:`validate_model_data`.
        defaults: Defaults for absent fields; the global ``NODE_DEFAULTS`` when None.
    """
    defaults = defaults or NODE_DEFAULTS
    global_rate = data.get("rateRps")

    configs: Dict[str, NodeConfiguration] = {}
    for node in data["nodes"]:
        configs[node["id"]] = _node_configuration(node, global_rate, defaults)

    topology = GraphTopology.from_links(
        ((link["from"], link["to"]) for link in data.get("links", [])),
        node_ids=configs.keys(),
    )
    LOGGER.debug(
        "Built flow model with %d nodes and %d edges",
        len(configs),
        topology.edge_count,
    )
    return FlowModel(configs=configs, topology=topology, attrs=dict(data.get("attrs") or {}))


def load_model_yaml(
    yaml_str: str, defaults: Optional[NodeDefaults] = None
) -> FlowModel:
    """Parse, validate, and build a model document from YAML or JSON text."""
    data = validate_model_data(yaml.safe_load(yaml_str))
    return build_flow_model(data, defaults)


def load_model_file(
    path: Union[str, Path], defaults: Optional[NodeDefaults] = None
) -> FlowModel:
    """Read and build a model document from disk.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    text = Path(path).read_text(encoding="utf-8")
    return load_model_yaml(text, defaults)
