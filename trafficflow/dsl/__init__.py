"""Model document loading."""

from trafficflow.dsl.loader import (
    FlowModel,
    build_flow_model,
    load_model_file,
    load_model_yaml,
    validate_model_data,
)

__all__ = [
    "FlowModel",
    "build_flow_model",
    "load_model_file",
    "load_model_yaml",
    "validate_model_data",
]
