"""Command-line interface for trafficflow."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, List, Optional

import jsonschema

from trafficflow.aggregator import AggregatedMetrics, MetricsAggregator
from trafficflow.config import AGGREGATOR_CONFIG
from trafficflow.dsl.loader import FlowModel, load_model_file
from trafficflow.logging import get_logger, set_global_log_level

logger = get_logger(__name__)


def _format_table(
    headers: List[str],
    rows: List[List[Any]],
    min_width: int = 6,
    max_col_width: Optional[int] = None,
) -> str:
    """Render rows as an indented ASCII table.

    Args:
        headers: Column headers.
        rows: Data rows; cells are converted with ``str``.
        min_width: Minimum column width.
        max_col_width: Cells longer than this are clipped with ``...``.

    Returns:
        Table text, or an empty string when there are no rows.
    """
    if not rows:
        return ""

    def clip(value: Any) -> str:
        text = str(value)
        if max_col_width is not None and len(text) > max_col_width:
            return text[: max_col_width - 3] + "..."
        return text

    table = [[clip(h) for h in headers]] + [[clip(c) for c in row] for row in rows]
    widths = [
        max(min_width, max(len(row[col]) for row in table))
        for col in range(len(headers))
    ]

    def render(row: List[str]) -> str:
        return "   " + " | ".join(f"{cell:<{widths[i]}}" for i, cell in enumerate(row))

    lines = [render(table[0]), "   " + "-+-".join("-" * w for w in widths)]
    lines.extend(render(row) for row in table[1:])
    return "\n".join(lines)


def _format_number(value: float) -> str:
    """Up to three decimals with separators; trailing zeros trimmed.

    Examples:
        10.0 -> "10"; 1234.5678 -> "1,234.568"; 0.25 -> "0.25".
    """
    text = f"{float(value):,.3f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def _format_duration(seconds: float) -> str:
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f} ms"
    return f"{seconds:.2f} s"


def _plural(n: int, singular: str, plural: Optional[str] = None) -> str:
    if n == 1:
        return singular
    return plural or (singular + "s")


def _health_label(metrics: Any) -> str:
    return metrics.health_state.value


def _print_snapshot(model: FlowModel, snapshot: AggregatedMetrics) -> None:
    n_nodes = snapshot.total_nodes
    print(
        f"System health: {snapshot.system_health.value.upper()} "
        f"({n_nodes} {_plural(n_nodes, 'node')}, "
        f"{snapshot.iterations} {_plural(snapshot.iterations, 'pass', 'passes')})"
    )
    print(
        _format_table(
            ["Total RPS", "Total errors/s", "Avg latency ms", "Healthy", "Degraded", "Overloaded"],
            [
                [
                    _format_number(snapshot.total_rps),
                    _format_number(snapshot.total_errors),
                    _format_number(snapshot.average_latency),
                    snapshot.healthy_nodes,
                    snapshot.degraded_nodes,
                    snapshot.overloaded_nodes,
                ]
            ],
        )
    )

    node_rows = []
    for node_id, m in snapshot.node_metrics.items():
        node_rows.append(
            [
                node_id,
                model.configs[node_id].kind,
                _format_number(m.incoming_rate),
                _format_number(m.processed_rate),
                _format_number(m.outgoing_rate),
                _format_number(m.err_in),
                _format_number(m.err_out),
                f"{m.utilization:.0%}",
                _format_number(m.average_service_time),
                _health_label(m),
            ]
        )
    print("\nNodes:")
    print(
        _format_table(
            ["Node", "Kind", "In", "Processed", "Out", "err_in", "err_out", "Util", "Latency", "Health"],
            node_rows,
            max_col_width=24,
        )
        or "   (none)"
    )

    edge_rows = []
    for key, flows in snapshot.edge_flows.items():
        edge_rows.append(
            [
                key,
                _format_number(sum(f.rate for f in flows)),
                _format_number(sum(f.error_rate for f in flows)),
                _format_number(max((f.latency for f in flows), default=0.0)),
            ]
        )
    print("\nEdges:")
    print(
        _format_table(["Edge", "Rate", "Errors/s", "Latency"], edge_rows, max_col_width=40)
        or "   (none)"
    )


def _run_model(
    path: Path,
    delta_ms: float,
    results: Optional[Path],
    stdout: bool,
) -> None:
    """Compute one snapshot for a model document and report it.

    Args:
        path: Model document (YAML or JSON).
        delta_ms: Delta time passed to the aggregator.
        results: Optional path for a JSON export of the snapshot.
        stdout: Whether to print the JSON snapshot.
    """
    logger.info(f"Loading model from: {path}")
    started = perf_counter()
    try:
        model = load_model_file(path)
        aggregator = MetricsAggregator()
        aggregator.update_topology(model.topology, model.configs)
        snapshot = aggregator.calculate_metrics(delta_ms)
    except FileNotFoundError:
        logger.error(f"Model file not found: {path}")
        print(f"ERROR: Model file not found: {path}")
        sys.exit(1)
    except (ValueError, jsonschema.ValidationError) as e:
        logger.error(f"Invalid model document: {type(e).__name__}: {e}")
        print(f"ERROR: Invalid model document: {e}")
        sys.exit(1)

    _print_snapshot(model, snapshot)

    if results is not None or stdout:
        json_str = json.dumps(snapshot.to_dict(), indent=2)
        if results is not None:
            results.parent.mkdir(parents=True, exist_ok=True)
            results.write_text(json_str)
            logger.info(f"Results written to: {results}")
            print(f"\nResults written to: {results}")
        if stdout:
            print(json_str)

    logger.info(f"Model run completed in {_format_duration(perf_counter() - started)}")


def _inspect_model(path: Path) -> None:
    """Print node configurations and edges of a model document."""
    try:
        model = load_model_file(path)
    except FileNotFoundError:
        print(f"ERROR: Model file not found: {path}")
        sys.exit(1)
    except (ValueError, jsonschema.ValidationError) as e:
        print(f"ERROR: Invalid model document: {e}")
        sys.exit(1)

    n_nodes = len(model.configs)
    n_edges = model.topology.edge_count
    print(
        f"Model: {path.name} ({n_nodes} {_plural(n_nodes, 'node')}, "
        f"{n_edges} {_plural(n_edges, 'edge')})"
    )
    rows = []
    for node_id, cfg in model.configs.items():
        rows.append(
            [
                node_id,
                cfg.kind,
                _format_number(cfg.effective_capacity_in),
                _format_number(cfg.effective_capacity_out),
                _format_number(cfg.base_latency),
                cfg.routing.policy if cfg.routing else "(default)",
                ", ".join(model.topology.downstream(node_id)) or "-",
            ]
        )
    print(
        _format_table(
            ["Node", "Kind", "cap_in", "cap_out", "base_ms", "Routing", "Downstream"],
            rows,
            max_col_width=32,
        )
        or "   (no nodes)"
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``trafficflow`` command.

    Args:
        argv: Command-line arguments; ``sys.argv[1:]`` when None.
    """
    parser = argparse.ArgumentParser(
        prog="trafficflow",
        description="Compute steady-state traffic flow over a service topology.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--quiet", action="store_true", help="Only log warnings and errors"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        title="Available commands",
        metavar="{run,inspect}",
        help="Available commands",
    )

    run_parser = subparsers.add_parser("run", help="Compute metrics for a model")
    run_parser.add_argument("model", type=Path, help="Path to model YAML/JSON")
    run_parser.add_argument(
        "--delta-ms",
        type=float,
        default=AGGREGATOR_CONFIG.frame_delta_time_ms,
        help="Delta time in milliseconds passed to the engine (default: one 60 fps frame)",
    )
    run_parser.add_argument(
        "--results",
        "-r",
        type=Path,
        default=None,
        help="Write the snapshot as JSON to this path",
    )
    run_parser.add_argument(
        "--stdout", action="store_true", help="Print the JSON snapshot"
    )

    inspect_parser = subparsers.add_parser(
        "inspect", help="Validate a model and show its nodes and edges"
    )
    inspect_parser.add_argument("model", type=Path, help="Path to model YAML/JSON")

    effective_args = sys.argv[1:] if argv is None else argv
    if not effective_args:
        parser.print_help()
        raise SystemExit(0)

    args = parser.parse_args(effective_args)

    if args.verbose:
        set_global_log_level(logging.DEBUG)
        logger.debug("Debug logging enabled")
    elif args.quiet:
        set_global_log_level(logging.WARNING)
    else:
        set_global_log_level(logging.INFO)

    if args.command == "run":
        _run_model(args.model, args.delta_ms, args.results, args.stdout)
    elif args.command == "inspect":
        _inspect_model(args.model)


if __name__ == "__main__":
    main()
