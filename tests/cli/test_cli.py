import json
import logging
from pathlib import Path

import pytest

from trafficflow import cli

EXAMPLES = Path(__file__).resolve().parents[2] / "examples"


def test_run_prints_summary_and_tables(capsys) -> None:
    cli.main(["run", str(EXAMPLES / "three_tier.yaml")])
    out = capsys.readouterr().out
    assert "System health:" in out
    assert "(7 nodes, 5 passes)" in out
    assert "Nodes:" in out
    assert "Edges:" in out
    assert "api-1" in out
    assert "edge->lb" in out


def test_run_writes_results(tmp_path: Path, capsys) -> None:
    out_file = tmp_path / "nested" / "res.json"
    cli.main(["run", str(EXAMPLES / "cyclic_retry.yaml"), "--results", str(out_file)])
    assert out_file.is_file()
    data = json.loads(out_file.read_text())
    assert data["iterations"] == 5
    assert set(data["node_metrics"]) == {"producer", "worker", "retry", "done"}
    assert "worker->retry" in data["edge_flows"]
    assert f"Results written to: {out_file}" in capsys.readouterr().out


def test_run_stdout_json(capsys) -> None:
    cli.main(["run", str(EXAMPLES / "cyclic_retry.yaml"), "--stdout", "--delta-ms", "1000"])
    out = capsys.readouterr().out
    data, _ = json.JSONDecoder().raw_decode(out[out.index("\n{") + 1 :])
    assert data["node_metrics"]["producer"]["processed_rate"] == pytest.approx(40.0)


def test_run_missing_file(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["run", str(tmp_path / "nope.yaml")])
    assert exc_info.value.code == 1
    assert "ERROR: Model file not found" in capsys.readouterr().out


def test_run_invalid_document(tmp_path: Path, capsys) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("nodes: [{id: a}, {id: a}]\n")
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["run", str(path)])
    assert exc_info.value.code == 1
    assert "ERROR: Invalid model document" in capsys.readouterr().out


def test_run_schema_violation(tmp_path: Path, capsys) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("nodes: [{id: a, p_fail: 3}]\n")
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["inspect", str(path)])
    assert exc_info.value.code == 1
    assert "ERROR: Invalid model document" in capsys.readouterr().out


def test_inspect(capsys) -> None:
    cli.main(["inspect", str(EXAMPLES / "cyclic_retry.yaml")])
    out = capsys.readouterr().out
    assert "Model: cyclic_retry.yaml (4 nodes, 4 edges)" in out
    assert "weighted" in out
    assert "(default)" in out
    assert "retry, done" in out


def test_no_arguments_prints_help(capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])
    assert exc_info.value.code == 0
    assert "usage: trafficflow" in capsys.readouterr().out


@pytest.mark.parametrize(
    "flag, level", [("--verbose", logging.DEBUG), ("--quiet", logging.WARNING), (None, logging.INFO)]
)
def test_log_level_flags(flag, level, capsys) -> None:
    argv = [flag] if flag else []
    cli.main(argv + ["inspect", str(EXAMPLES / "three_tier.yaml")])
    assert logging.getLogger("trafficflow").level == level
    logging.getLogger("trafficflow").setLevel(logging.INFO)


class TestHelpers:
    def test_format_table(self) -> None:
        table = cli._format_table(["A", "Long header"], [["x", 1], ["yy", 22]])
        lines = table.splitlines()
        assert lines[0].startswith("   A")
        assert "Long header" in lines[0]
        assert set(lines[1].strip()) <= {"-", "+"}
        assert len(lines) == 4

    def test_format_table_empty(self) -> None:
        assert cli._format_table(["A"], []) == ""

    def test_format_table_clips(self) -> None:
        table = cli._format_table(["A"], [["abcdefghij"]], max_col_width=8)
        assert "abcde..." in table

    @pytest.mark.parametrize(
        "value, text", [(10.0, "10"), (1234.5678, "1,234.568"), (0.25, "0.25"), (0, "0")]
    )
    def test_format_number(self, value, text) -> None:
        assert cli._format_number(value) == text

    def test_format_duration(self) -> None:
        assert cli._format_duration(0.0123) == "12.3 ms"
        assert cli._format_duration(2.5) == "2.50 s"

    def test_plural(self) -> None:
        assert cli._plural(1, "node") == "node"
        assert cli._plural(2, "node") == "nodes"
        assert cli._plural(0, "pass", "passes") == "passes"
