import json
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'src'))

from vbreplay import cli  # noqa: E402


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_simulate_then_replay(tmp_path, capsys):
    log = tmp_path / "sim.csv"
    summary_path = tmp_path / "summary.json"

    assert cli.main(["simulate", str(log), "--frames", "15", "--trajectory", "linear", "--seed", "4"]) == 0
    assert cli.main(["replay", str(log), "--quiet", "--summary-json", str(summary_path)]) == 0

    out = capsys.readouterr().out
    assert "rows: 15" in out
    assert "Summary" in out
    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert set(summary) == {"full", "ransac"}
    assert summary["ransac"]["frames_with_pose"] == 15


def test_replay_single_strategy_prints_frames(tmp_path, capsys):
    log = tmp_path / "sim.csv"
    cli.main(["simulate", str(log), "--frames", "3"])

    assert cli.main(["replay", str(log), "--strategy", "ransac"]) == 0

    out = capsys.readouterr().out
    assert out.count("Row ") == 3
    assert "full:" not in out


def test_replay_of_empty_log_is_not_an_error(tmp_path, capsys):
    log = tmp_path / "empty.csv"
    log.write_text("refx,refy\n", encoding="utf-8")

    assert cli.main(["replay", str(log)]) == 0
    assert "Nothing to replay" in capsys.readouterr().out


def test_optimize_prints_parameters(tmp_path, capsys):
    log = tmp_path / "sim.csv"
    cli.main(["simulate", str(log), "--frames", "3"])

    assert cli.main(["optimize", str(log)]) == 0

    out = capsys.readouterr().out
    assert "objective: 0.0" in out
    assert "positional_noise:" in out
    assert "measurement_variance_scale:" in out


def test_invalid_arguments_return_2(tmp_path, capsys):
    out = str(tmp_path / "x.csv")

    assert cli.main(["simulate", out, "--frames", "0"]) == 2
    assert cli.main(["simulate", out, "--frames", "5", "--trajectory", "zigzag"]) == 2
    assert cli.main(["simulate", out, "--frames", "5", "--outlier-rate", "1.5"]) == 2
    assert cli.main(["optimize", out, "--max-evaluations", "0"]) == 2
    assert cli.main(["replay", out, "--strategy", "kalman"]) == 2
    assert "error:" in capsys.readouterr().err


def test_bad_config_file_returns_2(tmp_path):
    log = tmp_path / "sim.csv"
    cli.main(["simulate", str(log), "--frames", "3"])
    config = tmp_path / "tracker.json"
    config.write_text('{"not_a_field": 1}', encoding="utf-8")

    assert cli.main(["replay", str(log), "--config", str(config)]) == 2


def test_replay_tolerates_rows_without_reference_pose(tmp_path, capsys):
    log = tmp_path / "sim.csv"
    cli.main(["simulate", str(log), "--frames", "3"])
    lines = log.read_text(encoding="utf-8").splitlines()
    fields = lines[2].split(",")
    fields[0:7] = ["0"] * 7
    lines[2] = ",".join(fields)
    log.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert cli.main(["replay", str(log), "--quiet"]) == 0
    assert "frames without reference rotation: 1" in capsys.readouterr().out
