from __future__ import annotations

import json
from pathlib import Path

import pytest

from scripts import reconcile_telemetry
from tests.recon.telemetry_helpers import consistent_inputs

NOW = "2023-01-03T15:00:00Z"


def _write_inputs(tmp_path: Path, **overrides) -> dict[str, Path]:
    raw_v2, pings, current = consistent_inputs(**overrides)
    v2_path = tmp_path / "v2.json"
    v2_path.write_text(json.dumps(raw_v2), encoding="utf-8")
    archive = tmp_path / "archived"
    archive.mkdir()
    for ping in pings:
        (archive / f"{ping['id']}.json").write_text(json.dumps(ping), encoding="utf-8")
    current_path = tmp_path / "current.json"
    current_path.write_text(json.dumps(current), encoding="utf-8")
    return {"v2": v2_path, "pings": archive, "current": current_path}


def _argv(paths: dict[str, Path], data_root: Path, *extra: str) -> list[str]:
    return [
        "--v2-payload",
        str(paths["v2"]),
        "--pings",
        str(paths["pings"]),
        "--current-ping",
        str(paths["current"]),
        "--now",
        NOW,
        "--data-root",
        str(data_root),
        *extra,
    ]


def test_script_writes_report(tmp_path, capsys):
    paths = _write_inputs(tmp_path)

    exit_code = reconcile_telemetry.main(_argv(paths, tmp_path / "data", "--run-id", "recon_test"))

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["run_id"] == "recon_test"
    assert summary["is_broken"] is False
    report_path = tmp_path / "data" / "reports" / "recon_test" / "report.json"
    assert Path(summary["paths"]["report"]) == report_path
    assert json.loads(report_path.read_text(encoding="utf-8"))["matchup"]["matched_count"] == 3


def test_run_id_is_derived_from_inputs(tmp_path, capsys):
    paths = _write_inputs(tmp_path)

    assert reconcile_telemetry.main(_argv(paths, tmp_path / "data")) == 0
    first = json.loads(capsys.readouterr().out)["run_id"]
    assert reconcile_telemetry.main(_argv(paths, tmp_path / "data")) == 0
    second = json.loads(capsys.readouterr().out)["run_id"]

    assert first == second
    assert first.startswith("recon_")


def test_default_output_honours_data_root_env(tmp_path, monkeypatch, capsys):
    paths = _write_inputs(tmp_path)
    monkeypatch.setenv("RECON_DATA_ROOT", str(tmp_path / "env-root"))
    argv = _argv(paths, tmp_path)[:-2] + ["--run-id", "env_run"]

    assert reconcile_telemetry.main(argv) == 0

    capsys.readouterr()
    assert (tmp_path / "env-root" / "reports" / "env_run" / "report.json").exists()


def test_strict_mode_fails_broken_report(tmp_path, capsys):
    paths = _write_inputs(tmp_path, jan1_google=5)

    assert reconcile_telemetry.main(_argv(paths, tmp_path / "data", "--run-id", "lenient")) == 0
    exit_code = reconcile_telemetry.main(_argv(paths, tmp_path / "data", "--run-id", "strict", "--strict"))

    captured = capsys.readouterr()
    assert exit_code == 3
    assert "search_count_mismatch[google]" in captured.err


def test_cutoff_override(tmp_path, capsys):
    paths = _write_inputs(tmp_path)

    exit_code = reconcile_telemetry.main(
        _argv(paths, tmp_path / "data", "--run-id", "cut", "--cutoff", "2023-01-02", "--extended")
    )

    assert exit_code == 0
    capsys.readouterr()
    report = json.loads((tmp_path / "data" / "reports" / "cut" / "report.json").read_text(encoding="utf-8"))
    assert report["cutoff"]["cutoff"] == "2023-01-02T00:00:00+00:00"
    assert report["config"]["cutoff"]["mode"] == "fixed"
    assert report["config"]["tolerances"]["include_extended"] is True
    assert "2023-01-01" not in report["matchup"]["sessions"]


@pytest.mark.parametrize("missing", ["v2", "pings", "config"])
def test_missing_inputs_exit_with_code_2(tmp_path, capsys, missing):
    paths = _write_inputs(tmp_path)
    argv = _argv(paths, tmp_path / "data")
    if missing == "config":
        argv += ["--config", str(tmp_path / "absent.yaml")]
    else:
        argv[argv.index(str(paths[missing]))] = str(tmp_path / "absent")

    assert reconcile_telemetry.main(argv) == 2
    assert "Reconciliation failed" in capsys.readouterr().err


def test_empty_archive_exits_with_code_2(tmp_path, capsys):
    paths = _write_inputs(tmp_path)
    for ping_file in paths["pings"].iterdir():
        ping_file.unlink()
    argv = _argv(paths, tmp_path / "data")
    current_index = argv.index("--current-ping")
    del argv[current_index : current_index + 2]

    assert reconcile_telemetry.main(argv) == 2
    assert "No V4 data" in capsys.readouterr().err
