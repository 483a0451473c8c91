from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

import main
from smsched.models import Schedule, ScheduleRow
from smsched.report import (
    format_schedule_table,
    results_payload,
    schedule_records,
    write_results_json,
)
from smsched.solver import solve

ROOT = Path(__file__).resolve().parents[1]


def _config(tmp_path: Path, **overrides) -> dict:
    config = {
        "instance": str(ROOT / "data" / "two_identical.yaml"),
        "objective": "total_tardiness",
        "oracle": "highs",
        "search": {"strategy": "best_bound", "time_limit_ms": 10000},
        "charts": {"dir": str(tmp_path / "charts"), "gantt": True, "progress": True},
    }
    config.update(overrides)
    return config


def test_run_writes_json_and_charts(tmp_path, capsys) -> None:
    solution = main.run(_config(tmp_path))
    assert solution.objective == 5
    out = capsys.readouterr().out
    assert "objective = 5" in out
    assert "status=optimal" in out

    charts = tmp_path / "charts"
    results = list(charts.glob("results_two_identical_*.json"))
    assert len(results) == 1
    payload = json.loads(results[0].read_text(encoding="utf-8"))
    assert payload["objective"] == 5
    assert payload["proven_optimal"] is True
    assert payload["search"]["status"] == "optimal"
    assert [row["job"] for row in payload["schedule"]] == solution.schedule.order
    assert len(list(charts.glob("gantt_two_identical_obj5_*.png"))) == 1
    assert len(list(charts.glob("progress_two_identical_*.png"))) == 1


def test_run_with_generator_and_no_charts(tmp_path) -> None:
    config = _config(tmp_path, generator={"enabled": True, "n": 4, "seed": 7})
    config["charts"] = {}
    solution = main.run(config)
    assert len(solution.instance) == 4
    assert solution.proven_optimal
    assert not (tmp_path / "charts").exists()


def test_build_instance_errors(tmp_path) -> None:
    with pytest.raises(ValueError):
        main.build_instance({})
    with pytest.raises(ValueError):
        main.build_instance({"generator": {"enabled": True}})


def test_load_config_yaml_and_json(tmp_path) -> None:
    yaml_cfg = tmp_path / "cfg.yaml"
    yaml_cfg.write_text("instance: data/seven_jobs.txt\nsearch:\n  workers: 2\n", encoding="utf-8")
    assert main.load_config(str(yaml_cfg))["search"] == {"workers": 2}
    json_cfg = tmp_path / "cfg.json"
    json_cfg.write_text(json.dumps({"objective": "max_tardiness"}), encoding="utf-8")
    assert main.load_config(str(json_cfg)) == {"objective": "max_tardiness"}
    with pytest.raises(FileNotFoundError):
        main.load_config(str(tmp_path / "missing.yaml"))
    bad = tmp_path / "bad.yaml"
    bad.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        main.load_config(str(bad))


def test_main_entry_point(tmp_path, monkeypatch) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        f"instance: {ROOT / 'data' / 'seven_jobs.txt'}\n"
        "search:\n  node_limit: 5\n"
        "log_level: WARNING\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    assert main.main(["--config", str(cfg)]) == 0


def test_schedule_table_format() -> None:
    rows = [ScheduleRow("E", 0, 2, 5, 0, 2, 0), ScheduleRow("D", 0, 4, 5, 2, 6, 1.5)]
    table = format_schedule_table(Schedule(rows=rows, objective=1.5))
    lines = table.splitlines()
    assert lines[0].split() == ["job", "release", "duration", "due", "start", "finish", "pastdue"]
    assert lines[3].split() == ["D", "0", "4", "5", "2", "6", "1.5"]
    assert lines[-1] == "objective = 1.5"


def test_results_payload_without_charts(two_identical) -> None:
    solution = solve(two_identical)
    payload = results_payload(solution, "inline")
    assert payload["instance"] == "inline"
    assert payload["jobs"] == 2
    assert payload["big_m"] == 10
    assert "values" not in payload["search"]
    assert payload["schedule"] == [
        {k: (str(v) if k == "job" else v) for k, v in rec.items()}
        for rec in schedule_records(solution.schedule)
    ]
    json.dumps(payload)


def test_payload_is_valid_json_when_stopped_before_root(two_identical, tmp_path) -> None:
    cancel = threading.Event()
    cancel.set()
    solution = solve(two_identical, cancel=cancel)
    assert solution.search.lower_bound == float("-inf")
    payload = results_payload(solution)
    assert payload["search"]["lower_bound"] is None
    assert payload["search"]["root_bound"] is None
    assert payload["search"]["gap"] is None
    assert payload["objective"] == 5
    path = write_results_json(str(tmp_path / "results.json"), payload)
    loaded = json.loads(Path(path).read_text(encoding="utf-8"))
    assert loaded["search"]["status"] == "cancelled"
