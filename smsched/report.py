"""Text table and JSON payload for a finished solve."""

from __future__ import annotations

import json
import math
import os
from datetime import datetime
from typing import Any

from .models import Schedule
from .solver import Solution

COLUMNS = ("job", "release", "duration", "due", "start", "finish", "pastdue")


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def schedule_records(schedule: Schedule) -> list[dict[str, Any]]:
    """Ordered ``(job, release, duration, due, start, finish, pastdue)`` records."""
    return [{col: getattr(row, col) for col in COLUMNS} for row in schedule.rows]


def format_schedule_table(schedule: Schedule) -> str:
    """Fixed-width table of the schedule followed by the objective line."""
    cells = [[_fmt(rec[col]) for col in COLUMNS] for rec in schedule_records(schedule)]
    widths = [
        max([len(col)] + [len(row[i]) for row in cells]) for i, col in enumerate(COLUMNS)
    ]
    lines = ["  ".join(col.rjust(w) for col, w in zip(COLUMNS, widths))]
    lines.append("  ".join("-" * w for w in widths))
    for row in cells:
        lines.append("  ".join(cell.rjust(w) for cell, w in zip(row, widths)))
    lines.append(f"objective = {_fmt(schedule.objective)}")
    return "\n".join(lines)


def _json_number(value: Any) -> Any:
    """Non-finite floats (unknown bounds) become None so the payload stays valid JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def results_payload(solution: Solution, instance_path: str | None = None) -> dict[str, Any]:
    search = solution.search
    payload: dict[str, Any] = {
        "instance": instance_path,
        "timestamp": datetime.now().strftime("%Y%m%d_%H%M%S"),
        "objective_function": solution.formulation.objective.name,
        "jobs": len(solution.instance),
        "big_m": solution.instance.big_m,
        "objective": solution.objective,
        "proven_optimal": solution.proven_optimal,
        "search": {k: _json_number(v) for k, v in search.to_dict().items() if k != "values"},
        "schedule": None,
    }
    if solution.schedule is not None:
        payload["schedule"] = [
            {k: (str(v) if k == "job" else v) for k, v in rec.items()}
            for rec in schedule_records(solution.schedule)
        ]
    return payload


def write_results_json(path: str, payload: dict[str, Any]) -> str:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, allow_nan=False)
    return path
