"""Turn the incumbent assignment into a validated, human-facing schedule.

The checks here are independent of the search's own bookkeeping: every
invariant is recomputed from the raw start / pastdue / precedes values, so
numerical drift in the relaxation backend surfaces as ``InfeasibleSchedule``
instead of a silently wrong report.
"""

from __future__ import annotations

from typing import Mapping

from .exceptions import InfeasibleSchedule
from .formulation import Formulation
from .models import Schedule, ScheduleRow


def _snap(value: float, tolerance: float) -> float:
    nearest = round(value)
    if abs(value - nearest) <= tolerance:
        return float(nearest)
    return value


def extract_schedule(
    formulation: Formulation,
    values: Mapping[str, float],
    tolerance: float = 1e-6,
    expected_objective: float | None = None,
) -> Schedule:
    """Build the schedule and re-check every invariant.

    Args:
        formulation: Formulation the values belong to.
        values: Complete variable assignment (the search incumbent).
        tolerance: Absolute numeric tolerance for every check.
        expected_objective: When given, the recomputed objective must match
            it within tolerance (scaled by the number of jobs).

    Returns:
        Schedule with rows sorted by start time (canonical order on ties)
        and pastdue recomputed as ``max(0, finish - due)``.

    Raises:
        InfeasibleSchedule: On any violation beyond ``tolerance``.
    """
    instance = formulation.instance
    snap = instance.is_integral
    problems: list[str] = []

    missing = [
        name
        for name in list(formulation.start_vars.values())
        + list(formulation.pastdue_vars.values())
        + formulation.binary_names
        if name not in values
    ]
    if missing:
        raise InfeasibleSchedule([f"missing value for {name}" for name in missing])

    starts: dict = {}
    rows: list[tuple[int, ScheduleRow]] = []
    for idx, job in enumerate(instance.jobs):
        start = float(values[formulation.start_vars[job.id]])
        if snap:
            start = _snap(start, tolerance)
        reported_pastdue = float(values[formulation.pastdue_vars[job.id]])
        finish = start + job.duration
        if start < job.release - tolerance:
            problems.append(f"job {job.id!r} starts at {start:g} before release {job.release:g}")
        if reported_pastdue < -tolerance:
            problems.append(f"job {job.id!r} has negative pastdue {reported_pastdue:g}")
        if finish > job.due + reported_pastdue + tolerance:
            problems.append(
                f"job {job.id!r} finishes at {finish:g} beyond due {job.due:g} "
                f"+ pastdue {reported_pastdue:g}"
            )
        starts[job.id] = start
        rows.append(
            (
                idx,
                ScheduleRow(
                    job=job.id,
                    release=job.release,
                    duration=job.duration,
                    due=job.due,
                    start=start,
                    finish=finish,
                    pastdue=max(0.0, finish - job.due),
                ),
            )
        )

    by_id = {row.job: row for _, row in rows}
    for (j, k), name in formulation.precedes_vars.items():
        flag = values[name]
        if min(abs(flag), abs(flag - 1.0)) > tolerance:
            problems.append(f"{name} is fractional ({flag:g})")
            continue
        first, second = (by_id[j], by_id[k]) if flag > 0.5 else (by_id[k], by_id[j])
        if first.finish > second.start + tolerance:
            problems.append(
                f"{name}={int(round(flag))} but job {first.job!r} finishes at {first.finish:g} "
                f"after job {second.job!r} starts at {second.start:g}"
            )

    rows.sort(key=lambda item: (item[1].start, item[0]))
    ordered = [row for _, row in rows]
    for prev, nxt in zip(ordered, ordered[1:]):
        if nxt.start < prev.finish - tolerance:
            problems.append(
                f"jobs {prev.job!r} and {nxt.job!r} overlap "
                f"({prev.start:g}-{prev.finish:g} vs {nxt.start:g}-{nxt.finish:g})"
            )

    objective = formulation.objective.evaluate(instance, starts)
    if expected_objective is not None:
        allowed = tolerance * max(1.0, abs(expected_objective)) * max(1, len(instance))
        if abs(objective - expected_objective) > allowed:
            problems.append(
                f"objective {objective:g} differs from search objective {expected_objective:g}"
            )

    if problems:
        raise InfeasibleSchedule(problems)
    return Schedule(rows=ordered, objective=objective)


def check_no_overlap(schedule: Schedule, tolerance: float = 0.0) -> bool:
    """Ensure consecutive rows of a schedule do not overlap.

    Raises:
        AssertionError: On the first detected overlap.
    """
    rows = sorted(schedule.rows, key=lambda r: r.start)
    prev_finish = float("-inf")
    prev_job = None
    for r in rows:
        if r.start < prev_finish - tolerance:
            raise AssertionError(
                f"Overlap between job {prev_job!r} (ends {prev_finish}) and job {r.job!r} "
                f"(starts {r.start})"
            )
        prev_finish = r.finish
        prev_job = r.job
    return True
