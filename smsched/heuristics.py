"""Dispatch-rule orders used to seed the search with an incumbent.

A job order is decoded into a semi-active timing: each job starts as soon as
both the machine is free and the job is released. For regular objectives
(non-decreasing in completion times) the best timing of a fixed order is the
semi-active one, so the decoded value is exact for that order.
"""

from __future__ import annotations

from typing import Callable, Sequence

from .models import Instance, Job, JobId
from .objectives import Objective, TotalTardiness


def semi_active_starts(instance: Instance, order: Sequence[JobId]) -> dict[JobId, float]:
    """Decode an order into earliest start times.

    Raises:
        ValueError: If ``order`` is not a permutation of the job ids.
    """
    if len(order) != len(instance) or set(order) != {job.id for job in instance.jobs}:
        raise ValueError("Order must contain every job exactly once")
    starts: dict[JobId, float] = {}
    machine_free = 0.0
    for job_id in order:
        job = instance.job(job_id)
        start = max(machine_free, job.release)
        starts[job_id] = start
        machine_free = start + job.duration
    return starts


def _static_order(instance: Instance, key: Callable[[Job], tuple]) -> list[JobId]:
    ranked = sorted(
        enumerate(instance.jobs), key=lambda item: key(item[1]) + (item[0],)
    )  # canonical index breaks ties
    return [job.id for _, job in ranked]


def edd_order(instance: Instance) -> list[JobId]:
    """Earliest due date (ties: release, canonical order)."""
    return _static_order(instance, lambda j: (j.due, j.release))


def erd_order(instance: Instance) -> list[JobId]:
    """Earliest release date (ties: due, canonical order)."""
    return _static_order(instance, lambda j: (j.release, j.due))


def spt_order(instance: Instance) -> list[JobId]:
    """Shortest processing time (ties: due, canonical order)."""
    return _static_order(instance, lambda j: (j.duration, j.due))


def mdd_order(instance: Instance) -> list[JobId]:
    """Modified due date list scheduling.

    Whenever the machine becomes free, among the released jobs pick the one
    minimizing ``max(due, t + duration)``; if nothing is released, jump to
    the next release time.
    """
    remaining = list(enumerate(instance.jobs))
    order: list[JobId] = []
    t = 0.0
    while remaining:
        released = [(i, job) for i, job in remaining if job.release <= t]
        if not released:
            t = min(job.release for _, job in remaining)
            continue
        _, (idx, chosen) = min(
            ((max(job.due, t + job.duration), i), (i, job)) for i, job in released
        )
        order.append(chosen.id)
        remaining = [(i, job) for i, job in remaining if i != idx]
        t = max(t, chosen.release) + chosen.duration
    return order


DISPATCH_RULES: dict[str, Callable[[Instance], list[JobId]]] = {
    "mdd": mdd_order,
    "edd": edd_order,
    "erd": erd_order,
    "spt": spt_order,
}


def best_dispatch_order(
    instance: Instance,
    objective: Objective | None = None,
    rules: Sequence[str] | None = None,
) -> tuple[list[JobId], float, str]:
    """Evaluate every dispatch rule and keep the best order.

    Returns:
        ``(order, value, rule_name)``; ties keep the first rule in ``rules``.
    """
    if objective is None:
        objective = TotalTardiness()
    best: tuple[list[JobId], float, str] | None = None
    for name in rules or DISPATCH_RULES:
        rule = DISPATCH_RULES.get(name)
        if rule is None:
            raise ValueError(f"Unknown dispatch rule: {name}")
        order = rule(instance)
        value = objective.evaluate(instance, semi_active_starts(instance, order))
        if best is None or value < best[1]:
            best = (order, value, name)
    assert best is not None
    return best
