"""Pluggable linear objectives.

An objective contributes an expression over the formulation variables (plus
an optional constant) and may declare auxiliary variables and constraints of
its own. The disjunctive constraint system is never touched, so swapping the
objective swaps the cost function only.

Objectives that do not price ``pastdue`` (e.g. weighted completion) leave the
relaxation free to over-state it; the extractor always recomputes
``max(0, finish - due)`` for reporting.
"""

from __future__ import annotations

from typing import Mapping

from .expressions import GE, Constraint, Variable, pastdue_var, start_var
from .models import Instance, JobId


class Objective:
    """Base class: minimize ``sum(expression) + constant``."""

    name = "objective"
    prices_pastdue = True

    def expression(self, instance: Instance) -> dict[str, float]:
        raise NotImplementedError

    def constant(self, instance: Instance) -> float:
        return 0.0

    def auxiliary_variables(self, instance: Instance) -> list[Variable]:
        return []

    def auxiliary_constraints(self, instance: Instance) -> list[Constraint]:
        return []

    def evaluate(self, instance: Instance, starts: Mapping[JobId, float]) -> float:
        """Objective value of a timing given as ``job id -> start``."""
        raise NotImplementedError

    @property
    def integral(self) -> bool:
        """True when integral data always yields an integral objective value."""
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _pastdue(instance: Instance, starts: Mapping[JobId, float]) -> dict[JobId, float]:
    return {
        job.id: max(0.0, starts[job.id] + job.duration - job.due) for job in instance.jobs
    }


class TotalTardiness(Objective):
    """Sum of pastdue over all jobs."""

    name = "total_tardiness"

    def expression(self, instance: Instance) -> dict[str, float]:
        return {pastdue_var(job): 1.0 for job in instance.jobs}

    def evaluate(self, instance: Instance, starts: Mapping[JobId, float]) -> float:
        return sum(_pastdue(instance, starts).values())


class _Weighted(Objective):
    def __init__(self, weights: Mapping[JobId, float] | None = None):
        self.weights = dict(weights or {})
        for job_id, w in self.weights.items():
            if w < 0:
                raise ValueError(f"Negative weight for job {job_id!r}: {w}")

    def weight(self, instance: Instance, job_id: JobId) -> float:
        return float(self.weights.get(job_id, 1.0))

    def _check_ids(self, instance: Instance) -> None:
        for job_id in self.weights:
            try:
                instance.index_of(job_id)
            except KeyError:
                raise ValueError(f"Weight given for unknown job {job_id!r}") from None

    @property
    def integral(self) -> bool:
        return all(float(w).is_integer() for w in self.weights.values())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(weights={self.weights!r})"


class WeightedTardiness(_Weighted):
    """``sum(w_k * pastdue[k])``; missing weights default to 1."""

    name = "weighted_tardiness"

    def expression(self, instance: Instance) -> dict[str, float]:
        self._check_ids(instance)
        return {pastdue_var(job): self.weight(instance, job.id) for job in instance.jobs}

    def evaluate(self, instance: Instance, starts: Mapping[JobId, float]) -> float:
        pastdue = _pastdue(instance, starts)
        return sum(self.weight(instance, job_id) * p for job_id, p in pastdue.items())


class WeightedCompletion(_Weighted):
    """``sum(w_k * finish[k])``; pastdue is not priced."""

    name = "weighted_completion"
    prices_pastdue = False

    def expression(self, instance: Instance) -> dict[str, float]:
        self._check_ids(instance)
        return {start_var(job): self.weight(instance, job.id) for job in instance.jobs}

    def constant(self, instance: Instance) -> float:
        return sum(self.weight(instance, job.id) * job.duration for job in instance.jobs)

    def evaluate(self, instance: Instance, starts: Mapping[JobId, float]) -> float:
        return sum(
            self.weight(instance, job.id) * (starts[job.id] + job.duration)
            for job in instance.jobs
        )


class MaxTardiness(Objective):
    """Largest pastdue, via an auxiliary ``tmax >= pastdue[k]``."""

    name = "max_tardiness"
    TMAX = "tmax"

    def expression(self, instance: Instance) -> dict[str, float]:
        return {self.TMAX: 1.0}

    def auxiliary_variables(self, instance: Instance) -> list[Variable]:
        return [Variable(self.TMAX, lower=0.0)]

    def auxiliary_constraints(self, instance: Instance) -> list[Constraint]:
        return [
            Constraint(f"TMAX[{job.id}]", {self.TMAX: 1.0, pastdue_var(job): -1.0}, GE, 0.0)
            for job in instance.jobs
        ]

    def evaluate(self, instance: Instance, starts: Mapping[JobId, float]) -> float:
        return max(_pastdue(instance, starts).values(), default=0.0)


OBJECTIVES = {
    TotalTardiness.name: TotalTardiness,
    WeightedTardiness.name: WeightedTardiness,
    WeightedCompletion.name: WeightedCompletion,
    MaxTardiness.name: MaxTardiness,
}


def make_objective(name: str = "total_tardiness", weights: Mapping | None = None) -> Objective:
    """Resolve an objective from its configuration name."""
    cls = OBJECTIVES.get(name)
    if cls is None:
        raise ValueError(f"Unknown objective: {name} (choose from {', '.join(OBJECTIVES)})")
    if issubclass(cls, _Weighted):
        return cls(weights)
    if weights:
        raise ValueError(f"Objective {name} does not accept weights")
    return cls()
