"""Mixed-integer formulation of the single-machine tardiness problem.

Variables
    start[k]          continuous, lower bound release[k]
    pastdue[k]        continuous, lower bound 0
    precedes[j,k]     binary, one per canonical pair j < k

Constraints
    START[k]      start[k] >= release[k]
    FINISH[k]     start[k] + duration[k] <= due[k] + pastdue[k]
    ORDER_A[j,k]  start[j] + duration[j] <= start[k] + M * (1 - precedes[j,k])
    ORDER_B[j,k]  start[k] + duration[k] <= start[j] + M * precedes[j,k]

With precedes[j,k] = 1 ORDER_A is binding and ORDER_B carries slack M; with 0
the roles swap. Constraints are stored with every variable on the left-hand
side, e.g. ORDER_A as ``start[j] - start[k] + M*precedes[j,k] <= M - d_j``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from .expressions import (
    GE,
    LE,
    Constraint,
    Variable,
    pastdue_var,
    precedes_var,
    start_var,
)
from .models import Instance, Job, JobId
from .objectives import Objective, TotalTardiness

Bounds = dict[str, tuple[float, float | None]]


@dataclass(frozen=True)
class Formulation:
    """Variables, named constraints and objective built for one instance."""

    instance: Instance
    objective: Objective
    variables: tuple[Variable, ...]
    constraints: tuple[Constraint, ...]
    objective_coeffs: Mapping[str, float]
    objective_constant: float
    start_vars: Mapping[JobId, str]
    pastdue_vars: Mapping[JobId, str]
    precedes_vars: Mapping[tuple[JobId, JobId], str]

    @property
    def binary_names(self) -> list[str]:
        """``precedes`` variable names in canonical pair order."""
        return list(self.precedes_vars.values())

    def variable(self, name: str) -> Variable:
        for v in self.variables:
            if v.name == name:
                return v
        raise KeyError(name)

    def constraint(self, name: str) -> Constraint:
        for c in self.constraints:
            if c.name == name:
                return c
        raise KeyError(name)

    def bounds(self, fixings: Mapping[str, int] | None = None) -> Bounds:
        """Bounds of the continuous relaxation under ``fixings``.

        Binary variables are relaxed to ``[0, 1]`` unless fixed, in which
        case both bounds equal the fixed value.
        """
        fixings = fixings or {}
        out: Bounds = {}
        for v in self.variables:
            if v.binary:
                if v.name in fixings:
                    value = float(fixings[v.name])
                    out[v.name] = (value, value)
                else:
                    out[v.name] = (0.0, 1.0)
            else:
                out[v.name] = (v.lower, v.upper)
        return out

    def fixings_from_order(self, order: Sequence[JobId]) -> dict[str, int]:
        """Complete ``precedes`` fixing that realizes a job sequence."""
        position = {job_id: i for i, job_id in enumerate(order)}
        if len(position) != len(self.instance) or any(
            job.id not in position for job in self.instance.jobs
        ):
            raise ValueError("Order must contain every job exactly once")
        return {
            name: int(position[j] < position[k]) for (j, k), name in self.precedes_vars.items()
        }

    def evaluate(self, values: Mapping[str, float]) -> float:
        return self.objective_constant + sum(
            coef * values[name] for name, coef in self.objective_coeffs.items()
        )

    def violations(self, values: Mapping[str, float], tolerance: float = 1e-6) -> list[str]:
        """Names (with amounts) of constraints and bounds violated beyond tolerance."""
        problems: list[str] = []
        for v in self.variables:
            x = values[v.name]
            if x < v.lower - tolerance or (v.upper is not None and x > v.upper + tolerance):
                problems.append(f"bound {v.name}={x:g}")
            if v.binary and min(abs(x), abs(x - 1.0)) > tolerance:
                problems.append(f"integrality {v.name}={x:g}")
        for c in self.constraints:
            amount = c.violation(values)
            if amount > tolerance:
                problems.append(f"{c.name} by {amount:g}")
        return problems


def build_formulation(instance: Instance, objective: Objective | None = None) -> Formulation:
    """Translate an instance into the disjunctive Big-M program.

    Args:
        instance: Validated instance; its job order is the canonical order.
        objective: Cost function, ``TotalTardiness`` when omitted.

    Returns:
        Formulation with variables in the order start, pastdue, precedes,
        auxiliary, and constraints in the order START, FINISH, ORDER_A,
        ORDER_B, auxiliary.
    """
    if objective is None:
        objective = TotalTardiness()
    big_m = instance.big_m

    start_vars = {job.id: start_var(job) for job in instance.jobs}
    pastdue_vars = {job.id: pastdue_var(job) for job in instance.jobs}
    precedes_vars = {(j.id, k.id): precedes_var(j, k) for j, k in instance.pairs()}

    variables: list[Variable] = []
    variables += [Variable(start_vars[job.id], lower=job.release) for job in instance.jobs]
    variables += [Variable(pastdue_vars[job.id], lower=0.0) for job in instance.jobs]
    variables += [Variable(name, 0.0, 1.0, binary=True) for name in precedes_vars.values()]

    constraints: list[Constraint] = []
    for job in instance.jobs:
        constraints.append(
            Constraint(f"START[{job.id}]", {start_vars[job.id]: 1.0}, GE, job.release)
        )
    for job in instance.jobs:
        constraints.append(
            Constraint(
                f"FINISH[{job.id}]",
                {start_vars[job.id]: 1.0, pastdue_vars[job.id]: -1.0},
                LE,
                job.due - job.duration,
            )
        )
    constraints += [_order_a(j, k, big_m, precedes_vars) for j, k in instance.pairs()]
    constraints += [_order_b(j, k, big_m, precedes_vars) for j, k in instance.pairs()]

    known = {v.name for v in variables}
    for v in objective.auxiliary_variables(instance):
        if v.name in known:
            raise ValueError(f"Objective variable {v.name} clashes with the formulation")
        variables.append(v)
        known.add(v.name)
    constraints += objective.auxiliary_constraints(instance)

    coeffs = objective.expression(instance)
    unknown = [name for name in coeffs if name not in known]
    if unknown:
        raise ValueError(f"Objective refers to unknown variables: {unknown}")

    return Formulation(
        instance=instance,
        objective=objective,
        variables=tuple(variables),
        constraints=tuple(constraints),
        objective_coeffs=dict(coeffs),
        objective_constant=float(objective.constant(instance)),
        start_vars=start_vars,
        pastdue_vars=pastdue_vars,
        precedes_vars=precedes_vars,
    )


def _order_a(j: Job, k: Job, big_m: float, names: Mapping) -> Constraint:
    return Constraint(
        f"ORDER_A[{j.id},{k.id}]",
        {start_var(j): 1.0, start_var(k): -1.0, names[(j.id, k.id)]: big_m},
        LE,
        big_m - j.duration,
    )


def _order_b(j: Job, k: Job, big_m: float, names: Mapping) -> Constraint:
    return Constraint(
        f"ORDER_B[{j.id},{k.id}]",
        {start_var(k): 1.0, start_var(j): -1.0, names[(j.id, k.id)]: -big_m},
        LE,
        -k.duration,
    )
