"""Relaxation oracle: continuous LP solves consumed by the search as a black box.

Contract
--------
``solve_relaxation(variable_bounds, constraints, objective, objective_constant)``
returns a :class:`RelaxationResult` whose status is ``optimal`` (with the
objective value and every variable value) or ``infeasible``. Anything else the
backend reports (unbounded, iteration/time limit, numerical trouble) raises
:class:`RelaxationFailure`.

Two backends are provided:
    ScipyRelaxationOracle -- ``scipy.optimize.linprog`` with HiGHS (in process).
    PulpRelaxationOracle  -- PuLP model solved by the bundled CBC binary.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np
import pulp
from scipy.optimize import linprog

from .exceptions import RelaxationFailure
from .expressions import EQ, GE, LE, Constraint

logger = logging.getLogger("smsched.relaxation")

OPTIMAL = "optimal"
INFEASIBLE = "infeasible"


@dataclass(frozen=True)
class RelaxationResult:
    status: str
    objective: float | None = None
    values: dict[str, float] = field(default_factory=dict)

    @property
    def feasible(self) -> bool:
        return self.status == OPTIMAL


class RelaxationOracle:
    """Interface of every LP backend."""

    name = "oracle"

    def solve_relaxation(
        self,
        variable_bounds: Mapping[str, tuple[float, float | None]],
        constraints: Sequence[Constraint],
        objective: Mapping[str, float],
        objective_constant: float = 0.0,
    ) -> RelaxationResult:
        raise NotImplementedError


@dataclass
class _Compiled:
    a_ub: np.ndarray | None
    b_ub: np.ndarray | None
    a_eq: np.ndarray | None
    b_eq: np.ndarray | None


class ScipyRelaxationOracle(RelaxationOracle):
    """HiGHS through ``scipy.optimize.linprog``.

    Constraint matrices depend only on the column order and the constraint
    set, so they are compiled once and reused for every node; only the
    variable bounds change between calls.
    """

    name = "highs"

    def __init__(self, time_limit_s: float | None = None, method: str = "highs"):
        self.time_limit_s = time_limit_s
        self.method = method
        self._compiled: dict[tuple, _Compiled] = {}
        self._lock = threading.Lock()

    def _compile(self, columns: list[str], constraints: Sequence[Constraint]) -> _Compiled:
        key = (tuple(columns), tuple(c.name for c in constraints))
        with self._lock:
            cached = self._compiled.get(key)
        if cached is not None:
            return cached
        index = {name: i for i, name in enumerate(columns)}
        ub_rows: list[np.ndarray] = []
        ub_rhs: list[float] = []
        eq_rows: list[np.ndarray] = []
        eq_rhs: list[float] = []
        for c in constraints:
            row = np.zeros(len(columns))
            for name, coef in c.coeffs.items():
                try:
                    row[index[name]] += coef
                except KeyError:
                    raise RelaxationFailure(
                        f"Constraint {c.name} refers to unbounded variable {name}"
                    ) from None
            if c.sense == LE:
                ub_rows.append(row)
                ub_rhs.append(c.rhs)
            elif c.sense == GE:
                ub_rows.append(-row)
                ub_rhs.append(-c.rhs)
            else:
                eq_rows.append(row)
                eq_rhs.append(c.rhs)
        compiled = _Compiled(
            a_ub=np.vstack(ub_rows) if ub_rows else None,
            b_ub=np.array(ub_rhs) if ub_rows else None,
            a_eq=np.vstack(eq_rows) if eq_rows else None,
            b_eq=np.array(eq_rhs) if eq_rows else None,
        )
        with self._lock:
            self._compiled.setdefault(key, compiled)
        return compiled

    def solve_relaxation(
        self,
        variable_bounds: Mapping[str, tuple[float, float | None]],
        constraints: Sequence[Constraint],
        objective: Mapping[str, float],
        objective_constant: float = 0.0,
    ) -> RelaxationResult:
        columns = list(variable_bounds)
        compiled = self._compile(columns, constraints)
        index = {name: i for i, name in enumerate(columns)}
        c = np.zeros(len(columns))
        for name, coef in objective.items():
            c[index[name]] += coef
        options = {}
        if self.time_limit_s is not None:
            options["time_limit"] = float(self.time_limit_s)
        try:
            res = linprog(
                c,
                A_ub=compiled.a_ub,
                b_ub=compiled.b_ub,
                A_eq=compiled.a_eq,
                b_eq=compiled.b_eq,
                bounds=[variable_bounds[name] for name in columns],
                method=self.method,
                options=options or None,
            )
        except ValueError as e:
            raise RelaxationFailure(f"linprog rejected the relaxation: {e}") from e
        if res.status == 0:
            values = {name: float(x) for name, x in zip(columns, res.x)}
            return RelaxationResult(OPTIMAL, float(res.fun) + objective_constant, values)
        if res.status == 2:
            return RelaxationResult(INFEASIBLE)
        raise RelaxationFailure(f"linprog status {res.status}: {res.message}")


class PulpRelaxationOracle(RelaxationOracle):
    """PuLP model solved with CBC; one fresh model per call."""

    name = "cbc"

    def __init__(self, time_limit_s: float | None = None, msg: bool = False):
        self.time_limit_s = time_limit_s
        self.msg = msg

    def _solver(self):
        return pulp.PULP_CBC_CMD(msg=self.msg, timeLimit=self.time_limit_s)

    def solve_relaxation(
        self,
        variable_bounds: Mapping[str, tuple[float, float | None]],
        constraints: Sequence[Constraint],
        objective: Mapping[str, float],
        objective_constant: float = 0.0,
    ) -> RelaxationResult:
        prob = pulp.LpProblem("relaxation", pulp.LpMinimize)
        # Column names are positional: job ids may contain characters PuLP rewrites.
        lp_vars = {
            name: pulp.LpVariable(f"x{i}", lowBound=lo, upBound=hi)
            for i, (name, (lo, hi)) in enumerate(variable_bounds.items())
        }
        prob += pulp.lpSum(coef * lp_vars[name] for name, coef in objective.items())
        for i, c in enumerate(constraints):
            expr = pulp.lpSum(coef * lp_vars[name] for name, coef in c.coeffs.items())
            if c.sense == LE:
                prob += (expr <= c.rhs, f"c{i}")
            elif c.sense == GE:
                prob += (expr >= c.rhs, f"c{i}")
            elif c.sense == EQ:
                prob += (expr == c.rhs, f"c{i}")
        try:
            prob.solve(self._solver())
        except pulp.PulpSolverError as e:
            raise RelaxationFailure(f"CBC failed: {e}") from e
        status = pulp.LpStatus[prob.status]
        if status == "Optimal":
            values = {}
            for name, var in lp_vars.items():
                x = var.varValue
                values[name] = float(x) if x is not None else float(variable_bounds[name][0])
            value = sum(coef * values[name] for name, coef in objective.items())
            return RelaxationResult(OPTIMAL, value + objective_constant, values)
        if status == "Infeasible":
            return RelaxationResult(INFEASIBLE)
        raise RelaxationFailure(f"CBC status {status}")


ORACLES = {
    ScipyRelaxationOracle.name: ScipyRelaxationOracle,
    PulpRelaxationOracle.name: PulpRelaxationOracle,
}


def make_oracle(name: str = "highs", time_limit_s: float | None = None) -> RelaxationOracle:
    cls = ORACLES.get(name)
    if cls is None:
        raise ValueError(f"Unknown relaxation oracle: {name} (choose from {', '.join(ORACLES)})")
    logger.debug("Using relaxation oracle %s (time limit %s s)", name, time_limit_s)
    return cls(time_limit_s=time_limit_s)
