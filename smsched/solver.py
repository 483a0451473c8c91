"""Pipeline facade: instance -> formulation -> search -> extracted schedule.

``SolverParams`` bundles every configurable knob so the CLI, tests and
notebooks can drive the engine uniformly (and build it from a YAML/JSON
config section with :meth:`SolverParams.from_config`).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from .extractor import extract_schedule
from .formulation import Formulation, build_formulation
from .models import Instance, Schedule
from .objectives import Objective, make_objective
from .relaxation import RelaxationOracle, make_oracle
from .search import SearchParams, SearchResult, branch_and_bound

logger = logging.getLogger("smsched.solver")


@dataclass(slots=True)
class SolverParams:
    """Solver configuration.

    Attributes:
        objective: Objective name (see ``smsched.objectives.OBJECTIVES``).
        weights: Optional per-job weights for weighted objectives.
        oracle: Relaxation backend name, ``highs`` or ``cbc``.
        relaxation_time_limit_s: Per-relaxation time limit.
        tolerance: Numeric tolerance of the schedule extractor.
        search: Branch-and-bound parameters.
    """

    objective: str = "total_tardiness"
    weights: dict | None = None
    oracle: str = "highs"
    relaxation_time_limit_s: float | None = None
    tolerance: float = 1e-6
    search: SearchParams = field(default_factory=SearchParams)

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None) -> SolverParams:
        """Build from a config mapping; unknown keys raise ``ValueError``."""
        cfg = dict(cfg or {})
        search_cfg = cfg.pop("search", None) or {}
        if not isinstance(search_cfg, Mapping):
            raise ValueError("'search' section must be a mapping")
        known_search = {f.name for f in fields(SearchParams)}
        unknown = set(search_cfg) - known_search
        if unknown:
            raise ValueError(f"Unknown search option(s): {', '.join(sorted(unknown))}")
        known = {f.name for f in fields(cls)} - {"search"}
        unknown = set(cfg) - known
        if unknown:
            raise ValueError(f"Unknown solver option(s): {', '.join(sorted(unknown))}")
        params = cls(**cfg, search=SearchParams(**search_cfg))
        params.search.validate()
        return params

    def make_objective(self) -> Objective:
        return make_objective(self.objective, self.weights)

    def make_oracle(self) -> RelaxationOracle:
        return make_oracle(self.oracle, self.relaxation_time_limit_s)


@dataclass
class Solution:
    """Everything produced by one solve."""

    instance: Instance
    formulation: Formulation
    search: SearchResult
    schedule: Schedule | None

    @property
    def objective(self) -> float | None:
        if self.schedule is not None:
            return self.schedule.objective
        return self.search.objective

    @property
    def proven_optimal(self) -> bool:
        return self.search.proven_optimal


def solve(
    instance: Instance,
    params: SolverParams | None = None,
    *,
    oracle: RelaxationOracle | None = None,
    objective: Objective | None = None,
    cancel: threading.Event | None = None,
) -> Solution:
    """Solve an instance end to end.

    Args:
        instance: Validated instance.
        params: Solver configuration (defaults when omitted).
        oracle: Explicit relaxation backend, overrides ``params.oracle``.
        objective: Explicit objective, overrides ``params.objective``.
        cancel: Event that stops the search at the next node boundary.

    Returns:
        Solution; ``schedule`` is None only when the budget ran out before
        any integral solution was found.

    Raises:
        InfeasibleInstance: No valid schedule exists.
        RelaxationFailure: The root relaxation failed.
        InfeasibleSchedule: The extracted schedule broke an invariant.
    """
    if params is None:
        params = SolverParams()
    if objective is None:
        objective = params.make_objective()
    if oracle is None:
        oracle = params.make_oracle()
    formulation = build_formulation(instance, objective)
    result = branch_and_bound(formulation, oracle, params.search, cancel=cancel)
    schedule = None
    if result.values is not None:
        schedule = extract_schedule(
            formulation,
            result.values,
            tolerance=params.tolerance,
            expected_objective=result.objective,
        )
    else:
        logger.warning("No integral solution found (status=%s)", result.status)
    return Solution(instance=instance, formulation=formulation, search=result, schedule=schedule)
