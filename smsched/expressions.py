"""Linear-model building blocks shared by the formulation and the objectives.

Kept apart from ``formulation.py`` so objectives can declare their own
variables and constraints without a circular import.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .models import Job

LE = "<="
GE = ">="
EQ = "=="
SENSES = (LE, GE, EQ)


def start_var(job: Job) -> str:
    return f"start[{job.id}]"


def pastdue_var(job: Job) -> str:
    return f"pastdue[{job.id}]"


def precedes_var(j: Job, k: Job) -> str:
    return f"precedes[{j.id},{k.id}]"


@dataclass(frozen=True)
class Variable:
    """Decision variable with bounds; ``binary`` marks integrality."""

    name: str
    lower: float = 0.0
    upper: float | None = None
    binary: bool = False


@dataclass(frozen=True)
class Constraint:
    """Named linear constraint ``sum(coeffs[v] * v) <sense> rhs``."""

    name: str
    coeffs: Mapping[str, float]
    sense: str
    rhs: float

    def __post_init__(self) -> None:
        if self.sense not in SENSES:
            raise ValueError(f"Unknown constraint sense: {self.sense}")

    def lhs(self, values: Mapping[str, float]) -> float:
        return sum(coef * values[name] for name, coef in self.coeffs.items())

    def violation(self, values: Mapping[str, float]) -> float:
        """Amount by which ``values`` violate the constraint (0 when satisfied)."""
        lhs = self.lhs(values)
        if self.sense == LE:
            return max(0.0, lhs - self.rhs)
        if self.sense == GE:
            return max(0.0, self.rhs - lhs)
        return abs(lhs - self.rhs)
