"""Single-machine total tardiness scheduling by branch-and-bound.

Exports the instance model, the pipeline entry point and the error types.
"""

from smsched.exceptions import (  # noqa: F401
    InfeasibleInstance,
    InfeasibleSchedule,
    InvalidInstance,
    RelaxationFailure,
    SchedulingError,
)
from smsched.models import Instance, Job, Schedule, ScheduleRow  # noqa: F401
from smsched.parser import load_instance  # noqa: F401
from smsched.solver import Solution, SolverParams, solve  # noqa: F401

__all__ = [
    "Instance",
    "InfeasibleInstance",
    "InfeasibleSchedule",
    "InvalidInstance",
    "Job",
    "RelaxationFailure",
    "Schedule",
    "ScheduleRow",
    "SchedulingError",
    "Solution",
    "SolverParams",
    "load_instance",
    "solve",
]
