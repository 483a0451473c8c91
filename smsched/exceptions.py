"""Error hierarchy for the scheduling engine."""


class SchedulingError(Exception):
    """Base class for every error raised by ``smsched``."""


class InvalidInstance(SchedulingError, ValueError):
    """Job data is malformed (r + d > u, d <= 0, duplicate ids, ...)."""


class InfeasibleInstance(SchedulingError):
    """The root relaxation is infeasible: no valid schedule exists."""


class RelaxationFailure(SchedulingError, RuntimeError):
    """The relaxation oracle failed internally (not infeasibility)."""


class InfeasibleSchedule(SchedulingError):
    """An extracted schedule violates an invariant beyond tolerance."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        shown = "; ".join(self.violations[:5])
        more = len(self.violations) - 5
        if more > 0:
            shown += f"; ... ({more} more)"
        super().__init__(f"Infeasible schedule: {shown}")
