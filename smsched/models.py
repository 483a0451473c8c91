"""Core data structures for single-machine tardiness instances.

This module defines:
    Job          -- one job with release, duration and due time.
    Instance     -- immutable, validated, canonically ordered job collection.
    ScheduleRow  -- one scheduled job (start / finish / pastdue).
    Schedule     -- extracted schedule plus objective value.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Hashable, Iterable, Mapping

from .exceptions import InvalidInstance

JobId = Hashable
JobRecord = tuple[JobId, float, float, float]  # (id, release, duration, due)

# Characters that delimit job ids inside variable names such as ``precedes[j,k]``
ID_RESERVED_CHARS = ",[]"


@dataclass(frozen=True)
class Job:
    """Single job on the machine.

    Attributes:
        id: Unique identifier, also the stable tie-break key.
        release: Earliest start time (r >= 0).
        duration: Processing time (d > 0).
        due: Due time (r + d <= u).
    """

    id: JobId
    release: float
    duration: float
    due: float

    @property
    def earliest_finish(self) -> float:
        return self.release + self.duration


@dataclass(frozen=True)
class Instance:
    """Immutable single-machine instance.

    The order of ``jobs`` is the canonical order: every pairwise decision
    ``precedes[j, k]`` is defined for ``j`` before ``k`` in this order, and
    every tie in the search is broken by it.

    Attributes:
        jobs: Jobs in canonical order.
        big_m: ``max(release) + sum(duration)``, an upper bound on any
            completion time of a schedule without idle time after the last
            release.
    """

    jobs: tuple[Job, ...]
    big_m: float = field(init=False)
    _index: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        jobs = tuple(self.jobs)
        object.__setattr__(self, "jobs", jobs)
        _validate_jobs(jobs)
        object.__setattr__(self, "_index", {job.id: i for i, job in enumerate(jobs)})
        big_m = max(job.release for job in jobs) + sum(job.duration for job in jobs)
        object.__setattr__(self, "big_m", big_m)

    @classmethod
    def from_records(cls, records: Iterable[JobRecord]) -> Instance:
        """Build from ``(id, release, duration, due)`` tuples."""
        jobs = []
        for rec in records:
            try:
                job_id, release, duration, due = rec
            except (TypeError, ValueError) as e:
                raise InvalidInstance(f"Expected (id, release, duration, due), got {rec!r}") from e
            jobs.append(Job(job_id, release, duration, due))
        return cls(tuple(jobs))

    @classmethod
    def from_mapping(cls, mapping: Mapping[JobId, tuple[float, float, float]]) -> Instance:
        """Build from ``id -> (release, duration, due)``; insertion order is canonical."""
        records = []
        for job_id, values in mapping.items():
            try:
                release, duration, due = values
            except (TypeError, ValueError) as e:
                raise InvalidInstance(
                    f"Job {job_id!r}: expected (release, duration, due), got {values!r}"
                ) from e
            records.append((job_id, release, duration, due))
        return cls.from_records(records)

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self):
        return iter(self.jobs)

    def index_of(self, job_id: JobId) -> int:
        try:
            return self._index[job_id]
        except KeyError:
            raise KeyError(f"Unknown job id: {job_id!r}") from None

    def job(self, job_id: JobId) -> Job:
        return self.jobs[self.index_of(job_id)]

    def pairs(self) -> list[tuple[Job, Job]]:
        """All canonical pairs ``(j, k)`` with ``j`` before ``k``."""
        return [
            (self.jobs[a], self.jobs[b])
            for a in range(len(self.jobs))
            for b in range(a + 1, len(self.jobs))
        ]

    @property
    def is_integral(self) -> bool:
        """True when every release, duration and due time is an integer value."""
        return all(
            float(v).is_integer() for job in self.jobs for v in (job.release, job.duration, job.due)
        )

    def with_due(self, job_id: JobId, due: float) -> Instance:
        """Copy of the instance with one due time replaced (re-validated)."""
        idx = self.index_of(job_id)
        jobs = list(self.jobs)
        jobs[idx] = replace(jobs[idx], due=due)
        return Instance(tuple(jobs))


def _validate_jobs(jobs: tuple[Job, ...]) -> None:
    if not jobs:
        raise InvalidInstance("Instance must contain at least one job")
    seen_ids: set = set()
    seen_names: set[str] = set()
    for job in jobs:
        if job.id in seen_ids or str(job.id) in seen_names:
            raise InvalidInstance(f"Duplicate job id: {job.id!r}")
        seen_ids.add(job.id)
        seen_names.add(str(job.id))
        if any(ch in str(job.id) for ch in ID_RESERVED_CHARS):
            raise InvalidInstance(
                f"Job id {job.id!r} may not contain any of {ID_RESERVED_CHARS!r}"
            )
        for label, value in (
            ("release", job.release),
            ("duration", job.duration),
            ("due", job.due),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInstance(f"Job {job.id!r}: {label} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InvalidInstance(f"Job {job.id!r}: {label} must be finite")
        if job.release < 0:
            raise InvalidInstance(f"Job {job.id!r}: negative release {job.release}")
        if job.duration <= 0:
            raise InvalidInstance(f"Job {job.id!r}: non-positive duration {job.duration}")
        if job.release + job.duration > job.due:
            raise InvalidInstance(
                f"Job {job.id!r}: release + duration ({job.release} + {job.duration}) "
                f"exceeds due {job.due}"
            )


@dataclass(frozen=True)
class ScheduleRow:
    """Single scheduled job.

    Fields:
        job: Job identifier.
        release, duration, due: Input data of the job.
        start: Start time on the machine.
        finish: Completion time (start + duration).
        pastdue: ``max(0, finish - due)``.
    """

    job: JobId
    release: float
    duration: float
    due: float
    start: float
    finish: float
    pastdue: float


@dataclass(frozen=True)
class Schedule:
    """Final schedule sorted by start time plus its objective value."""

    rows: list[ScheduleRow]
    objective: float

    @property
    def total_pastdue(self) -> float:
        return sum(row.pastdue for row in self.rows)

    @property
    def makespan(self) -> float:
        return max((row.finish for row in self.rows), default=0.0)

    @property
    def order(self) -> list[JobId]:
        return [row.job for row in self.rows]

    def row(self, job_id: JobId) -> ScheduleRow:
        for r in self.rows:
            if r.job == job_id:
                return r
        raise KeyError(f"Unknown job id: {job_id!r}")
