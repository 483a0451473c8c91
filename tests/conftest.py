"""Pytest configuration, shared fixtures & custom summary hook.

Also ensures the project root is on sys.path so ``smsched`` and ``main``
import without installation.
"""

from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so 'import smsched.*' works
_root = Path(__file__).resolve().parents[1]
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from smsched.models import Instance  # noqa: E402

SEVEN_JOBS = {
    "A": (2, 5, 10),
    "B": (5, 6, 21),
    "C": (4, 8, 15),
    "D": (0, 4, 10),
    "E": (0, 2, 5),
    "F": (8, 3, 15),
    "G": (9, 2, 22),
}


@pytest.fixture
def seven_jobs() -> Instance:
    return Instance.from_mapping(SEVEN_JOBS)


@pytest.fixture
def two_identical() -> Instance:
    return Instance.from_records([("P", 0, 5, 5), ("Q", 0, 5, 5)])


def brute_force_total_tardiness(instance: Instance) -> float:
    """Optimal total tardiness by enumerating every order (semi-active timing)."""
    best = None
    for order in itertools.permutations(instance.jobs):
        t = 0.0
        total = 0.0
        for job in order:
            t = max(t, job.release) + job.duration
            total += max(0.0, t - job.due)
            if best is not None and total >= best:
                break
        else:
            best = total
    return best


@pytest.fixture
def brute_force():
    return brute_force_total_tardiness


def pytest_terminal_summary(
    terminalreporter: pytest.TerminalReporter,
    exitstatus: int,
    config: pytest.Config,
) -> None:  # noqa: D401
    """Append a compact custom summary at the end of test session."""
    stats = terminalreporter.stats
    collected = terminalreporter._numcollected  # type: ignore[attr-defined]
    passed = len(stats.get("passed", []))
    failed = len(stats.get("failed", []))
    errors = len(stats.get("error", []))
    skipped = len(stats.get("skipped", []))
    xfailed = len(stats.get("xfailed", []))
    xpassed = len(stats.get("xpassed", []))

    terminalreporter.section("Custom summary", sep="=")
    terminalreporter.write_line(
        "Collected: "
        f"{collected} | Passed: {passed} | Failed: {failed} | "
        f"Errors: {errors} | Skipped: {skipped} | "
        f"xfailed: {xfailed} | xpassed: {xpassed}"
    )
    if failed:
        terminalreporter.write_line("Failed tests:")
        for rep in stats["failed"]:
            terminalreporter.write_line(f"  - {rep.nodeid}")
