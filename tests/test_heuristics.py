import pytest

from smsched.heuristics import (
    DISPATCH_RULES,
    best_dispatch_order,
    edd_order,
    erd_order,
    mdd_order,
    semi_active_starts,
    spt_order,
)
from smsched.models import Instance
from smsched.objectives import MaxTardiness, TotalTardiness


def test_static_rules_on_seven_jobs(seven_jobs) -> None:
    assert edd_order(seven_jobs) == ["E", "D", "A", "C", "F", "B", "G"]
    assert erd_order(seven_jobs) == ["E", "D", "A", "C", "B", "F", "G"]
    assert spt_order(seven_jobs) == ["E", "G", "F", "D", "A", "B", "C"]


def test_mdd_on_seven_jobs(seven_jobs) -> None:
    assert mdd_order(seven_jobs) == ["E", "A", "D", "F", "B", "G", "C"]


def test_semi_active_starts_respect_release_and_machine(seven_jobs) -> None:
    starts = semi_active_starts(seven_jobs, ["E", "G", "F", "D", "A", "B", "C"])
    # G waits for its release at 9 even though the machine is free at 2
    assert starts == {"E": 0, "G": 9, "F": 11, "D": 14, "A": 18, "B": 23, "C": 29}


def test_semi_active_rejects_non_permutation(seven_jobs) -> None:
    with pytest.raises(ValueError):
        semi_active_starts(seven_jobs, ["A", "B"])
    with pytest.raises(ValueError):
        semi_active_starts(seven_jobs, ["A", "A", "B", "C", "D", "E", "F"])


def test_best_dispatch_order(seven_jobs) -> None:
    order, value, rule = best_dispatch_order(seven_jobs)
    assert rule == "mdd"
    assert value == 16
    assert order == mdd_order(seven_jobs)


def test_best_dispatch_values_per_rule(seven_jobs) -> None:
    objective = TotalTardiness()
    values = {
        name: objective.evaluate(seven_jobs, semi_active_starts(seven_jobs, rule(seven_jobs)))
        for name, rule in DISPATCH_RULES.items()
    }
    assert values == {"mdd": 16, "edd": 27, "erd": 30, "spt": 51}


def test_best_dispatch_restricted_rules(seven_jobs) -> None:
    order, value, rule = best_dispatch_order(seven_jobs, rules=["spt", "edd"])
    assert rule == "edd"
    assert value == 27
    with pytest.raises(ValueError):
        best_dispatch_order(seven_jobs, rules=["lpt"])


def test_best_dispatch_other_objective(seven_jobs) -> None:
    _, value, _ = best_dispatch_order(seven_jobs, MaxTardiness())
    assert value >= 8


def test_ties_follow_canonical_order() -> None:
    inst = Instance.from_records([("Q", 0, 5, 5), ("P", 0, 5, 5)])
    for rule in DISPATCH_RULES.values():
        assert rule(inst) == ["Q", "P"]
    _, value, rule_name = best_dispatch_order(inst)
    assert value == 5
    assert rule_name == "mdd"


def test_mdd_jumps_to_next_release() -> None:
    inst = Instance.from_records([("late", 10, 1, 20), ("later", 12, 1, 14)])
    assert mdd_order(inst) == ["late", "later"]
    starts = semi_active_starts(inst, ["late", "later"])
    assert starts == {"late": 10, "later": 12}
