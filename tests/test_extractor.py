import pytest

from smsched.exceptions import InfeasibleSchedule
from smsched.extractor import check_no_overlap, extract_schedule
from smsched.formulation import build_formulation
from smsched.models import Instance, Schedule, ScheduleRow


@pytest.fixture
def formulation(two_identical):
    return build_formulation(two_identical)


def _values(start_p, start_q, precedes, pastdue_p=None, pastdue_q=None):
    return {
        "start[P]": start_p,
        "start[Q]": start_q,
        "pastdue[P]": max(0.0, start_p) if pastdue_p is None else pastdue_p,
        "pastdue[Q]": max(0.0, start_q) if pastdue_q is None else pastdue_q,
        "precedes[P,Q]": precedes,
    }


def test_valid_schedule(formulation) -> None:
    schedule = extract_schedule(formulation, _values(5.0, 0.0, 0.0), expected_objective=5.0)
    assert schedule.order == ["Q", "P"]
    assert schedule.objective == 5.0
    p = schedule.row("P")
    assert (p.start, p.finish, p.pastdue) == (5.0, 10.0, 5.0)
    assert schedule.row("Q").pastdue == 0.0
    assert check_no_overlap(schedule)


def test_near_integers_are_snapped(formulation) -> None:
    values = _values(4.9999999, 1e-9, 1e-9, pastdue_p=4.9999999, pastdue_q=0.0)
    schedule = extract_schedule(formulation, values)
    assert schedule.row("P").start == 5.0
    assert schedule.row("Q").start == 0.0
    assert schedule.objective == 5.0


def test_fractional_data_is_not_snapped() -> None:
    inst = Instance.from_records([("A", 0.5, 1.0, 3.0)])
    f = build_formulation(inst)
    values = {"start[A]": 0.5000001, "pastdue[A]": 0.0}
    schedule = extract_schedule(f, values)
    assert schedule.row("A").start == 0.5000001


def test_pastdue_is_recomputed(formulation) -> None:
    # over-stated pastdue is allowed by FINISH but never reported
    values = _values(0.0, 5.0, 1.0, pastdue_p=3.0, pastdue_q=9.0)
    schedule = extract_schedule(formulation, values)
    assert schedule.row("P").pastdue == 0.0
    assert schedule.row("Q").pastdue == 5.0
    assert schedule.total_pastdue == 5.0


def test_overlap_is_rejected(formulation) -> None:
    with pytest.raises(InfeasibleSchedule) as exc:
        extract_schedule(formulation, _values(0.0, 2.0, 1.0))
    assert any("overlap" in v for v in exc.value.violations)
    assert any("precedes[P,Q]=1" in v for v in exc.value.violations)


def test_order_disagreement_is_rejected(formulation) -> None:
    # times say P then Q, the binary says Q then P
    with pytest.raises(InfeasibleSchedule) as exc:
        extract_schedule(formulation, _values(0.0, 5.0, 0.0))
    assert exc.value.violations == [
        "precedes[P,Q]=0 but job 'Q' finishes at 10 after job 'P' starts at 0"
    ]


def test_release_violation_is_rejected() -> None:
    inst = Instance.from_records([("A", 3, 1, 9)])
    f = build_formulation(inst)
    with pytest.raises(InfeasibleSchedule, match="before release"):
        extract_schedule(f, {"start[A]": 1.0, "pastdue[A]": 0.0})


def test_finish_violation_is_rejected(formulation) -> None:
    values = _values(0.0, 5.0, 1.0, pastdue_q=1.0)
    with pytest.raises(InfeasibleSchedule, match="beyond due"):
        extract_schedule(formulation, values)


def test_negative_pastdue_is_rejected(formulation) -> None:
    values = _values(0.0, 5.0, 1.0, pastdue_p=-1.0)
    with pytest.raises(InfeasibleSchedule, match="negative pastdue"):
        extract_schedule(formulation, values)


def test_fractional_binary_is_rejected(formulation) -> None:
    with pytest.raises(InfeasibleSchedule, match="fractional"):
        extract_schedule(formulation, _values(0.0, 5.0, 0.5))


def test_missing_values_are_rejected(formulation) -> None:
    values = _values(0.0, 5.0, 1.0)
    del values["start[Q]"]
    with pytest.raises(InfeasibleSchedule, match="missing value for start\\[Q\\]"):
        extract_schedule(formulation, values)


def test_objective_drift_is_rejected(formulation) -> None:
    with pytest.raises(InfeasibleSchedule, match="differs from search objective"):
        extract_schedule(formulation, _values(0.0, 5.0, 1.0), expected_objective=4.0)


def test_many_violations_are_summarized() -> None:
    err = InfeasibleSchedule([f"v{i}" for i in range(8)])
    assert str(err) == "Infeasible schedule: v0; v1; v2; v3; v4; ... (3 more)"
    assert len(err.violations) == 8


def test_check_no_overlap_raises() -> None:
    rows = [ScheduleRow("A", 0, 3, 3, 0, 3, 0), ScheduleRow("B", 0, 3, 6, 2, 5, 0)]
    with pytest.raises(AssertionError):
        check_no_overlap(Schedule(rows=rows, objective=0))
