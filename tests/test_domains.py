"""Domain tracking and change classification tests."""
from __future__ import annotations

from solc_audit.annotate import ChangeKind, DomainTracker, classify_change, fold_domains
from solc_audit.annotate.domains import merge_step
from solc_audit.model import AnalyzedStep, ExitKind, PathTrace, PlainText, StatementStep, StepKind, VarRange

MAX_UINT256 = 2**256 - 1


def _iv(*pairs: tuple[int, int], exclusions: tuple[int, ...] = ()) -> VarRange:
    return VarRange(intervals=tuple(pairs), exclusions=exclusions)


def _step(kind: StepKind = StepKind.ASSIGN, **ranges: VarRange) -> AnalyzedStep:
    return AnalyzedStep(StatementStep(text="stmt", kind=kind, node_id=None, ranges=ranges))


def _path(*steps) -> PathTrace:
    return PathTrace(index=0, exit=ExitKind.RETURN, feasible=True, steps=tuple(steps))


def test_assignment_steps_report_new_then_narrowed():
    tracker = DomainTracker(_path(_step(x=_iv((0, 100))), _step(x=_iv((0, 50)))))

    first, second = tracker.step_diffs(0), tracker.step_diffs(1)

    assert [(d.var_name, d.kind, d.old_range, d.new_range) for d in first] == [("x", ChangeKind.NEW, None, "[0..100]")]
    assert [(d.var_name, d.kind, d.old_range, d.new_range) for d in second] == [
        ("x", ChangeKind.NARROWED, "[0..100]", "[0..50]")
    ]


def test_step_kind_marks_assignments_when_requested():
    tracker = DomainTracker(_path(_step(x=_iv((0, 100))), _step(x=_iv((0, 50)))))

    assert tracker.step_diffs(1, with_step_kind=True)[0].kind is ChangeKind.ASSIGN
    assert classify_change(_iv((0, 100)), _iv((0, 50)), StepKind.HAVOC) is ChangeKind.ASSIGN
    assert classify_change(_iv((0, 100)), _iv((0, 50)), StepKind.ASSERT) is ChangeKind.NARROWED


def test_full_width_domain_is_unrestricted_even_when_fewer_intervals():
    previous = _iv((0, 5), (10, 20))

    assert classify_change(previous, _iv((0, MAX_UINT256))) is ChangeKind.UNRESTRICTED
    assert classify_change(previous, VarRange()) is ChangeKind.UNRESTRICTED


def test_identical_rendering_is_not_a_change():
    tracker = DomainTracker(_path(_step(x=_iv((1, 9))), _step(StepKind.ASSERT, x=_iv((1, 9)))))

    assert classify_change(_iv((1, 9)), _iv((1, 9))) is None
    assert tracker.step_diffs(1) == []


def test_width_comparison():
    assert classify_change(_iv((0, 50)), _iv((0, 100))) is ChangeKind.WIDENED
    assert classify_change(_iv((0, 100)), _iv((0, 10), (20, 30))) is ChangeKind.WIDENED
    assert classify_change(_iv((0, 10), (20, 30)), _iv((0, 30))) is ChangeKind.NARROWED
    assert classify_change(_iv((0, 10)), _iv((0, 10), exclusions=(3,))) is ChangeKind.NARROWED
    assert classify_change(VarRange(min=0, max=2**200), VarRange(min=0, max=2**100)) is ChangeKind.NARROWED
    assert classify_change(VarRange(min=1, max=2**100), VarRange(min=1)) is ChangeKind.WIDENED


def test_fold_is_prefix_consistent():
    steps = (
        _step(a=_iv((0, 10))),
        PlainText("emit Log"),
        _step(b=_iv((1, 1))),
        _step(StepKind.ASSERT, a=_iv((2, 10))),
    )
    for k in range(len(steps) - 1):
        incremental = merge_step(dict(fold_domains(steps, k)), steps[k + 1], k + 1)
        assert fold_domains(steps, k + 1) == incremental

    final = fold_domains(steps, 3)
    assert final["a"].range == _iv((2, 10))
    assert final["a"].last_step == 3
    assert final["b"].last_step == 2


def test_tracker_at_handles_missing_data_and_bounds():
    assert DomainTracker(_path(PlainText("a"), PlainText("b"))).at(0) is None

    tracker = DomainTracker(_path(_step(x=_iv((0, 1))), _step(y=_iv((5, 5)))))
    assert tracker.has_data
    assert tracker.at(-1) is None
    assert set(tracker.at(0)) == {"x"}
    assert set(tracker.at(99)) == {"x", "y"}


def test_step_diffs_on_plain_or_missing_steps_are_empty():
    tracker = DomainTracker(_path(PlainText("emit"), _step(x=_iv((0, 1)))))

    assert tracker.step_diffs(0) == []
    assert tracker.step_diffs(7) == []
    assert [len(diffs) for diffs in tracker.all_step_diffs()] == [0, 1]


def test_watch_orders_by_recency_then_name():
    tracker = DomainTracker(
        _path(
            _step(b=_iv((0, 1)), a=_iv((0, 2))),
            _step(c=VarRange()),
            _step(StepKind.ASSERT, a=_iv((1, 2))),
        )
    )

    rows = tracker.watch(2)

    assert [(row.name, row.last_changed_step) for row in rows] == [("a", 2), ("c", 1), ("b", 0)]
    assert rows[1].unrestricted
    assert rows[1].domain == "TOP"
    assert [row.name for row in tracker.watch(0)] == ["a", "b"]
