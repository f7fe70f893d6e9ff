"""Annotation projection tests."""
from __future__ import annotations

from factories import DEPOSIT_SOURCE, deposit_paths

from solc_audit.annotate import (
    Badge,
    ChangeKind,
    NodeLineIndex,
    RiskLevel,
    annotate_lines,
    choose_active_path,
    project_ranges,
    static_annotations,
    step_line,
)
from solc_audit.model import (
    AnalyzedStep,
    ArithCheck,
    ExitKind,
    FuncRef,
    GlobalRange,
    PathTrace,
    StatementStep,
    StateVarAccess,
    VarRange,
    parse_paths,
)

DEPOSIT_INDEX = NodeLineIndex([(1, 0, 10), (2, 4, 101), (3, 4, 102), (3, 18, 103), (4, 4, 104), (5, 4, 105)])


def _path(index: int, exit: ExitKind, feasible: bool, *checks: ArithCheck) -> PathTrace:
    return PathTrace(index=index, exit=exit, feasible=feasible, arith_checks=checks)


def test_active_path_prefers_feasible_return():
    paths = [
        _path(0, ExitKind.REVERT, True),
        _path(1, ExitKind.RETURN, False),
        _path(2, ExitKind.RETURN, True),
    ]

    assert choose_active_path(paths).index == 2
    assert choose_active_path(paths[:2]).index == 0
    assert choose_active_path(paths[1:2]) is None
    assert choose_active_path(paths, 1).index == 1
    assert choose_active_path(paths, 9) is None
    assert choose_active_path(None) is None


def test_unmapped_operation_found_by_text():
    source = "uint x = 1;\nuint y = a / b;\nreturn y;"
    paths = [_path(0, ExitKind.RETURN, True, ArithCheck(op_node=77, check="DivisionTruncation", op_text="a / b"))]

    lines = annotate_lines(source, paths, NodeLineIndex())

    assert lines[1].risk is not None
    assert lines[1].risk.level is RiskLevel.ORANGE
    assert lines[0].risk is None and lines[2].risk is None


def test_project_ranges_follows_step_nodes():
    projected = project_ranges(parse_paths(deposit_paths())[0], DEPOSIT_INDEX)

    assert sorted(projected) == [2, 3, 4]
    amount = projected[2][0]
    assert amount.kind is ChangeKind.NEW
    assert amount.text == "amount = [1..MAX_UINT256]"
    assert projected[4][0].domain == "[0, MAX]"


def test_project_ranges_reports_changes_against_earlier_steps():
    steps = (
        AnalyzedStep(StatementStep("x = f()", node_id=1, ranges={"x": _range(0, 100)})),
        AnalyzedStep(StatementStep("require(x < 51)", node_id=99, ranges={"x": _range(0, 50)})),
        AnalyzedStep(StatementStep("x = x", node_id=2, ranges={"x": _range(0, 50)})),
        AnalyzedStep(StatementStep("require(x < 10)", node_id=2, ranges={"x": _range(0, 9)})),
    )
    path = PathTrace(index=0, exit=ExitKind.RETURN, feasible=True, steps=steps)

    projected = project_ranges(path, NodeLineIndex([(1, 0, 1), (2, 0, 2)]))

    assert [a.kind for a in projected[1]] == [ChangeKind.NEW]
    # node 99 is unmapped but still updates the domain, and the unchanged step 2 is skipped
    assert [(a.kind, a.previous, a.domain) for a in projected[2]] == [(ChangeKind.NARROWED, "[0..50]", "[0..9]")]
    assert projected[2][0].text == "x: [0..50] → [0..9]"


def _range(lo: int, hi: int) -> VarRange:
    return VarRange(intervals=((lo, hi),))


def test_static_badges_follow_priority_order():
    badges = static_annotations(DEPOSIT_SOURCE, parse_paths(deposit_paths()), DEPOSIT_INDEX)

    assert badges[2].text == "↓ NARROWING POINT"
    assert badges[2].badge is Badge.NARROWED
    assert badges[3].text == "⚠ DivisionTruncation"
    assert badges[3].badge is Badge.PRECISION
    assert badges[4].badge is Badge.TRUNCATION
    assert badges[5].text == "⚡ EXTERNAL CALL"


def test_state_variable_badges():
    index = NodeLineIndex([(1, 0, 5), (2, 0, 6)])
    source = "uint balance;\nuint owner;"
    access = [
        StateVarAccess(
            var_id=5,
            var_name="balance",
            writers=(FuncRef(func_id=1, func_name="deposit"), FuncRef(func_id=2, func_name="withdraw")),
        )
    ]
    ranges = [GlobalRange(var_id=5, var_name="balance"), GlobalRange(var_id=6, var_name="owner")]

    badges = static_annotations(source, [], index, access, ranges)

    assert badges[1].text == "MULTI-WRITER: deposit, withdraw"
    assert badges[2].text == "owner: UNRESTRICTED"
    assert badges[2].badge is Badge.TRUNCATION


def test_range_annotations_suppress_static_badge():
    lines = annotate_lines(DEPOSIT_SOURCE, parse_paths(deposit_paths()), DEPOSIT_INDEX, selected_path=0)

    by_number = {line.number: line for line in lines}
    assert len(lines) == 6
    assert by_number[2].ranges and by_number[2].badge is None
    assert by_number[4].risk.level is RiskLevel.RED
    assert by_number[5].badge.badge is Badge.EXTERNAL
    assert not by_number[6].ranges


def test_step_line_uses_node_then_text():
    path = parse_paths(deposit_paths())[0]
    unmapped = PathTrace(
        index=0,
        exit=ExitKind.RETURN,
        feasible=True,
        steps=(AnalyzedStep(StatementStep("uint256 fee = amount / 100")),),
    )

    assert step_line(path, 1, DEPOSIT_INDEX, DEPOSIT_SOURCE) == 3
    assert step_line(path, 3, DEPOSIT_INDEX, DEPOSIT_SOURCE) is None
    assert step_line(unmapped, 0, DEPOSIT_INDEX, DEPOSIT_SOURCE) == 3
    assert step_line(None, 0, DEPOSIT_INDEX, DEPOSIT_SOURCE) is None
