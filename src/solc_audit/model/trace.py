"""Per-path execution trace models."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .ranges import VarRange, coerce_int, parse_var_range

__all__ = [
    "AnalyzedStep",
    "ArithCheck",
    "ExitKind",
    "InlinedCall",
    "PathTrace",
    "PlainText",
    "StatementStep",
    "Step",
    "StepKind",
    "parse_path",
    "parse_paths",
    "parse_step",
]


class StepKind(StrEnum):
    ASSERT = "assert"
    ASSERT_NOT = "assertNot"
    ASSIGN = "assign"
    HAVOC = "havoc"
    CHECKED = "checked"
    CALL = "call"
    STMT = "stmt"

    @property
    def label(self) -> str:
        return "ASSERT_NOT" if self is StepKind.ASSERT_NOT else self.name


class ExitKind(StrEnum):
    RETURN = "return"
    REVERT = "revert"
    TRUNCATED = "truncated"


@dataclass(slots=True, frozen=True)
class StatementStep:
    text: str
    kind: StepKind = StepKind.STMT
    node_id: int | None = None
    ranges: Mapping[str, VarRange] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PlainText:
    """A step the engine only described in prose."""

    text: str


@dataclass(slots=True, frozen=True)
class AnalyzedStep:
    statement: StatementStep

    @property
    def text(self) -> str:
        return self.statement.text


Step = PlainText | AnalyzedStep


@dataclass(slots=True, frozen=True)
class ArithCheck:
    op_node: int
    check: str
    severity: str = "medium"
    bound: str = ""
    op_text: str | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.op_node, self.check)


@dataclass(slots=True, frozen=True)
class InlinedCall:
    call_node: int
    callee_id: int
    callee_name: str
    callee_paths: int = 0
    feasible_paths: int = 0


@dataclass(slots=True, frozen=True)
class PathTrace:
    index: int
    exit: ExitKind
    feasible: bool
    steps: tuple[Step, ...] = ()
    arith_checks: tuple[ArithCheck, ...] = ()
    inlined_calls: tuple[InlinedCall, ...] = ()
    constraint_count: int = 0

    def statement_at(self, step_index: int) -> StatementStep | None:
        if step_index < 0 or step_index >= len(self.steps):
            return None
        step = self.steps[step_index]
        if isinstance(step, AnalyzedStep):
            return step.statement
        return None

    @property
    def has_domain_data(self) -> bool:
        return any(isinstance(step, AnalyzedStep) and step.statement.ranges for step in self.steps)


def parse_step(raw: Any) -> Step:
    """Turn an upstream ``string | StatementInfo`` entry into the tagged step variant."""
    if not isinstance(raw, dict):
        return PlainText(text=str(raw) if raw is not None else "")

    try:
        kind = StepKind(raw.get("type", StepKind.STMT.value))
    except ValueError:
        kind = StepKind.STMT

    raw_ranges = raw.get("ranges")
    ranges: dict[str, VarRange] = {}
    if isinstance(raw_ranges, dict):
        for name, value in raw_ranges.items():
            ranges[str(name)] = parse_var_range(value)

    raw_node = raw.get("nodeId", raw.get("node"))
    return AnalyzedStep(
        StatementStep(
            text=str(raw.get("text", "")),
            kind=kind,
            node_id=coerce_int(raw_node),
            ranges=ranges,
        )
    )


def _parse_arith_check(raw: dict[str, Any]) -> ArithCheck | None:
    op_node = coerce_int(raw.get("opNode"))
    check = raw.get("check")
    if op_node is None or not isinstance(check, str) or not check:
        return None
    op_text = raw.get("opText")
    return ArithCheck(
        op_node=op_node,
        check=check,
        severity=str(raw.get("severity", "medium")),
        bound=str(raw.get("bound", "")),
        op_text=op_text if isinstance(op_text, str) else None,
    )


def _parse_inlined_call(raw: dict[str, Any]) -> InlinedCall | None:
    call_node = coerce_int(raw.get("callNode"))
    callee_id = coerce_int(raw.get("calleeId"))
    if call_node is None or callee_id is None:
        return None
    return InlinedCall(
        call_node=call_node,
        callee_id=callee_id,
        callee_name=str(raw.get("calleeName", "")),
        callee_paths=coerce_int(raw.get("calleePaths"), 0),
        feasible_paths=coerce_int(raw.get("feasiblePaths"), 0),
    )


def parse_path(raw: Any, position: int = 0) -> PathTrace:
    """Parse one upstream ``PathInfo`` object."""
    if not isinstance(raw, dict):
        raise ValueError(f"Path entry {position} must be an object")

    try:
        exit_kind = ExitKind(raw.get("exit", ExitKind.RETURN.value))
    except ValueError:
        exit_kind = ExitKind.TRUNCATED

    raw_statements = raw.get("statements", [])
    raw_checks = raw.get("arithChecks", [])
    raw_inlined = raw.get("inlinedCalls", [])
    checks = [
        check
        for check in (_parse_arith_check(item) for item in raw_checks if isinstance(item, dict))
        if check is not None
    ] if isinstance(raw_checks, list) else []
    inlined = [
        call
        for call in (_parse_inlined_call(item) for item in raw_inlined if isinstance(item, dict))
        if call is not None
    ] if isinstance(raw_inlined, list) else []

    return PathTrace(
        index=coerce_int(raw.get("index"), position),
        exit=exit_kind,
        feasible=bool(raw.get("feasible", False)),
        steps=tuple(parse_step(item) for item in raw_statements) if isinstance(raw_statements, list) else (),
        arith_checks=tuple(checks),
        inlined_calls=tuple(inlined),
        constraint_count=coerce_int(raw.get("constraintCount"), 0),
    )


def parse_paths(raw: Any) -> list[PathTrace]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("Path list must be an array")
    return [parse_path(item, position) for position, item in enumerate(raw)]
