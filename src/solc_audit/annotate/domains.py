"""Cumulative variable domains along a path and step-to-step change classification."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..model.ranges import VarRange, render_range
from ..model.trace import AnalyzedStep, PathTrace, Step, StepKind

__all__ = [
    "ChangeKind",
    "DomainTracker",
    "TrackedDomain",
    "VarDiff",
    "WatchRow",
    "classify_change",
    "fold_domains",
    "merge_step",
]


class ChangeKind(StrEnum):
    NEW = "NEW"
    NARROWED = "NARROWED"
    WIDENED = "WIDENED"
    UNRESTRICTED = "UNRESTRICTED"
    ASSIGN = "ASSIGN"


_REPLACING_KINDS = frozenset({StepKind.ASSIGN, StepKind.HAVOC})


def _compare_span(previous: VarRange, current: VarRange) -> ChangeKind:
    prev_span, cur_span = previous.span(), current.span()
    # None means unbounded
    if cur_span is None:
        return ChangeKind.WIDENED
    if prev_span is None or cur_span < prev_span:
        return ChangeKind.NARROWED
    return ChangeKind.WIDENED


def classify_change(
    previous: VarRange | None,
    current: VarRange,
    step_kind: StepKind | None = None,
) -> ChangeKind | None:
    """Classify how a variable's domain moved from *previous* to *current*.

    Returns ``None`` when both render identically; such variables must not be reported.
    """
    if previous is None:
        return ChangeKind.NEW
    if render_range(current) == render_range(previous):
        return None
    if current.is_unrestricted():
        return ChangeKind.UNRESTRICTED
    if step_kind in _REPLACING_KINDS:
        return ChangeKind.ASSIGN

    if current.interval_count < previous.interval_count:
        return ChangeKind.NARROWED
    if current.interval_count > previous.interval_count:
        return ChangeKind.WIDENED
    if current.exclusion_count > previous.exclusion_count:
        return ChangeKind.NARROWED
    if current.exclusion_count < previous.exclusion_count:
        return ChangeKind.WIDENED
    return _compare_span(previous, current)


@dataclass(slots=True, frozen=True)
class TrackedDomain:
    range: VarRange
    last_step: int


@dataclass(slots=True, frozen=True)
class VarDiff:
    var_name: str
    old_range: str | None
    new_range: str
    kind: ChangeKind
    step_index: int


@dataclass(slots=True, frozen=True)
class WatchRow:
    name: str
    domain: str
    last_changed_step: int
    unrestricted: bool


def merge_step(
    accumulator: dict[str, TrackedDomain],
    step: Step,
    step_index: int,
) -> dict[str, TrackedDomain]:
    """Apply one step's changed variables on top of *accumulator* (in place)."""
    if isinstance(step, AnalyzedStep):
        for name, var_range in step.statement.ranges.items():
            accumulator[name] = TrackedDomain(range=var_range, last_step=step_index)
    return accumulator


def fold_domains(steps: Sequence[Step], upto: int) -> dict[str, TrackedDomain]:
    """Fold the domain maps of ``steps[0..upto]`` inclusive; later steps win."""
    accumulator: dict[str, TrackedDomain] = {}
    for step_index in range(min(upto, len(steps) - 1) + 1):
        merge_step(accumulator, steps[step_index], step_index)
    return accumulator


class DomainTracker:
    """Domain state of one path at any step."""

    def __init__(self, path: PathTrace, *, max_digits: int = 15) -> None:
        self.path = path
        self.max_digits = max_digits

    @property
    def has_data(self) -> bool:
        return self.path.has_domain_data

    def _clamp(self, step_index: int) -> int | None:
        if step_index < 0 or not self.path.steps:
            return None
        return min(step_index, len(self.path.steps) - 1)

    def at(self, step_index: int) -> Mapping[str, TrackedDomain] | None:
        """Cumulative domains after *step_index*, or ``None`` when the path carries no domain data."""
        if not self.has_data:
            return None
        clamped = self._clamp(step_index)
        if clamped is None:
            return None
        return fold_domains(self.path.steps, clamped)

    def step_diffs(self, step_index: int, *, with_step_kind: bool = False) -> list[VarDiff]:
        """Variables whose rendered domain changed at *step_index*.

        With *with_step_kind* the step's own kind feeds the classifier, so assignment and
        havoc steps report ASSIGN.
        """
        statement = self.path.statement_at(step_index)
        if statement is None or not statement.ranges:
            return []
        before = fold_domains(self.path.steps, step_index - 1) if step_index > 0 else {}
        step_kind = statement.kind if with_step_kind else None

        diffs: list[VarDiff] = []
        for name, current in statement.ranges.items():
            tracked = before.get(name)
            previous = tracked.range if tracked is not None else None
            kind = classify_change(previous, current, step_kind)
            if kind is None:
                continue
            diffs.append(
                VarDiff(
                    var_name=name,
                    old_range=render_range(previous, short=True, max_digits=self.max_digits)
                    if previous is not None
                    else None,
                    new_range=render_range(current, short=True, max_digits=self.max_digits),
                    kind=kind,
                    step_index=step_index,
                )
            )
        return diffs

    def all_step_diffs(self) -> list[list[VarDiff]]:
        return [self.step_diffs(i) for i in range(len(self.path.steps))]

    def watch(self, step_index: int) -> list[WatchRow]:
        """Watch-panel rows: most recently changed first, then by name."""
        cumulative = self.at(step_index)
        if not cumulative:
            return []
        rows = [
            WatchRow(
                name=name,
                domain=render_range(tracked.range, short=True, max_digits=self.max_digits),
                last_changed_step=tracked.last_step,
                unrestricted=tracked.range.is_unrestricted(),
            )
            for name, tracked in cumulative.items()
        ]
        rows.sort(key=lambda row: (-row.last_changed_step, row.name))
        return rows
