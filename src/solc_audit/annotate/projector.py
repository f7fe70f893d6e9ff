"""Projection of risks and domain changes onto source lines."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from ..config import DEFAULT_CONFIG, WorkbenchConfig
from ..model.analysis import GlobalRange, StateVarAccess
from ..model.ranges import render_range
from ..model.trace import AnalyzedStep, ExitKind, PathTrace
from .domains import ChangeKind, TrackedDomain, classify_change, merge_step
from .node_index import NodeLineIndex
from .risk import (
    RED_CHECKS,
    LineRiskInfo,
    aggregate_line_risks,
    assertion_lines,
    external_call_lines,
    line_arith_checks,
)

__all__ = [
    "AnnotatedLine",
    "Badge",
    "DomainAnnotation",
    "RangeAnnotation",
    "annotate_lines",
    "choose_active_path",
    "project_ranges",
    "static_annotations",
    "step_line",
]

logger = structlog.get_logger(__name__)


class Badge(StrEnum):
    NARROWED = "narrowed"
    TRUNCATION = "truncation"
    PRECISION = "precision"
    EXTERNAL = "external"
    INFO = "info"


@dataclass(slots=True, frozen=True)
class RangeAnnotation:
    line: int
    var_name: str
    domain: str
    kind: ChangeKind
    previous: str | None
    step_index: int

    @property
    def text(self) -> str:
        if self.previous is None:
            return f"{self.var_name} = {self.domain}"
        return f"{self.var_name}: {self.previous} → {self.domain}"


@dataclass(slots=True, frozen=True)
class DomainAnnotation:
    text: str
    badge: Badge


@dataclass(slots=True)
class AnnotatedLine:
    number: int
    text: str
    risk: LineRiskInfo | None = None
    ranges: list[RangeAnnotation] = field(default_factory=list)
    badge: DomainAnnotation | None = None


def choose_active_path(paths: Sequence[PathTrace] | None, selected_index: int | None = None) -> PathTrace | None:
    """The selected path, else the first feasible returning path, else the first feasible one."""
    if not paths:
        return None
    if selected_index is not None:
        return paths[selected_index] if 0 <= selected_index < len(paths) else None
    for path in paths:
        if path.feasible and path.exit is ExitKind.RETURN:
            return path
    for path in paths:
        if path.feasible:
            return path
    return None


def project_ranges(
    path: PathTrace | None,
    index: NodeLineIndex,
    config: WorkbenchConfig = DEFAULT_CONFIG,
) -> dict[int, list[RangeAnnotation]]:
    """Domain changes along *path*, keyed by the source line of the step that made them.

    Steps on unmapped nodes produce nothing but still feed later comparisons.
    """
    projected: dict[int, list[RangeAnnotation]] = {}
    if path is None:
        return projected

    cumulative: dict[str, TrackedDomain] = {}
    for step_index, step in enumerate(path.steps):
        if isinstance(step, AnalyzedStep) and step.statement.ranges:
            line = index.line_of(step.statement.node_id)
            if line is not None:
                for name, current in step.statement.ranges.items():
                    tracked = cumulative.get(name)
                    previous = tracked.range if tracked is not None else None
                    kind = classify_change(previous, current, step.statement.kind)
                    if kind is None:
                        continue
                    projected.setdefault(line, []).append(
                        RangeAnnotation(
                            line=line,
                            var_name=name,
                            domain=render_range(current, short=True, max_digits=config.short_number_digits),
                            kind=kind,
                            previous=render_range(previous, short=True, max_digits=config.short_number_digits)
                            if previous is not None
                            else None,
                            step_index=step_index,
                        )
                    )
        merge_step(cumulative, step, step_index)
    return projected


def static_annotations(
    source: str,
    paths: Sequence[PathTrace] | None,
    index: NodeLineIndex,
    state_var_access: Sequence[StateVarAccess] = (),
    global_ranges: Sequence[GlobalRange] = (),
    config: WorkbenchConfig = DEFAULT_CONFIG,
) -> dict[int, DomainAnnotation]:
    """Badges that do not depend on a selected path. Earlier sources win a line."""
    badges: dict[int, DomainAnnotation] = {}
    if not source:
        return badges

    for line, checks in line_arith_checks(paths or (), index, source, config).items():
        kinds = list(dict.fromkeys(check.check for check in checks))
        badge = Badge.TRUNCATION if kinds[0] in RED_CHECKS else Badge.PRECISION
        badges[line] = DomainAnnotation(text=f"⚠ {', '.join(kinds)}", badge=badge)

    assertions = assertion_lines(source)
    externals = external_call_lines(source)
    for line in sorted(assertions.keys() | externals.keys()):
        if line in badges:
            continue
        if line in assertions:
            badges[line] = DomainAnnotation(text="↓ NARROWING POINT", badge=Badge.NARROWED)
        else:
            badges[line] = DomainAnnotation(text="⚡ EXTERNAL CALL", badge=Badge.EXTERNAL)

    for access in state_var_access:
        if len(access.writers) < 2:
            continue
        line = index.line_of(access.var_id)
        if line is not None and line not in badges:
            writers = ", ".join(ref.func_name for ref in access.writers)
            badges[line] = DomainAnnotation(text=f"MULTI-WRITER: {writers}", badge=Badge.INFO)

    for global_range in global_ranges:
        if not global_range.unrestricted:
            continue
        line = index.line_of(global_range.var_id)
        if line is not None and line not in badges:
            badges[line] = DomainAnnotation(text=f"{global_range.var_name}: UNRESTRICTED", badge=Badge.TRUNCATION)

    return dict(sorted(badges.items()))


def step_line(path: PathTrace | None, step_index: int | None, index: NodeLineIndex, source: str) -> int | None:
    """Source line of one step: by node mapping, else by matching the step text."""
    if path is None or step_index is None:
        return None
    statement = path.statement_at(step_index)
    if statement is None:
        return None
    line = index.line_of(statement.node_id)
    if line is not None:
        return line

    text = statement.text.strip()
    if not text:
        return None
    for number, source_line in enumerate(source.split("\n"), start=1):
        candidate = source_line.strip().removesuffix(";").strip()
        if len(candidate) > 1 and candidate in text:
            logger.debug("step_line_text_match", step=step_index, line=number)
            return number
    return None


def annotate_lines(
    source: str,
    paths: Sequence[PathTrace] | None,
    index: NodeLineIndex,
    *,
    selected_path: int | None = None,
    state_var_access: Sequence[StateVarAccess] = (),
    global_ranges: Sequence[GlobalRange] = (),
    config: WorkbenchConfig = DEFAULT_CONFIG,
) -> list[AnnotatedLine]:
    """One entry per source line combining risk, range and static annotations.

    Range annotations take priority over a line's static badge.
    """
    if not source:
        return []
    risks = aggregate_line_risks(paths, index, source, config)
    ranges = project_ranges(choose_active_path(paths, selected_path), index, config)
    badges = static_annotations(source, paths, index, state_var_access, global_ranges, config)

    annotated: list[AnnotatedLine] = []
    for number, text in enumerate(source.split("\n"), start=1):
        line_ranges = ranges.get(number, [])
        annotated.append(
            AnnotatedLine(
                number=number,
                text=text,
                risk=risks.get(number),
                ranges=line_ranges,
                badge=None if line_ranges else badges.get(number),
            )
        )
    return annotated
