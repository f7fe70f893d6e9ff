"""Per-line risk classification."""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from ..config import DEFAULT_CONFIG, WorkbenchConfig
from ..model.trace import ArithCheck, PathTrace
from .node_index import NodeLineIndex

__all__ = [
    "ASSERTION_PATTERNS",
    "EXTERNAL_CALL_PATTERNS",
    "ORANGE_CHECKS",
    "RED_CHECKS",
    "RISK_RANK",
    "LineRiskInfo",
    "RiskLevel",
    "aggregate_line_risks",
    "assertion_lines",
    "check_level",
    "external_call_lines",
    "feasible_checks",
    "line_arith_checks",
    "risk_summary",
]

logger = structlog.get_logger(__name__)


class RiskLevel(StrEnum):
    RED = "red"
    ORANGE = "orange"
    BLUE = "blue"
    GREEN = "green"
    NONE = "none"

    @property
    def glyph(self) -> str:
        return _GLYPHS[self]


RISK_RANK: dict[RiskLevel, int] = {
    RiskLevel.RED: 0,
    RiskLevel.ORANGE: 1,
    RiskLevel.BLUE: 2,
    RiskLevel.GREEN: 3,
    RiskLevel.NONE: 4,
}

_GLYPHS: dict[RiskLevel, str] = {
    RiskLevel.RED: "!!",
    RiskLevel.ORANGE: "!",
    RiskLevel.BLUE: "~",
    RiskLevel.GREEN: ">",
    RiskLevel.NONE: "",
}

RED_CHECKS = frozenset({"Overflow", "Underflow", "DivByZero", "UncheckedReturn"})
ORANGE_CHECKS = frozenset({"DivisionTruncation", "MulAfterDiv", "RightShiftTruncation", "DowncastTruncation"})

EXTERNAL_CALL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.call\s*[({]"),
    re.compile(r"\.delegatecall\s*[({]"),
    re.compile(r"\.staticcall\s*[({]"),
    re.compile(r"\.transfer\s*\("),
    re.compile(r"\.send\s*\("),
)
ASSERTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\brequire\s*\("),
    re.compile(r"\bassert\s*\("),
)


@dataclass(slots=True)
class LineRiskInfo:
    level: RiskLevel = RiskLevel.NONE
    descriptions: list[str] = field(default_factory=list)

    @property
    def glyph(self) -> str:
        return self.level.glyph

    def raise_to(self, level: RiskLevel) -> None:
        """Adopt *level* only if it is more severe than the current one."""
        if RISK_RANK[level] < RISK_RANK[self.level]:
            self.level = level

    def to_dict(self) -> dict[str, object]:
        return {"level": self.level.value, "glyph": self.glyph, "descriptions": list(self.descriptions)}


def check_level(check: str) -> RiskLevel:
    if check in RED_CHECKS:
        return RiskLevel.RED
    # ORANGE_CHECKS and every unknown check kind
    return RiskLevel.ORANGE


def feasible_checks(paths: Iterable[PathTrace]) -> list[ArithCheck]:
    """Unique ``(op_node, check)`` findings over feasible paths, first occurrence wins."""
    unique: dict[tuple[int, str], ArithCheck] = {}
    for path in paths:
        if not path.feasible:
            continue
        for check in path.arith_checks:
            unique.setdefault(check.key, check)
    return list(unique.values())


def _fallback_line(check: ArithCheck, lines: Sequence[str], min_length: int) -> int | None:
    op_text = (check.op_text or "").strip()
    if len(op_text) < min_length:
        return None
    for number, text in enumerate(lines, start=1):
        if op_text in text:
            return number
    return None


def line_arith_checks(
    paths: Sequence[PathTrace],
    index: NodeLineIndex,
    source: str,
    config: WorkbenchConfig = DEFAULT_CONFIG,
) -> dict[int, list[ArithCheck]]:
    """Place each feasible-path finding on a source line.

    Findings on unmapped nodes fall back to the first line containing the operation text.
    That search is ambiguous for repeated expressions; first match wins.
    """
    by_line: dict[int, list[ArithCheck]] = {}
    if not source or not paths:
        return by_line

    lines = source.split("\n")
    unmapped: list[ArithCheck] = []
    for check in feasible_checks(paths):
        line = index.line_of(check.op_node)
        if line is None:
            unmapped.append(check)
            continue
        by_line.setdefault(line, []).append(check)

    for check in unmapped:
        line = _fallback_line(check, lines, config.min_fallback_text_length)
        if line is None:
            logger.debug("arith_check_dropped", op_node=check.op_node, check=check.check)
            continue
        logger.debug("arith_check_text_fallback", op_node=check.op_node, check=check.check, line=line)
        bucket = by_line.setdefault(line, [])
        if not any(existing.key == check.key for existing in bucket):
            bucket.append(check)
    return by_line


def _matching_lines(source: str, patterns: Sequence[re.Pattern[str]]) -> dict[int, str]:
    matches: dict[int, str] = {}
    for number, text in enumerate(source.split("\n"), start=1):
        if any(pattern.search(text) for pattern in patterns):
            matches[number] = text.strip()
    return matches


def external_call_lines(source: str) -> dict[int, str]:
    return _matching_lines(source, EXTERNAL_CALL_PATTERNS) if source else {}


def assertion_lines(source: str) -> dict[int, str]:
    return _matching_lines(source, ASSERTION_PATTERNS) if source else {}


def aggregate_line_risks(
    paths: Sequence[PathTrace] | None,
    index: NodeLineIndex,
    source: str,
    config: WorkbenchConfig = DEFAULT_CONFIG,
) -> dict[int, LineRiskInfo]:
    """Merge arithmetic findings, external calls and assertions into one entry per line.

    A line's level never drops once set; weaker signals only add descriptions.
    """
    risks: dict[int, LineRiskInfo] = {}
    if not source or paths is None:
        return risks

    for line, checks in line_arith_checks(paths, index, source, config).items():
        info = risks.setdefault(line, LineRiskInfo())
        for check in checks:
            info.descriptions.append(f"{check.check}: {check.bound}")
            info.raise_to(check_level(check.check))

    for line, text in external_call_lines(source).items():
        info = risks.setdefault(line, LineRiskInfo())
        info.raise_to(RiskLevel.BLUE)
        info.descriptions.append(f"External call: {text}")

    for line in assertion_lines(source):
        if line not in risks:
            risks[line] = LineRiskInfo(level=RiskLevel.GREEN, descriptions=["Domain narrowing point"])

    return dict(sorted(risks.items()))


def risk_summary(paths: Iterable[PathTrace]) -> dict[str, int]:
    """Count findings per check kind over feasible paths, one per path occurrence."""
    counts: dict[str, int] = {}
    for path in paths:
        if not path.feasible:
            continue
        for check in path.arith_checks:
            counts[check.check] = counts.get(check.check, 0) + 1
    return counts
