"""Variable domain values and their rendering."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = [
    "NAMED_BOUNDS",
    "RangeBound",
    "TOP",
    "coerce_int",
    "VarRange",
    "parse_var_range",
    "render_range",
    "short_number",
]

MAX_UINT256 = 2**256 - 1
MAX_UINT128 = 2**128 - 1
MAX_INT256 = 2**255 - 1
MIN_INT256 = -(2**255)

NAMED_BOUNDS: dict[int, str] = {
    MAX_UINT256: "MAX_UINT256",
    MAX_UINT128: "MAX_UINT128",
    MAX_INT256: "MAX_INT256",
    MIN_INT256: "MIN_INT256",
}

_FULL_WIDTH_RANGES: frozenset[tuple[int, int]] = frozenset(
    {(0, 2**bits - 1) for bits in range(8, 257, 8)}
    | {(-(2 ** (bits - 1)), 2 ** (bits - 1) - 1) for bits in range(8, 257, 8)}
)


@dataclass(slots=True, frozen=True)
class VarRange:
    """Domain of a variable at one program point.

    ``intervals`` is authoritative when non-empty; ``min``/``max`` are only consulted
    when no interval data is present. With neither, the domain is unconstrained (TOP).
    """

    intervals: tuple[tuple[int, int], ...] = ()
    exclusions: tuple[int, ...] = ()
    min: int | None = None
    max: int | None = None

    @property
    def is_top(self) -> bool:
        return not self.intervals and self.min is None and self.max is None

    @property
    def interval_count(self) -> int:
        """Number of disjoint pieces; bounds form and TOP count as one."""
        return len(self.intervals) or 1

    @property
    def exclusion_count(self) -> int:
        return len(self.exclusions) if self.intervals else 0

    def span(self) -> int | None:
        """Number of integers covered, or ``None`` when unbounded."""
        if self.intervals:
            return sum(hi - lo + 1 for lo, hi in self.intervals)
        if self.min is None or self.max is None:
            return None
        return max(0, self.max - self.min + 1)

    def is_unrestricted(self) -> bool:
        """True for TOP and for ranges that cover a whole integer type."""
        if self.is_top:
            return True
        if self.intervals:
            return not self.exclusions and len(self.intervals) == 1 and self.intervals[0] in _FULL_WIDTH_RANGES
        if self.max is None:
            return self.min is None or self.min <= 0
        return (self.min if self.min is not None else 0, self.max) in _FULL_WIDTH_RANGES


TOP = VarRange()


def coerce_int(raw: Any, default: int | None = None) -> int | None:
    """Decimal string or JSON integer to ``int``; anything else yields *default*."""
    if isinstance(raw, bool) or raw is None:
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip(), 10)
        except ValueError:
            return default
    return default


def parse_var_range(raw: Any) -> VarRange:
    """Parse an upstream ``{min, max, intervals, exclusions}`` object.

    Invalid leaves are dropped; a payload with nothing usable becomes TOP.
    """
    if not isinstance(raw, dict):
        return TOP

    intervals: list[tuple[int, int]] = []
    raw_intervals = raw.get("intervals")
    if isinstance(raw_intervals, list):
        for item in raw_intervals:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                continue
            lo, hi = coerce_int(item[0]), coerce_int(item[1])
            if lo is None or hi is None or lo > hi:
                continue
            intervals.append((lo, hi))

    exclusions: list[int] = []
    raw_exclusions = raw.get("exclusions")
    if isinstance(raw_exclusions, list):
        for item in raw_exclusions:
            value = coerce_int(item)
            if value is not None:
                exclusions.append(value)

    return VarRange(
        intervals=tuple(intervals),
        exclusions=tuple(exclusions),
        min=coerce_int(raw.get("min")),
        max=coerce_int(raw.get("max")),
    )


def short_number(value: int, max_digits: int = 15) -> str:
    named = NAMED_BOUNDS.get(value)
    if named is not None:
        return named
    text = str(value)
    if len(text) > max_digits:
        return f"{text[:6]}..{text[-4:]}"
    return text


def render_range(var_range: VarRange, *, short: bool = False, max_digits: int = 15) -> str:
    """Render a domain.

    The exact form (``short=False``) is canonical and is what change detection compares;
    the short form only shortens numbers for display.
    """

    def num(value: int) -> str:
        return short_number(value, max_digits) if short else str(value)

    if var_range.intervals:
        parts = [num(lo) if lo == hi else f"{num(lo)}..{num(hi)}" for lo, hi in var_range.intervals]
        text = " ∪ ".join(parts) if len(parts) > 1 else f"[{parts[0]}]"
        if var_range.exclusions:
            text += " \\ {" + ",".join(num(value) for value in var_range.exclusions) + "}"
        return text
    if var_range.min is not None or var_range.max is not None:
        low = num(var_range.min) if var_range.min is not None else "0"
        high = num(var_range.max) if var_range.max is not None else "MAX"
        return f"[{low}, {high}]"
    return "TOP"


@dataclass(slots=True, frozen=True)
class RangeBound:
    """Plain ``{min, max}`` pair used by summaries and global ranges."""

    min: int | None = None
    max: int | None = None

    def render(self) -> str:
        return render_range(VarRange(min=self.min, max=self.max), short=True)
