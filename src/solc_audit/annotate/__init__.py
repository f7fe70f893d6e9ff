"""Trace-to-annotation core: line risks, domain tracking and line projection."""

from .domains import ChangeKind, DomainTracker, TrackedDomain, VarDiff, WatchRow, classify_change, fold_domains
from .node_index import NodeLineIndex
from .projector import (
    AnnotatedLine,
    Badge,
    DomainAnnotation,
    RangeAnnotation,
    annotate_lines,
    choose_active_path,
    project_ranges,
    static_annotations,
    step_line,
)
from .risk import RISK_RANK, LineRiskInfo, RiskLevel, aggregate_line_risks, check_level, risk_summary

__all__ = [
    "RISK_RANK",
    "AnnotatedLine",
    "Badge",
    "ChangeKind",
    "DomainAnnotation",
    "DomainTracker",
    "LineRiskInfo",
    "NodeLineIndex",
    "RangeAnnotation",
    "RiskLevel",
    "TrackedDomain",
    "VarDiff",
    "WatchRow",
    "aggregate_line_risks",
    "annotate_lines",
    "check_level",
    "choose_active_path",
    "classify_change",
    "fold_domains",
    "project_ranges",
    "risk_summary",
    "static_annotations",
    "step_line",
]
