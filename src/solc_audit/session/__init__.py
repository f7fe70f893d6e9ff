"""Audit session: navigation, engine fetches and context views."""

from .context import FunctionLink, PathFilter, callees, callers, filter_paths, scoped_call_graph
from .navigation import (
    BackToOverview,
    ContextMode,
    HighlightStep,
    InspectVariable,
    NavigateToFunction,
    NavigationState,
    NavigationStateMachine,
    SelectContract,
    SelectFunction,
    SelectLine,
    SelectPath,
    SwitchMode,
    event_from_dict,
)
from .session import AuditSession

__all__ = [
    "AuditSession",
    "BackToOverview",
    "ContextMode",
    "FunctionLink",
    "HighlightStep",
    "InspectVariable",
    "NavigateToFunction",
    "NavigationState",
    "NavigationStateMachine",
    "PathFilter",
    "SelectContract",
    "SelectFunction",
    "SelectLine",
    "SelectPath",
    "SwitchMode",
    "callees",
    "callers",
    "event_from_dict",
    "filter_paths",
    "scoped_call_graph",
]
