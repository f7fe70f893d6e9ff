"""Views scoped to the selected function: call neighbourhood, touched state, path filters."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..model import AnalysisResult, CallGraph, GlobalRange, PathTrace, StateVarAccess
from ..model.trace import ExitKind

__all__ = [
    "FunctionLink",
    "PathFilter",
    "callees",
    "callers",
    "filter_paths",
    "scoped_call_graph",
    "scoped_global_ranges",
    "scoped_state_vars",
    "touched_state_var_ids",
]


class PathFilter(StrEnum):
    ALL = "all"
    RETURN = "return"
    REVERT = "revert"
    ARITH = "arith"


@dataclass(slots=True, frozen=True)
class FunctionLink:
    id: int
    name: str


def filter_paths(
    paths: Sequence[PathTrace],
    path_filter: PathFilter = PathFilter.ALL,
    *,
    include_infeasible: bool = False,
) -> list[tuple[int, PathTrace]]:
    """Paths passing *path_filter*, paired with their position in *paths*."""
    selected: list[tuple[int, PathTrace]] = []
    for position, path in enumerate(paths):
        if not path.feasible and not include_infeasible:
            continue
        if path_filter is PathFilter.RETURN and path.exit is not ExitKind.RETURN:
            continue
        if path_filter is PathFilter.REVERT and path.exit is not ExitKind.REVERT:
            continue
        if path_filter is PathFilter.ARITH and not path.arith_checks:
            continue
        selected.append((position, path))
    return selected


def _neighbours(graph: CallGraph, function_id: int, *, incoming: bool) -> list[FunctionLink]:
    links: dict[int, FunctionLink] = {}
    for edge in graph.edges:
        if incoming:
            matched, other = edge.target == function_id, edge.source
        else:
            matched, other = edge.source == function_id, edge.target
        if not matched or other is None or other in links:
            continue
        node = graph.node(other)
        if node is not None:
            links[other] = FunctionLink(id=node.id, name=node.qualified_name)
    return list(links.values())


def callers(graph: CallGraph, function_id: int) -> list[FunctionLink]:
    return _neighbours(graph, function_id, incoming=True)


def callees(graph: CallGraph, function_id: int) -> list[FunctionLink]:
    return _neighbours(graph, function_id, incoming=False)


def scoped_call_graph(graph: CallGraph, function_id: int | None) -> CallGraph:
    """The transitive call tree below *function_id*; the whole graph when nothing is selected."""
    if function_id is None:
        return graph
    reachable: set[int] = set()
    pending = [function_id]
    while pending:
        current = pending.pop()
        if current in reachable:
            continue
        reachable.add(current)
        pending.extend(
            edge.target
            for edge in graph.edges
            if edge.source == current and edge.target is not None and edge.target not in reachable
        )
    return CallGraph(
        nodes=tuple(node for node in graph.nodes if node.id in reachable),
        edges=tuple(
            edge
            for edge in graph.edges
            if edge.target is not None and edge.source in reachable and edge.target in reachable
        ),
        recursive_functions=tuple(fid for fid in graph.recursive_functions if fid in reachable),
    )


def touched_state_var_ids(analysis: AnalysisResult, function_id: int) -> set[int]:
    return {access.var_id for access in analysis.state_var_access if access.touched_by(function_id)}


def scoped_state_vars(analysis: AnalysisResult, function_id: int | None) -> list[StateVarAccess]:
    if function_id is None:
        return list(analysis.state_var_access)
    touched = touched_state_var_ids(analysis, function_id)
    return [access for access in analysis.state_var_access if access.var_id in touched]


def scoped_global_ranges(analysis: AnalysisResult, function_id: int | None) -> list[GlobalRange]:
    if function_id is None:
        return list(analysis.global_ranges)
    touched = touched_state_var_ids(analysis, function_id)
    return [item for item in analysis.global_ranges if item.var_id in touched]
