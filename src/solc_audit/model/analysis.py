"""Contract, analysis and source-mapping records produced by the analysis engine."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .ranges import RangeBound, coerce_int
from .trace import PathTrace, parse_paths

__all__ = [
    "AnalysisResult",
    "CallGraph",
    "CallGraphEdge",
    "CallGraphNode",
    "ContractInfo",
    "FuncRef",
    "FunctionAnalysis",
    "FunctionInfo",
    "FunctionSummary",
    "GlobalRange",
    "SourceWithMapping",
    "StateVarAccess",
    "StateVarInfo",
    "StateWrite",
    "parse_analysis_result",
    "parse_contract_list",
    "parse_source_with_mapping",
]


@dataclass(slots=True, frozen=True)
class FunctionInfo:
    id: int
    name: str
    visibility: str = "public"
    state_mutability: str = "nonpayable"
    is_constructor: bool = False
    kind: str = "function"
    has_body: bool = True

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return "constructor" if self.is_constructor else self.kind


@dataclass(slots=True, frozen=True)
class StateVarInfo:
    id: int
    name: str
    type_string: str = ""
    visibility: str = "internal"
    constant: bool = False


@dataclass(slots=True, frozen=True)
class ContractInfo:
    id: int
    name: str
    kind: str = "contract"
    is_abstract: bool = False
    source_file: str = ""
    functions: tuple[FunctionInfo, ...] = ()
    state_vars: tuple[StateVarInfo, ...] = ()

    @property
    def analyzable(self) -> bool:
        return self.kind.lower() not in {"interface", "library"} and bool(self.functions)

    def function_by_id(self, function_id: int) -> FunctionInfo | None:
        for function in self.functions:
            if function.id == function_id:
                return function
        return None


@dataclass(slots=True, frozen=True)
class FunctionAnalysis:
    function_id: int
    function_name: str
    contract_name: str | None = None
    intra_paths: int = 0
    inter_paths: int = 0
    feasible_paths: int = 0
    infeasible_paths: int = 0
    return_paths: int = 0
    revert_paths: int = 0
    paths: tuple[PathTrace, ...] = ()
    inlined_callees: tuple[tuple[str, int], ...] = ()


@dataclass(slots=True, frozen=True)
class CallGraphNode:
    id: int
    name: str
    contract_name: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.contract_name}.{self.name}" if self.contract_name else self.name


@dataclass(slots=True, frozen=True)
class CallGraphEdge:
    source: int
    target: int | None
    call_site: int = -1
    is_external: bool = False
    call_kind: str | None = None
    member_name: str | None = None


@dataclass(slots=True, frozen=True)
class CallGraph:
    nodes: tuple[CallGraphNode, ...] = ()
    edges: tuple[CallGraphEdge, ...] = ()
    recursive_functions: tuple[int, ...] = ()

    def node(self, node_id: int) -> CallGraphNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


@dataclass(slots=True, frozen=True)
class StateWrite:
    var_id: int
    var_name: str
    bound: RangeBound = RangeBound()


@dataclass(slots=True, frozen=True)
class FunctionSummary:
    function_id: int
    function_name: str
    contract_name: str | None = None
    param_ranges: tuple[tuple[int, RangeBound], ...] = ()
    return_range: RangeBound | None = None
    state_writes: tuple[StateWrite, ...] = ()


@dataclass(slots=True, frozen=True)
class GlobalRange:
    var_id: int
    var_name: str
    contract_name: str | None = None
    type_string: str = ""
    bound: RangeBound = RangeBound()

    @property
    def unrestricted(self) -> bool:
        return self.bound.min is None and self.bound.max is None


@dataclass(slots=True, frozen=True)
class FuncRef:
    func_id: int
    func_name: str
    contract_name: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.contract_name}.{self.func_name}" if self.contract_name else self.func_name


@dataclass(slots=True, frozen=True)
class StateVarAccess:
    var_id: int
    var_name: str
    type_string: str = ""
    contract_id: int = -1
    contract_name: str = ""
    readers: tuple[FuncRef, ...] = ()
    writers: tuple[FuncRef, ...] = ()

    def touched_by(self, function_id: int) -> bool:
        return any(ref.func_id == function_id for ref in (*self.readers, *self.writers))


@dataclass(slots=True)
class AnalysisResult:
    functions: list[FunctionAnalysis] = field(default_factory=list)
    call_graph: CallGraph = field(default_factory=CallGraph)
    summaries: list[FunctionSummary] = field(default_factory=list)
    global_ranges: list[GlobalRange] = field(default_factory=list)
    state_var_access: list[StateVarAccess] = field(default_factory=list)

    def function(self, function_id: int) -> FunctionAnalysis | None:
        for analysis in self.functions:
            if analysis.function_id == function_id:
                return analysis
        return None

    def summary(self, function_id: int) -> FunctionSummary | None:
        for summary in self.summaries:
            if summary.function_id == function_id:
                return summary
        return None


@dataclass(slots=True, frozen=True)
class SourceWithMapping:
    source: str = ""
    line_map: tuple[tuple[int, int, int], ...] = ()


def _list(raw: Any) -> list[Any]:
    return raw if isinstance(raw, list) else []


def _objects(raw: Any) -> list[dict[str, Any]]:
    return [item for item in _list(raw) if isinstance(item, dict)]


def _opt_str(raw: Any) -> str | None:
    return raw if isinstance(raw, str) else None


def _bound(raw: dict[str, Any]) -> RangeBound:
    return RangeBound(min=coerce_int(raw.get("min")), max=coerce_int(raw.get("max")))


def _load_json(raw: str | bytes | Any, what: str) -> Any:
    if not isinstance(raw, (str, bytes, bytearray)):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid {what} JSON: {exc}") from exc


def _parse_function_info(raw: dict[str, Any]) -> FunctionInfo | None:
    function_id = coerce_int(raw.get("id"))
    if function_id is None:
        return None
    return FunctionInfo(
        id=function_id,
        name=str(raw.get("name", "")),
        visibility=str(raw.get("visibility", "public")),
        state_mutability=str(raw.get("stateMutability", "nonpayable")),
        is_constructor=bool(raw.get("isConstructor", False)),
        kind=str(raw.get("kind", "function")),
        has_body=bool(raw.get("hasBody", True)),
    )


def _parse_state_var_info(raw: dict[str, Any]) -> StateVarInfo | None:
    var_id = coerce_int(raw.get("id"))
    if var_id is None:
        return None
    return StateVarInfo(
        id=var_id,
        name=str(raw.get("name", "")),
        type_string=str(raw.get("typeString", "")),
        visibility=str(raw.get("visibility", "internal")),
        constant=bool(raw.get("constant", False)),
    )


def parse_contract_list(raw_json: str | bytes | Any) -> list[ContractInfo]:
    """Parse the engine's contract list (JSON text or already-decoded list)."""
    payload = _load_json(raw_json, "contract list")
    if not isinstance(payload, list):
        raise ValueError("Contract list root must be an array")

    contracts: list[ContractInfo] = []
    for item in _objects(payload):
        contract_id = coerce_int(item.get("id"))
        if contract_id is None:
            continue
        functions = [f for f in (_parse_function_info(x) for x in _objects(item.get("functions"))) if f]
        state_vars = [v for v in (_parse_state_var_info(x) for x in _objects(item.get("stateVars"))) if v]
        contracts.append(
            ContractInfo(
                id=contract_id,
                name=str(item.get("name", "")),
                kind=str(item.get("kind", "contract")),
                is_abstract=bool(item.get("isAbstract", False)),
                source_file=str(item.get("sourceFile", "")),
                functions=tuple(functions),
                state_vars=tuple(state_vars),
            )
        )
    return contracts


def _parse_function_analysis(raw: dict[str, Any]) -> FunctionAnalysis | None:
    function_id = coerce_int(raw.get("functionId"))
    if function_id is None:
        return None
    inlined = tuple(
        (str(item.get("name", "")), coerce_int(item.get("paths"), 0))
        for item in _objects(raw.get("inlinedCallees"))
    )
    return FunctionAnalysis(
        function_id=function_id,
        function_name=str(raw.get("functionName", "")),
        contract_name=_opt_str(raw.get("contractName")),
        intra_paths=coerce_int(raw.get("intraPaths"), 0),
        inter_paths=coerce_int(raw.get("interPaths"), 0),
        feasible_paths=coerce_int(raw.get("feasiblePaths"), 0),
        infeasible_paths=coerce_int(raw.get("infeasiblePaths"), 0),
        return_paths=coerce_int(raw.get("returnPaths"), 0),
        revert_paths=coerce_int(raw.get("revertPaths"), 0),
        paths=tuple(parse_paths(raw.get("paths") if isinstance(raw.get("paths"), list) else None)),
        inlined_callees=inlined,
    )


def _parse_call_graph(raw: Any) -> CallGraph:
    if not isinstance(raw, dict):
        return CallGraph()
    nodes = tuple(
        CallGraphNode(id=node_id, name=str(item.get("name", "")), contract_name=_opt_str(item.get("contractName")))
        for item in _objects(raw.get("nodes"))
        if (node_id := coerce_int(item.get("id"))) is not None
    )
    edges = tuple(
        CallGraphEdge(
            source=source,
            target=coerce_int(item.get("to")),
            call_site=coerce_int(item.get("callSite"), -1),
            is_external=bool(item.get("isExternal", False)),
            call_kind=_opt_str(item.get("callKind")),
            member_name=_opt_str(item.get("memberName")),
        )
        for item in _objects(raw.get("edges"))
        if (source := coerce_int(item.get("from"))) is not None
    )
    recursive = tuple(
        value for value in (coerce_int(item) for item in _list(raw.get("recursiveFunctions"))) if value is not None
    )
    return CallGraph(nodes=nodes, edges=edges, recursive_functions=recursive)


def _parse_summary(raw: dict[str, Any]) -> FunctionSummary | None:
    function_id = coerce_int(raw.get("functionId"))
    if function_id is None:
        return None
    params = tuple(
        (coerce_int(item.get("paramIndex"), 0), _bound(item)) for item in _objects(raw.get("paramRanges"))
    )
    raw_return = raw.get("returnRange")
    writes = tuple(
        StateWrite(var_id=var_id, var_name=str(item.get("varName", "")), bound=_bound(item))
        for item in _objects(raw.get("stateWrites"))
        if (var_id := coerce_int(item.get("varId"))) is not None
    )
    return FunctionSummary(
        function_id=function_id,
        function_name=str(raw.get("functionName", "")),
        contract_name=_opt_str(raw.get("contractName")),
        param_ranges=params,
        return_range=_bound(raw_return) if isinstance(raw_return, dict) else None,
        state_writes=writes,
    )


def _parse_refs(raw: Any) -> tuple[FuncRef, ...]:
    return tuple(
        FuncRef(func_id=func_id, func_name=str(item.get("funcName", "")), contract_name=_opt_str(item.get("contractName")))
        for item in _objects(raw)
        if (func_id := coerce_int(item.get("funcId"))) is not None
    )


def _parse_state_var_access(raw: dict[str, Any]) -> StateVarAccess | None:
    var_id = coerce_int(raw.get("varId"))
    if var_id is None:
        return None
    return StateVarAccess(
        var_id=var_id,
        var_name=str(raw.get("varName", "")),
        type_string=str(raw.get("typeString", "")),
        contract_id=coerce_int(raw.get("contractId"), -1),
        contract_name=str(raw.get("contractName", "")),
        readers=_parse_refs(raw.get("readers")),
        writers=_parse_refs(raw.get("writers")),
    )


def parse_analysis_result(raw_json: str | bytes | Any) -> AnalysisResult:
    """Parse one contract's analysis result (JSON text or already-decoded object)."""
    payload = _load_json(raw_json, "analysis")
    if not isinstance(payload, dict):
        raise ValueError("Analysis root must be an object")

    global_ranges = [
        GlobalRange(
            var_id=var_id,
            var_name=str(item.get("varName", "")),
            contract_name=_opt_str(item.get("contractName")),
            type_string=str(item.get("typeString", "")),
            bound=_bound(item),
        )
        for item in _objects(payload.get("globalRanges"))
        if (var_id := coerce_int(item.get("varId"))) is not None
    ]
    return AnalysisResult(
        functions=[f for f in (_parse_function_analysis(x) for x in _objects(payload.get("functions"))) if f],
        call_graph=_parse_call_graph(payload.get("callGraph")),
        summaries=[s for s in (_parse_summary(x) for x in _objects(payload.get("summaries"))) if s],
        global_ranges=global_ranges,
        state_var_access=[
            v for v in (_parse_state_var_access(x) for x in _objects(payload.get("stateVarAnalysis"))) if v
        ],
    )


def parse_source_with_mapping(raw_json: str | bytes | Any) -> SourceWithMapping:
    """Parse ``{source, lineMap}``; malformed triples are skipped."""
    payload = _load_json(raw_json, "source mapping")
    if not isinstance(payload, dict):
        raise ValueError("Source mapping root must be an object")

    triples: list[tuple[int, int, int]] = []
    for item in _list(payload.get("lineMap")):
        if not isinstance(item, list) or len(item) != 3:
            continue
        line, column, node_id = (coerce_int(value) for value in item)
        if line is None or column is None or node_id is None:
            continue
        triples.append((line, column, node_id))
    source = payload.get("source")
    return SourceWithMapping(source=source if isinstance(source, str) else "", line_map=tuple(triples))
