"""Analysis engine data model and JSON parsing."""

from __future__ import annotations

from .analysis import (
    AnalysisResult,
    CallGraph,
    CallGraphEdge,
    CallGraphNode,
    ContractInfo,
    FuncRef,
    FunctionAnalysis,
    FunctionInfo,
    FunctionSummary,
    GlobalRange,
    SourceWithMapping,
    StateVarAccess,
    StateVarInfo,
    StateWrite,
    parse_analysis_result,
    parse_contract_list,
    parse_source_with_mapping,
)
from .ranges import TOP, RangeBound, VarRange, coerce_int, parse_var_range, render_range, short_number
from .trace import (
    AnalyzedStep,
    ArithCheck,
    ExitKind,
    InlinedCall,
    PathTrace,
    PlainText,
    StatementStep,
    Step,
    StepKind,
    parse_path,
    parse_paths,
    parse_step,
)

__all__ = [
    "TOP",
    "AnalysisResult",
    "AnalyzedStep",
    "ArithCheck",
    "CallGraph",
    "CallGraphEdge",
    "CallGraphNode",
    "ContractInfo",
    "ExitKind",
    "FuncRef",
    "FunctionAnalysis",
    "FunctionInfo",
    "FunctionSummary",
    "GlobalRange",
    "InlinedCall",
    "PathTrace",
    "PlainText",
    "RangeBound",
    "SourceWithMapping",
    "StateVarAccess",
    "StateVarInfo",
    "StateWrite",
    "StatementStep",
    "Step",
    "StepKind",
    "VarRange",
    "coerce_int",
    "parse_analysis_result",
    "parse_contract_list",
    "parse_path",
    "parse_paths",
    "parse_source_with_mapping",
    "parse_step",
    "parse_var_range",
    "render_range",
    "short_number",
]
