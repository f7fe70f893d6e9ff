"""Boundary to the analysis engine."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..model import AnalysisResult, ContractInfo, PathTrace, SourceWithMapping

__all__ = ["AnalysisEngine"]


@runtime_checkable
class AnalysisEngine(Protocol):
    """What the workbench needs from an engine. Calls may block; the session runs them off the loop."""

    def list_contracts(self) -> list[ContractInfo]: ...

    def analyze_contract(self, name: str) -> AnalysisResult: ...

    def list_paths(self, function_id: int) -> list[PathTrace]:
        """Coarse paths from the contract analysis."""
        ...

    def path_detail(self, function_id: int) -> list[PathTrace]:
        """Paths with full per-step domains."""
        ...

    def node_mapped_source(self, node_id: int) -> SourceWithMapping: ...

    def cfg(self, function_id: int) -> dict[str, Any] | None: ...
