"""Engine adapter serving a previously exported analysis dump."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from ..model import (
    AnalysisResult,
    ContractInfo,
    PathTrace,
    SourceWithMapping,
    coerce_int,
    parse_analysis_result,
    parse_contract_list,
    parse_paths,
    parse_source_with_mapping,
)

__all__ = ["DumpEngine", "load_dump"]

logger = structlog.get_logger(__name__)


def _by_int_key(raw: Any, section: str) -> dict[int, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Dump section '{section}' must be an object")
    keyed: dict[int, Any] = {}
    for key, value in raw.items():
        node_id = coerce_int(key)
        if node_id is None:
            logger.warning("dump_key_skipped", section=section, key=key)
            continue
        keyed[node_id] = value
    return keyed


class DumpEngine:
    """In-memory engine over the JSON dump layout.

    ``{"contracts": [...], "analyses": {name: ...}, "pathDetail": {fid: [...]},
    "sources": {nodeId: {"source", "lineMap"}}, "cfgs": {fid: {...}}}``

    Sections are parsed lazily and cached; missing sections degrade to empty.
    """

    def __init__(self, payload: dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            raise ValueError("Dump root must be an object")
        raw_contracts = payload.get("contracts")
        self._contracts = parse_contract_list(raw_contracts if raw_contracts is not None else [])
        raw_analyses = payload.get("analyses")
        if raw_analyses is not None and not isinstance(raw_analyses, dict):
            raise ValueError("Dump section 'analyses' must be an object")
        self._raw_analyses: dict[str, Any] = raw_analyses or {}
        self._raw_detail = _by_int_key(payload.get("pathDetail"), "pathDetail")
        self._raw_sources = _by_int_key(payload.get("sources"), "sources")
        self._cfgs = _by_int_key(payload.get("cfgs"), "cfgs")
        self._analyses: dict[str, AnalysisResult] = {}
        self._details: dict[int, list[PathTrace]] = {}

    @classmethod
    def from_json(cls, raw_json: str | bytes) -> DumpEngine:
        try:
            payload = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid dump JSON: {exc}") from exc
        return cls(payload)

    @classmethod
    def from_path(cls, path: str | Path) -> DumpEngine:
        return cls.from_json(Path(path).read_bytes())

    def list_contracts(self) -> list[ContractInfo]:
        return list(self._contracts)

    def contract_named(self, name: str) -> ContractInfo | None:
        for contract in self._contracts:
            if contract.name == name:
                return contract
        return None

    def contract_of_function(self, function_id: int) -> ContractInfo | None:
        for contract in self._contracts:
            if contract.function_by_id(function_id) is not None:
                return contract
        return None

    def analyze_contract(self, name: str) -> AnalysisResult:
        cached = self._analyses.get(name)
        if cached is not None:
            return cached
        if name not in self._raw_analyses:
            raise KeyError(f"No analysis for contract '{name}'")
        result = parse_analysis_result(self._raw_analyses[name])
        self._analyses[name] = result
        return result

    def list_paths(self, function_id: int) -> list[PathTrace]:
        contract = self.contract_of_function(function_id)
        if contract is None or contract.name not in self._raw_analyses:
            return []
        analysis = self.analyze_contract(contract.name).function(function_id)
        return list(analysis.paths) if analysis is not None else []

    def path_detail(self, function_id: int) -> list[PathTrace]:
        cached = self._details.get(function_id)
        if cached is not None:
            return cached
        raw = self._raw_detail.get(function_id)
        if raw is None:
            # No detailed export: the coarse paths are the best available.
            paths = self.list_paths(function_id)
        else:
            paths = parse_paths(raw)
        self._details[function_id] = paths
        return paths

    def node_mapped_source(self, node_id: int) -> SourceWithMapping:
        raw = self._raw_sources.get(node_id)
        if raw is None:
            return SourceWithMapping()
        return parse_source_with_mapping(raw)

    def cfg(self, function_id: int) -> dict[str, Any] | None:
        raw = self._cfgs.get(function_id)
        return raw if isinstance(raw, dict) else None


def load_dump(path: str | Path) -> DumpEngine:
    """Open a dump file, reporting unreadable files as ``ValueError``."""
    try:
        return DumpEngine.from_path(path)
    except OSError as exc:
        raise ValueError(f"Cannot read dump '{path}': {exc}") from exc
