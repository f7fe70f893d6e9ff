"""Audit session: owns the loaded analysis, the navigation state and the derived views."""
from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from ..annotate import (
    AnnotatedLine,
    DomainTracker,
    LineRiskInfo,
    NodeLineIndex,
    RangeAnnotation,
    VarDiff,
    WatchRow,
    aggregate_line_risks,
    annotate_lines,
    choose_active_path,
    project_ranges,
    risk_summary,
    step_line,
)
from ..config import DEFAULT_CONFIG, WorkbenchConfig
from ..engine import AnalysisEngine
from ..model import (
    AnalysisResult,
    CallGraph,
    ContractInfo,
    FunctionAnalysis,
    FunctionInfo,
    GlobalRange,
    PathTrace,
    SourceWithMapping,
    StateVarAccess,
    coerce_int,
)
from . import context
from .navigation import (
    FetchCfg,
    FetchPathDetail,
    FetchSource,
    NavigateToFunction,
    NavigationEvent,
    NavigationState,
    NavigationStateMachine,
    Request,
    SelectContract,
    SelectFunction,
)

__all__ = ["AuditSession"]

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _undecorated_on_error(default: Callable[[AuditSession], Any]) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Projection failures leave the view without annotations instead of breaking it.

    *default* receives the session and builds the undecorated view.
    """

    def decorator(method: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(method)
        def wrapper(self: AuditSession, *args: Any, **kwargs: Any) -> T:
            self._require_loaded()
            try:
                return method(self, *args, **kwargs)
            except (ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
                logger.warning("annotation_failed", view=method.__name__, error=str(exc))
                return default(self)

        return wrapper

    return decorator


class AuditSession:
    """One auditor's workspace over an :class:`AnalysisEngine`.

    Create it, ``await load()``, drive it with navigation events and read the derived views.
    Engine calls run in worker threads; CFG and path-detail fetches run as background tasks
    whose results are dropped if the selection moved on before they arrived.
    """

    def __init__(self, engine: AnalysisEngine, config: WorkbenchConfig = DEFAULT_CONFIG) -> None:
        self.engine = engine
        self.config = config
        self.navigation = NavigationStateMachine(has_summary=self._has_summary)
        self._contracts: list[ContractInfo] | None = None
        self._analysis: AnalysisResult | None = None
        self._analysis_contract: str | None = None
        self._source = SourceWithMapping()
        self._source_node: int | None = None
        self._index = NodeLineIndex(())
        self._path_detail: dict[int, list[PathTrace]] = {}
        self._cfgs: dict[int, dict[str, Any] | None] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._cache: dict[tuple[Any, ...], Any] = {}

    # ─── Lifecycle ──────────────────────────────────────────────────────────

    @property
    def loaded(self) -> bool:
        return self._contracts is not None

    async def load(self) -> list[ContractInfo]:
        contracts = await asyncio.to_thread(self.engine.list_contracts)
        self.unload()
        self._contracts = contracts
        logger.info("session_loaded", contracts=len(contracts))
        return list(contracts)

    def unload(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        self._contracts = None
        self._analysis = None
        self._analysis_contract = None
        self._set_source(None, SourceWithMapping())
        self._path_detail.clear()
        self._cfgs.clear()
        self.navigation.reset()

    def _require_loaded(self) -> None:
        if self._contracts is None:
            raise RuntimeError("No analysis loaded")

    async def settle(self) -> None:
        """Wait for every outstanding background fetch."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ─── Lookup ─────────────────────────────────────────────────────────────

    @property
    def contracts(self) -> list[ContractInfo]:
        self._require_loaded()
        return list(self._contracts or ())

    @property
    def state(self) -> NavigationState:
        return self.navigation.state

    @property
    def analysis(self) -> AnalysisResult | None:
        return self._analysis

    @property
    def source(self) -> SourceWithMapping:
        return self._source

    @property
    def line_index(self) -> NodeLineIndex:
        return self._index

    def contract(self, contract_id: int) -> ContractInfo | None:
        for contract in self.contracts:
            if contract.id == contract_id:
                return contract
        return None

    def owner_of(self, function_id: int) -> ContractInfo | None:
        for contract in self.contracts:
            if contract.function_by_id(function_id) is not None:
                return contract
        return None

    def find_function(self, spec: str) -> tuple[ContractInfo, FunctionInfo]:
        """Resolve ``Contract.function``, a bare function name or a numeric function id."""
        contract_name, _, function_name = spec.rpartition(".")
        function_id = coerce_int(spec)
        matches = [
            (contract, function)
            for contract in self.contracts
            if not contract_name or contract.name == contract_name
            for function in contract.functions
            if (function.id == function_id if function_id is not None else function.name == function_name)
        ]
        if not matches:
            raise ValueError(f"Unknown function '{spec}'")
        if len(matches) > 1:
            candidates = ", ".join(f"{c.name}.{f.name}" for c, f in matches)
            raise ValueError(f"Function '{spec}' is ambiguous: {candidates}")
        return matches[0]

    def _has_summary(self, function_id: int) -> bool:
        return self._analysis is not None and self._analysis.summary(function_id) is not None

    # ─── Navigation ─────────────────────────────────────────────────────────

    async def dispatch(self, event: NavigationEvent) -> None:
        """Apply *event*, performing the fetches it requests."""
        self._require_loaded()
        match event:
            case SelectContract(contract_id=contract_id):
                await self.select_contract(contract_id)
            case SelectFunction(function_id=function_id) | NavigateToFunction(function_id=function_id):
                await self.select_function(function_id, navigate=isinstance(event, NavigateToFunction))
            case _:
                self.navigation.dispatch(event)

    async def select_contract(self, contract_id: int) -> None:
        contract = self.contract(contract_id)
        if contract is None:
            raise KeyError(f"Unknown contract id {contract_id}")
        requests = self.navigation.dispatch(SelectContract(contract_id=contract_id))
        await self._ensure_analysis(contract)
        await self._perform(requests)

    async def select_function(self, function_id: int, *, navigate: bool = False) -> None:
        owner = self.owner_of(function_id)
        if owner is not None:
            await self._ensure_analysis(owner)
        event_type = NavigateToFunction if navigate else SelectFunction
        requests = self.navigation.dispatch(
            event_type(function_id=function_id, contract_id=owner.id if owner is not None else None)
        )
        await self._perform(requests)

    async def _ensure_analysis(self, contract: ContractInfo) -> None:
        if self._analysis_contract == contract.name or not contract.analyzable:
            return
        analysis = await asyncio.to_thread(self.engine.analyze_contract, contract.name)
        self._analysis = analysis
        self._analysis_contract = contract.name
        self._path_detail.clear()
        self._cfgs.clear()
        self._cache.clear()
        logger.info("contract_analyzed", contract=contract.name, functions=len(analysis.functions))

    async def _perform(self, requests: list[Request]) -> None:
        for request in requests:
            match request:
                case FetchSource(node_id=node_id, function_id=function_id):
                    await self._fetch_source(node_id, function_id)
                case FetchCfg(function_id=function_id):
                    self._spawn(self._fetch_cfg(function_id))
                case FetchPathDetail(function_id=function_id):
                    self._spawn(self._fetch_path_detail(function_id))

    def _spawn(self, coroutine: Any) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, function_id: int | None, node_id: int, what: str) -> bool:
        state = self.navigation.state
        if function_id is not None:
            current = state.function_id == function_id
        else:
            # Whole-contract source applies only while no function is selected.
            current = state.function_id is None and state.contract_id == node_id
        if not current:
            logger.debug(
                "stale_response_discarded",
                what=what,
                requested=node_id,
                contract_id=state.contract_id,
                function_id=state.function_id,
            )
        return current

    def _set_source(self, node_id: int | None, source: SourceWithMapping) -> None:
        self._source = source
        self._source_node = node_id
        self._index = NodeLineIndex(source.line_map)
        self._cache.clear()

    async def _fetch_source(self, node_id: int, function_id: int | None) -> None:
        source = await asyncio.to_thread(self.engine.node_mapped_source, node_id)
        if self._is_current(function_id, node_id, "source"):
            self._set_source(node_id, source)

    async def _fetch_cfg(self, function_id: int) -> None:
        try:
            cfg = await asyncio.to_thread(self.engine.cfg, function_id)
        except Exception:
            logger.exception("cfg_fetch_failed", function_id=function_id)
            return
        if self._is_current(function_id, function_id, "cfg"):
            self._cfgs[function_id] = cfg

    async def _fetch_path_detail(self, function_id: int) -> None:
        try:
            paths = await asyncio.to_thread(self.engine.path_detail, function_id)
        except Exception:
            logger.exception("path_detail_fetch_failed", function_id=function_id)
            return
        if self._is_current(function_id, function_id, "path_detail"):
            self._path_detail[function_id] = paths
            self._cache.clear()

    # ─── Derived views ──────────────────────────────────────────────────────

    def function_analysis(self) -> FunctionAnalysis | None:
        self._require_loaded()
        function_id = self.state.function_id
        if function_id is None or self._analysis is None:
            return None
        return self._analysis.function(function_id)

    def paths(self) -> list[PathTrace] | None:
        """Detailed paths when fetched, else the coarse ones; ``None`` without a function."""
        function_id = self.state.function_id
        if function_id is None:
            return None
        if function_id in self._path_detail:
            return self._path_detail[function_id]
        analysis = self.function_analysis()
        return list(analysis.paths) if analysis is not None else None

    def cfg(self) -> dict[str, Any] | None:
        function_id = self.state.function_id
        return self._cfgs.get(function_id) if function_id is not None else None

    def selected_path(self) -> PathTrace | None:
        paths = self.paths()
        index = self.state.path_index
        if paths is None or index is None or not 0 <= index < len(paths):
            return None
        return paths[index]

    def _memo(self, key: tuple[Any, ...], build: Callable[[], T]) -> T:
        full_key = (self._source_node, self.state.function_id, *key)
        if full_key not in self._cache:
            self._cache[full_key] = build()
        return self._cache[full_key]

    @_undecorated_on_error(lambda _session: {})
    def risk_map(self) -> dict[int, LineRiskInfo]:
        return self._memo(
            ("risk",),
            lambda: aggregate_line_risks(self.paths(), self._index, self._source.source, self.config),
        )

    @_undecorated_on_error(lambda _session: {})
    def range_annotations(self) -> dict[int, list[RangeAnnotation]]:
        selected = self.state.path_index
        return self._memo(
            ("ranges", selected),
            lambda: project_ranges(choose_active_path(self.paths(), selected), self._index, self.config),
        )

    def _raw_lines(self) -> list[AnnotatedLine]:
        if not self._source.source:
            return []
        return [AnnotatedLine(number=n, text=t) for n, t in enumerate(self._source.source.split("\n"), start=1)]

    @_undecorated_on_error(_raw_lines)
    def annotated_lines(self) -> list[AnnotatedLine]:
        selected = self.state.path_index
        return self._memo(("lines", selected), lambda: self._build_annotated_lines(selected))

    def _build_annotated_lines(self, selected: int | None) -> list[AnnotatedLine]:
        analysis = self._analysis or AnalysisResult()
        function_id = self.state.function_id
        return annotate_lines(
            self._source.source,
            self.paths(),
            self._index,
            selected_path=selected,
            state_var_access=context.scoped_state_vars(analysis, function_id),
            global_ranges=context.scoped_global_ranges(analysis, function_id),
            config=self.config,
        )

    @_undecorated_on_error(lambda _session: [])
    def step_diffs(self) -> list[list[VarDiff]]:
        """Per-step diffs of the selected path.

        Unlike the margin projection, steps are judged by width only, so an assignment that
        shows as ASSIGN beside the source appears here as NARROWED or WIDENED.
        """
        path = self.selected_path()
        if path is None:
            return []
        return DomainTracker(path, max_digits=self.config.short_number_digits).all_step_diffs()

    @_undecorated_on_error(lambda _session: [])
    def watch(self) -> list[WatchRow]:
        path = self.selected_path()
        step = self.state.effective_step
        if path is None or step is None:
            return []
        return DomainTracker(path, max_digits=self.config.short_number_digits).watch(step)

    @_undecorated_on_error(lambda _session: None)
    def highlighted_line(self) -> int | None:
        return step_line(self.selected_path(), self.state.effective_step, self._index, self._source.source)

    @_undecorated_on_error(lambda _session: {})
    def risk_summary(self) -> dict[str, int]:
        return risk_summary(self.paths() or ())

    def callers(self) -> list[context.FunctionLink]:
        function_id = self.state.function_id
        if function_id is None or self._analysis is None:
            return []
        return context.callers(self._analysis.call_graph, function_id)

    def callees(self) -> list[context.FunctionLink]:
        function_id = self.state.function_id
        if function_id is None or self._analysis is None:
            return []
        return context.callees(self._analysis.call_graph, function_id)

    def call_graph(self) -> CallGraph:
        self._require_loaded()
        if self._analysis is None:
            return CallGraph()
        return context.scoped_call_graph(self._analysis.call_graph, self.state.function_id)

    def state_vars(self) -> list[StateVarAccess]:
        """State variables the selected function reads or writes (all of them with no function selected)."""
        self._require_loaded()
        if self._analysis is None:
            return []
        return context.scoped_state_vars(self._analysis, self.state.function_id)

    def global_ranges(self) -> list[GlobalRange]:
        self._require_loaded()
        if self._analysis is None:
            return []
        return context.scoped_global_ranges(self._analysis, self.state.function_id)
