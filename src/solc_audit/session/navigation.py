"""Selection state shared by the source view, the path inspector and the context panel."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

import structlog

from ..model.ranges import coerce_int

__all__ = [
    "BackToOverview",
    "ContextMode",
    "FetchCfg",
    "FetchPathDetail",
    "FetchSource",
    "HighlightStep",
    "InspectVariable",
    "NavigateToFunction",
    "NavigationEvent",
    "NavigationState",
    "NavigationStateMachine",
    "Request",
    "SelectContract",
    "SelectFunction",
    "SelectLine",
    "SelectPath",
    "SwitchMode",
    "event_from_dict",
]

logger = structlog.get_logger(__name__)


class ContextMode(StrEnum):
    OVERVIEW = "overview"
    PATH = "path"
    VARIABLE = "variable"
    RAW_DATA = "raw-data"


@dataclass(slots=True, frozen=True)
class NavigationState:
    contract_id: int | None = None
    function_id: int | None = None
    path_index: int | None = None
    step_index: int | None = None
    mode: ContextMode = ContextMode.OVERVIEW
    variable_id: int | None = None
    variable_name: str | None = None
    selected_line: int | None = None

    @property
    def effective_step(self) -> int | None:
        """Step index, or ``None`` when it is stale (no path, or not in path mode)."""
        if self.path_index is None or self.mode is not ContextMode.PATH:
            return None
        return self.step_index


# ─── Events ─────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class SelectContract:
    contract_id: int


@dataclass(slots=True, frozen=True)
class SelectFunction:
    function_id: int
    contract_id: int | None = None


@dataclass(slots=True, frozen=True)
class NavigateToFunction:
    function_id: int
    contract_id: int | None = None


@dataclass(slots=True, frozen=True)
class SelectPath:
    path_index: int


@dataclass(slots=True, frozen=True)
class HighlightStep:
    step_index: int


@dataclass(slots=True, frozen=True)
class BackToOverview:
    pass


@dataclass(slots=True, frozen=True)
class SwitchMode:
    mode: ContextMode


@dataclass(slots=True, frozen=True)
class InspectVariable:
    variable_id: int | None = None
    variable_name: str | None = None


@dataclass(slots=True, frozen=True)
class SelectLine:
    line: int


NavigationEvent = (
    SelectContract
    | SelectFunction
    | NavigateToFunction
    | SelectPath
    | HighlightStep
    | BackToOverview
    | SwitchMode
    | InspectVariable
    | SelectLine
)


# ─── Requests emitted by transitions ────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class FetchSource:
    node_id: int
    # Set when the node is a function; contract sources leave it empty.
    function_id: int | None = None


@dataclass(slots=True, frozen=True)
class FetchCfg:
    function_id: int


@dataclass(slots=True, frozen=True)
class FetchPathDetail:
    function_id: int


Request = FetchSource | FetchCfg | FetchPathDetail


class NavigationStateMachine:
    """Applies navigation events and tells the caller which data to fetch.

    *has_summary* answers whether a function already has a summary analysis; detailed
    path data is only requested for those functions.
    """

    def __init__(self, has_summary: Callable[[int], bool] | None = None) -> None:
        self._state = NavigationState()
        self._has_summary = has_summary or (lambda _function_id: False)
        self._subscribers: list[Callable[[NavigationState], None]] = []

    @property
    def state(self) -> NavigationState:
        return self._state

    def subscribe(self, callback: Callable[[NavigationState], None]) -> Callable[[], None]:
        """Register *callback* for every state change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def reset(self) -> None:
        self._set(NavigationState())

    def dispatch(self, event: NavigationEvent) -> list[Request]:
        new_state, requests = self.transition(self._state, event)
        if new_state != self._state:
            self._set(new_state)
        return requests

    def _set(self, state: NavigationState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            callback(state)

    def transition(self, state: NavigationState, event: NavigationEvent) -> tuple[NavigationState, list[Request]]:
        """Pure transition function."""
        match event:
            case SelectContract(contract_id=contract_id):
                return (
                    NavigationState(contract_id=contract_id, mode=ContextMode.OVERVIEW),
                    [FetchSource(node_id=contract_id)],
                )
            case SelectFunction(function_id=function_id, contract_id=contract_id) | NavigateToFunction(
                function_id=function_id, contract_id=contract_id
            ):
                new_state = replace(
                    state,
                    contract_id=contract_id if contract_id is not None else state.contract_id,
                    function_id=function_id,
                    path_index=None,
                    step_index=None,
                    mode=ContextMode.OVERVIEW,
                    variable_id=None,
                    variable_name=None,
                    selected_line=None,
                )
                requests: list[Request] = [
                    FetchSource(node_id=function_id, function_id=function_id),
                    FetchCfg(function_id=function_id),
                ]
                if self._has_summary(function_id):
                    requests.append(FetchPathDetail(function_id=function_id))
                return new_state, requests
            case SelectPath(path_index=path_index):
                if path_index < 0 or state.function_id is None:
                    logger.debug("select_path_ignored", path_index=path_index, function_id=state.function_id)
                    return state, []
                return replace(state, path_index=path_index, step_index=0, mode=ContextMode.PATH), []
            case HighlightStep(step_index=step_index):
                if step_index < 0 or state.path_index is None:
                    logger.debug("highlight_step_ignored", step_index=step_index, path_index=state.path_index)
                    return state, []
                return replace(state, step_index=step_index), []
            case BackToOverview():
                return replace(state, path_index=None, step_index=None, mode=ContextMode.OVERVIEW), []
            case SwitchMode(mode=mode):
                if mode is ContextMode.PATH and state.path_index is None:
                    logger.debug("switch_mode_ignored", mode=mode.value)
                    return state, []
                return replace(state, mode=mode), []
            case InspectVariable(variable_id=variable_id, variable_name=variable_name):
                return (
                    replace(state, mode=ContextMode.VARIABLE, variable_id=variable_id, variable_name=variable_name),
                    [],
                )
            case SelectLine(line=line):
                return replace(state, selected_line=line), []
        raise TypeError(f"Unsupported navigation event: {event!r}")


def _required_int(payload: dict[str, Any], *keys: str) -> int:
    for key in keys:
        value = coerce_int(payload.get(key))
        if value is not None:
            return value
    raise ValueError(f"Event '{payload.get('type')}' requires an integer '{keys[0]}'")


def event_from_dict(payload: dict[str, Any]) -> NavigationEvent:
    """Build an event from its wire form, e.g. ``{"type": "select-path", "pathIndex": 2}``."""
    kind = payload.get("type")
    match kind:
        case "select-contract":
            return SelectContract(contract_id=_required_int(payload, "id", "contractId"))
        case "select-function":
            return SelectFunction(function_id=_required_int(payload, "id", "functionId"))
        case "navigate-to-function":
            return NavigateToFunction(function_id=_required_int(payload, "functionId", "id"))
        case "select-path":
            return SelectPath(path_index=_required_int(payload, "pathIndex"))
        case "highlight-step":
            return HighlightStep(step_index=_required_int(payload, "stepIndex"))
        case "back-to-overview" | "back":
            return BackToOverview()
        case "switch-mode":
            try:
                return SwitchMode(mode=ContextMode(payload.get("mode")))
            except ValueError as exc:
                raise ValueError(f"Unknown inspector mode: {payload.get('mode')!r}") from exc
        case "inspect-variable":
            name = payload.get("varName")
            return InspectVariable(
                variable_id=coerce_int(payload.get("varId")),
                variable_name=name if isinstance(name, str) else None,
            )
        case "select-line":
            return SelectLine(line=_required_int(payload, "line"))
    raise ValueError(f"Unknown navigation event type: {kind!r}")
