"""Audit session lifecycle, fetch and derived view tests."""
from __future__ import annotations

import asyncio
import threading

import pytest

from factories import DEPOSIT_ID, DEPOSIT_SOURCE, FEE_ID, VAULT_ID, WITHDRAW_ID, deposit_paths, vault_dump

from solc_audit.engine import DumpEngine
from solc_audit.session import AuditSession, HighlightStep, SelectFunction, SelectPath


class _GatedEngine(DumpEngine):
    """Holds back the deposit path detail until released."""

    def __init__(self, payload):
        super().__init__(payload)
        self.release = threading.Event()

    def path_detail(self, function_id):
        if function_id == DEPOSIT_ID:
            self.release.wait(timeout=5)
        return super().path_detail(function_id)


class _GatedSourceEngine(DumpEngine):
    """Holds back the whole-contract source until released."""

    def __init__(self, payload):
        super().__init__(payload)
        self.started = threading.Event()
        self.release = threading.Event()

    def node_mapped_source(self, node_id):
        if node_id == VAULT_ID:
            self.started.set()
            self.release.wait(timeout=5)
        return super().node_mapped_source(node_id)


class _BrokenCfgEngine(DumpEngine):
    def cfg(self, function_id):
        raise RuntimeError("cfg backend down")


async def _session_on(function_id: int, engine: DumpEngine | None = None) -> AuditSession:
    session = AuditSession(engine or DumpEngine(vault_dump()))
    await session.load()
    await session.select_function(function_id)
    await session.settle()
    return session


def test_views_require_a_loaded_session():
    session = AuditSession(DumpEngine(vault_dump()))

    with pytest.raises(RuntimeError, match="No analysis loaded"):
        session.risk_map()
    with pytest.raises(RuntimeError, match="No analysis loaded"):
        _ = session.contracts


def test_unload_resets_state():
    session = asyncio.run(_session_on(DEPOSIT_ID))
    assert session.loaded

    session.unload()

    assert not session.loaded
    assert session.state.function_id is None
    with pytest.raises(RuntimeError):
        session.annotated_lines()


def test_selecting_a_function_loads_source_detail_and_cfg():
    session = asyncio.run(_session_on(DEPOSIT_ID))

    assert session.state.contract_id == VAULT_ID
    assert session.source.source.startswith("function deposit")
    assert len(session.paths()) == 3
    assert session.cfg() == {"blocks": [{"id": 0}], "edges": []}
    assert sorted(session.risk_map()) == [2, 3, 4, 5]
    assert session.risk_summary() == {"DivisionTruncation": 1, "Underflow": 1}


def test_stale_path_detail_is_discarded():
    dump = vault_dump()
    dump["pathDetail"] = {str(DEPOSIT_ID): deposit_paths()[:1]}
    engine = _GatedEngine(dump)

    async def scenario() -> AuditSession:
        session = AuditSession(engine)
        await session.load()
        await session.select_function(DEPOSIT_ID)
        await session.select_function(WITHDRAW_ID)
        engine.release.set()
        await session.settle()
        return session

    session = asyncio.run(scenario())

    assert session.state.function_id == WITHDRAW_ID
    # Back on deposit without refetching: only the coarse paths are known.
    session.navigation.dispatch(SelectFunction(function_id=DEPOSIT_ID))
    assert len(session.paths()) == 3


def test_late_contract_source_does_not_replace_function_source():
    dump = vault_dump()
    dump["sources"][str(VAULT_ID)] = {"source": "contract Vault {\n}", "lineMap": [[1, 0, VAULT_ID]]}
    engine = _GatedSourceEngine(dump)

    async def scenario() -> AuditSession:
        session = AuditSession(engine)
        await session.load()
        contract_task = asyncio.create_task(session.select_contract(VAULT_ID))
        await asyncio.to_thread(engine.started.wait, 5)
        await session.select_function(DEPOSIT_ID)
        engine.release.set()
        await contract_task
        await session.settle()
        return session

    session = asyncio.run(scenario())

    assert session.state.function_id == DEPOSIT_ID
    assert session.source.source == DEPOSIT_SOURCE
    assert session.line_index.line_of(103) == 3
    assert 3 in session.risk_map()


def test_contract_source_applies_without_a_function():
    dump = vault_dump()
    dump["sources"][str(VAULT_ID)] = {"source": "contract Vault {\n}", "lineMap": [[1, 0, VAULT_ID]]}

    async def scenario() -> AuditSession:
        session = AuditSession(DumpEngine(dump))
        await session.load()
        await session.select_contract(VAULT_ID)
        return session

    session = asyncio.run(scenario())

    assert session.source.source == "contract Vault {\n}"
    assert [line.text for line in session.annotated_lines()] == ["contract Vault {", "}"]


def test_background_engine_failure_keeps_view():
    session = asyncio.run(_session_on(DEPOSIT_ID, _BrokenCfgEngine(vault_dump())))

    assert session.cfg() is None
    assert len(session.paths()) == 3


def test_path_views_follow_navigation():
    async def scenario() -> AuditSession:
        session = await _session_on(DEPOSIT_ID)
        await session.dispatch(SelectPath(path_index=0))
        await session.dispatch(HighlightStep(step_index=1))
        return session

    session = asyncio.run(scenario())

    assert session.selected_path().index == 0
    assert [(row.name, row.last_changed_step) for row in session.watch()] == [("fee", 1), ("amount", 0)]
    assert session.highlighted_line() == 3
    assert [len(diffs) for diffs in session.step_diffs()] == [1, 1, 1, 0]
    lines = session.annotated_lines()
    assert lines[1].ranges and lines[1].badge is None


def test_projection_failure_leaves_view_undecorated(monkeypatch):
    session = asyncio.run(_session_on(DEPOSIT_ID))

    def explode(*args, **kwargs):
        raise ValueError("bad mapping")

    monkeypatch.setattr("solc_audit.session.session.aggregate_line_risks", explode)

    assert session.risk_map() == {}


def test_annotation_failure_keeps_raw_source_lines(monkeypatch):
    session = asyncio.run(_session_on(DEPOSIT_ID))

    def explode(*args, **kwargs):
        raise IndexError("line out of range")

    monkeypatch.setattr("solc_audit.session.session.annotate_lines", explode)

    lines = session.annotated_lines()
    assert [line.text for line in lines] == DEPOSIT_SOURCE.split("\n")
    assert [line.number for line in lines] == list(range(1, len(lines) + 1))
    assert all(line.risk is None and not line.ranges and line.badge is None for line in lines)


def test_call_context():
    session = asyncio.run(_session_on(DEPOSIT_ID))

    assert [link.name for link in session.callees()] == ["Vault._fee"]
    assert session.callers() == []
    scoped = session.call_graph()
    assert {node.id for node in scoped.nodes} == {DEPOSIT_ID, FEE_ID}
    assert [(edge.source, edge.target) for edge in scoped.edges] == [(DEPOSIT_ID, FEE_ID)]

    fee = asyncio.run(_session_on(FEE_ID))
    assert [link.id for link in fee.callers()] == [DEPOSIT_ID, WITHDRAW_ID]
    assert fee.annotated_lines() == []


def test_state_variable_context():
    session = asyncio.run(_session_on(DEPOSIT_ID))

    [access] = session.state_vars()
    assert access.var_name == "balance"
    assert [ref.func_name for ref in access.writers] == ["deposit", "withdraw"]
    [global_range] = session.global_ranges()
    assert global_range.unrestricted

    fee = asyncio.run(_session_on(FEE_ID))
    assert fee.state_vars() == []
    assert fee.global_ranges() == []


def test_select_contract_clears_function():
    async def scenario() -> AuditSession:
        session = await _session_on(DEPOSIT_ID)
        await session.select_contract(VAULT_ID)
        return session

    session = asyncio.run(scenario())

    assert session.state.function_id is None
    assert session.analysis is not None
    assert session.paths() is None
    assert session.annotated_lines() == []


def test_select_unknown_contract():
    async def scenario() -> None:
        session = AuditSession(DumpEngine(vault_dump()))
        await session.load()
        await session.select_contract(42)

    with pytest.raises(KeyError):
        asyncio.run(scenario())


def test_find_function_forms():
    dump = vault_dump()
    dump["contracts"].append({"id": 3, "name": "Other", "functions": [{"id": 30, "name": "deposit"}]})
    session = AuditSession(DumpEngine(dump))
    asyncio.run(session.load())

    assert session.find_function("Vault.withdraw")[1].id == WITHDRAW_ID
    assert session.find_function("12")[1].name == "_fee"
    assert session.find_function("Other.deposit")[1].id == 30
    with pytest.raises(ValueError, match="ambiguous"):
        session.find_function("deposit")
    with pytest.raises(ValueError, match="Unknown function"):
        session.find_function("Vault.nope")
