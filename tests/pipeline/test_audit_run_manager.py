# tests/pipeline/test_audit_run_manager.py
import asyncio

import pytest

from auditor.errors import FetchError, InvalidInputError
from auditor.managers.audit_run_manager import AuditRunManager, RunHandle
from auditor.model import AuditResult, EventKind, Failed, NotReady, RunStage
from auditor.rules.packs.bfsi import CurrencyInputRule
from auditor.rules.packs.perceivable import ImageAltRule
from auditor.rules.registry import RulePackRegistry
from auditor.utils.loop_runner import stop_background_loop


@pytest.fixture
def manager_factory(registry, fake_acquirer_cls):
    def _make(**acquirer_kwargs):
        return AuditRunManager(registry=registry, acquirer=fake_acquirer_cls(**acquirer_kwargs))
    return _make


def test_start_without_url_or_file_is_rejected(manager_factory):
    manager = manager_factory()
    with pytest.raises(InvalidInputError):
        manager.start_audit("   ")
    assert manager.active_runs() == []


def test_start_outside_event_loop_raises(manager_factory):
    with pytest.raises(RuntimeError):
        manager_factory().start_audit("https://bank.example")


def test_manager_freezes_its_registry(fake_acquirer_cls):
    registry = RulePackRegistry([ImageAltRule()])
    AuditRunManager(registry=registry, acquirer=fake_acquirer_cls())
    assert registry.frozen
    with pytest.raises(RuntimeError):
        registry.register(CurrencyInputRule())


def test_unknown_handle_is_rejected(manager_factory):
    manager = manager_factory()
    with pytest.raises(InvalidInputError):
        manager.get_result(RunHandle(run_id="nope"))


def test_result_is_not_ready_until_the_run_finishes(manager_factory):
    async def scenario():
        manager = manager_factory()
        handle = manager.start_audit("https://bank.example/transfer")
        early = manager.get_result(handle)
        active = manager.active_runs()
        final = await manager.wait(handle)
        return handle, early, active, final

    handle, early, active, final = asyncio.run(scenario())
    assert isinstance(early, NotReady)
    assert early.stage == RunStage.PENDING
    assert active == [handle]
    assert isinstance(final, AuditResult)
    assert final.url == "https://bank.example/transfer"


def test_failed_run_reports_code_and_reason(manager_factory):
    async def scenario():
        manager = manager_factory(error=FetchError("HTTP 503 while fetching", status=503))
        handle = manager.start_audit("https://bank.example/down")
        return await manager.wait(handle)

    outcome = asyncio.run(scenario())
    assert isinstance(outcome, Failed)
    assert outcome.code == "FETCH_ERROR"
    assert outcome.reason == "HTTP 503 while fetching"
    assert outcome.stage == RunStage.FAILED


def test_cancelled_run_reports_cancelled(manager_factory):
    async def scenario():
        gate = asyncio.Event()
        manager = manager_factory(gate=gate)
        handle = manager.start_audit("https://bank.example/slow")
        await asyncio.sleep(0)
        assert manager.cancel(handle) is True
        return await manager.wait(handle)

    outcome = asyncio.run(scenario())
    assert isinstance(outcome, Failed)
    assert outcome.code == "CANCELLED"
    assert outcome.stage == RunStage.CANCELLED


def test_uploaded_file_is_audited(manager_factory):
    markup = b"<html lang='en'><head><title>Loan calculator - Bank</title></head><body><main>x</main></body></html>"

    async def scenario():
        manager = manager_factory()
        handle = manager.start_audit(file=markup)
        return await manager.wait(handle)

    outcome = asyncio.run(scenario())
    assert isinstance(outcome, AuditResult)
    assert outcome.url == "upload"
    assert outcome.total_elements == 5


def test_concurrent_runs_are_independent(manager_factory):
    async def scenario():
        manager = manager_factory()
        first = manager.start_audit("https://bank.example/a")
        second = manager.start_audit("https://bank.example/b")
        subs = [manager.subscribe(first), manager.subscribe(second)]
        outcomes = await asyncio.gather(manager.wait(first), manager.wait(second))
        streams = [await sub.collect() for sub in subs]
        return first, second, outcomes, streams

    first, second, outcomes, streams = asyncio.run(scenario())
    assert first.run_id != second.run_id
    assert [o.url for o in outcomes] == ["https://bank.example/a", "https://bank.example/b"]
    assert outcomes[0].violations == outcomes[1].violations
    assert {e.run_id for e in streams[0]} == {first.run_id}
    assert {e.run_id for e in streams[1]} == {second.run_id}


def test_replay_after_completion(manager_factory):
    async def scenario():
        manager = manager_factory()
        handle = manager.start_audit("https://bank.example/transfer")
        await manager.wait(handle)
        return await manager.subscribe(handle, replay=True).collect()

    events = asyncio.run(scenario())
    assert events[0].kind == EventKind.STAGE_CHANGE
    assert events[-1].payload["stage"] == "Completed"


def test_forget_only_finished_runs(manager_factory):
    async def scenario():
        gate = asyncio.Event()
        manager = manager_factory(gate=gate)
        handle = manager.start_audit("https://bank.example/transfer")
        with pytest.raises(InvalidInputError):
            manager.forget(handle)
        gate.set()
        await manager.wait(handle)
        manager.forget(handle)
        return manager, handle

    manager, handle = asyncio.run(scenario())
    with pytest.raises(InvalidInputError):
        manager.get_run(handle)


def test_shutdown_cancels_active_runs(manager_factory):
    async def scenario():
        gate = asyncio.Event()
        manager = manager_factory(gate=gate)
        handles = [manager.start_audit(f"https://bank.example/{i}") for i in range(3)]
        await asyncio.sleep(0)
        await manager.shutdown()
        return manager, handles

    manager, handles = asyncio.run(scenario())
    assert manager.active_runs() == []
    assert all(manager.get_run(h).stage == RunStage.CANCELLED for h in handles)


def test_audit_blocking_runs_on_background_loop(manager_factory):
    manager = manager_factory()
    try:
        outcome = manager.audit_blocking("https://bank.example/transfer", timeout=10)
    finally:
        stop_background_loop()
    assert isinstance(outcome, AuditResult)
    assert outcome.domain_flag_count > 0


def test_audit_blocking_rejects_empty_input(manager_factory):
    with pytest.raises(InvalidInputError):
        manager_factory().audit_blocking("")
