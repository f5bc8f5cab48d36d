"""Tests for the pending-task scan."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest

from crewdispatch.models.worker import SYSTEM_ID
from crewdispatch.services.triggers.pending_tasks import PendingTaskTrigger

TODAY = date(2025, 1, 15)


@pytest.fixture
def trigger_spy(coordinator, monkeypatch):
    spy = AsyncMock(return_value=object())
    monkeypatch.setattr(coordinator, "trigger", spy)
    return spy


@pytest.fixture
def pending(coordinator):
    return PendingTaskTrigger(coordinator, today=lambda: TODAY)


def _write_memory(memory_store, worker_id, body):
    path = memory_store.memory_path(worker_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")


class TestPendingTaskTrigger:
    @pytest.mark.asyncio
    async def test_triggers_first_actionable_item(self, coordinator, pending, trigger_spy, memory_store):
        _write_memory(memory_store, "be", (
            "## Notes\n- likes tests\n"
            "## Pending\n"
            "- [BLOCKED] deploy #ch:proj\n"
            "- finish the API #ch:proj\n"
            "- write docs #ch:proj\n"
        ))
        await pending.run()

        trigger_spy.assert_awaited_once()
        worker, content, channel_id = trigger_spy.await_args.args
        assert worker.id == "be"
        assert content == "[Pending] Continue unfinished work: finish the API"
        assert channel_id == "proj"

        records = list(coordinator.ledger)
        assert len(records) == 1
        assert records[0].from_worker == SYSTEM_ID
        assert records[0].to_worker == "be"
        assert records[0].chain_id == trigger_spy.await_args.kwargs["chain"].chain_id

    @pytest.mark.asyncio
    async def test_cooldown_prevents_retrigger(self, pending, trigger_spy, memory_store, clock):
        _write_memory(memory_store, "be", "## Pending\n- finish the API #ch:proj\n")
        await pending.run()
        clock.advance(3600)
        await pending.run()
        assert trigger_spy.await_count == 1
        clock.advance(3601)
        await pending.run()
        assert trigger_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_cycle_cap(self, pending, trigger_spy, memory_store):
        for wid in ("be", "fe", "hr"):
            _write_memory(memory_store, wid, "## Pending\n- task #ch:proj\n")
        await pending.run()
        assert trigger_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_leader_never_scanned(self, pending, trigger_spy, memory_store):
        _write_memory(memory_store, "lead", "## Pending\n- plan the sprint #ch:proj\n")
        await pending.run()
        trigger_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_actionable_items_skipped(self, pending, trigger_spy, memory_store):
        _write_memory(memory_store, "be", (
            "## Pending\n"
            "- no channel here\n"
            "- [WAITING] review #ch:proj\n"
            "- awaiting approval from Kim #ch:proj\n"
            "- [SCHEDULED:2025-02-01] release #ch:proj\n"
            "- [SCHEDULED:tomorrow] retro #ch:proj\n"
        ))
        await pending.run()
        trigger_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_due_scheduled_item_triggers(self, pending, trigger_spy, memory_store):
        _write_memory(memory_store, "be", "## Pending\n- [SCHEDULED:2025-01-15] release #ch:proj\n")
        await pending.run()
        trigger_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_occupied_worker_skipped(self, coordinator, pending, trigger_spy, memory_store):
        _write_memory(memory_store, "be", "## Pending\n- finish #ch:proj\n")
        coordinator.registry.mark_busy("be", "working")
        await pending.run()
        trigger_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dropped_trigger_not_recorded(self, coordinator, pending, trigger_spy, memory_store):
        trigger_spy.return_value = None
        _write_memory(memory_store, "be", "## Pending\n- finish #ch:proj\n")
        await pending.run()
        assert len(coordinator.ledger) == 0
        await pending.run()
        # No cooldown was set, so it tries again
        assert trigger_spy.await_count == 2
