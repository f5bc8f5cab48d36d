"""Tests for the digest and evaluation triggers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from crewdispatch.models.memory import ActivityEntry
from crewdispatch.services.scheduler import TriggerScheduler
from crewdispatch.services.triggers.periodic import (
    DIGEST_JOB,
    DIGEST_PROMPT,
    EVALUATION_JOB,
    MAX_LOG_LINES,
    DigestTrigger,
    EvaluationTrigger,
    format_activity,
)


@pytest.fixture
def trigger_spy(coordinator, monkeypatch):
    spy = AsyncMock(return_value=object())
    monkeypatch.setattr(coordinator, "trigger", spy)
    return spy


def _entry(ts, content="shipped", author="Backend"):
    return ActivityEntry(ts=ts, channel_id="work", worker_id="be", author=author, content=content)


class TestDigestTrigger:
    def test_register_uses_initial_delay(self, coordinator):
        scheduler = TriggerScheduler()
        DigestTrigger(coordinator).register(scheduler)
        EvaluationTrigger(coordinator).register(scheduler)
        assert scheduler.jobs() == [DIGEST_JOB, EVALUATION_JOB]

    @pytest.mark.asyncio
    async def test_triggers_idle_leader(self, coordinator, trigger_spy):
        await DigestTrigger(coordinator).run()
        worker, content, channel_id = trigger_spy.await_args.args
        assert worker.id == "lead"
        assert content == DIGEST_PROMPT
        assert channel_id == "work"

    @pytest.mark.asyncio
    async def test_busy_leader_skipped(self, coordinator, trigger_spy):
        coordinator.registry.mark_busy("lead", "working")
        await DigestTrigger(coordinator).run()
        trigger_spy.assert_not_awaited()


class TestEvaluationTrigger:
    @pytest.mark.asyncio
    async def test_hands_drained_log_to_evaluator(self, coordinator, trigger_spy, memory_store):
        memory_store.append_activity(_entry(1_700_000_000, "built the API"))
        memory_store.append_activity(_entry(1_700_000_600, "fixed the css", author="Frontend"))
        await EvaluationTrigger(coordinator).run()

        worker, content, channel_id = trigger_spy.await_args.args
        assert worker.id == "hr"
        assert content.startswith("[Evaluation]")
        assert "Backend: built the API" in content
        assert "Frontend: fixed the css" in content
        assert channel_id == "work"
        assert "2 activity entries" in trigger_spy.await_args.kwargs["announce"]
        assert memory_store.read_activity() == []

    @pytest.mark.asyncio
    async def test_empty_log_skipped(self, coordinator, trigger_spy):
        await EvaluationTrigger(coordinator).run()
        trigger_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_busy_evaluator_keeps_log(self, coordinator, trigger_spy, memory_store):
        memory_store.append_activity(_entry(1_700_000_000))
        coordinator.registry.mark_busy("hr", "working")
        await EvaluationTrigger(coordinator).run()
        trigger_spy.assert_not_awaited()
        assert len(memory_store.read_activity()) == 1

    @pytest.mark.asyncio
    async def test_dropped_trigger_restores_entries(self, coordinator, trigger_spy, memory_store):
        trigger_spy.return_value = None
        memory_store.append_activity(_entry(1_700_000_000, "a"))
        memory_store.append_activity(_entry(1_700_000_060, "b"))
        await EvaluationTrigger(coordinator).run()
        assert [e.content for e in memory_store.read_activity()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_evaluator(self, coordinator, trigger_spy, memory_store, app_config):
        app_config.scheduler.evaluator_id = "nobody"
        memory_store.append_activity(_entry(1_700_000_000))
        await EvaluationTrigger(coordinator).run()
        trigger_spy.assert_not_awaited()


class TestFormatActivity:
    def test_keeps_last_lines(self):
        entries = [_entry(1_700_000_000 + i, content=str(i)) for i in range(MAX_LOG_LINES + 10)]
        lines = format_activity(entries).splitlines()
        assert len(lines) == MAX_LOG_LINES
        assert lines[-1].endswith(f"Backend: {MAX_LOG_LINES + 9}")
