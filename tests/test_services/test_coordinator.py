"""Tests for the invocation coordinator with a mocked engine and gateway."""

from __future__ import annotations

import asyncio

import pytest

from crewdispatch.infra.engines.base import EngineError
from crewdispatch.models.conversation import ConversationMessage, EngineResult
from crewdispatch.models.worker import HUMAN_ID, Worker
from crewdispatch.services.chain_tracker import ChainTracker
from crewdispatch.services.concurrency import ConcurrencyRegistry
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.conversation import ConversationStore
from crewdispatch.services.dispatch_ledger import DispatchLedger
from crewdispatch.services.dispatch_runner import DispatchRunner


def _human(content):
    return ConversationMessage(sender_id=HUMAN_ID, sender_name="Kim", content=content)


def _posts(gateway):
    return [c.args[1] for c in gateway.post.call_args_list]


@pytest.fixture
def invocations(coordinator, monkeypatch):
    """Record (worker_id, chain total) for every invoke call."""
    calls = []
    original = coordinator.invoke

    async def spy(worker, trigger, channel_id, chain=None):
        calls.append((worker.id, chain.total_invocations if chain else None))
        return await original(worker, trigger, channel_id, chain)

    monkeypatch.setattr(coordinator, "invoke", spy)
    return calls


class TestCollaborators:
    def test_injected_empty_collaborators_are_kept(self, app_config, engine, gateway, memory_store, clock):
        registry = ConcurrencyRegistry(clock)
        chains = ChainTracker(app_config.chain)
        ledger = DispatchLedger(app_config.ledger, clock)
        conversations = ConversationStore()
        runner = DispatchRunner(2)
        assert len(ledger) == 0

        coordinator = InvocationCoordinator(
            app_config, engine, gateway, memory_store,
            registry=registry, chains=chains, ledger=ledger,
            conversations=conversations, runner=runner,
        )

        assert coordinator.registry is registry
        assert coordinator.chains is chains
        assert coordinator.ledger is ledger
        assert coordinator.conversations is conversations
        assert coordinator.runner is runner
        assert coordinator.ledger.now() == clock()

    def test_status_lines(self, coordinator):
        coordinator.registry.mark_busy("be", "build the API")
        assert coordinator.status_lines() == [
            "- Lead [claude]: idle",
            "- Backend [claude]: working (build the API)",
            "- Frontend [claude]: idle",
            "- HR [claude]: idle",
        ]


class TestReactiveDispatch:
    @pytest.mark.asyncio
    async def test_end_to_end_ping_pong(self, coordinator, engine, invocations, workers):
        engine.replies = {
            "lead": ["@be please build the API", "thanks"],
            "be": ["API is ready, @lead"],
        }
        lead = workers["lead"]
        coordinator.submit(lead, _human("ping @be"), "work", coordinator.chains.new_chain("lead"))
        await coordinator.runner.drain()

        assert invocations == [("lead", 0), ("be", 1), ("lead", 2)]
        records = list(coordinator.ledger)
        assert [(r.from_worker, r.to_worker) for r in records] == [("lead", "be"), ("be", "lead")]
        assert records[0].resolved
        assert not records[1].resolved
        assert not coordinator.registry.is_busy("lead")
        assert not coordinator.registry.is_busy("be")

    @pytest.mark.asyncio
    async def test_self_mention_is_not_dispatched(self, coordinator, engine, invocations, workers):
        engine.replies = {"be": ["note to self @be"]}
        coordinator.submit(workers["be"], _human("go"), "work", coordinator.chains.new_chain("be"))
        await coordinator.runner.drain()
        assert invocations == [("be", 0)]
        assert len(coordinator.ledger) == 0

    @pytest.mark.asyncio
    async def test_loop_is_stopped(self, coordinator, engine, invocations, workers):
        engine.replies = {"lead": ["@be again"] * 10, "be": ["@lead again"] * 10}
        coordinator.submit(workers["lead"], _human("start"), "work", coordinator.chains.new_chain("lead"))
        await coordinator.runner.drain()

        # L B L B L, then L->B would complete L B L B L B
        assert invocations == [("lead", 0), ("be", 1), ("lead", 2), ("be", 3), ("lead", 4)]

    @pytest.mark.asyncio
    async def test_budget_notice_posted_once(self, coordinator, engine, invocations, workers, gateway, app_config):
        app_config.chain.max_budget = 1
        engine.replies = {
            "lead": ["@be and @fe, split this"],
            "be": ["done @lead"],
            "fe": ["done @lead"],
        }
        coordinator.submit(workers["lead"], _human("start"), "work", coordinator.chains.new_chain("lead"))
        await coordinator.runner.drain()

        assert sorted(invocations) == [("be", 1), ("fe", 1), ("lead", 0)]
        notices = [p for p in _posts(gateway) if "stopped after" in p]
        assert len(notices) == 1
        assert notices[0].startswith("Lead:")

    @pytest.mark.asyncio
    async def test_parallel_dispatch_to_multiple_workers(self, coordinator, engine, workers):
        engine.replies = {"lead": ["@be @fe go"]}
        coordinator.submit(workers["lead"], _human("start"), "work", coordinator.chains.new_chain("lead"))
        await coordinator.runner.drain()
        dispatched = {r.to_worker for r in coordinator.ledger}
        assert dispatched == {"be", "fe"}
        assert engine.execute.await_count == 3


class TestInvoke:
    @pytest.mark.asyncio
    async def test_success_posts_and_records(self, coordinator, engine, gateway, workers, memory_store):
        engine.replies = {"be": ["API ready"]}
        result = await coordinator.invoke(workers["be"], _human("build it"), "work")

        assert result == EngineResult(worker_id="be", output="API ready")
        gateway.post.assert_any_await("work", "API ready", workers["be"])
        history = coordinator.conversations.recent("work", 10)
        assert history[-1].content == "API ready"

        for other in ("lead", "fe", "hr"):
            assert "Backend: API ready" in memory_store.read_inbox(other)
        assert memory_store.read_inbox("be") == ""
        activity = memory_store.read_activity()
        assert [(e.worker_id, e.content) for e in activity] == [("be", "API ready")]

    @pytest.mark.asyncio
    async def test_inbox_passed_to_engine_then_cleared(self, coordinator, engine, workers, memory_store):
        memory_store.append_inbox("be", "Lead", "check the logs")
        await coordinator.invoke(workers["be"], _human("go"), "work")

        context = engine.execute.await_args.args[1]
        assert "Lead: check the logs" in context.inbox
        assert memory_store.read_inbox("be") == ""

    @pytest.mark.asyncio
    async def test_engine_failure(self, coordinator, engine, gateway, workers):
        engine.execute.side_effect = EngineError("claude exited with code 1")
        result = await coordinator.invoke(workers["be"], _human("go"), "work")

        assert result is None
        assert any(p.startswith("Error: claude exited") for p in _posts(gateway))
        assert not coordinator.registry.is_busy("be")
        assert len(coordinator.ledger) == 0

    @pytest.mark.asyncio
    async def test_unexpected_engine_error_is_contained(self, coordinator, engine, workers):
        engine.execute.side_effect = RuntimeError("kaboom")
        assert await coordinator.invoke(workers["be"], _human("go"), "work") is None
        assert not coordinator.registry.is_busy("be")

    @pytest.mark.asyncio
    async def test_gateway_failure_does_not_break_invocation(self, coordinator, gateway, workers):
        gateway.post.side_effect = RuntimeError("network down")
        result = await coordinator.invoke(workers["be"], _human("go"), "work")
        assert result is not None
        assert not coordinator.registry.is_busy("be")

    @pytest.mark.asyncio
    async def test_progress_indicator_shown(self, coordinator, gateway, workers):
        await coordinator.invoke(workers["be"], _human("go"), "work")
        assert gateway.show_progress.await_count >= 1

    @pytest.mark.asyncio
    async def test_queued_request_dropped_with_leader_note(self, coordinator, workers, memory_store):
        be = workers["be"]
        coordinator.registry.mark_busy("be", "manual")
        first = asyncio.ensure_future(coordinator.invoke(be, _human("first"), "work"))
        await asyncio.sleep(0)
        assert coordinator.registry.is_queued("be")

        assert await coordinator.invoke(be, _human("second"), "work") is None
        inbox = memory_store.read_inbox("lead")
        assert "Backend already has a queued request" in inbox
        assert "Kim: second" in inbox

        coordinator.registry.mark_free("be")
        assert await asyncio.wait_for(first, timeout=5) is not None
        assert not coordinator.registry.is_busy("be")

    @pytest.mark.asyncio
    async def test_leader_drop_leaves_no_note(self, coordinator, workers, memory_store):
        lead = workers["lead"]
        coordinator.registry.mark_busy("lead", "manual")
        first = asyncio.ensure_future(coordinator.invoke(lead, _human("first"), "work"))
        await asyncio.sleep(0)

        assert await coordinator.invoke(lead, _human("second"), "work") is None
        assert memory_store.read_inbox("lead") == ""

        coordinator.registry.mark_free("lead")
        await asyncio.wait_for(first, timeout=5)

    @pytest.mark.asyncio
    async def test_one_invocation_per_worker(self, coordinator, engine, workers):
        active = 0
        peak = 0

        async def slow(worker, context):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return EngineResult(worker_id=worker.id, output="ok")

        engine.execute.side_effect = slow
        be = workers["be"]
        for i in range(3):
            coordinator.submit(be, _human(f"job {i}"), "work", coordinator.chains.new_chain("be"))
        await coordinator.runner.drain()

        assert peak == 1
        # One runs, one waits, the third is dropped at admission
        assert engine.execute.await_count == 2
        assert not coordinator.registry.is_busy("be")


class TestEntryPoints:
    @pytest.mark.asyncio
    async def test_handle_message_routes_to_leader(self, coordinator, engine, memory_store):
        targets = await coordinator.handle_message("work", "Kim", "hello team")
        assert [w.id for w in targets] == ["lead"]
        assert "Kim: hello team" in memory_store.read_inbox("lead")

        await coordinator.runner.drain()
        assert engine.execute.await_args.args[0].id == "lead"
        assert coordinator.conversations.recent("work", 10)[0].content == "hello team"

    @pytest.mark.asyncio
    async def test_handle_message_routes_mentions(self, coordinator, engine):
        targets = await coordinator.handle_message("work", "Kim", "@fe fix the css")
        assert [w.id for w in targets] == ["fe"]
        await coordinator.runner.drain()
        assert [c.args[0].id for c in engine.execute.await_args_list] == ["fe"]

    @pytest.mark.asyncio
    async def test_handle_message_respects_channels(self, app_config, workers, engine, gateway, memory_store):
        app_config.workers = {**workers, "fe": Worker(id="fe", name="Frontend", channels=("design",))}
        coordinator = InvocationCoordinator(app_config, engine, gateway, memory_store)
        targets = await coordinator.handle_message("work", "Kim", "@fe hello")
        # fe does not listen on "work", so the leader gets it
        assert [w.id for w in targets] == ["lead"]
        await coordinator.runner.drain()

    @pytest.mark.asyncio
    async def test_handle_empty_message(self, coordinator):
        assert await coordinator.handle_message("work", "Kim", "   ") == []

    @pytest.mark.asyncio
    async def test_trigger_announces_and_submits(self, coordinator, engine, gateway, workers):
        task = await coordinator.trigger(workers["lead"], "[Heartbeat] check inbox", "work")
        assert task is not None
        gateway.post.assert_any_await("work", "[Heartbeat] check inbox", None)
        await coordinator.runner.drain()
        context = engine.execute.await_args.args[1]
        assert context.trigger.content == "[Heartbeat] check inbox"
        assert context.trigger.sender_id == "system"

    @pytest.mark.asyncio
    async def test_trigger_dropped_when_occupied(self, coordinator, engine, gateway, workers):
        coordinator.registry.mark_busy("lead", "manual")
        assert await coordinator.trigger(workers["lead"], "[Heartbeat] x", "work") is None
        assert engine.execute.await_count == 0
        gateway.post.assert_not_awaited()
        assert coordinator.conversations.recent("work", 10) == []

    @pytest.mark.asyncio
    async def test_configured_user_id_enables_native_mentions(
        self, app_config, workers, engine, gateway, memory_store, clock,
    ):
        app_config.workers = {**workers, "fe": Worker(id="fe", name="Frontend", user_id="U_FE")}
        coordinator = InvocationCoordinator(
            app_config, engine, gateway, memory_store,
            ledger=DispatchLedger(app_config.ledger, clock),
        )
        engine.replies = {"be": ["<@U_FE> your turn"]}
        coordinator.submit(workers["be"], _human("go"), "work", coordinator.chains.new_chain("be"))
        await coordinator.runner.drain()
        assert [r.to_worker for r in coordinator.ledger] == ["fe"]
