# tests/proactive/test_scheduler.py
"""
Test suite for SweepScheduler.

Tests cover:
    - Manual tick delivery to sinks
    - One delivery per staleness episode, new episodes re-deliver
    - Sink failure isolation
    - Circuit breaker on repeated sweep failures
    - start/stop lifecycle, pause/resume and status reporting
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from goalcore.config.models import ProactiveConfig
from goalcore.goals.models import (
    AgentOutcome,
    AgentType,
    ClassificationResult,
    ProactiveKind,
    Signal,
)
from goalcore.proactive.scheduler import SweepScheduler, SweepStats

WAITING = ClassificationResult(
    agent_type=AgentType.HOLD,
    confidence=0.7,
    extracted_signals={Signal.WAITING: 0.75},
)


async def waiting_turn(manager, user_id="u1", success=True):
    await manager.apply_turn(
        user_id, WAITING, AgentOutcome(agent_type=AgentType.HOLD, success=success)
    )


@pytest.fixture
def scheduler(engine, goal_manager):
    return SweepScheduler(engine, goal_manager)


class TestTick:
    @pytest.mark.asyncio
    async def test_delivers_due_action_to_sinks(self, scheduler, goal_manager, clock):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        await waiting_turn(goal_manager)
        clock.advance(121)

        delivered = await scheduler.tick()

        assert [a.kind for a in delivered] == [ProactiveKind.WAITING_SUPPORT]
        sink.assert_awaited_once_with(delivered[0])
        assert scheduler.stats.run_count == 1
        assert scheduler.stats.actions_delivered == 1

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, goal_manager):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        await waiting_turn(goal_manager)

        assert await scheduler.tick() == []
        sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_episode_is_delivered_once(self, scheduler, goal_manager, clock):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        await waiting_turn(goal_manager)

        clock.advance(121)
        await scheduler.tick()
        clock.advance(30)
        second = await scheduler.tick()

        assert second == []
        assert sink.await_count == 1
        assert scheduler.stats.duplicates_skipped == 1

    @pytest.mark.asyncio
    async def test_new_episode_is_delivered_again(self, scheduler, goal_manager, clock):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        await waiting_turn(goal_manager)
        clock.advance(121)
        await scheduler.tick()

        await waiting_turn(goal_manager, success=False)
        clock.advance(121)
        delivered = await scheduler.tick()

        assert len(delivered) == 1
        assert sink.await_count == 2

    @pytest.mark.asyncio
    async def test_mark_delivered_suppresses_delivery(self, scheduler, engine, goal_manager, clock):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        await waiting_turn(goal_manager)
        clock.advance(121)
        scheduler.mark_delivered(engine.sweep(goal_manager.snapshot_all(), clock()))

        assert await scheduler.tick() == []
        sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_prune_user_forgets_ended_episodes(self, scheduler, engine, goal_manager, clock):
        episodes = 0
        for _ in range(10):
            await waiting_turn(goal_manager, success=False)
            clock.advance(121)
            state = goal_manager.get_state("u1")
            scheduler.prune_user(state)
            action = engine.evaluate(state, clock())
            assert action is not None and scheduler.is_new(action)
            scheduler.mark_delivered([action])
            episodes += 1

        assert episodes == 10
        assert scheduler.tracked_episodes == 1

    @pytest.mark.asyncio
    async def test_prune_user_leaves_other_users(self, scheduler, engine, goal_manager, clock):
        await waiting_turn(goal_manager, "u1", success=False)
        await waiting_turn(goal_manager, "u2", success=False)
        clock.advance(121)
        scheduler.mark_delivered(engine.sweep(goal_manager.snapshot_all(), clock()))
        assert scheduler.tracked_episodes == 2

        await waiting_turn(goal_manager, "u1", success=False)
        scheduler.prune_user(goal_manager.get_state("u1"))

        assert scheduler.tracked_episodes == 1
        assert await scheduler.tick() == []

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_block_others(self, scheduler, goal_manager, clock):
        broken = AsyncMock(side_effect=RuntimeError("transport down"))
        healthy = AsyncMock()
        scheduler.add_sink(broken)
        scheduler.add_sink(healthy)
        await waiting_turn(goal_manager)
        clock.advance(121)

        await scheduler.tick()

        healthy.assert_awaited_once()
        assert scheduler.stats.sink_failures == 1
        assert scheduler.stats.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_remove_sink(self, scheduler, goal_manager, clock):
        sink = AsyncMock()
        scheduler.add_sink(sink)
        scheduler.remove_sink(sink)
        await waiting_turn(goal_manager)
        clock.advance(121)

        await scheduler.tick()

        sink.assert_not_awaited()


class TestCircuitBreaker:
    def _failing_scheduler(self, goal_manager, max_errors=2):
        engine = MagicMock()
        engine.config = ProactiveConfig(max_consecutive_errors=max_errors)
        engine.sweep.side_effect = RuntimeError("boom")
        return SweepScheduler(engine, goal_manager), engine

    @pytest.mark.asyncio
    async def test_opens_after_consecutive_errors(self, goal_manager):
        scheduler, engine = self._failing_scheduler(goal_manager)

        await scheduler.tick()
        await scheduler.tick()
        assert scheduler.is_circuit_broken
        assert scheduler.stats.last_error == "boom"

        await scheduler.tick()
        assert engine.sweep.call_count == 2

    @pytest.mark.asyncio
    async def test_reset(self, goal_manager):
        scheduler, engine = self._failing_scheduler(goal_manager, max_errors=1)
        await scheduler.tick()
        assert scheduler.is_circuit_broken

        scheduler.reset_circuit_breaker()

        assert not scheduler.is_circuit_broken
        await scheduler.tick()
        assert engine.sweep.call_count == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine, goal_manager):
        scheduler = SweepScheduler(
            engine, goal_manager, ProactiveConfig(sweep_interval_seconds=0.01)
        )

        await scheduler.start()
        await scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.stats.run_count >= 1

    @pytest.mark.asyncio
    async def test_paused_loop_does_not_sweep(self, engine, goal_manager):
        scheduler = SweepScheduler(
            engine, goal_manager, ProactiveConfig(sweep_interval_seconds=0.01)
        )
        scheduler.pause()

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.is_paused
        assert scheduler.stats.run_count == 0
        scheduler.resume()
        assert not scheduler.is_paused

    def test_status(self, scheduler):
        status = scheduler.get_status()

        assert status["running"] is False
        assert status["sweep_interval_seconds"] == 30.0
        assert status["is_circuit_broken"] is False
        assert status["stats"] == SweepStats().to_dict()
