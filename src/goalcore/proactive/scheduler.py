# src/goalcore/proactive/scheduler.py
"""
Periodic sweep runner for proactive actions.

Runs :meth:`ProactiveActionEngine.sweep` over snapshots from the
:class:`GoalStateManager` on a fixed interval and hands new actions to the
registered sinks (typically the transport that talks to users).

Features:
    - Fixed interval loop with manual ``tick()`` for tests
    - De-duplication: one delivery per staleness episode
      (user, kind, goal ``last_updated``), however many sweeps see it
    - Sink isolation: one failing sink does not affect the others
    - Circuit breaker after repeated sweep failures
    - Pause/resume and status reporting

Example:
    scheduler = SweepScheduler(engine, goal_manager, config.proactive)
    scheduler.add_sink(send_to_user)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..config.models import ProactiveConfig
from ..goals.manager import GoalStateManager
from ..goals.models import ProactiveAction, ProactiveKind, UserGoalState
from ..logging_config import log_display
from .engine import ProactiveActionEngine

logger = logging.getLogger(__name__)

ActionSink = Callable[[ProactiveAction], Awaitable[None]]
DedupKey = Tuple[str, str, str]


# =============================================================================
# SweepStats
# =============================================================================


@dataclass
class SweepStats:
    """Counters kept by the scheduler across sweeps."""

    run_count: int = 0
    error_count: int = 0
    consecutive_errors: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    actions_emitted: int = 0
    actions_delivered: int = 0
    duplicates_skipped: int = 0
    sink_failures: int = 0

    def record_success(self) -> None:
        self.consecutive_errors = 0
        self.last_error = None

    def record_error(self, error: str) -> None:
        self.error_count += 1
        self.consecutive_errors += 1
        self.last_error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_count": self.run_count,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "actions_emitted": self.actions_emitted,
            "actions_delivered": self.actions_delivered,
            "duplicates_skipped": self.duplicates_skipped,
            "sink_failures": self.sink_failures,
        }


# =============================================================================
# SweepScheduler
# =============================================================================


class SweepScheduler:
    """
    Runs proactive sweeps on an interval and delivers new actions.

    Args:
        engine: Decides which actions are due.
        goal_manager: Source of state snapshots and the current time.
        config: Interval and circuit breaker settings; defaults to the
            engine's configuration.
    """

    def __init__(
        self,
        engine: ProactiveActionEngine,
        goal_manager: GoalStateManager,
        config: Optional[ProactiveConfig] = None,
    ) -> None:
        self.engine = engine
        self.goal_manager = goal_manager
        self.config = config or engine.config

        self.stats = SweepStats()
        self._sinks: List[ActionSink] = []
        self._delivered: Dict[str, Set[DedupKey]] = {}
        self._running = False
        self._paused = False
        self._loop_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    def add_sink(self, sink: ActionSink) -> None:
        """Register an async callable receiving every newly emitted action."""
        self._sinks.append(sink)

    def remove_sink(self, sink: ActionSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    # ------------------------------------------------------------------
    # De-duplication
    # ------------------------------------------------------------------

    def is_new(self, action: ProactiveAction) -> bool:
        return action.dedup_key not in self._delivered.get(action.target_user_id, ())

    def mark_delivered(self, actions: Iterable[ProactiveAction]) -> None:
        """Record actions delivered elsewhere (e.g. alongside a turn reply)."""
        for action in actions:
            self._delivered.setdefault(action.target_user_id, set()).add(action.dedup_key)

    @staticmethod
    def _live_keys(state: UserGoalState) -> Set[DedupKey]:
        live: Set[DedupKey] = set()
        for goal in state.active_goals():
            kind = ProactiveKind.for_goal(goal.type)
            live.add((state.user_id, kind.value, goal.last_updated.isoformat()))
        if state.last_interaction_at is not None:
            live.add(
                (
                    state.user_id,
                    ProactiveKind.CHECK_IN.value,
                    state.last_interaction_at.isoformat(),
                )
            )
        return live

    def prune_user(self, state: UserGoalState) -> None:
        """Forget this user's episodes that ended (goal touched, resolved, or user active)."""
        keys = self._delivered.get(state.user_id)
        if keys is None:
            return
        keys &= self._live_keys(state)
        if not keys:
            del self._delivered[state.user_id]

    def _prune(self, states: Iterable[UserGoalState]) -> None:
        """Forget ended episodes for every user, and users no longer tracked."""
        pruned: Dict[str, Set[DedupKey]] = {}
        for state in states:
            keys = self._delivered.get(state.user_id)
            if keys:
                keys = keys & self._live_keys(state)
                if keys:
                    pruned[state.user_id] = keys
        self._delivered = pruned

    @property
    def tracked_episodes(self) -> int:
        return sum(len(keys) for keys in self._delivered.values())

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    @property
    def is_circuit_broken(self) -> bool:
        return self.stats.consecutive_errors >= self.config.max_consecutive_errors

    def reset_circuit_breaker(self) -> None:
        self.stats.record_success()
        logger.info("Circuit breaker reset for proactive sweeps")

    async def tick(self, now: Optional[datetime] = None) -> List[ProactiveAction]:
        """
        Run one sweep and deliver the actions not delivered before.

        Args:
            now: Sweep time; defaults to the goal manager's clock.

        Returns:
            The newly delivered actions.
        """
        if self.is_circuit_broken:
            logger.debug("Proactive sweep skipped: circuit breaker open")
            return []

        now = now or self.goal_manager.now()
        try:
            states = self.goal_manager.snapshot_all()
            actions = list(self.engine.sweep(states, now))
        except Exception as e:
            self.stats.record_error(str(e))
            logger.error("Proactive sweep failed: %s", e)
            if self.is_circuit_broken:
                logger.warning(
                    "Circuit breaker opened for proactive sweeps after %d consecutive errors",
                    self.stats.consecutive_errors,
                )
            return []

        self.stats.run_count += 1
        self.stats.last_run = now
        self.stats.record_success()
        self._prune(states)

        fresh: List[ProactiveAction] = []
        for action in actions:
            self.stats.actions_emitted += 1
            if not self.is_new(action):
                self.stats.duplicates_skipped += 1
                continue
            self.mark_delivered([action])
            fresh.append(action)
            await self._deliver(action)
        return fresh

    async def _deliver(self, action: ProactiveAction) -> None:
        for sink in list(self._sinks):
            try:
                await sink(action)
            except Exception as e:
                self.stats.sink_failures += 1
                logger.error(
                    "Proactive sink failed for user '%s': %s", action.target_user_id, e
                )
        self.stats.actions_delivered += 1

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the sweep loop.  Calling it again while running is a no-op."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._sweep_loop())
        log_display(
            logger,
            logging.INFO,
            "Proactive sweep runner started (interval: %ss)",
            self.config.sweep_interval_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Proactive sweeps stopped")

    def pause(self) -> None:
        self._paused = True
        logger.info("Proactive sweeps paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Proactive sweeps resumed")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                if not self._paused:
                    await self.tick()
                await asyncio.sleep(self.config.sweep_interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Proactive sweep loop error: %s", e)
                await asyncio.sleep(self.config.sweep_interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "paused": self._paused,
            "sweep_interval_seconds": self.config.sweep_interval_seconds,
            "sink_count": len(self._sinks),
            "tracked_episodes": self.tracked_episodes,
            "is_circuit_broken": self.is_circuit_broken,
            "stats": self.stats.to_dict(),
        }
