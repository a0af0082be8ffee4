# src/goalcore/goals/manager.py
"""
Goal State Manager.

The single owner and mutation point of every user's goal state.  Other
components read snapshots (:meth:`GoalStateManager.get_state`,
:meth:`GoalStateManager.snapshot_all`) and request changes through
:meth:`GoalStateManager.apply_turn`.

apply_turn algorithm:
    1. Lazily initialize unknown users.
    2. Activate the goals implied by the turn's signals and refresh their
       ``last_updated``; accumulate entertainment/technical context.
    3. Credit the dominant active goal when the agent that handled the turn
       addresses it successfully; resolve it once satisfaction reaches the
       resolution threshold.  Failed turns cost the dominant goal a penalty.
    4. Frustration lowers every active goal and moves the user to
       ``frustrated``.
    5. Recompute ``engagement_level`` and ``satisfaction_level`` as weighted
       aggregates (active goals weigh more).
    6. Append a bounded history record.

Example:
    manager = GoalStateManager(GoalStateConfig())
    await manager.initialize("u1")
    state = await manager.apply_turn("u1", classification, outcome)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from ..config.models import GoalCoreConfig, GoalStateConfig
from .models import (
    AGENT_GOALS,
    SIGNAL_GOALS,
    AgentOutcome,
    AgentType,
    ClassificationResult,
    ConversationState,
    EntertainmentPreference,
    Goal,
    GoalType,
    Signal,
    TurnRecord,
    UserGoalState,
    clamp_score,
    rank_goals,
    utcnow,
)
from .registry import UserStateRegistry
from .store import StateStore

logger = logging.getLogger(__name__)

# Signals that count as the user confirming the previous answer helped.
_FEEDBACK_SIGNALS = (Signal.POSITIVE_FEEDBACK, Signal.RESOLVED)


def normalize_signals(raw: Mapping[object, float]) -> Dict[Signal, float]:
    """Keep only recognized signals with positive strength, in enum order."""
    found: Dict[Signal, float] = {}
    for key, strength in raw.items():
        try:
            signal = key if isinstance(key, Signal) else Signal(str(key))
            value = float(strength)
        except (ValueError, TypeError):
            logger.debug("Dropping unrecognized signal %r", key)
            continue
        if value > 0:
            found[signal] = max(found.get(signal, 0.0), value)
    return {s: found[s] for s in Signal if s in found}


class GoalStateManager:
    """
    Owns the per-user goal state registry.

    Args:
        config: Satisfaction arithmetic and history settings.
        store: Optional persistence collaborator.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        config: Optional[GoalStateConfig] = None,
        store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or GoalStateConfig()
        self._clock = clock or utcnow
        self._registry = UserStateRegistry(self._new_state, store)

    @classmethod
    def from_config(
        cls,
        config: GoalCoreConfig,
        store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "GoalStateManager":
        return cls(config.goals, store=store, clock=clock)

    @property
    def registry(self) -> UserStateRegistry:
        return self._registry

    def now(self) -> datetime:
        return self._clock()

    def _new_state(self, user_id: str) -> UserGoalState:
        return UserGoalState.create(
            user_id,
            priorities=self.config.priorities,
            neutral=self.config.neutral_satisfaction,
            history_size=self.config.history_size,
            now=self._clock(),
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str) -> UserGoalState:
        """Create the user's state if absent.  Never resets existing progress."""
        return await self._registry.get_or_create(user_id)

    def get_state(self, user_id: str) -> Optional[UserGoalState]:
        """Snapshot of the user's state, or None if the user is unknown."""
        return self._registry.snapshot(user_id)

    def get_active_goals(self, user_id: str) -> List[Goal]:
        state = self._registry.snapshot(user_id)
        return rank_goals(state.active_goals()) if state else []

    def snapshot_all(self) -> List[UserGoalState]:
        return self._registry.snapshot_all()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def apply_turn(
        self,
        user_id: str,
        classification: ClassificationResult,
        outcome: AgentOutcome,
    ) -> UserGoalState:
        """
        Apply one processed turn to the user's state.

        Unknown users are initialized first.  A classification with an
        unrecognized agent type only updates the engagement aggregate.

        Returns:
            Snapshot of the updated state.
        """
        now = self._clock()
        return await self._registry.update(
            user_id, lambda state: self._apply(state, classification, outcome, now)
        )

    def _apply(
        self,
        state: UserGoalState,
        classification: ClassificationResult,
        outcome: AgentOutcome,
        now: datetime,
    ) -> None:
        cfg = self.config
        signals = normalize_signals(classification.extracted_signals)
        previous_level = state.satisfaction_level
        agent = classification.known_agent_type
        outcome_agent = AgentType.coerce(outcome.agent_type)

        state.turn_count += 1
        state.last_interaction_at = now
        self._update_interaction(state, signals, outcome)

        if agent is None:
            logger.debug(
                "User '%s': unrecognized agent type %r, updating engagement only",
                state.user_id,
                classification.agent_type,
            )
            state.engagement_level = self._engagement(state)
            self._record(state, outcome, None, signals, now)
            return

        # Step 2: activate goals named by signals
        for signal in signals:
            for goal_type in SIGNAL_GOALS[signal]:
                goal = state.goal(goal_type)
                if not goal.active:
                    logger.debug("User '%s': goal %s activated", state.user_id, goal_type.value)
                goal.active = True
                goal.last_updated = now
        self._accumulate_context(state, classification, signals)

        # User feedback about the previous answer
        if outcome.success and state.history and any(s in signals for s in _FEEDBACK_SIGNALS):
            previous = state.history[-1].addressed_goal
            if previous is not None and state.goal(previous).active:
                goal = state.goal(previous)
                if Signal.RESOLVED in signals:
                    self._raise(state, goal, cfg.resolution_gain, now)
                else:
                    self._raise(state, goal, cfg.success_gain, now)

        # Step 3: credit or penalize the dominant goal
        addressed: Optional[GoalType] = AGENT_GOALS.get(outcome_agent) if outcome_agent else None
        ranked = rank_goals(state.active_goals())
        dominant = ranked[0] if ranked else None
        if dominant is not None:
            if outcome.success and addressed == dominant.type:
                gain = cfg.resolution_gain if outcome.resolved_goal else cfg.success_gain
                self._raise(state, dominant, gain, now)
            elif not outcome.success:
                dominant.satisfaction = clamp_score(dominant.satisfaction - cfg.failure_penalty)

        # Step 4: frustration
        if Signal.FRUSTRATION in signals:
            for goal in state.active_goals():
                goal.satisfaction = clamp_score(goal.satisfaction - cfg.frustration_penalty)
        self._transition(state, signals, outcome)

        # Step 5: aggregates
        state.satisfaction_level = self._goal_aggregate(state)
        if Signal.FRUSTRATION in signals:
            # Frustration always costs at least one penalty, active goals or not.
            state.satisfaction_level = clamp_score(
                min(state.satisfaction_level, previous_level - cfg.frustration_penalty)
            )
        state.engagement_level = self._engagement(state)

        # Step 6: history
        self._record(state, outcome, addressed, signals, now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _raise(self, state: UserGoalState, goal: Goal, gain: float, now: datetime) -> None:
        goal.satisfaction = clamp_score(goal.satisfaction + gain)
        goal.last_updated = now
        if goal.active and goal.satisfaction >= self.config.resolution_threshold:
            goal.active = False
            logger.debug(
                "User '%s': goal %s resolved (satisfaction=%.1f)",
                state.user_id,
                goal.type.value,
                goal.satisfaction,
            )

    def _accumulate_context(
        self,
        state: UserGoalState,
        classification: ClassificationResult,
        signals: Mapping[Signal, float],
    ) -> None:
        category = classification.entertainment_category
        if isinstance(category, EntertainmentPreference):
            state.entertainment_preference = category
        elif Signal.ENTERTAINMENT in signals and state.entertainment_preference is None:
            state.entertainment_preference = EntertainmentPreference.MIXED
        if classification.technical_topic:
            state.technical_context = classification.technical_topic

    def _update_interaction(
        self, state: UserGoalState, signals: Mapping[Signal, float], outcome: AgentOutcome
    ) -> None:
        step = self.config.interaction_step
        delta = 0.0
        if Signal.QUESTION in signals:
            delta += step
        if Signal.TERSE in signals:
            delta -= step
        if Signal.BOREDOM in signals:
            delta -= step
        if not outcome.success:
            delta -= step
        state.interaction_score = clamp_score(state.interaction_score + delta)

    def _transition(
        self, state: UserGoalState, signals: Mapping[Signal, float], outcome: AgentOutcome
    ) -> None:
        previous = state.current_state
        waiting_active = state.goal(GoalType.WAITING_SUPPORT).active
        recovered = outcome.success and (
            outcome.resolved_goal or any(s in signals for s in _FEEDBACK_SIGNALS)
        )

        if Signal.FRUSTRATION in signals:
            new_state = ConversationState.FRUSTRATED
        elif Signal.WAITING in signals:
            new_state = ConversationState.WAITING
        elif previous is ConversationState.FRUSTRATED and not recovered:
            new_state = ConversationState.FRUSTRATED
        elif previous is ConversationState.WAITING and waiting_active:
            new_state = ConversationState.WAITING
        else:
            new_state = ConversationState.ENGAGED

        if new_state is not previous:
            logger.debug(
                "User '%s': %s -> %s", state.user_id, previous.value, new_state.value
            )
        state.current_state = new_state

    def _goal_aggregate(self, state: UserGoalState) -> float:
        cfg = self.config
        total = 0.0
        weights = 0.0
        for goal in state.goals.values():
            weight = cfg.active_weight if goal.active else cfg.inactive_weight
            total += weight * goal.satisfaction
            weights += weight
        return clamp_score(total / weights) if weights else cfg.neutral_satisfaction

    def _engagement(self, state: UserGoalState) -> float:
        share = self.config.engagement_interaction_share
        return clamp_score(
            share * state.interaction_score + (1.0 - share) * self._goal_aggregate(state)
        )

    def _record(
        self,
        state: UserGoalState,
        outcome: AgentOutcome,
        addressed: Optional[GoalType],
        signals: Mapping[Signal, float],
        now: datetime,
    ) -> None:
        agent = AgentType.coerce(outcome.agent_type)
        state.history.append(
            TurnRecord(
                agent_type=agent.value if agent else str(outcome.agent_type),
                success=outcome.success,
                resolved_goal=outcome.resolved_goal,
                addressed_goal=addressed,
                signals=[s.value for s in signals],
                at=now,
            )
        )
