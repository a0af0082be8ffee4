# src/goalcore/proactive/engine.py
"""
Proactive Action Engine.

Inspects snapshots of user goal state and proposes system-initiated
actions for goals that are active, still unmet, and have gone untouched
for longer than their staleness window.

Rules per sweep:
    - At most one action per user: the most urgent eligible goal wins
      (``priority * (100 - satisfaction)``, most recent ``last_updated`` on
      ties).
    - Users left ``waiting`` or ``frustrated`` with no eligible goal get a
      generic check-in once they have been idle for
      ``check_in_after_seconds``.
    - The engine is stateless.  Sweeping the same snapshots at the same
      time yields the same actions; de-duplicating deliveries across sweeps
      is the job of :class:`~goalcore.proactive.scheduler.SweepScheduler`.

Example:
    engine = ProactiveActionEngine(ProactiveConfig(), resolution_threshold=80)
    for action in engine.sweep(goal_manager.snapshot_all(), now):
        await deliver(action)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Iterator, Optional, Tuple

from ..config.models import GoalCoreConfig, ProactiveConfig
from ..goals.models import (
    AgentType,
    ConversationState,
    EntertainmentPreference,
    Goal,
    GoalType,
    ProactiveAction,
    ProactiveKind,
    ProactiveTrigger,
    UserGoalState,
    rank_goals,
)

logger = logging.getLogger(__name__)

JOKE_REQUEST = "Tell me a joke right now. I want to hear one of your best ones!"
TRIVIA_REQUEST = (
    "Share a fascinating trivia fact with me right now. I want to learn something interesting!"
)
GIF_REQUEST = "Show me a fun, upbeat gif to brighten the wait!"
CHAT_OFFER = "I'm here to chat while you wait! What's on your mind?"
STILL_HERE = "I'm still here if you need anything! How can I help you today?"
ENTERTAINMENT_OFFER = (
    "Would you like me to entertain you with a joke, share some trivia, "
    "or help with a technical question?"
)
CHECK_IN = "Just checking in - is there anything else I can help you with?"
FRUSTRATED_CHECK_IN = (
    "I'm sorry things have been frustrating. Would it help if I tried a different approach?"
)

_ENGAGEMENT_IDLE_SECONDS = 60.0


class ProactiveActionEngine:
    """
    Decide which users should receive a proactive action.

    Args:
        config: Staleness windows and check-in policy.
        resolution_threshold: Satisfaction at which a goal no longer needs help.
    """

    def __init__(
        self,
        config: Optional[ProactiveConfig] = None,
        resolution_threshold: float = 80.0,
    ) -> None:
        self.config = config or ProactiveConfig()
        self.resolution_threshold = resolution_threshold

    @classmethod
    def from_config(cls, config: GoalCoreConfig) -> "ProactiveActionEngine":
        return cls(config.proactive, config.goals.resolution_threshold)

    def sweep(
        self, states: Iterable[UserGoalState], now: datetime
    ) -> Iterator[ProactiveAction]:
        """Lazily yield at most one action per user state."""
        if not self.config.enabled:
            return
        for state in states:
            action = self.evaluate(state, now)
            if action is not None:
                logger.info(
                    "Proactive %s action for user '%s' (%s)",
                    action.kind.value,
                    action.target_user_id,
                    action.triggered_by.reason,
                )
                yield action

    def evaluate(self, state: UserGoalState, now: datetime) -> Optional[ProactiveAction]:
        """The single action ``state`` qualifies for at ``now``, if any."""
        eligible = [g for g in state.active_goals() if self.is_eligible(g, now)]
        if eligible:
            return self._goal_action(state, rank_goals(eligible)[0], now)
        return self._check_in(state, now)

    def is_eligible(self, goal: Goal, now: datetime) -> bool:
        if not goal.active or goal.satisfaction >= self.resolution_threshold:
            return False
        idle = (now - goal.last_updated).total_seconds()
        return idle >= self.config.staleness_seconds[goal.type]

    # ------------------------------------------------------------------
    # Action construction
    # ------------------------------------------------------------------

    def _goal_action(self, state: UserGoalState, goal: Goal, now: datetime) -> ProactiveAction:
        idle = (now - goal.last_updated).total_seconds()
        threshold = self.config.staleness_seconds[goal.type]

        if goal.type is GoalType.ENTERTAINMENT:
            agent, content = self._entertainment_content(state)
            delay = _entertainment_delay(idle)
        elif goal.type is GoalType.TECHNICAL_HELP:
            agent = AgentType.TECHNICAL
            content = "I'm here to help with your technical question. " + (
                "I can see you mentioned something technical - let me assist you with that."
                if state.technical_context
                else "What technical issue can I help you solve today?"
            )
            delay = 0.0
        elif goal.type is GoalType.WAITING_SUPPORT:
            agent = AgentType.HOLD
            minutes = max(1, int(idle // 60))
            unit = "minute" if minutes == 1 else "minutes"
            content = (
                f"You've been waiting for {minutes} {unit}. A support specialist will be with "
                "you soon. In the meantime, I'm here to keep you company!"
            )
            delay = 0.0
        else:
            agent = AgentType.GENERAL
            if idle > _ENGAGEMENT_IDLE_SECONDS:
                content, delay = STILL_HERE, 10.0
            else:
                content, delay = ENTERTAINMENT_OFFER, 30.0

        return ProactiveAction(
            target_user_id=state.user_id,
            kind=ProactiveKind.for_goal(goal.type),
            suggested_content=content,
            agent_type=agent,
            triggered_by=ProactiveTrigger(
                goal_type=goal.type,
                reason=(
                    f"{goal.type.value} idle {idle:.0f}s >= {threshold:.0f}s, satisfaction "
                    f"{goal.satisfaction:.1f} < {self.resolution_threshold:.1f}"
                ),
                idle_seconds=idle,
                satisfaction=goal.satisfaction,
                since=goal.last_updated,
            ),
            created_at=now,
            delay_seconds=delay,
        )

    @staticmethod
    def _entertainment_content(state: UserGoalState) -> Tuple[AgentType, str]:
        preference = state.entertainment_preference or EntertainmentPreference.MIXED
        if preference is EntertainmentPreference.JOKES:
            return AgentType.JOKE, JOKE_REQUEST
        if preference is EntertainmentPreference.TRIVIA:
            return AgentType.TRIVIA, TRIVIA_REQUEST
        if preference is EntertainmentPreference.GIFS:
            return AgentType.GIF, GIF_REQUEST
        if preference is EntertainmentPreference.GENERAL_CHAT:
            return AgentType.GENERAL, CHAT_OFFER
        # Mixed: alternate by turn count so repeated sweeps agree.
        if state.turn_count % 2 == 0:
            return AgentType.JOKE, JOKE_REQUEST
        return AgentType.TRIVIA, TRIVIA_REQUEST

    def _check_in(self, state: UserGoalState, now: datetime) -> Optional[ProactiveAction]:
        after = self.config.check_in_after_seconds
        if after is None or state.last_interaction_at is None:
            return None
        if state.current_state not in (ConversationState.WAITING, ConversationState.FRUSTRATED):
            return None
        idle = (now - state.last_interaction_at).total_seconds()
        if idle < after:
            return None

        frustrated = state.current_state is ConversationState.FRUSTRATED
        return ProactiveAction(
            target_user_id=state.user_id,
            kind=ProactiveKind.CHECK_IN,
            suggested_content=FRUSTRATED_CHECK_IN if frustrated else CHECK_IN,
            agent_type=AgentType.GENERAL,
            triggered_by=ProactiveTrigger(
                goal_type=None,
                reason=f"{state.current_state.value} user idle {idle:.0f}s >= {after:.0f}s",
                idle_seconds=idle,
                satisfaction=None,
                since=state.last_interaction_at,
            ),
            created_at=now,
            delay_seconds=0.0,
        )


def _entertainment_delay(idle_seconds: float) -> float:
    """Shorter delay the longer the user has been left alone."""
    if idle_seconds > 60:
        return 5.0
    if idle_seconds > 30:
        return 10.0
    return 15.0
