# src/goalcore/routing/router.py
"""
Agent Router.

Chooses the agent that handles a turn:

1. If the classifier's confidence exceeds ``confidence_threshold`` and it
   named a known agent, use that agent.
2. Otherwise route by the user's most urgent goal
   (``priority * (100 - satisfaction)``; most recent ``last_updated`` wins
   ties).  Candidates are the user's active goals plus the goals this
   message's signals are about to activate.
3. With no candidate goal, fall back to the general agent.

The decision carries ``context_for_agent``: the slice of the user's goal
state the downstream generator needs, so it never has to query state.
Routing is a pure function of the state snapshot and the classification.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..config.models import GoalCoreConfig, RouterConfig
from ..goals.manager import GoalStateManager, normalize_signals
from ..goals.models import (
    AGENT_GOALS,
    GOAL_AGENTS,
    PREFERENCE_AGENTS,
    SIGNAL_GOALS,
    AgentType,
    ClassificationResult,
    EntertainmentPreference,
    Goal,
    GoalType,
    RoutingDecision,
    UserGoalState,
    rank_goals,
)

logger = logging.getLogger(__name__)

_RECENT_TURNS_IN_CONTEXT = 5


class AgentRouter:
    """
    Select an agent per turn from the classification and the user's goals.

    Args:
        goal_manager: Source of read-only state snapshots.
        config: Routing thresholds.
    """

    def __init__(
        self,
        goal_manager: GoalStateManager,
        config: Optional[RouterConfig] = None,
    ) -> None:
        self.goal_manager = goal_manager
        self.config = config or RouterConfig()

    @classmethod
    def from_config(cls, config: GoalCoreConfig, goal_manager: GoalStateManager) -> "AgentRouter":
        return cls(goal_manager, config.router)

    def route(self, user_id: str, classification: ClassificationResult) -> RoutingDecision:
        """Route a turn for ``user_id`` using a snapshot of their current state."""
        state = self.goal_manager.get_state(user_id)
        return self.decide(user_id, state, classification, self.goal_manager.now())

    def decide(
        self,
        user_id: str,
        state: Optional[UserGoalState],
        classification: ClassificationResult,
        now: datetime,
    ) -> RoutingDecision:
        """Pure routing decision; identical inputs give identical decisions."""
        classified = classification.known_agent_type
        confidence = float(classification.confidence)

        if classified is not None and confidence > self.config.confidence_threshold:
            decision = RoutingDecision(
                agent_type=classified,
                context_for_agent=self._context(
                    user_id, state, classification, classified, AGENT_GOALS[classified]
                ),
                reason=f"classifier confidence {confidence:.2f} above threshold",
                goal_type=AGENT_GOALS[classified],
                confidence=confidence,
            )
        else:
            goal = self._most_urgent(state, classification, now)
            if goal is not None:
                agent = self._agent_for_goal(goal.type, state)
                decision = RoutingDecision(
                    agent_type=agent,
                    context_for_agent=self._context(
                        user_id, state, classification, agent, goal.type
                    ),
                    reason=f"most urgent goal {goal.type.value} (urgency {goal.urgency:.1f})",
                    goal_type=goal.type,
                    confidence=confidence,
                )
            else:
                decision = RoutingDecision(
                    agent_type=AgentType.GENERAL,
                    context_for_agent=self._context(
                        user_id, state, classification, AgentType.GENERAL, None
                    ),
                    reason="low confidence and no active goal",
                    goal_type=None,
                    confidence=confidence,
                )

        logger.debug(
            "User '%s' routed to %s: %s", user_id, decision.agent_type.value, decision.reason
        )
        return decision

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _most_urgent(
        self,
        state: Optional[UserGoalState],
        classification: ClassificationResult,
        now: datetime,
    ) -> Optional[Goal]:
        candidates: Dict[GoalType, Goal] = {}
        if state is not None:
            candidates = {g.type: g for g in state.active_goals()}

        if classification.known_agent_type is not None:
            config = self.goal_manager.config
            for signal in normalize_signals(classification.extracted_signals):
                for goal_type in SIGNAL_GOALS[signal]:
                    if goal_type in candidates:
                        continue
                    base = state.goal(goal_type) if state is not None else None
                    candidates[goal_type] = Goal(
                        type=goal_type,
                        priority=base.priority if base else config.priorities[goal_type],
                        active=True,
                        satisfaction=base.satisfaction if base else config.neutral_satisfaction,
                        last_updated=now,
                    )

        ranked = rank_goals(candidates.values())
        return ranked[0] if ranked else None

    @staticmethod
    def _agent_for_goal(goal_type: GoalType, state: Optional[UserGoalState]) -> AgentType:
        if goal_type is GoalType.ENTERTAINMENT and state is not None:
            preference = state.entertainment_preference
            if preference is not None and preference in PREFERENCE_AGENTS:
                return PREFERENCE_AGENTS[preference]
        return GOAL_AGENTS[goal_type]

    @staticmethod
    def _context(
        user_id: str,
        state: Optional[UserGoalState],
        classification: ClassificationResult,
        agent: AgentType,
        goal_type: Optional[GoalType],
    ) -> Dict[str, Any]:
        context: Dict[str, Any] = {"user_id": user_id, "agent_type": agent.value}
        if goal_type is not None:
            context["goal_type"] = goal_type.value

        # This turn's classification is fresher than the stored context.
        preference = classification.entertainment_category or (
            state.entertainment_preference if state else None
        )
        technical = classification.technical_topic or (state.technical_context if state else None)
        if AGENT_GOALS[agent] is GoalType.ENTERTAINMENT or agent is AgentType.HOLD:
            context["entertainment_preference"] = (
                preference or EntertainmentPreference.MIXED
            ).value
        if agent is AgentType.TECHNICAL and technical:
            context["technical_context"] = technical

        if state is None:
            context["conversation_state"] = "idle"
            context["recent_turns"] = []
            return context

        context["conversation_state"] = state.current_state.value
        context["engagement_level"] = state.engagement_level
        context["satisfaction_level"] = state.satisfaction_level
        context["active_goals"] = [g.type.value for g in rank_goals(state.active_goals())]
        if goal_type is not None:
            context["goal_satisfaction"] = state.goal(goal_type).satisfaction
        context["recent_turns"] = [
            {"agent_type": t.agent_type, "success": t.success}
            for t in list(state.history)[-_RECENT_TURNS_IN_CONTEXT:]
        ]
        return context
