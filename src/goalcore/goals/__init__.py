# src/goalcore/goals/__init__.py
"""
Goal model, per-user state registry and persistence.

The GoalStateManager lives in :mod:`goalcore.goals.manager`; it is not
re-exported here because it depends on :mod:`goalcore.config`, which in
turn imports the goal model.
"""

from .models import (
    AGENT_GOALS,
    DEFAULT_PRIORITIES,
    GOAL_AGENTS,
    SATISFACTION_MAX,
    SATISFACTION_MIN,
    SIGNAL_GOALS,
    AgentOutcome,
    AgentType,
    ClassificationResult,
    ConversationState,
    EntertainmentPreference,
    Goal,
    GoalType,
    ProactiveAction,
    ProactiveKind,
    ProactiveTrigger,
    RoutingDecision,
    Signal,
    TurnRecord,
    UserGoalState,
    clamp_score,
    rank_goals,
    utcnow,
)
from .registry import UserStateRegistry
from .store import JsonFileStateStore, StateStore

__all__ = [
    "AGENT_GOALS",
    "DEFAULT_PRIORITIES",
    "GOAL_AGENTS",
    "SATISFACTION_MAX",
    "SATISFACTION_MIN",
    "SIGNAL_GOALS",
    "AgentOutcome",
    "AgentType",
    "ClassificationResult",
    "ConversationState",
    "EntertainmentPreference",
    "Goal",
    "GoalType",
    "JsonFileStateStore",
    "ProactiveAction",
    "ProactiveKind",
    "ProactiveTrigger",
    "RoutingDecision",
    "Signal",
    "StateStore",
    "TurnRecord",
    "UserGoalState",
    "UserStateRegistry",
    "clamp_score",
    "rank_goals",
    "utcnow",
]
