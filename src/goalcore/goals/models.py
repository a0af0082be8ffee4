# src/goalcore/goals/models.py
"""
Goal Model for per-user goal tracking.

Defines the closed vocabularies (goal types, conversational states, agent
types, classifier signals) and the records passed between components:

- ``Goal`` / ``UserGoalState``: the per-user state owned by the
  :class:`~goalcore.goals.manager.GoalStateManager`.
- ``ClassificationResult``: produced per turn by the classifier.
- ``AgentOutcome``: what the agent capability reported about a turn.
- ``RoutingDecision``: which agent handles a turn and with what context.
- ``ProactiveAction``: a system-initiated action emitted by a sweep.

Only the GoalStateManager mutates ``Goal`` and ``UserGoalState`` instances.
Everything handed out to other components is a deep copy produced by
:meth:`UserGoalState.snapshot`.

Example:
    >>> state = UserGoalState.create("u1", priorities=DEFAULT_PRIORITIES)
    >>> state.goal(GoalType.ENTERTAINMENT).active
    False
"""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Tuple

SATISFACTION_MIN = 0.0
SATISFACTION_MAX = 100.0
NEUTRAL_SATISFACTION = 50.0


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def clamp_score(value: float) -> float:
    """Clamp a score into ``[SATISFACTION_MIN, SATISFACTION_MAX]``."""
    return max(SATISFACTION_MIN, min(SATISFACTION_MAX, float(value)))


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# Enums
# =============================================================================


class GoalType(str, Enum):
    """User needs the system tracks."""

    WAITING_SUPPORT = "waiting_support"
    """User is waiting for a human or a queued support answer."""

    ENTERTAINMENT = "entertainment"
    """User wants to be entertained (jokes, trivia, gifs)."""

    TECHNICAL_HELP = "technical_help"
    """User needs help with a technical problem."""

    GENERAL_ENGAGEMENT = "general_engagement"
    """User should be kept engaged in the conversation."""


class ConversationState(str, Enum):
    """Coarse conversational state of a user."""

    IDLE = "idle"
    WAITING = "waiting"
    ENGAGED = "engaged"
    FRUSTRATED = "frustrated"


class AgentType(str, Enum):
    """Specialized agents a turn can be routed to."""

    GENERAL = "general"
    TECHNICAL = "technical"
    JOKE = "joke"
    TRIVIA = "trivia"
    GIF = "gif"
    HOLD = "hold"

    @classmethod
    def coerce(cls, value: Any) -> Optional["AgentType"]:
        """Return the matching member, or None for unrecognized values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Signal(str, Enum):
    """Signals the classifier extracts from a message.  Several may fire at once."""

    WAITING = "waiting"
    ENTERTAINMENT = "entertainment"
    TECHNICAL = "technical"
    BOREDOM = "boredom"
    FRUSTRATION = "frustration"
    POSITIVE_FEEDBACK = "positive_feedback"
    RESOLVED = "resolved"
    QUESTION = "question"
    TERSE = "terse"


class EntertainmentPreference(str, Enum):
    """Last known kind of entertainment a user asked for."""

    JOKES = "jokes"
    TRIVIA = "trivia"
    GENERAL_CHAT = "general_chat"
    GIFS = "gifs"
    MIXED = "mixed"


class ProactiveKind(str, Enum):
    """Kinds of proactive action: one per goal type plus a generic check-in."""

    WAITING_SUPPORT = "waiting_support"
    ENTERTAINMENT = "entertainment"
    TECHNICAL_HELP = "technical_help"
    GENERAL_ENGAGEMENT = "general_engagement"
    CHECK_IN = "check_in"

    @classmethod
    def for_goal(cls, goal_type: GoalType) -> "ProactiveKind":
        return cls(goal_type.value)


# Signals that activate goals.  Signals absent here (frustration, feedback,
# message shape) drive satisfaction and engagement instead.
SIGNAL_GOALS: Dict[Signal, Tuple[GoalType, ...]] = {
    Signal.WAITING: (GoalType.WAITING_SUPPORT,),
    Signal.ENTERTAINMENT: (GoalType.ENTERTAINMENT,),
    Signal.TECHNICAL: (GoalType.TECHNICAL_HELP,),
    Signal.BOREDOM: (GoalType.ENTERTAINMENT, GoalType.GENERAL_ENGAGEMENT),
    Signal.FRUSTRATION: (),
    Signal.POSITIVE_FEEDBACK: (),
    Signal.RESOLVED: (),
    Signal.QUESTION: (),
    Signal.TERSE: (),
}

# Goal each agent addresses when it handles a turn.
AGENT_GOALS: Dict[AgentType, GoalType] = {
    AgentType.GENERAL: GoalType.GENERAL_ENGAGEMENT,
    AgentType.TECHNICAL: GoalType.TECHNICAL_HELP,
    AgentType.JOKE: GoalType.ENTERTAINMENT,
    AgentType.TRIVIA: GoalType.ENTERTAINMENT,
    AgentType.GIF: GoalType.ENTERTAINMENT,
    AgentType.HOLD: GoalType.WAITING_SUPPORT,
}

# Default agent for a goal when routing by goal urgency.
GOAL_AGENTS: Dict[GoalType, AgentType] = {
    GoalType.WAITING_SUPPORT: AgentType.HOLD,
    GoalType.ENTERTAINMENT: AgentType.JOKE,
    GoalType.TECHNICAL_HELP: AgentType.TECHNICAL,
    GoalType.GENERAL_ENGAGEMENT: AgentType.GENERAL,
}

PREFERENCE_AGENTS: Dict[EntertainmentPreference, AgentType] = {
    EntertainmentPreference.JOKES: AgentType.JOKE,
    EntertainmentPreference.TRIVIA: AgentType.TRIVIA,
    EntertainmentPreference.GIFS: AgentType.GIF,
    EntertainmentPreference.GENERAL_CHAT: AgentType.GENERAL,
}

DEFAULT_PRIORITIES: Dict[GoalType, float] = {
    GoalType.TECHNICAL_HELP: 10.0,
    GoalType.WAITING_SUPPORT: 9.0,
    GoalType.ENTERTAINMENT: 8.0,
    GoalType.GENERAL_ENGAGEMENT: 6.0,
}


# =============================================================================
# Goal State
# =============================================================================


@dataclass
class Goal:
    """
    One pursuable user need.

    Attributes:
        type: Which need this goal tracks.  Unique within a UserGoalState.
        priority: Weight used when ranking simultaneously active goals.
        active: Whether the goal is currently being pursued.
        satisfaction: How well the goal is met, in ``[0, 100]``.
        last_updated: Last time the need was expressed or addressed.
    """

    type: GoalType
    priority: float
    active: bool = False
    satisfaction: float = NEUTRAL_SATISFACTION
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def urgency(self) -> float:
        """``priority * (100 - satisfaction)``; higher is more urgent."""
        return self.priority * (SATISFACTION_MAX - self.satisfaction)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority,
            "active": self.active,
            "satisfaction": self.satisfaction,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Goal":
        return cls(
            type=GoalType(data["type"]),
            priority=float(data["priority"]),
            active=bool(data.get("active", False)),
            satisfaction=clamp_score(data.get("satisfaction", NEUTRAL_SATISFACTION)),
            last_updated=_parse_dt(data.get("last_updated")) or utcnow(),
        )


@dataclass
class TurnRecord:
    """Summary of one processed turn, kept in the bounded history."""

    agent_type: str
    success: bool
    resolved_goal: bool
    addressed_goal: Optional[GoalType]
    signals: List[str] = field(default_factory=list)
    at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_type": self.agent_type,
            "success": self.success,
            "resolved_goal": self.resolved_goal,
            "addressed_goal": self.addressed_goal.value if self.addressed_goal else None,
            "signals": list(self.signals),
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TurnRecord":
        addressed = data.get("addressed_goal")
        return cls(
            agent_type=str(data.get("agent_type", AgentType.GENERAL.value)),
            success=bool(data.get("success", False)),
            resolved_goal=bool(data.get("resolved_goal", False)),
            addressed_goal=GoalType(addressed) if addressed else None,
            signals=list(data.get("signals", [])),
            at=_parse_dt(data.get("at")) or utcnow(),
        )


@dataclass
class UserGoalState:
    """
    Everything tracked for one user.

    Attributes:
        user_id: Owning user.
        goals: Goals keyed by type; exactly one goal per GoalType.
        current_state: Coarse conversational state.
        engagement_level: Aggregate engagement in ``[0, 100]``.
        satisfaction_level: Aggregate satisfaction in ``[0, 100]``.
        interaction_score: Engagement inferred from message shape, ``[0, 100]``.
        entertainment_preference: Last entertainment category asked for.
        technical_context: Last technical topic/excerpt mentioned.
        history: Most recent turns, oldest evicted first.
        created_at: When the state was created.
        last_interaction_at: When the last turn was applied.
        turn_count: Total turns applied.
    """

    user_id: str
    goals: Dict[GoalType, Goal]
    history: Deque[TurnRecord]
    current_state: ConversationState = ConversationState.IDLE
    engagement_level: float = NEUTRAL_SATISFACTION
    satisfaction_level: float = NEUTRAL_SATISFACTION
    interaction_score: float = NEUTRAL_SATISFACTION
    entertainment_preference: Optional[EntertainmentPreference] = None
    technical_context: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_interaction_at: Optional[datetime] = None
    turn_count: int = 0

    @classmethod
    def create(
        cls,
        user_id: str,
        priorities: Mapping[GoalType, float] = DEFAULT_PRIORITIES,
        neutral: float = NEUTRAL_SATISFACTION,
        history_size: int = 20,
        now: Optional[datetime] = None,
    ) -> "UserGoalState":
        """Build a fresh state with every goal inactive at neutral satisfaction."""
        now = now or utcnow()
        goals = {
            goal_type: Goal(
                type=goal_type,
                priority=float(priorities.get(goal_type, DEFAULT_PRIORITIES[goal_type])),
                satisfaction=clamp_score(neutral),
                last_updated=now,
            )
            for goal_type in GoalType
        }
        return cls(
            user_id=user_id,
            goals=goals,
            history=deque(maxlen=history_size),
            engagement_level=clamp_score(neutral),
            satisfaction_level=clamp_score(neutral),
            interaction_score=clamp_score(neutral),
            created_at=now,
        )

    def goal(self, goal_type: GoalType) -> Goal:
        return self.goals[goal_type]

    def active_goals(self) -> List[Goal]:
        return [g for g in self.goals.values() if g.active]

    def snapshot(self) -> "UserGoalState":
        """Deep copy safe to hand to other components."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "goals": [g.to_dict() for g in self.goals.values()],
            "current_state": self.current_state.value,
            "engagement_level": self.engagement_level,
            "satisfaction_level": self.satisfaction_level,
            "interaction_score": self.interaction_score,
            "entertainment_preference": (
                self.entertainment_preference.value if self.entertainment_preference else None
            ),
            "technical_context": self.technical_context,
            "history": [t.to_dict() for t in self.history],
            "history_size": self.history.maxlen,
            "created_at": self.created_at.isoformat(),
            "last_interaction_at": (
                self.last_interaction_at.isoformat() if self.last_interaction_at else None
            ),
            "turn_count": self.turn_count,
        }

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], history_size: Optional[int] = None
    ) -> "UserGoalState":
        """Deserialize, filling in any goal types missing from older documents."""
        state = cls.create(
            str(data["user_id"]),
            history_size=history_size or int(data.get("history_size") or 20),
            now=_parse_dt(data.get("created_at")),
        )
        for raw in data.get("goals", []):
            goal = Goal.from_dict(raw)
            state.goals[goal.type] = goal
        state.current_state = ConversationState(
            data.get("current_state", ConversationState.IDLE.value)
        )
        state.engagement_level = clamp_score(data.get("engagement_level", NEUTRAL_SATISFACTION))
        state.satisfaction_level = clamp_score(
            data.get("satisfaction_level", NEUTRAL_SATISFACTION)
        )
        state.interaction_score = clamp_score(
            data.get("interaction_score", NEUTRAL_SATISFACTION)
        )
        pref = data.get("entertainment_preference")
        state.entertainment_preference = EntertainmentPreference(pref) if pref else None
        state.technical_context = data.get("technical_context")
        state.history.extend(TurnRecord.from_dict(t) for t in data.get("history", []))
        state.last_interaction_at = _parse_dt(data.get("last_interaction_at"))
        state.turn_count = int(data.get("turn_count", 0))
        return state


# =============================================================================
# Per-turn records
# =============================================================================


@dataclass(frozen=True)
class ClassificationResult:
    """
    Classifier output for one message.  Never persisted.

    ``agent_type`` is normally an :class:`AgentType`; results coming from an
    external backend may carry an unrecognized value, which consumers treat
    as "general" for routing and as "no goal" for state updates.
    """

    agent_type: Any
    confidence: float
    extracted_signals: Mapping[Signal, float] = field(default_factory=dict)
    entertainment_category: Optional[EntertainmentPreference] = None
    technical_topic: Optional[str] = None
    reasoning: str = ""
    method: str = "heuristic"

    def has(self, signal: Signal) -> bool:
        return self.extracted_signals.get(signal, 0.0) > 0.0

    @property
    def known_agent_type(self) -> Optional[AgentType]:
        return AgentType.coerce(self.agent_type)


@dataclass(frozen=True)
class AgentOutcome:
    """What the agent capability reported about the turn it handled."""

    agent_type: Any
    success: bool
    resolved_goal: bool = False

    @classmethod
    def unresolved(cls, agent_type: Any) -> "AgentOutcome":
        """Degraded outcome used when the agent failed or timed out."""
        return cls(agent_type=agent_type, success=False, resolved_goal=False)


@dataclass(frozen=True)
class RoutingDecision:
    """Agent selected for a turn plus the state slice that agent needs."""

    agent_type: AgentType
    context_for_agent: Mapping[str, Any]
    reason: str
    goal_type: Optional[GoalType] = None
    confidence: float = 0.0


@dataclass(frozen=True)
class ProactiveTrigger:
    """Why a proactive action fired."""

    goal_type: Optional[GoalType]
    reason: str
    idle_seconds: float
    satisfaction: Optional[float]
    since: datetime


@dataclass(frozen=True)
class ProactiveAction:
    """
    A system-initiated action for one user.

    Attributes:
        target_user_id: Recipient.
        kind: Mirrors the goal type that fired, or CHECK_IN.
        suggested_content: Message (or generation request) to deliver.
        agent_type: Agent that should produce/own the content.
        triggered_by: Goal and threshold that fired the action.
        created_at: Sweep time.
        delay_seconds: Suggested delivery delay.
    """

    target_user_id: str
    kind: ProactiveKind
    suggested_content: str
    agent_type: AgentType
    triggered_by: ProactiveTrigger
    created_at: datetime
    delay_seconds: float = 0.0

    @property
    def dedup_key(self) -> Tuple[str, str, str]:
        """Identifies one staleness episode; stable across repeated sweeps."""
        return (self.target_user_id, self.kind.value, self.triggered_by.since.isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_user_id": self.target_user_id,
            "kind": self.kind.value,
            "suggested_content": self.suggested_content,
            "agent_type": self.agent_type.value,
            "triggered_by": {
                "goal_type": (
                    self.triggered_by.goal_type.value if self.triggered_by.goal_type else None
                ),
                "reason": self.triggered_by.reason,
                "idle_seconds": self.triggered_by.idle_seconds,
                "satisfaction": self.triggered_by.satisfaction,
                "since": self.triggered_by.since.isoformat(),
            },
            "created_at": self.created_at.isoformat(),
            "delay_seconds": self.delay_seconds,
        }


def rank_goals(goals: Iterable[Goal]) -> List[Goal]:
    """
    Order goals most urgent first.

    Urgency is ``priority * (100 - satisfaction)``.  Equal urgency goes to the
    most recently updated goal, then the higher priority, then enum order so
    the ranking never depends on input order.
    """
    order = {goal_type: i for i, goal_type in enumerate(GoalType)}
    return sorted(
        goals,
        key=lambda g: (-g.urgency, -g.last_updated.timestamp(), -g.priority, order[g.type]),
    )
