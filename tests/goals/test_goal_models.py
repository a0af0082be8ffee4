# tests/goals/test_goal_models.py
"""
Tests for the goal model: enums, Goal arithmetic, UserGoalState creation,
snapshots, serialization and urgency ranking.
"""

from datetime import datetime, timedelta, timezone

import pytest

from goalcore.goals.models import (
    AGENT_GOALS,
    DEFAULT_PRIORITIES,
    GOAL_AGENTS,
    AgentType,
    ClassificationResult,
    ConversationState,
    EntertainmentPreference,
    Goal,
    GoalType,
    ProactiveKind,
    Signal,
    TurnRecord,
    UserGoalState,
    clamp_score,
    rank_goals,
)

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestClampScore:
    """clamp_score keeps every score inside [0, 100]."""

    @pytest.mark.parametrize(
        "value, expected",
        [(-5, 0.0), (0, 0.0), (42.5, 42.5), (100, 100.0), (250, 100.0)],
    )
    def test_clamp(self, value, expected):
        assert clamp_score(value) == expected


class TestAgentType:
    def test_coerce_member(self):
        assert AgentType.coerce(AgentType.JOKE) is AgentType.JOKE

    def test_coerce_string_is_case_insensitive(self):
        assert AgentType.coerce(" Trivia ") is AgentType.TRIVIA

    def test_coerce_unknown_returns_none(self):
        assert AgentType.coerce("weather") is None
        assert AgentType.coerce(None) is None

    def test_every_agent_addresses_a_goal(self):
        assert set(AGENT_GOALS) == set(AgentType)

    def test_every_goal_has_a_default_agent(self):
        assert set(GOAL_AGENTS) == set(GoalType)
        for goal_type, agent in GOAL_AGENTS.items():
            assert AGENT_GOALS[agent] is goal_type


class TestProactiveKind:
    def test_kind_mirrors_goal_type(self):
        for goal_type in GoalType:
            assert ProactiveKind.for_goal(goal_type).value == goal_type.value


class TestGoal:
    def test_urgency(self):
        goal = Goal(type=GoalType.TECHNICAL_HELP, priority=10, satisfaction=40)
        assert goal.urgency == 600

    def test_round_trip_dict(self):
        goal = Goal(
            type=GoalType.ENTERTAINMENT,
            priority=8,
            active=True,
            satisfaction=65,
            last_updated=START,
        )
        assert Goal.from_dict(goal.to_dict()) == goal

    def test_from_dict_clamps_out_of_range_satisfaction(self):
        data = Goal(type=GoalType.ENTERTAINMENT, priority=8).to_dict()
        data["satisfaction"] = 180
        assert Goal.from_dict(data).satisfaction == 100.0


class TestUserGoalState:
    """Fresh states, snapshots and persistence documents."""

    def test_create_has_one_inactive_neutral_goal_per_type(self):
        state = UserGoalState.create("u1", now=START)

        assert set(state.goals) == set(GoalType)
        for goal_type, goal in state.goals.items():
            assert goal.type is goal_type
            assert goal.active is False
            assert goal.satisfaction == 50.0
            assert goal.priority == DEFAULT_PRIORITIES[goal_type]
            assert goal.last_updated == START
        assert state.current_state is ConversationState.IDLE
        assert state.active_goals() == []
        assert state.turn_count == 0

    def test_create_uses_custom_priorities(self):
        priorities = dict(DEFAULT_PRIORITIES)
        priorities[GoalType.ENTERTAINMENT] = 12.0
        state = UserGoalState.create("u1", priorities=priorities)
        assert state.goal(GoalType.ENTERTAINMENT).priority == 12.0

    def test_history_is_bounded(self):
        state = UserGoalState.create("u1", history_size=2)
        for agent in ("joke", "trivia", "gif"):
            state.history.append(
                TurnRecord(agent_type=agent, success=True, resolved_goal=False, addressed_goal=None)
            )
        assert [t.agent_type for t in state.history] == ["trivia", "gif"]

    def test_snapshot_is_independent(self):
        state = UserGoalState.create("u1")
        snap = state.snapshot()

        snap.goal(GoalType.ENTERTAINMENT).active = True
        snap.history.append(
            TurnRecord(agent_type="joke", success=True, resolved_goal=False, addressed_goal=None)
        )

        assert state.goal(GoalType.ENTERTAINMENT).active is False
        assert len(state.history) == 0

    def test_round_trip_dict(self):
        state = UserGoalState.create("u1", history_size=5, now=START)
        state.goal(GoalType.WAITING_SUPPORT).active = True
        state.goal(GoalType.WAITING_SUPPORT).satisfaction = 72.5
        state.current_state = ConversationState.WAITING
        state.entertainment_preference = EntertainmentPreference.TRIVIA
        state.technical_context = "npm install fails"
        state.last_interaction_at = START + timedelta(seconds=30)
        state.turn_count = 3
        state.history.append(
            TurnRecord(
                agent_type="hold",
                success=True,
                resolved_goal=False,
                addressed_goal=GoalType.WAITING_SUPPORT,
                signals=["waiting"],
                at=START,
            )
        )

        restored = UserGoalState.from_dict(state.to_dict())

        assert restored.to_dict() == state.to_dict()
        assert restored.history.maxlen == 5

    def test_from_dict_fills_missing_goal_types(self):
        data = UserGoalState.create("u1").to_dict()
        data["goals"] = [g for g in data["goals"] if g["type"] != "entertainment"]

        restored = UserGoalState.from_dict(data)

        assert set(restored.goals) == set(GoalType)


class TestClassificationResult:
    def test_has_signal(self):
        result = ClassificationResult(
            agent_type=AgentType.JOKE,
            confidence=0.9,
            extracted_signals={Signal.ENTERTAINMENT: 1.0},
        )
        assert result.has(Signal.ENTERTAINMENT)
        assert not result.has(Signal.WAITING)

    def test_known_agent_type_for_unrecognized_value(self):
        result = ClassificationResult(agent_type="weather", confidence=0.9)
        assert result.known_agent_type is None


class TestRankGoals:
    """Urgency ordering and its tie-breaks."""

    def test_most_urgent_first(self):
        tech = Goal(type=GoalType.TECHNICAL_HELP, priority=10, satisfaction=50)
        ent = Goal(type=GoalType.ENTERTAINMENT, priority=8, satisfaction=20)
        assert rank_goals([tech, ent]) == [ent, tech]

    def test_tie_goes_to_most_recently_updated(self):
        older = Goal(
            type=GoalType.TECHNICAL_HELP,
            priority=10,
            satisfaction=55,
            last_updated=START,
        )
        newer = Goal(
            type=GoalType.WAITING_SUPPORT,
            priority=9,
            satisfaction=50,
            last_updated=START + timedelta(seconds=1),
        )
        assert older.urgency == newer.urgency
        assert rank_goals([older, newer])[0] is newer

    def test_full_tie_is_independent_of_input_order(self):
        a = Goal(type=GoalType.ENTERTAINMENT, priority=8, satisfaction=50, last_updated=START)
        b = Goal(type=GoalType.WAITING_SUPPORT, priority=8, satisfaction=50, last_updated=START)
        assert rank_goals([a, b]) == rank_goals([b, a])
        assert rank_goals([a, b])[0] is b

    def test_empty(self):
        assert rank_goals([]) == []
