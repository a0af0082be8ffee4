# tests/goals/test_manager.py
"""
Test suite for the GoalStateManager.

Tests cover:
    - Lazy initialization and idempotent initialize()
    - Goal activation from signals and context accumulation
    - Crediting, resolving and penalizing the dominant goal
    - Feedback credit for the previous turn
    - Frustration handling and conversational state transitions
    - Unrecognized agent types and bounded history
"""

import pytest

from goalcore.config.models import GoalStateConfig
from goalcore.goals.manager import GoalStateManager, normalize_signals
from goalcore.goals.models import (
    AgentOutcome,
    AgentType,
    ClassificationResult,
    ConversationState,
    EntertainmentPreference,
    GoalType,
    Signal,
)


def classification(agent, confidence=0.9, **signals):
    """Build a ClassificationResult from keyword signal strengths."""
    return ClassificationResult(
        agent_type=agent,
        confidence=confidence,
        extracted_signals={Signal(name): value for name, value in signals.items()},
    )


def success(agent, resolved=False):
    return AgentOutcome(agent_type=agent, success=True, resolved_goal=resolved)


def failure(agent):
    return AgentOutcome.unresolved(agent)


# =============================================================================
# Initialization
# =============================================================================


class TestInitialization:
    """initialize(), get_state() and lazy creation."""

    @pytest.mark.asyncio
    async def test_new_user_has_inactive_neutral_goals(self, goal_manager):
        await goal_manager.initialize("u1")
        state = goal_manager.get_state("u1")

        assert state is not None
        for goal in state.goals.values():
            assert goal.active is False
            assert goal.satisfaction == 50.0

    def test_unknown_user_has_no_state(self, goal_manager):
        assert goal_manager.get_state("nobody") is None
        assert goal_manager.get_active_goals("nobody") == []

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, goal_manager):
        await goal_manager.initialize("u1")
        await goal_manager.apply_turn(
            "u1", classification(AgentType.HOLD, waiting=1.0), success(AgentType.HOLD)
        )

        await goal_manager.initialize("u1")
        state = goal_manager.get_state("u1")

        assert state.turn_count == 1
        assert state.goal(GoalType.WAITING_SUPPORT).active is True

    @pytest.mark.asyncio
    async def test_apply_turn_initializes_unknown_user(self, goal_manager):
        state = await goal_manager.apply_turn(
            "fresh", classification(AgentType.GENERAL, 0.5), success(AgentType.GENERAL)
        )
        assert state.user_id == "fresh"
        assert goal_manager.get_state("fresh") is not None

    @pytest.mark.asyncio
    async def test_get_state_returns_copies(self, goal_manager):
        await goal_manager.initialize("u1")
        snapshot = goal_manager.get_state("u1")
        snapshot.goal(GoalType.ENTERTAINMENT).active = True

        assert goal_manager.get_state("u1").goal(GoalType.ENTERTAINMENT).active is False


# =============================================================================
# Turn application
# =============================================================================


class TestApplyTurn:
    """Activation, crediting and resolution."""

    @pytest.mark.asyncio
    async def test_waiting_signal_activates_waiting_goal(self, goal_manager, clock):
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.HOLD, 0.7, waiting=0.75), success(AgentType.HOLD)
        )

        goal = state.goal(GoalType.WAITING_SUPPORT)
        assert goal.active is True
        assert goal.last_updated == clock()
        assert goal.satisfaction == 75.0
        assert state.current_state is ConversationState.WAITING

    @pytest.mark.asyncio
    async def test_resolving_reply_deactivates_goal(self, goal_manager):
        state = await goal_manager.apply_turn(
            "u2",
            classification(AgentType.JOKE, entertainment=1.0, question=1.0),
            success(AgentType.JOKE, resolved=True),
        )

        goal = state.goal(GoalType.ENTERTAINMENT)
        assert goal.satisfaction >= 80.0
        assert goal.active is False
        assert state.active_goals() == []

    @pytest.mark.asyncio
    async def test_two_helpful_replies_resolve_goal(self, goal_manager):
        turn = classification(AgentType.JOKE, entertainment=1.0)
        await goal_manager.apply_turn("u1", turn, success(AgentType.JOKE))
        state = goal_manager.get_state("u1")
        assert state.goal(GoalType.ENTERTAINMENT).active is True

        state = await goal_manager.apply_turn("u1", turn, success(AgentType.JOKE))
        assert state.goal(GoalType.ENTERTAINMENT).satisfaction == 100.0
        assert state.goal(GoalType.ENTERTAINMENT).active is False

    @pytest.mark.asyncio
    async def test_agent_for_other_goal_does_not_credit_dominant(self, goal_manager):
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.TECHNICAL, technical=0.6), success(AgentType.JOKE)
        )
        assert state.goal(GoalType.TECHNICAL_HELP).satisfaction == 50.0
        assert state.goal(GoalType.TECHNICAL_HELP).active is True

    @pytest.mark.asyncio
    async def test_failed_turn_penalizes_dominant_goal(self, goal_manager):
        state = await goal_manager.apply_turn(
            "u3", classification(AgentType.HOLD, waiting=1.0), failure(AgentType.HOLD)
        )
        assert state.goal(GoalType.WAITING_SUPPORT).satisfaction == 40.0

    @pytest.mark.asyncio
    async def test_failed_turn_never_raises_satisfaction(self, goal_manager):
        turn = classification(AgentType.HOLD, waiting=1.0)
        await goal_manager.apply_turn("u3", turn, success(AgentType.HOLD))
        before = goal_manager.get_state("u3")

        after = await goal_manager.apply_turn("u3", turn, failure(AgentType.HOLD))

        for goal_type in GoalType:
            assert after.goal(goal_type).satisfaction <= before.goal(goal_type).satisfaction

    @pytest.mark.asyncio
    async def test_scores_stay_in_bounds(self, goal_manager):
        up = classification(AgentType.TECHNICAL, technical=1.0)
        down = classification(AgentType.TECHNICAL, technical=1.0, frustration=1.0)
        for _ in range(6):
            await goal_manager.apply_turn("u1", up, success(AgentType.TECHNICAL, resolved=True))
        for _ in range(12):
            await goal_manager.apply_turn("u1", down, failure(AgentType.TECHNICAL))

        state = goal_manager.get_state("u1")
        for goal in state.goals.values():
            assert 0.0 <= goal.satisfaction <= 100.0
        assert 0.0 <= state.engagement_level <= 100.0
        assert 0.0 <= state.satisfaction_level <= 100.0
        assert state.goal(GoalType.TECHNICAL_HELP).satisfaction == 0.0

    @pytest.mark.asyncio
    async def test_boredom_activates_entertainment_and_engagement(self, goal_manager):
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5, boredom=0.75), success(AgentType.GENERAL)
        )
        active = {g.type for g in state.active_goals()}
        assert active == {GoalType.ENTERTAINMENT, GoalType.GENERAL_ENGAGEMENT}

    @pytest.mark.asyncio
    async def test_context_is_accumulated(self, goal_manager):
        await goal_manager.apply_turn(
            "u1",
            ClassificationResult(
                agent_type=AgentType.TRIVIA,
                confidence=0.85,
                extracted_signals={Signal.ENTERTAINMENT: 1.0},
                entertainment_category=EntertainmentPreference.TRIVIA,
            ),
            success(AgentType.TRIVIA),
        )
        state = await goal_manager.apply_turn(
            "u1",
            ClassificationResult(
                agent_type=AgentType.TECHNICAL,
                confidence=0.8,
                extracted_signals={Signal.TECHNICAL: 0.8},
                technical_topic="docker build fails",
            ),
            success(AgentType.TECHNICAL),
        )
        assert state.entertainment_preference is EntertainmentPreference.TRIVIA
        assert state.technical_context == "docker build fails"

    @pytest.mark.asyncio
    async def test_get_active_goals_is_ranked(self, goal_manager):
        await goal_manager.apply_turn(
            "u1",
            classification(AgentType.GENERAL, 0.5, waiting=1.0, technical=1.0),
            success(AgentType.GENERAL),
        )
        ranked = [g.type for g in goal_manager.get_active_goals("u1")]
        assert ranked == [GoalType.TECHNICAL_HELP, GoalType.WAITING_SUPPORT]


# =============================================================================
# Feedback, frustration and state transitions
# =============================================================================


class TestFeedbackAndFrustration:
    @pytest.mark.asyncio
    async def test_resolved_feedback_credits_previous_goal(self, goal_manager):
        await goal_manager.apply_turn(
            "u1", classification(AgentType.TECHNICAL, technical=0.6), success(AgentType.TECHNICAL)
        )
        assert goal_manager.get_state("u1").goal(GoalType.TECHNICAL_HELP).satisfaction == 75.0

        state = await goal_manager.apply_turn(
            "u1",
            classification(AgentType.GENERAL, 0.5, positive_feedback=0.75, resolved=0.75),
            success(AgentType.GENERAL),
        )
        tech = state.goal(GoalType.TECHNICAL_HELP)
        assert tech.satisfaction == 100.0
        assert tech.active is False

    @pytest.mark.asyncio
    async def test_frustration_lowers_satisfaction(self, goal_manager):
        await goal_manager.apply_turn(
            "u1", classification(AgentType.HOLD, waiting=1.0), success(AgentType.HOLD)
        )
        before = goal_manager.get_state("u1")

        after = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5, frustration=1.0), success(AgentType.GENERAL)
        )

        assert after.current_state is ConversationState.FRUSTRATED
        assert after.satisfaction_level < before.satisfaction_level
        assert after.goal(GoalType.WAITING_SUPPORT).satisfaction == 60.0

    @pytest.mark.asyncio
    async def test_frustration_without_active_goals_lowers_satisfaction(self, goal_manager):
        before = await goal_manager.initialize("u1")

        after = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5, frustration=1.0), success(AgentType.GENERAL)
        )

        assert after.active_goals() == []
        assert after.current_state is ConversationState.FRUSTRATED
        assert after.satisfaction_level == before.satisfaction_level - 15.0

    @pytest.mark.asyncio
    async def test_frustration_penalty_is_clamped(self, goal_manager):
        state = None
        for _ in range(10):
            state = await goal_manager.apply_turn(
                "u1",
                classification(AgentType.GENERAL, 0.5, frustration=1.0),
                success(AgentType.GENERAL),
            )
        assert state.satisfaction_level == 0.0

    @pytest.mark.asyncio
    async def test_frustrated_user_stays_frustrated_until_recovery(self, goal_manager):
        await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5, frustration=1.0), success(AgentType.GENERAL)
        )
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5), success(AgentType.GENERAL)
        )
        assert state.current_state is ConversationState.FRUSTRATED

        state = await goal_manager.apply_turn(
            "u1",
            classification(AgentType.GENERAL, 0.5, positive_feedback=0.75),
            success(AgentType.GENERAL),
        )
        assert state.current_state is ConversationState.ENGAGED

    @pytest.mark.asyncio
    async def test_waiting_user_stays_waiting_while_goal_active(self, goal_manager):
        await goal_manager.apply_turn(
            "u1", classification(AgentType.HOLD, waiting=1.0), failure(AgentType.HOLD)
        )
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5), success(AgentType.GENERAL)
        )
        assert state.current_state is ConversationState.WAITING


# =============================================================================
# Malformed input and history
# =============================================================================


class TestMalformedAndHistory:
    @pytest.mark.asyncio
    async def test_unknown_agent_type_only_touches_engagement(self, goal_manager):
        await goal_manager.initialize("u1")
        before = goal_manager.get_state("u1")

        after = await goal_manager.apply_turn(
            "u1",
            ClassificationResult(
                agent_type="weather",
                confidence=0.95,
                extracted_signals={Signal.WAITING: 1.0, Signal.QUESTION: 1.0},
            ),
            success("weather"),
        )

        for goal_type in GoalType:
            assert after.goal(goal_type) == before.goal(goal_type)
        assert after.current_state is before.current_state
        assert after.engagement_level != before.engagement_level
        assert after.history[-1].agent_type == "weather"
        assert after.history[-1].addressed_goal is None

    @pytest.mark.asyncio
    async def test_history_evicts_oldest(self, clock):
        manager = GoalStateManager(GoalStateConfig(history_size=3), clock=clock)
        agents = [
            AgentType.JOKE,
            AgentType.TRIVIA,
            AgentType.GIF,
            AgentType.HOLD,
            AgentType.TECHNICAL,
        ]
        for agent in agents:
            await manager.apply_turn("u1", classification(agent, 0.9), success(agent))

        history = manager.get_state("u1").history
        assert [t.agent_type for t in history] == ["gif", "hold", "technical"]

    @pytest.mark.asyncio
    async def test_turn_bookkeeping(self, goal_manager, clock):
        await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5), success(AgentType.GENERAL)
        )
        clock.advance(30)
        state = await goal_manager.apply_turn(
            "u1", classification(AgentType.GENERAL, 0.5), success(AgentType.GENERAL)
        )
        assert state.turn_count == 2
        assert state.last_interaction_at == clock()


class TestNormalizeSignals:
    def test_drops_unknown_and_non_positive(self):
        result = normalize_signals({"waiting": 1.0, "sleepy": 1.0, Signal.TERSE: 0.0})
        assert result == {Signal.WAITING: 1.0}

    def test_orders_by_enum(self):
        result = normalize_signals({Signal.TERSE: 1.0, Signal.WAITING: 0.5})
        assert list(result) == [Signal.WAITING, Signal.TERSE]
