# src/goalcore/orchestration/facade.py
"""
Orchestration Facade.

The single entry point for inbound messages.  Per turn it sequences:

    classify -> route -> agent capability (bounded by a timeout)
             -> apply_turn -> sweep scoped to the user -> TurnResult

Guarantees:
    - ``handle_turn`` never raises.  Agent failures and timeouts produce the
      configured fallback content and an unresolved outcome, which is still
      applied to goal state.
    - The user's state lock is held only while the turn is applied, never
      across the agent call.
    - Turns from one user are applied in the order they were accepted, even
      when agent calls finish out of order.

Example:
    orchestrator = Orchestrator.from_config(load_config(), agent=my_agent)
    result = await orchestrator.handle_turn("u1", "Can you tell me a joke?")
    print(result.content, result.agent_used, result.proactive_actions)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ..config.models import GoalCoreConfig
from ..exceptions import AgentInvocationError, AgentTimeoutError
from ..goals.manager import GoalStateManager
from ..goals.models import (
    AgentOutcome,
    AgentType,
    ClassificationResult,
    Goal,
    ProactiveAction,
    RoutingDecision,
    UserGoalState,
)
from ..goals.store import StateStore
from ..proactive.engine import ProactiveActionEngine
from ..proactive.scheduler import ActionSink, SweepScheduler
from ..routing.classifier import ClassificationBackend, MessageClassifier
from ..routing.router import AgentRouter
from .agents import AgentCapability, coerce_reply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """
    Composed result of one turn.

    Attributes:
        content: Reply text for the user (fallback text when degraded).
        agent_used: Agent the turn was routed to.
        proactive_actions: Actions that became due for this user.
        classification: Classifier output, None only if the turn failed early.
        decision: Routing decision, None only if the turn failed early.
        outcome: Outcome applied to goal state.
        degraded: True when the fallback content was used.
    """

    content: str
    agent_used: AgentType
    proactive_actions: List[ProactiveAction] = field(default_factory=list)
    classification: Optional[ClassificationResult] = None
    decision: Optional[RoutingDecision] = None
    outcome: Optional[AgentOutcome] = None
    degraded: bool = False


class Orchestrator:
    """
    Wires the classifier, router, goal state manager and proactive engine
    around an external agent capability.

    Args:
        agent: Produces reply content for routed turns.
        config: Root configuration; defaults are used when omitted.
        classifier: Optional pre-built classifier.
        goal_manager: Optional pre-built goal state manager.
        router: Optional pre-built router (must share ``goal_manager``).
        engine: Optional pre-built proactive engine.
        scheduler: Optional pre-built periodic sweep runner.
    """

    def __init__(
        self,
        agent: AgentCapability,
        config: Optional[GoalCoreConfig] = None,
        *,
        classifier: Optional[MessageClassifier] = None,
        goal_manager: Optional[GoalStateManager] = None,
        router: Optional[AgentRouter] = None,
        engine: Optional[ProactiveActionEngine] = None,
        scheduler: Optional[SweepScheduler] = None,
    ) -> None:
        self.agent = agent
        self.config = config or GoalCoreConfig()
        self.classifier = classifier or MessageClassifier.from_config(self.config)
        self.goal_manager = goal_manager or GoalStateManager.from_config(self.config)
        self.router = router or AgentRouter.from_config(self.config, self.goal_manager)
        self.engine = engine or ProactiveActionEngine.from_config(self.config)
        self.scheduler = scheduler or SweepScheduler(
            self.engine, self.goal_manager, self.config.proactive
        )

    @classmethod
    def from_config(
        cls,
        config: GoalCoreConfig,
        agent: AgentCapability,
        *,
        backend: Optional[ClassificationBackend] = None,
        store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "Orchestrator":
        """Build every component from ``config``."""
        return cls(
            agent,
            config,
            classifier=MessageClassifier.from_config(config, backend=backend),
            goal_manager=GoalStateManager.from_config(config, store=store, clock=clock),
        )

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str) -> UserGoalState:
        """Create the user's goal state if absent and return a snapshot."""
        return await self.goal_manager.initialize(user_id)

    def get_state(self, user_id: str) -> Optional[UserGoalState]:
        return self.goal_manager.get_state(user_id)

    def get_active_goals(self, user_id: str) -> List[Goal]:
        """Active goals for ``user_id``, most urgent first."""
        return self.goal_manager.get_active_goals(user_id)

    # ------------------------------------------------------------------
    # Proactive sweeps
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> List[ProactiveAction]:
        """Sweep every known user once.  No de-duplication across calls."""
        now = now or self.goal_manager.now()
        return list(self.engine.sweep(self.goal_manager.snapshot_all(), now))

    def add_sink(self, sink: ActionSink) -> None:
        """Receive actions emitted by the periodic sweep."""
        self.scheduler.add_sink(sink)

    async def start(self) -> None:
        """Start periodic sweeps (no-op when proactive actions are disabled)."""
        if self.config.proactive.enabled:
            await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def handle_turn(self, user_id: str, message_text: str) -> TurnResult:
        """
        Process one inbound message.  Never raises.

        Returns:
            TurnResult with reply content, the agent used and any proactive
            actions that became due for this user.
        """
        registry = self.goal_manager.registry
        ticket = registry.accept_turn(user_id)
        try:
            return await self._process(user_id, message_text, ticket)
        except Exception:
            logger.exception("Turn processing failed for user '%s'", user_id)
            return TurnResult(
                content=self.config.orchestrator.fallback_content,
                agent_used=AgentType.GENERAL,
                degraded=True,
            )
        finally:
            await registry.finish_turn(user_id, ticket)

    async def _process(self, user_id: str, message_text: str, ticket: int) -> TurnResult:
        state = self.goal_manager.get_state(user_id)
        history = list(state.history) if state is not None else []

        classification = await self.classifier.classify_async(user_id, message_text, history)
        decision = self.router.route(user_id, classification)

        content, outcome, degraded = await self._invoke(user_id, decision, message_text)

        # Earlier turns from this user must be applied first.
        await self.goal_manager.registry.wait_for_turn(user_id, ticket)
        updated = await self.goal_manager.apply_turn(user_id, classification, outcome)

        actions: List[ProactiveAction] = []
        if self.config.orchestrator.sweep_after_turn:
            actions = self._sweep_user(updated)

        logger.info(
            "Turn for user '%s' handled by %s (success=%s, degraded=%s)",
            user_id,
            decision.agent_type.value,
            outcome.success,
            degraded,
        )
        return TurnResult(
            content=content,
            agent_used=decision.agent_type,
            proactive_actions=actions,
            classification=classification,
            decision=decision,
            outcome=outcome,
            degraded=degraded,
        )

    async def _invoke(
        self, user_id: str, decision: RoutingDecision, message_text: str
    ) -> Tuple[str, AgentOutcome, bool]:
        """Call the agent capability, converting any failure into a fallback."""
        agent = decision.agent_type
        timeout = self.config.orchestrator.agent_timeout_seconds
        fallback = self.config.orchestrator.fallback_content

        try:
            try:
                raw = await asyncio.wait_for(
                    self.agent.generate(agent, decision.context_for_agent, message_text),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise AgentTimeoutError(agent.value, timeout) from e
            reply = coerce_reply(agent, raw)
        except AgentInvocationError as e:
            logger.warning("Agent failure for user '%s': %s", user_id, e)
            return fallback, AgentOutcome.unresolved(agent), True
        except Exception as e:
            logger.warning(
                "Agent '%s' raised for user '%s': %s", agent.value, user_id, e, exc_info=True
            )
            return fallback, AgentOutcome.unresolved(agent), True

        if not reply.content.strip():
            logger.warning("Agent '%s' returned empty content for user '%s'", agent.value, user_id)
            return fallback, AgentOutcome.unresolved(agent), True

        outcome = AgentOutcome(
            agent_type=agent,
            success=reply.success,
            resolved_goal=reply.success and reply.resolved_goal,
        )
        return reply.content, outcome, False

    def _sweep_user(self, state: UserGoalState) -> List[ProactiveAction]:
        """Sweep one user; actions already delivered by the scheduler are skipped."""
        if not self.config.proactive.enabled:
            return []
        self.scheduler.prune_user(state)
        try:
            action = self.engine.evaluate(state, self.goal_manager.now())
        except Exception:
            logger.exception("Scoped sweep failed for user '%s'", state.user_id)
            return []
        if action is None or not self.scheduler.is_new(action):
            return []
        self.scheduler.mark_delivered([action])
        return [action]
