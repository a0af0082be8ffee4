# tests/conftest.py
"""
Shared fixtures for goalcore tests.

Provides a controllable clock, pre-configured managers and a scripted
agent capability used by the orchestration tests.
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest

# Add source to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from goalcore.config.models import GoalCoreConfig, GoalStateConfig, ProactiveConfig  # noqa: E402
from goalcore.goals.manager import GoalStateManager  # noqa: E402
from goalcore.goals.models import AgentType  # noqa: E402
from goalcore.orchestration.agents import AgentReply  # noqa: E402
from goalcore.proactive.engine import ProactiveActionEngine  # noqa: E402
from goalcore.routing.classifier import MessageClassifier  # noqa: E402
from goalcore.routing.router import AgentRouter  # noqa: E402

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class ScriptedAgent:
    """
    Agent capability double.

    Replies "<agent_type> reply" by default; per-agent delays, failures and
    resolution flags can be configured.  Every call is recorded.
    """

    def __init__(
        self,
        delays: Optional[Dict[AgentType, float]] = None,
        resolves: bool = False,
        error: Optional[Exception] = None,
    ):
        self.delays = delays or {}
        self.resolves = resolves
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def generate(
        self, agent_type: AgentType, context_for_agent: Mapping[str, Any], message_text: str
    ) -> AgentReply:
        self.calls.append(
            {"agent_type": agent_type, "context": dict(context_for_agent), "message": message_text}
        )
        gate = self.gates.get(context_for_agent.get("user_id", ""))
        if gate is not None:
            await gate.wait()
        delay = self.delays.get(agent_type, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        return AgentReply(content=f"{agent_type.value} reply", resolved_goal=self.resolves)


@pytest.fixture
def clock():
    """A FakeClock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def config():
    """Default root configuration."""
    return GoalCoreConfig()


@pytest.fixture
def goal_manager(clock):
    """GoalStateManager with default settings and the fake clock."""
    return GoalStateManager(GoalStateConfig(), clock=clock)


@pytest.fixture
def classifier():
    return MessageClassifier()


@pytest.fixture
def router(goal_manager):
    return AgentRouter(goal_manager)


@pytest.fixture
def engine():
    """Proactive engine with default staleness windows."""
    return ProactiveActionEngine(ProactiveConfig(), resolution_threshold=80.0)


@pytest.fixture
def scripted_agent():
    return ScriptedAgent()


@pytest.fixture
def agent_factory():
    """Build ScriptedAgent instances with custom behaviour."""
    return ScriptedAgent
