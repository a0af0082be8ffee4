# src/goalcore/__init__.py
"""
goalcore - goal-seeking routing core for conversational agents.

Tracks each user's underlying needs (waiting for support, entertainment,
technical help, general engagement) as scored goals, routes every message
to the agent best placed to advance them, and proposes proactive actions
for goals that have gone stale.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import GoalCoreConfig, load_config
from .exceptions import (
    AgentInvocationError,
    AgentTimeoutError,
    ClassificationError,
    ConfigError,
    GoalCoreError,
    StateStoreError,
)
from .goals import (
    AgentOutcome,
    AgentType,
    ClassificationResult,
    ConversationState,
    EntertainmentPreference,
    Goal,
    GoalType,
    JsonFileStateStore,
    ProactiveAction,
    ProactiveKind,
    RoutingDecision,
    Signal,
    StateStore,
    UserGoalState,
)
from .goals.manager import GoalStateManager
from .logging_config import configure_logging
from .orchestration import AgentCapability, AgentReply, Orchestrator, TurnResult
from .proactive import ProactiveActionEngine, SweepScheduler
from .routing import AgentRouter, ClassificationBackend, MessageClassifier

try:
    __version__ = version("goalcore")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    "AgentCapability",
    "AgentInvocationError",
    "AgentOutcome",
    "AgentReply",
    "AgentRouter",
    "AgentTimeoutError",
    "AgentType",
    "ClassificationBackend",
    "ClassificationError",
    "ClassificationResult",
    "ConfigError",
    "ConversationState",
    "EntertainmentPreference",
    "Goal",
    "GoalCoreConfig",
    "GoalCoreError",
    "GoalStateManager",
    "GoalType",
    "JsonFileStateStore",
    "MessageClassifier",
    "Orchestrator",
    "ProactiveAction",
    "ProactiveActionEngine",
    "ProactiveKind",
    "RoutingDecision",
    "Signal",
    "StateStore",
    "SweepScheduler",
    "TurnResult",
    "UserGoalState",
    "configure_logging",
    "load_config",
    "__version__",
]
