# src/goalcore/orchestration/__init__.py
"""
Per-turn orchestration and the agent capability contract.
"""

from .agents import AgentCapability, AgentReply, coerce_reply
from .facade import Orchestrator, TurnResult

__all__ = [
    "AgentCapability",
    "AgentReply",
    "Orchestrator",
    "TurnResult",
    "coerce_reply",
]
