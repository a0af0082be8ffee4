# src/goalcore/orchestration/agents.py
"""
Contract between the orchestrator and the external agent capability.

The capability produces the reply text for a routed turn.  It receives the
agent type picked by the router, the ``context_for_agent`` slice of goal
state, and the user's message, and reports back whether it helped.

Capabilities may return an :class:`AgentReply`, a mapping with the same
keys (``content``, ``success``, ``resolved_goal``), or a bare string which
counts as a successful, non-resolving reply.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Union, runtime_checkable

from ..exceptions import AgentInvocationError
from ..goals.models import AgentType


@dataclass(frozen=True)
class AgentReply:
    """What an agent produced for one turn."""

    content: str
    success: bool = True
    resolved_goal: bool = False


@runtime_checkable
class AgentCapability(Protocol):
    """Generates the reply for a routed turn."""

    async def generate(
        self,
        agent_type: AgentType,
        context_for_agent: Mapping[str, Any],
        message_text: str,
    ) -> Union[AgentReply, Mapping[str, Any], str]:
        ...


def coerce_reply(agent_type: AgentType, raw: Any) -> AgentReply:
    """
    Normalize whatever a capability returned into an :class:`AgentReply`.

    Raises:
        AgentInvocationError: If the value cannot be interpreted as a reply.
    """
    if isinstance(raw, AgentReply):
        return raw
    if isinstance(raw, str):
        return AgentReply(content=raw)
    if isinstance(raw, Mapping):
        content = raw.get("content")
        if not isinstance(content, str):
            raise AgentInvocationError(agent_type.value, "reply mapping has no string 'content'")
        return AgentReply(
            content=content,
            success=bool(raw.get("success", True)),
            resolved_goal=bool(raw.get("resolved_goal", False)),
        )
    raise AgentInvocationError(
        agent_type.value, f"unsupported reply type {type(raw).__name__}"
    )
