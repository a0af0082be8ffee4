# examples/simple_router.py
"""
Example demonstrating goal-seeking routing with goalcore.

This script shows how to:
1. Build an Orchestrator from the default configuration.
2. Plug in an agent capability (here a canned responder).
3. Send a few turns for one user and inspect the active goals.
4. Receive proactive actions from the periodic sweep runner.

To run this example:
- Ensure you have goalcore installed (`pip install .` from the project root).
- Optionally point GOALCORE_PROACTIVE__SWEEP_INTERVAL_SECONDS at a small value
  to see the sweep runner fire sooner.
"""

import asyncio
import logging

from goalcore import AgentReply, AgentType, GoalCoreError, Orchestrator, load_config

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

CANNED = {
    AgentType.JOKE: "Why do programmers prefer dark mode? Because light attracts bugs.",
    AgentType.TRIVIA: "Octopuses have three hearts.",
    AgentType.TECHNICAL: "Try clearing your browser cache and signing in again.",
    AgentType.HOLD: "Thanks for your patience, a specialist will be with you shortly.",
}


class CannedAgent:
    """Answers every agent type with a fixed line."""

    async def generate(self, agent_type, context_for_agent, message_text):
        content = CANNED.get(agent_type, "Happy to help! What's on your mind?")
        return AgentReply(content=content, resolved_goal=agent_type is AgentType.TECHNICAL)


async def print_action(action):
    logger.info(f"Proactive [{action.kind.value}] -> {action.target_user_id}: {action.suggested_content}")


async def main():
    """Runs a short conversation through the router."""
    orchestrator = None
    try:
        config = load_config()
        orchestrator = Orchestrator.from_config(config, CannedAgent())
        orchestrator.add_sink(print_action)
        await orchestrator.start()

        for message in (
            "I'm waiting for support",
            "Can you tell me a joke while I wait?",
            "My login keeps failing with an error",
            "Thanks, that fixed it!",
        ):
            result = await orchestrator.handle_turn("demo-user", message)
            logger.info(f"[{result.agent_used.value}] {result.content}")

        goals = orchestrator.get_active_goals("demo-user")
        logger.info(
            "Active goals: "
            + ", ".join(f"{g.type.value} ({g.satisfaction:.0f})" for g in goals)
        )
    except GoalCoreError as e:
        logger.error(f"A goalcore error occurred: {e}")
    finally:
        if orchestrator:
            await orchestrator.stop()


if __name__ == "__main__":
    asyncio.run(main())
