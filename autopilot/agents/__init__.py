"""Agent definitions that run on the automation engine."""

from autopilot.core.errors import InputValidationError
from autopilot.models.automation_run import AgentKind

from .base import AgentDefinition, resolve_input
from .competitor import CompetitorResearchAgent
from .creative import CreativeGenerationAgent
from .reviews import ReviewScanAgent

__all__ = [
    "AgentDefinition",
    "CompetitorResearchAgent",
    "CreativeGenerationAgent",
    "ReviewScanAgent",
    "AGENTS",
    "get_agent",
    "resolve_input",
]

AGENTS: dict[AgentKind, AgentDefinition] = {
    agent.kind: agent
    for agent in (
        CompetitorResearchAgent(),
        ReviewScanAgent(),
        CreativeGenerationAgent(),
    )
}


def get_agent(kind: AgentKind | str) -> AgentDefinition:
    """
    Look up the agent for a kind.

    Raises:
        InputValidationError: Unknown kind, or a kind that does not drive the
            automation provider (performance sync has its own engine)
    """
    try:
        kind = AgentKind(kind)
    except ValueError:
        raise InputValidationError(f"Unknown agent kind: {kind}") from None

    agent = AGENTS.get(kind)
    if agent is None:
        raise InputValidationError(
            f"Agent kind {kind.value} cannot be run by the automation engine"
        )
    return agent
