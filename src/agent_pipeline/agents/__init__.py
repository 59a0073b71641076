"""Background-agent service client."""

from agent_pipeline.agents.client import AgentClient, RepositoryAccessError

__all__ = [
    "AgentClient",
    "RepositoryAccessError",
]
