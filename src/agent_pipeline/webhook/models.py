"""Agent status webhook event models.

The agent service calls the webhook when an agent changes status. Only the
fields the pipeline logs are modelled; everything else is ignored.

Agent Webhook Payload Structure:
{
  "event": "statusChange",
  "id": "bc_abc123",
  "status": "FINISHED",
  "summary": "Added dark mode toggle",
  "target": {
    "branchName": "cursor/dark-mode-1a2b",
    "prUrl": "https://github.com/acme/shop/pull/7"
  }
}

The models use Pydantic for validation, consistent with the pipeline's
configuration approach in config.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AgentTarget(BaseModel):
    """Where the agent's work landed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    branch_name: Optional[str] = Field(default=None, alias="branchName")
    pr_url: Optional[str] = Field(default=None, alias="prUrl")


class AgentStatusEvent(BaseModel):
    """Parsed agent status webhook event.

    Attributes:
        event: Event name sent by the agent service.
        agent_id: Identifier of the agent.
        status: Raw agent status (e.g. FINISHED, ERROR).
        summary: Agent's summary of its work, if any.
        target: Branch and pull request produced, if any.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event: str = Field(default="statusChange")
    agent_id: str = Field(..., min_length=1, alias="id")
    status: str = Field(..., min_length=1)
    summary: Optional[str] = None
    target: AgentTarget = Field(default_factory=AgentTarget)

    @property
    def finished(self) -> bool:
        return self.status == "FINISHED"
