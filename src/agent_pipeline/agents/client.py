"""Client for the background-agent service.

Each pipeline phase is one agent run: submitted against a source ref,
polled until it finishes, optionally given followup instructions, and
read back for the branch it produced.

Source:
- agent_pipeline/transport/client.py (ServiceClient)
- agent_pipeline/jobs/models.py (JobStatus)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from agent_pipeline.jobs.models import JobStatus
from agent_pipeline.phases.models import Phase
from agent_pipeline.state.models import RunContext
from agent_pipeline.transport.client import ServiceClient
from agent_pipeline.transport.retry import RetryingTransport


logger = logging.getLogger(__name__)


class RepositoryAccessError(Exception):
    """Raised when the agent service cannot see the project repository.

    Attributes:
        owner: Repository owner.
        project: Repository name.
    """

    def __init__(self, owner: str, project: str):
        self.owner = owner
        self.project = project
        super().__init__(
            f"Agent service has no access to {owner}/{project}. Grant the agent's "
            "GitHub App access to this repository (or to all repositories)."
        )


class AgentClient(ServiceClient):
    """Async client for the background-agent API.

    Authentication is HTTP Basic with the API key as user name and an
    empty password.

    Example:
        >>> async with AgentClient(api_key, transport) as agents:
        ...     job_id = await agents.submit(phase, context, "main")
        ...     status = await agents.status(job_id)
    """

    service = "cursor"

    def __init__(
        self,
        api_key: str,
        transport: RetryingTransport,
        base_url: str = "https://api.cursor.com",
        timeout: float = 60.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self._api_key = api_key

    def _auth(self) -> httpx.Auth:
        return httpx.BasicAuth(self._api_key, "")

    @staticmethod
    def agent_url(job_id: str) -> str:
        return f"https://cursor.com/agents?id={job_id}"

    async def submit(self, phase: Phase, context: RunContext, source_ref: str) -> str:
        """Launch an agent run for ``phase`` starting from ``source_ref``.

        Returns:
            The new agent (job) id.
        """
        logger.info(
            "Launching agent: %s",
            phase.name,
            extra={"phase": phase.name, "model": phase.model, "source_ref": source_ref},
        )
        body = {
            "prompt": {"text": phase.prompt(context)},
            "source": {"repository": context.repo_url, "ref": source_ref},
            "target": {"autoCreatePr": False},
            "model": phase.model,
        }
        data = await self._request_json("POST", "/v0/agents", json_data=body)
        job_id = data["id"]
        logger.info(
            "Agent launched: %s",
            self.agent_url(job_id),
            extra={"phase": phase.name, "job_id": job_id},
        )
        return job_id

    async def get_agent(self, job_id: str) -> Dict[str, Any]:
        """Return the raw agent record."""
        return await self._request_json("GET", f"/v0/agents/{job_id}")

    async def status(self, job_id: str) -> JobStatus:
        """Fetch the agent's status and the branch it produced, if any."""
        data = await self.get_agent(job_id)
        target = data.get("target") or {}
        return JobStatus(
            job_id=job_id,
            state=str(data.get("status", "UNKNOWN")),
            produced_ref=target.get("branchName") or None,
            payload=data,
        )

    async def inject_followup(self, job_id: str, text: str) -> None:
        """Send additional instructions to an agent run."""
        await self._request_json(
            "POST",
            f"/v0/agents/{job_id}/followup",
            json_data={"prompt": {"text": text}},
        )
        logger.info("Followup sent", extra={"job_id": job_id, "length": len(text)})

    async def verify_repository_access(self, owner: str, project: str) -> None:
        """Check that the agent service can see ``owner/project``.

        Raises:
            RepositoryAccessError: If the repository is not visible.
        """
        data = await self._request_json("GET", "/v0/repositories")
        repositories = data.get("repositories") or []
        visible = any(
            repo.get("owner") == owner and repo.get("name") == project
            for repo in repositories
        )
        if not visible:
            raise RepositoryAccessError(owner, project)
        logger.info("Agent service can access %s/%s", owner, project)

    async def whoami(self) -> Dict[str, Any]:
        """Describe the API key in use (key name and user email)."""
        return await self._request_json("GET", "/v0/me")

    async def list_models(self) -> List[str]:
        data = await self._request_json("GET", "/v0/models")
        return list(data.get("models") or [])
