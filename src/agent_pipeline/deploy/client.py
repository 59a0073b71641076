"""Deployment trigger for the finished target branch.

A deployment is one more remote job: created from a git source, then
polled with DEPLOY_VOCABULARY until the build is READY, ERROR or
CANCELED.
"""

import logging
from typing import Dict, Optional

import httpx

from agent_pipeline.config import MissingCapability
from agent_pipeline.jobs.models import JobStatus
from agent_pipeline.jobs.poller import DEPLOY_VOCABULARY, JobPoller, JobTerminatedUnsuccessfully, JobTimedOut
from agent_pipeline.transport.client import ServiceClient
from agent_pipeline.transport.retry import RetryingTransport


logger = logging.getLogger(__name__)


class DeployClient(ServiceClient):
    """Async client for the deployment (Vercel) API.

    Example:
        >>> async with DeployClient(token, transport, poller) as deployer:
        ...     url = await deployer.deploy("acme", "shop", "main")
    """

    service = "vercel"

    def __init__(
        self,
        token: Optional[str],
        transport: RetryingTransport,
        poller: JobPoller,
        base_url: str = "https://api.vercel.com",
        timeout: float = 60.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self._token = token
        self.poller = poller

    @property
    def enabled(self) -> bool:
        return self._token is not None

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def create_deployment(self, owner: str, project: str, ref: str) -> str:
        """Start a build of ``owner/project`` at ``ref``; returns the deployment id."""
        data = await self._request_json(
            "POST",
            "/v13/deployments",
            params={"skipAutoDetectionConfirmation": "1"},
            json_data={
                "name": project,
                "project": project,
                "gitSource": {"type": "github", "org": owner, "repo": project, "ref": ref},
                "projectSettings": {"framework": None},
            },
        )
        return data["id"]

    async def status(self, deployment_id: str) -> JobStatus:
        data = await self._request_json("GET", f"/v13/deployments/{deployment_id}")
        return JobStatus(
            job_id=deployment_id,
            state=str(data.get("readyState", "UNKNOWN")),
            payload={"url": data.get("url")},
        )

    async def deploy(self, owner: str, project: str, ref: str) -> Optional[str]:
        """Deploy ``ref`` and wait for the build.

        Returns:
            The preview URL, or None if the build failed or timed out.

        Raises:
            MissingCapability: If no deploy token is configured.
            APIError: If the deployment could not be created.
        """
        if not self.enabled:
            raise MissingCapability("deploy", "PIPELINE_VERCEL_TOKEN")

        logger.info("Deploying %s/%s (branch: %s)", owner, project, ref)
        deployment_id = await self.create_deployment(owner, project, ref)

        try:
            final = await self.poller.wait(deployment_id, self.status, DEPLOY_VOCABULARY)
        except JobTerminatedUnsuccessfully as e:
            logger.warning("Build %s", e.state, extra={"deployment_id": deployment_id})
            return None
        except JobTimedOut:
            logger.warning("Build timed out", extra={"deployment_id": deployment_id})
            return None

        url = f"https://{final.payload.get('url')}"
        logger.info("Preview: %s", url, extra={"deployment_id": deployment_id})
        return url
