"""Client for the image-generation service.

Images are generated as remote tasks: ``submit`` returns a task id,
``status`` reports progress as a JobStatus in IMAGE_VOCABULARY terms, and
``download`` fetches the finished image.

The service reports progress with a numeric ``successFlag``:

    0 -> GENERATING
    1 -> SUCCESS (only once the result URL is present)
    2 -> CREATE_TASK_FAILED
    3 -> GENERATE_FAILED

Answers whose envelope ``code`` is not 200 are treated as "still
generating" so one bad poll does not fail the task.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from agent_pipeline.config import MissingCapability
from agent_pipeline.jobs.models import JobStatus
from agent_pipeline.transport.client import APIError, ServiceClient
from agent_pipeline.transport.retry import RetryingTransport


logger = logging.getLogger(__name__)

SUCCESS_FLAGS = {
    0: "GENERATING",
    1: "SUCCESS",
    2: "CREATE_TASK_FAILED",
    3: "GENERATE_FAILED",
}

# Status polls are frequent; a failed poll is retried on the next tick
STATUS_MAX_RETRIES = 1

# The service requires a callback URL even when results are polled
_CALLBACK_URL = "https://example.com/nanobanana-callback"


class ImageClient(ServiceClient):
    """Async client for the image-generation API.

    The API key is sent per request rather than as a client default so
    that downloads from result URLs carry no credentials.
    """

    service = "nanobanana"

    def __init__(
        self,
        api_key: Optional[str],
        transport: RetryingTransport,
        base_url: str = "https://api.nanobananaapi.ai",
        timeout: float = 60.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    def _auth_headers(self) -> Dict[str, str]:
        if self._api_key is None:
            raise MissingCapability("image generation", "PIPELINE_NANOBANANA_API_KEY")
        return {"Authorization": f"Bearer {self._api_key}"}

    async def submit(self, prompt: str, size: str) -> str:
        """Start an image task and return its task id.

        Raises:
            MissingCapability: If no API key is configured.
            APIError: If the service rejects the task.
        """
        path = "/api/v1/nanobanana/generate-pro"
        response = await self._request(
            "POST",
            path,
            json_data={
                "prompt": prompt,
                "aspectRatio": size,
                "resolution": "2K",
                "callBackUrl": _CALLBACK_URL,
            },
            headers=self._auth_headers(),
        )
        data = _envelope(response)
        task_id = (data.get("data") or {}).get("taskId")
        if data.get("code") != 200 or not task_id:
            reason = data.get("msg") or data.get("message") or "unknown error"
            raise APIError(
                message=f"image task rejected: {reason} ({data.get('code', response.status_code)})",
                service=self.service,
                status_code=response.status_code,
                response_body=response.text,
            )
        logger.debug("Image task submitted", extra={"task_id": task_id, "size": size})
        return task_id

    async def status(self, task_id: str) -> JobStatus:
        """Report an image task's progress.

        The payload carries ``image_url`` on success and ``error`` on
        failure.
        """
        response = await self._request(
            "GET",
            "/api/v1/nanobanana/record-info",
            params={"taskId": task_id},
            headers=self._auth_headers(),
            max_retries=STATUS_MAX_RETRIES,
        )
        data = _envelope(response)
        if not response.is_success or data.get("code") != 200:
            return JobStatus(job_id=task_id, state="PENDING")

        record = data.get("data") or {}
        image_url = (record.get("response") or {}).get("resultImageUrl")
        state = SUCCESS_FLAGS.get(record.get("successFlag"), "GENERATING")
        if state == "SUCCESS" and not image_url:
            state = "GENERATING"
        if state in ("CREATE_TASK_FAILED", "GENERATE_FAILED"):
            logger.warning(
                "Image task failed: %s",
                record.get("errorMessage") or "unknown",
                extra={"task_id": task_id, "state": state},
            )

        return JobStatus(
            job_id=task_id,
            state=state,
            payload={"image_url": image_url, "error": record.get("errorMessage")},
        )

    async def download(self, url: str) -> bytes:
        """Fetch a finished image.

        Raises:
            APIError: If the download does not succeed.
        """
        response = await self.transport.send(
            lambda: self.client.get(url),
            description=f"{self.service} download",
        )
        if not response.is_success:
            raise APIError(
                message=f"image download failed ({response.status_code})",
                service=self.service,
                status_code=response.status_code,
                request_url=url,
            )
        return response.content


def _envelope(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
