"""Base class for the pipeline's HTTP service clients.

Each external service (agents, GitHub, Slack, image generation, scaffold,
deployments) gets a subclass that supplies its base URL and auth headers.
The base owns a lazily created httpx.AsyncClient and routes every call
through the RetryingTransport.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from agent_pipeline.transport.retry import RetryingTransport


logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when a service answers with a non-success status or a body
    that is not JSON.

    Attributes:
        message: Human-readable error description.
        service: Short service name (e.g. "cursor", "github").
        status_code: HTTP status code from the response.
        response_body: Response body text.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        service: str = "",
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.service = service
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class ServiceClient:
    """Async HTTP client bound to one service.

    Attributes:
        service: Short service name used in logs and errors.
        base_url: Base URL for the service API.
        timeout: Per-request timeout in seconds.
    """

    service = "service"

    def __init__(
        self,
        base_url: str,
        transport: RetryingTransport,
        timeout: float = 30.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL for the service API.
            transport: Retry wrapper applied to every call.
            timeout: Request timeout in seconds.
            http_transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout
        self._http_transport = http_transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Shared httpx client, recreated after close()."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                auth=self._auth(),
                timeout=self.timeout,
                transport=self._http_transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    async def close(self) -> None:
        """Close the underlying httpx client if one is open."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Send one logical request through the retry wrapper.

        Returns the final response whatever its status; use
        ``_request_json`` when a non-2xx answer is an error.
        """
        return await self.transport.send(
            lambda: self.client.request(
                method,
                path,
                json=json_data,
                params=params,
                headers=headers,
            ),
            description=f"{self.service} {method} {path}",
            max_retries=max_retries,
        )

    async def _request_json(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Send a request and decode its JSON body.

        Raises:
            APIError: If the final response is not a success or its
                body is not JSON.
            TransientTransportError: If the transport gave up.
        """
        response = await self._request(
            method, path, json_data=json_data, params=params, max_retries=max_retries
        )
        if not response.is_success:
            raise self._error_for(response, method, path)
        return self._decode(response, method, path)

    def _decode(self, response: httpx.Response, method: str, path: str) -> Any:
        """JSON body of a successful response; APIError when it is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            raise self._error_for(response, method, path) from e

    def _error_for(self, response: httpx.Response, method: str, path: str) -> APIError:
        body = response.text
        logger.error(
            "%s API error",
            self.service,
            extra={
                "status_code": response.status_code,
                "method": method,
                "path": path,
                "response_body": body[:500],
            },
        )
        return APIError(
            message=f"{self.service} {method} {path} ({response.status_code}): {body[:300]}",
            service=self.service,
            status_code=response.status_code,
            response_body=body,
            request_url=str(response.request.url) if response.request is not None else None,
        )
