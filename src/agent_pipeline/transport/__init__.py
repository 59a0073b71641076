"""HTTP transport for every outbound call the pipeline makes.

- RetryingTransport: outcome classification, exponential backoff and
  rate-limit handling
- ServiceClient: lazily created httpx.AsyncClient bound to one service
"""

from agent_pipeline.transport.client import APIError, ServiceClient
from agent_pipeline.transport.retry import (
    RetryingTransport,
    RetryOutcome,
    RetryPolicy,
    TransientTransportError,
)

__all__ = [
    "APIError",
    "RetryOutcome",
    "RetryPolicy",
    "RetryingTransport",
    "ServiceClient",
    "TransientTransportError",
]
