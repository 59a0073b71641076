"""Agent status webhook handler.

WebhookHandler verifies the ``X-Webhook-Signature`` header and parses the
payload into an AgentStatusEvent.

Signature format: ``sha256=`` followed by the hex HMAC-SHA256 of the raw
request body keyed with the shared secret. An empty secret disables
verification.
"""

import hashlib
import hmac
import json
import logging
from typing import Optional

from pydantic import ValidationError

from agent_pipeline.webhook.models import AgentStatusEvent


logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign(secret: str, body: bytes) -> str:
    """Compute the signature header value for ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


class WebhookHandler:
    """Handler for agent status webhooks.

    Attributes:
        secret: Shared webhook secret. Empty means every request is accepted.
    """

    def __init__(self, secret: str = "") -> None:
        self.secret = secret

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check ``signature`` against the raw request body."""
        if not self.secret:
            return True
        if not signature:
            return False
        return hmac.compare_digest(sign(self.secret, body), signature)

    def parse_status_event(self, body: bytes) -> Optional[AgentStatusEvent]:
        """Parse the raw body into an AgentStatusEvent.

        Returns:
            The event, or None for malformed JSON or payloads without an
            agent id and status.
        """
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Received non-JSON webhook body: %s", body[:200])
            return None

        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected object, got %s", type(payload).__name__)
            return None

        try:
            event = AgentStatusEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning("Invalid agent status payload: %s", e.errors())
            return None

        return event

    def log_event(self, event: AgentStatusEvent) -> None:
        icon = "OK" if event.finished else "!!"
        logger.info(
            "[%s] %s: agent %s | status %s",
            icon,
            event.event,
            event.agent_id,
            event.status,
            extra={
                "job_id": event.agent_id,
                "state": event.status,
                "branch": event.target.branch_name,
                "pr_url": event.target.pr_url,
            },
        )
        if event.summary:
            logger.info("  Summary: %s", event.summary[:120])
