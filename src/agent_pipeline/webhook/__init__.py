"""Agent status webhook handling.

The agent service reports status changes to ``POST /webhooks/agent``. The
handler verifies the HMAC signature and logs the event; runs themselves are
driven by polling, so the webhook is informational.
"""

from agent_pipeline.webhook.handler import WebhookHandler, sign
from agent_pipeline.webhook.models import AgentStatusEvent, AgentTarget

__all__ = [
    "AgentStatusEvent",
    "AgentTarget",
    "WebhookHandler",
    "sign",
]
