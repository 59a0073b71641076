"""Code scaffold generation from an approved mockup.

The scaffold service turns the selected mockup image into a React +
Tailwind starting point, which is committed next to the design documents
for the Design Translator to build on. A failed scaffold is logged and
skipped; it never fails the phase.
"""

import logging
from typing import Dict, Optional

import httpx

from agent_pipeline.config import MissingCapability
from agent_pipeline.design.models import DesignVariant
from agent_pipeline.transport.client import ServiceClient
from agent_pipeline.transport.retry import RetryingTransport, TransientTransportError


logger = logging.getLogger(__name__)

SCAFFOLD_MODEL = "v0-1.0-md"


def scaffold_prompt(feedback: str = "") -> str:
    lines = [
        "Generate a production-ready React + Tailwind CSS + shadcn/ui implementation "
        "based on the UI mockup image.",
        "",
        "Requirements:",
        "- Match the mockup's layout, colors, typography, and visual style as closely as possible",
        "- Use Tailwind CSS with a full custom theme (tailwind.config.ts)",
        "- Use shadcn/ui components where appropriate",
        "- Label each file clearly with a comment: // FILE: path/to/file.tsx",
        "- Include: tailwind.config.ts, globals.css, and one component per major UI section",
        "- Mobile-first responsive design",
    ]
    if feedback:
        lines += ["", f"User feedback to incorporate: {feedback}"]
    return "\n".join(lines)


def render_scaffold_document(variant: DesignVariant, scaffold: str) -> str:
    return (
        "# v0 Code Scaffold\n\n"
        f"Generated from: `{variant.name}`\n"
        f"Image: {variant.image_url}\n\n"
        "---\n\n"
        f"{scaffold}"
    )


class ScaffoldClient(ServiceClient):
    """Async client for the scaffold (v0) chat-completions API."""

    service = "v0"

    def __init__(
        self,
        api_key: Optional[str],
        transport: RetryingTransport,
        base_url: str = "https://api.v0.dev",
        timeout: float = 300.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def generate(self, image_url: str, feedback: str = "") -> Optional[str]:
        """Ask for a scaffold matching ``image_url``.

        Returns:
            The generated code as markdown, or None when the service
            failed or returned nothing.

        Raises:
            MissingCapability: If no API key is configured.
        """
        if not self.enabled:
            raise MissingCapability("code scaffold", "PIPELINE_V0_API_KEY")

        logger.info("Requesting code scaffold", extra={"image_url": image_url})
        body = {
            "model": SCAFFOLD_MODEL,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_url}},
                        {"type": "text", "text": scaffold_prompt(feedback)},
                    ],
                }
            ],
        }
        try:
            response = await self._request("POST", "/v1/chat/completions", json_data=body)
        except TransientTransportError as e:
            logger.warning("Scaffold request failed: %s", e)
            return None

        if not response.is_success:
            logger.warning(
                "Scaffold API error",
                extra={"status_code": response.status_code, "response_body": response.text[:300]},
            )
            return None

        try:
            choices = response.json().get("choices") or []
        except ValueError:
            logger.warning("Scaffold API returned a non-JSON body", extra={"response_body": response.text[:300]})
            return None
        content = ((choices[0] if choices else {}).get("message") or {}).get("content")
        return content or None
