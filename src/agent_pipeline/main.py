"""FastAPI application for the agent status webhook.

Receives status-change callbacks from the agent service, verifies their
signature and logs them. Runs are driven by the CLI; this server is an
optional companion for watching agents in real time.

Endpoints:
- POST /webhooks/agent: signed agent status events
- GET /health: liveness probe
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from agent_pipeline.config import WebhookSettings, get_webhook_settings
from agent_pipeline.webhook.handler import WebhookHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instance, initialized during lifespan startup
webhook_handler: Optional[WebhookHandler] = None


def _log_configuration(settings: WebhookSettings) -> None:
    logger.info("Webhook configuration:")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Signature verification: {'on' if settings.secret else 'off (no secret)'}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and build the webhook handler."""
    global webhook_handler

    settings = get_webhook_settings()
    _log_configuration(settings)
    webhook_handler = WebhookHandler(secret=settings.secret)
    logger.info("Webhook server started")

    yield

    webhook_handler = None
    logger.info("Webhook server shutdown complete")


app = FastAPI(
    title="Agent Pipeline Webhook",
    description="Receives agent status callbacks for the agent pipeline",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.post("/webhooks/agent", response_class=PlainTextResponse)
async def agent_webhook(request: Request):
    """Agent status webhook receiver.

    Returns:
        ``OK`` once the event is verified and logged; 401 when the
        signature does not match.
    """
    if webhook_handler is None:
        logger.error("Webhook handler not initialized")
        return Response(status_code=503)

    body = await request.body()
    if not webhook_handler.verify_signature(body, request.headers.get("x-webhook-signature")):
        logger.warning("Rejected webhook with bad signature")
        return Response(status_code=401)

    event = webhook_handler.parse_status_event(body)
    if event is None:
        logger.info("Received: %s", body[:200])
    else:
        webhook_handler.log_event(event)

    return "OK"


def run() -> None:
    """Serve the webhook app with uvicorn."""
    import uvicorn

    settings = get_webhook_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
