"""Slack chat channel and chat approval front-end.

SlackClient wraps the handful of Web API methods the pipeline uses.
SlackApprovalFrontend posts approval cards into the run thread and polls
three signals until something actionable arrives:

- new human replies in the thread
- new human top-level messages in the channel (mentions stripped)
- reactions on the approval card

Silence for the whole wait auto-approves (see ApprovalFrontend).
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from agent_pipeline.design.models import DesignVariant
from agent_pipeline.hitl.models import (
    USAGE_HINT,
    ApprovalDecision,
    VariantSelection,
    decision_from_reactions,
    parse_reply,
)
from agent_pipeline.hitl.protocol import ApprovalFrontend, ApprovalRequest
from agent_pipeline.transport.client import APIError, ServiceClient
from agent_pipeline.transport.retry import RetryingTransport, TransientTransportError


logger = logging.getLogger(__name__)

# Errors a Slack call may raise once the transport has given up
SLACK_FAILURES = (APIError, TransientTransportError)

# Web API methods that only accept query parameters
READ_METHODS = frozenset(
    {
        "conversations.replies",
        "conversations.history",
        "conversations.list",
        "conversations.info",
        "reactions.get",
        "users.list",
        "auth.test",
    }
)

_MENTION = re.compile(r"<@[A-Z0-9]+>")
_CHANNEL_NAME = re.compile(r"[^a-z0-9-]")

Sleep = Callable[[float], Awaitable[None]]
Signal = Union[str, ApprovalDecision]


def channel_name(project: str) -> str:
    """Channel name for a project: ``proj-<project>``, Slack-safe."""
    return _CHANNEL_NAME.sub("-", f"proj-{project}".lower())[:80]


class SlackClient(ServiceClient):
    """Async client for the Slack Web API.

    Slack answers most errors with HTTP 200 and ``"ok": false``; those
    responses are returned to the caller, which decides what matters.
    Non-2xx responses raise APIError.
    """

    service = "slack"

    def __init__(
        self,
        token: str,
        transport: RetryingTransport,
        base_url: str = "https://slack.com/api",
        user_id: Optional[str] = None,
        timeout: float = 30.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self._token = token
        self.user_id = user_id

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    @property
    def mention(self) -> str:
        """Mention markup for the configured operator, or empty."""
        return f"<@{self.user_id}>" if self.user_id else ""

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v is not None}
        if method in READ_METHODS:
            query = {k: str(v).lower() if isinstance(v, bool) else v for k, v in params.items()}
            data = await self._request_json("GET", f"/{method}", params=query)
        else:
            data = await self._request_json("POST", f"/{method}", json_data=params)
        if not data.get("ok"):
            logger.debug("Slack %s not ok: %s", method, data.get("error"))
        return data

    async def post_message(self, channel: str, text: str, thread: Optional[str] = None) -> Optional[str]:
        """Post a message; returns its timestamp, or None if Slack refused."""
        data = await self._call(
            "chat.postMessage",
            {"channel": channel, "text": text, "thread_ts": thread, "unfurl_links": False},
        )
        return data.get("ts") if data.get("ok") else None

    async def post_card(
        self,
        channel: str,
        header: str,
        context_lines: List[str],
        thread: Optional[str] = None,
    ) -> Optional[str]:
        """Post an approval card with approve / followup / stop buttons."""
        blocks: List[Dict[str, Any]] = [
            {"type": "section", "text": {"type": "mrkdwn", "text": header}},
        ]
        if context_lines:
            blocks.append(
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": line} for line in context_lines],
                }
            )
        blocks.append(
            {
                "type": "actions",
                "block_id": "hitl_actions",
                "elements": [
                    _button("✅ Approve", "hitl_approve", "approve", "primary"),
                    _button("💬 Followup", "hitl_followup", "followup"),
                    _button("🛑 Stop", "hitl_stop", "stop", "danger"),
                ],
            }
        )
        data = await self._call(
            "chat.postMessage",
            {
                "channel": channel,
                "blocks": blocks,
                "text": header,
                "thread_ts": thread,
                "unfurl_links": False,
            },
        )
        return data.get("ts") if data.get("ok") else None

    async def thread_replies(self, channel: str, ts: str, limit: int = 100) -> List[Dict[str, Any]]:
        data = await self._call("conversations.replies", {"channel": channel, "ts": ts, "limit": limit})
        return list(data.get("messages") or [])

    async def channel_history(self, channel: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent top-level messages, newest first."""
        data = await self._call("conversations.history", {"channel": channel, "limit": limit})
        return list(data.get("messages") or [])

    async def reactions(self, channel: str, ts: str) -> List[str]:
        """Reaction names on a message, in display order."""
        data = await self._call("reactions.get", {"channel": channel, "timestamp": ts, "full": True})
        if not data.get("ok"):
            return []
        message = data.get("message") or {}
        return [r.get("name", "") for r in message.get("reactions") or []]

    async def ensure_channel(self, project: str) -> Tuple[Optional[str], bool]:
        """Create (or find) the project channel and join it.

        Returns:
            ``(channel_id, is_new)``; ``(None, False)`` when the channel
            could neither be created nor found.
        """
        name = channel_name(project)
        channel_id: Optional[str] = None
        is_new = False

        created = await self._call("conversations.create", {"name": name, "is_private": False})
        if created.get("ok"):
            channel_id = (created.get("channel") or {}).get("id")
            is_new = True
            logger.info("Slack channel #%s created", name)
        elif created.get("error") == "name_taken":
            listing = await self._call("conversations.list", {"types": "public_channel", "limit": 200})
            for channel in listing.get("channels") or []:
                if channel.get("name") == name:
                    channel_id = channel.get("id")
                    logger.info("Slack channel #%s (existing)", name)
                    break

        if not channel_id:
            logger.warning(
                "Slack channel setup failed",
                extra={"channel": name, "error": created.get("error", "not found")},
            )
            return None, False

        await self._call("conversations.join", {"channel": channel_id})

        if self.user_id:
            invited = await self._call("conversations.invite", {"channel": channel_id, "users": self.user_id})
            if invited.get("ok"):
                logger.info("Invited operator to #%s", name)
            elif invited.get("error") != "already_in_channel":
                logger.warning(
                    "Slack invite failed, join #%s manually",
                    name,
                    extra={"error": invited.get("error")},
                )

        return channel_id, is_new

    async def set_channel_context(self, channel: str, owner: str, project: str, prompt: str) -> None:
        """Set the channel topic to the repository and the purpose to the prompt."""
        purpose = prompt[:250] + ("…" if len(prompt) > 250 else "")
        await self._call(
            "conversations.setTopic",
            {"channel": channel, "topic": f"Agent pipeline | github.com/{owner}/{project}"},
        )
        await self._call("conversations.setPurpose", {"channel": channel, "purpose": purpose})


def _button(text: str, action_id: str, value: str, style: Optional[str] = None) -> Dict[str, Any]:
    button: Dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def _is_human(message: Dict[str, Any]) -> bool:
    return not message.get("bot_id") and not message.get("app_id")


def _ts(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class _Baseline:
    """What was already in the thread and channel when a wait began."""

    thread_count: int
    latest_channel_ts: float


class SlackApprovalFrontend(ApprovalFrontend):
    """Approval through a Slack channel thread.

    Attributes:
        slack: Slack client.
        channel: Channel id.
        thread: Run thread timestamp (kick-off message); approval cards
            start their own thread when absent.
        poll_interval: Seconds between signal checks.
        timeout: Bounded wait before auto-approval.
        selection_timeout: Bounded wait for variant selection.
    """

    def __init__(
        self,
        slack: SlackClient,
        channel: str,
        thread: Optional[str] = None,
        poll_interval: float = 5.0,
        timeout: float = 900.0,
        selection_timeout: float = 1800.0,
        fallback: Optional[ApprovalFrontend] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.slack = slack
        self.channel = channel
        self.thread = thread
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.selection_timeout = selection_timeout
        self.fallback = fallback
        self._sleep = sleep
        self._card_ts: Optional[str] = None

    @property
    def _reply_thread(self) -> Optional[str]:
        return self.thread or self._card_ts

    async def _present(self, request: ApprovalRequest, revision: int) -> bool:
        mention = self.slack.mention
        if revision:
            header = f"{request.emoji} *{request.phase_name}*: updated. {mention} Ready for review."
            context = ["_Agent has finished. Review and respond._"]
        else:
            header = f"{request.emoji} *Phase complete: {request.phase_name}*: {mention} your review is needed"
            context = [f"Branch: <{request.branch_url}|{request.produced_ref}>"]
            if request.preview_url:
                context.append(f"Preview: {request.preview_url}")
            context.append("_React with 👍 to approve, 🛑 to stop, or reply `followup: <msg>`_")

        try:
            ts = await self.slack.post_card(self.channel, header, context, self.thread)
        except SLACK_FAILURES as e:
            logger.warning("Slack card post failed: %s", e, extra={"phase": request.phase_name})
            return False
        if ts is None:
            return False
        self._card_ts = ts
        return True

    async def _next_decision(self, request: ApprovalRequest) -> ApprovalDecision:
        while True:
            signal = await self._wait_for_signal(self.timeout, card_ts=self._card_ts)
            if signal is None:
                return ApprovalDecision.approve(automatic=True)
            if isinstance(signal, ApprovalDecision):
                return signal

            decision = parse_reply(signal)
            if decision is not None:
                return decision
            await self._notify(f"{self.slack.mention} {USAGE_HINT}".strip())

    async def _followup_text(self, request: ApprovalRequest) -> Optional[str]:
        await self._notify(f"{self.slack.mention} _Please reply with your followup instructions_".strip())
        signal = await self._wait_for_signal(self.timeout)
        return signal if isinstance(signal, str) else None

    async def ask(self, question: str, timeout: Optional[float] = None) -> Optional[str]:
        await self._notify(f"{self.slack.mention} {question}".strip())
        signal = await self._wait_for_signal(timeout if timeout is not None else self.timeout)
        return signal if isinstance(signal, str) else None

    async def announce(self, text: str) -> None:
        logger.info(text)
        await self._notify(text)

    async def _notify(self, text: str) -> None:
        """Post into the reply thread; failures are logged, waiting goes on."""
        try:
            await self.slack.post_message(self.channel, text, self._reply_thread)
        except SLACK_FAILURES as e:
            logger.warning("Slack post failed: %s", e)

    async def select_variant(
        self,
        variants: Sequence[DesignVariant],
        timeout: Optional[float] = None,
    ) -> VariantSelection:
        return await super().select_variant(
            variants, timeout=timeout if timeout is not None else self.selection_timeout
        )

    async def _baseline(self) -> _Baseline:
        thread = self._reply_thread
        replies = await self.slack.thread_replies(self.channel, thread) if thread else []
        history = await self.slack.channel_history(self.channel, limit=10)
        latest = _ts(history[0].get("ts")) if history else 0.0
        return _Baseline(thread_count=len(replies), latest_channel_ts=latest)

    async def _wait_for_signal(self, timeout: float, card_ts: Optional[str] = None) -> Optional[Signal]:
        """Poll until a human reply (text) or a card reaction (decision).

        Returns None once ``timeout`` seconds of polling pass without one.
        A failed Slack call skips that poll; until a baseline has been read
        nothing counts as a reply.
        """
        logger.info("Waiting for Slack reply (thread or channel)")
        baseline: Optional[_Baseline] = None
        elapsed = 0.0

        while True:
            try:
                if baseline is None:
                    baseline = await self._baseline()
                else:
                    signal = await self._poll_once(baseline, card_ts)
                    if signal is not None:
                        return signal
            except SLACK_FAILURES as e:
                logger.warning("Slack poll failed, will retry: %s", e)

            if elapsed >= timeout:
                break
            await self._sleep(self.poll_interval)
            elapsed += self.poll_interval

        logger.warning("No Slack reply after %.0fs", timeout)
        return None

    async def _poll_once(self, baseline: _Baseline, card_ts: Optional[str]) -> Optional[Signal]:
        thread = self._reply_thread
        if thread:
            replies = await self.slack.thread_replies(self.channel, thread)
            for message in replies[baseline.thread_count:]:
                if _is_human(message):
                    text = message.get("text") or ""
                    logger.info("Slack thread reply: %r", text)
                    return text
            baseline.thread_count = max(baseline.thread_count, len(replies))

        if card_ts:
            decision = decision_from_reactions(await self.slack.reactions(self.channel, card_ts))
            if decision is not None:
                logger.info("Slack reaction on card: %s", decision.kind.value)
                return decision

        for message in await self.slack.channel_history(self.channel, limit=5):
            if (
                _ts(message.get("ts")) > baseline.latest_channel_ts
                and _is_human(message)
                and not message.get("thread_ts")
            ):
                text = _MENTION.sub("", message.get("text") or "").strip()
                if text:
                    logger.info("Slack channel reply: %r", text)
                    return text
        return None
