"""Terminal approval front-end.

Reads operator input from stdin in a worker thread so the event loop
keeps running. The terminal front-end never times out.
"""

import asyncio
import logging
from typing import Callable, Optional

from agent_pipeline.hitl.models import TERMINAL_HELP, ApprovalDecision, parse_reply
from agent_pipeline.hitl.protocol import ApprovalFrontend, ApprovalRequest


logger = logging.getLogger(__name__)

PROMPT = "  [a]pprove | [f]ollowup <msg> | [s]top > "


class TerminalApprovalFrontend(ApprovalFrontend):
    """Approval through stdin/stdout.

    Attributes:
        input_func: Blocking line reader (``input`` by default).
        output_func: Line writer (``print`` by default).
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
    ):
        self.input_func = input_func
        self.output_func = output_func

    async def _read(self, prompt: str) -> str:
        line = await asyncio.to_thread(self.input_func, prompt)
        return line.strip()

    async def _present(self, request: ApprovalRequest, revision: int) -> bool:
        status = "updated" if revision else "complete"
        self.output_func(f"\n  {request.title}: phase {status}")
        self.output_func(f"  Branch: {request.branch_url}")
        if request.preview_url:
            self.output_func(f"  Preview: {request.preview_url}")
        return True

    async def _next_decision(self, request: ApprovalRequest) -> ApprovalDecision:
        while True:
            decision = parse_reply(await self._read(PROMPT), short_followup=True)
            if decision is not None:
                return decision
            self.output_func(f"  {TERMINAL_HELP}")

    async def ask(self, question: str, timeout: Optional[float] = None) -> Optional[str]:
        self.output_func(f"\n  {question}")
        return await self._read("  > ")

    async def announce(self, text: str) -> None:
        logger.info(text)
