"""Approval protocol shared by the chat and terminal front-ends.

ApprovalFrontend implements the approval state machine once, as a
template method, and leaves the channel-specific steps (presenting the
request, waiting for an actionable reply, asking a question) to
subclasses. The orchestrator only ever talks to this interface.

Followup cycle:
    present -> followup(text) -> inject into job -> re-await job
            -> present again -> ...
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from agent_pipeline.design.models import DesignVariant
from agent_pipeline.hitl.models import (
    ApprovalDecision,
    ApprovalState,
    ApprovalStateMachine,
    DecisionKind,
    VariantSelection,
    parse_variant_reply,
)


logger = logging.getLogger(__name__)

FollowupHandler = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class ApprovalRequest:
    """What the operator is asked to approve.

    Attributes:
        phase_name: Display name of the finished phase.
        emoji: Phase emoji used in headers.
        job_id: Agent run that produced the result.
        produced_ref: Branch holding the result.
        branch_url: Link to the branch.
        preview_url: Optional deployed preview.
    """

    phase_name: str
    emoji: str
    job_id: str
    produced_ref: str
    branch_url: str
    preview_url: Optional[str] = None

    @property
    def title(self) -> str:
        return f"{self.emoji} {self.phase_name}"


class ApprovalFrontend(ABC):
    """A channel through which the operator approves phases.

    Subclasses implement the channel primitives; the approval state
    machine, followup cycle and timeout handling live here.
    """

    # Front-end used when this one cannot present a request
    fallback: Optional["ApprovalFrontend"] = None

    @abstractmethod
    async def _present(self, request: ApprovalRequest, revision: int) -> bool:
        """Show the request. ``revision`` counts completed followups.

        Returns False if the request could not be shown.
        """

    @abstractmethod
    async def _next_decision(self, request: ApprovalRequest) -> ApprovalDecision:
        """Wait for the next actionable reply (or the timeout decision)."""

    @abstractmethod
    async def ask(self, question: str, timeout: Optional[float] = None) -> Optional[str]:
        """Ask a free-text question; None if no answer arrived in time."""

    @abstractmethod
    async def announce(self, text: str) -> None:
        """Report progress to the operator."""

    async def _followup_text(self, request: ApprovalRequest) -> Optional[str]:
        return await self.ask(f"{request.title}: reply with your followup instructions")

    async def present_for_approval(
        self,
        request: ApprovalRequest,
        on_followup: FollowupHandler,
    ) -> ApprovalDecision:
        """Run one approval gate to a terminal decision.

        Args:
            request: What is being approved.
            on_followup: Injects followup text into the job and waits for
                the job to finish again.

        Returns:
            An approve or stop decision. Automatic approvals are logged
            as warnings and announced.
        """
        gate = ApprovalStateMachine()
        present = True

        while True:
            if present and not await self._present(request, gate.followups):
                if self.fallback is None:
                    raise RuntimeError(f"{type(self).__name__} could not present {request.phase_name}")
                logger.warning(
                    "Could not present approval request, falling back to %s",
                    type(self.fallback).__name__,
                    extra={"phase": request.phase_name},
                )
                return await self.fallback.present_for_approval(request, on_followup)
            present = True

            decision = await self._next_decision(request)

            if decision.kind == DecisionKind.APPROVE:
                gate.transition(ApprovalState.APPROVED)
                if decision.automatic:
                    logger.warning(
                        "No reply for %s, auto-approving",
                        request.phase_name,
                        extra={"phase": request.phase_name, "job_id": request.job_id},
                    )
                    await self.announce(
                        f"⏱️ No reply for {request.title}: auto-approved"
                    )
                else:
                    logger.info("Approved %s", request.phase_name)
                return decision

            if decision.kind == DecisionKind.STOP:
                gate.transition(ApprovalState.STOPPED)
                logger.info("Stopped at %s", request.phase_name)
                return decision

            text = decision.message or await self._followup_text(request)
            if not text or not text.strip():
                # Nothing to send; keep waiting on the current card
                present = False
                continue

            gate.transition(ApprovalState.FOLLOWUP_SENT)
            logger.info(
                "Sending followup for %s",
                request.phase_name,
                extra={"phase": request.phase_name, "job_id": request.job_id},
            )
            await self.announce("💬 Followup sent. Agent is working...")
            await on_followup(text.strip())
            gate.transition(ApprovalState.AWAITING)

    async def choose_retry(self, phase_name: str, error: str, timeout: Optional[float] = None) -> bool:
        """Ask whether to retry a failed phase. Anything but ``r...`` stops."""
        answer = await self.ask(
            f"❌ {phase_name} failed: {error[:300]}\n[r]etry / [s]top",
            timeout=timeout,
        )
        return bool(answer) and answer.strip().lower().startswith("r")

    async def select_variant(
        self,
        variants: Sequence[DesignVariant],
        timeout: Optional[float] = None,
    ) -> VariantSelection:
        """Let the operator choose a design variant.

        No reply within ``timeout`` selects the first variant.
        """
        if not variants:
            return VariantSelection(index=0, automatic=True)

        question = "\n\n".join(
            [
                "🎨 Design Explorer complete. Choose a direction:",
                *format_variant_lines(variants),
                f"Reply with the number (1-{len(variants)}), or describe modifications "
                '(e.g. "2 but with the color palette of 3").',
            ]
        )
        answer = await self.ask(question, timeout=timeout)
        if answer is None:
            logger.warning("No variant selected in time, using variant 1")
            return VariantSelection(index=0, automatic=True)
        return parse_variant_reply(answer, len(variants))


def format_variant_lines(variants: Sequence[DesignVariant]) -> List[str]:
    return [
        f"{i}. {v.name}\n   {v.philosophy}\n   {v.image_url}"
        for i, v in enumerate(variants, start=1)
    ]
