"""Human-in-the-loop approval models.

This module defines:
- DecisionKind / ApprovalDecision: what the operator decided
- ApprovalState / APPROVAL_TRANSITIONS: the approval state machine
- parse_reply / decision_from_reactions: how free text and chat
  reactions map to decisions
- parse_variant_reply: how a design-variant selection reply is read

Approval flow:
    awaiting -> approved | stopped
    awaiting -> followup_sent -> awaiting   (unbounded)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from agent_pipeline.state.machine import InvalidTransitionError


class DecisionKind(str, Enum):
    APPROVE = "approve"
    STOP = "stop"
    FOLLOWUP = "followup"


@dataclass(frozen=True)
class ApprovalDecision:
    """Outcome of one approval interaction.

    Attributes:
        kind: Approve, stop or followup.
        message: Followup instructions (followup only; may be empty when
            the operator still has to supply them).
        automatic: True when the decision came from the timeout rule
            rather than from a person.
    """

    kind: DecisionKind
    message: str = ""
    automatic: bool = False

    @classmethod
    def approve(cls, automatic: bool = False) -> "ApprovalDecision":
        return cls(DecisionKind.APPROVE, automatic=automatic)

    @classmethod
    def stop(cls) -> "ApprovalDecision":
        return cls(DecisionKind.STOP)

    @classmethod
    def followup(cls, message: str) -> "ApprovalDecision":
        return cls(DecisionKind.FOLLOWUP, message=message)


class ApprovalState(str, Enum):
    AWAITING = "awaiting"
    FOLLOWUP_SENT = "followup_sent"
    APPROVED = "approved"
    STOPPED = "stopped"


APPROVAL_TRANSITIONS: Dict[ApprovalState, List[ApprovalState]] = {
    ApprovalState.AWAITING: [
        ApprovalState.FOLLOWUP_SENT,
        ApprovalState.APPROVED,
        ApprovalState.STOPPED,
    ],
    ApprovalState.FOLLOWUP_SENT: [
        ApprovalState.AWAITING,
    ],
    ApprovalState.APPROVED: [],
    ApprovalState.STOPPED: [],
}


class ApprovalStateMachine:
    """Tracks one approval gate.

    Example:
        >>> gate = ApprovalStateMachine()
        >>> gate.transition(ApprovalState.FOLLOWUP_SENT)
        >>> gate.transition(ApprovalState.AWAITING)
        >>> gate.transition(ApprovalState.APPROVED)
        >>> gate.is_terminal
        True
    """

    def __init__(self) -> None:
        self.state = ApprovalState.AWAITING
        self.followups = 0

    @property
    def is_terminal(self) -> bool:
        return not APPROVAL_TRANSITIONS[self.state]

    def transition(self, to_state: ApprovalState) -> None:
        """Move to ``to_state``.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if to_state not in APPROVAL_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, to_state)
        if to_state == ApprovalState.FOLLOWUP_SENT:
            self.followups += 1
        self.state = to_state


POSITIVE_REACTIONS = frozenset({"+1", "thumbsup", "white_check_mark", "heavy_check_mark", "approved"})
NEGATIVE_REACTIONS = frozenset({"octagonal_sign", "x", "no_entry", "stop_sign", "hand"})

APPROVE_WORDS = frozenset({"approve", "a", "yes", "hitl_approve"})
STOP_WORDS = frozenset({"stop", "s", "hitl_stop"})

_FOLLOWUP = re.compile(r"^(?:hitl_followup|followup)(?::|\s|$)\s*(.*)$", re.IGNORECASE | re.DOTALL)
_SHORT_FOLLOWUP = re.compile(r"^f\s+(.+)$", re.IGNORECASE | re.DOTALL)

USAGE_HINT = "Reply `approve`, `stop`, or `followup: <instructions>` (or react 👍 / 🛑)."
TERMINAL_HELP = "Commands: a (approve) | f <message> (followup) | s (stop)"


def parse_reply(text: str, short_followup: bool = False) -> Optional[ApprovalDecision]:
    """Interpret an operator reply.

    Args:
        text: Raw reply text.
        short_followup: Also accept ``f <msg>`` (terminal shorthand).

    Returns:
        The decision, or None if the reply is not recognized. A followup
        with no instructions has an empty message.

    Example:
        >>> parse_reply("followup: use a darker palette").message
        'use a darker palette'
        >>> parse_reply("maybe?") is None
        True
    """
    stripped = text.strip()
    lower = stripped.lower()

    if lower in APPROVE_WORDS:
        return ApprovalDecision.approve()
    if lower in STOP_WORDS:
        return ApprovalDecision.stop()

    match = _FOLLOWUP.match(stripped)
    if match:
        return ApprovalDecision.followup(match.group(1).strip())

    if short_followup:
        match = _SHORT_FOLLOWUP.match(stripped)
        if match:
            return ApprovalDecision.followup(match.group(1).strip())

    return None


def decision_from_reactions(names: Iterable[str]) -> Optional[ApprovalDecision]:
    """Map chat reaction names on an approval card to a decision.

    Reactions are checked in the order given; the first positive or
    negative one wins.
    """
    for name in names:
        if name in POSITIVE_REACTIONS:
            return ApprovalDecision.approve()
        if name in NEGATIVE_REACTIONS:
            return ApprovalDecision.stop()
    return None


@dataclass(frozen=True)
class VariantSelection:
    """Selected design variant.

    Attributes:
        index: 0-based index into the variant list.
        feedback: Free-text modifications requested with the selection.
        automatic: True when no reply arrived and the first variant was used.
    """

    index: int
    feedback: str = ""
    automatic: bool = False


def parse_variant_reply(reply: str, count: int) -> VariantSelection:
    """Read a variant selection such as ``"2 but warmer"``.

    The first standalone digit in 1..count selects that variant and the
    rest of the reply becomes feedback. Without one, variant 1 is
    selected and the whole reply is feedback.

    Raises:
        ValueError: If count is not positive.
    """
    if count < 1:
        raise ValueError("count must be positive")

    match = re.search(rf"\b([1-{min(count, 9)}])\b", reply)
    if match is None:
        return VariantSelection(index=0, feedback=reply.strip())

    remainder = reply[: match.start()] + reply[match.end():]
    return VariantSelection(index=int(match.group(1)) - 1, feedback=" ".join(remainder.split()))
