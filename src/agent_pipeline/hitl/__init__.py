"""Human-in-the-loop approval: decisions, protocol and front-ends."""

from agent_pipeline.hitl.models import (
    ApprovalDecision,
    ApprovalState,
    ApprovalStateMachine,
    DecisionKind,
    VariantSelection,
    decision_from_reactions,
    parse_reply,
    parse_variant_reply,
)
from agent_pipeline.hitl.protocol import ApprovalFrontend, ApprovalRequest
from agent_pipeline.hitl.slack import SlackApprovalFrontend, SlackClient
from agent_pipeline.hitl.terminal import TerminalApprovalFrontend

__all__ = [
    "ApprovalDecision",
    "ApprovalFrontend",
    "ApprovalRequest",
    "ApprovalState",
    "ApprovalStateMachine",
    "DecisionKind",
    "SlackApprovalFrontend",
    "SlackClient",
    "TerminalApprovalFrontend",
    "VariantSelection",
    "decision_from_reactions",
    "parse_reply",
    "parse_variant_reply",
]
