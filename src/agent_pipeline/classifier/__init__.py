"""Keyword classification of run requests.

Infers scope tier, run mode and start phase from the operator's prompt,
and derives branch slugs.
"""

from agent_pipeline.classifier.scope import (
    infer_mode,
    infer_scope,
    infer_start_phase,
    slugify,
)

__all__ = [
    "infer_mode",
    "infer_scope",
    "infer_start_phase",
    "slugify",
]
