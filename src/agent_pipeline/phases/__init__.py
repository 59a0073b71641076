"""Pipeline phases: descriptors and the fixed catalog."""

from agent_pipeline.phases.catalog import (
    APPROVED_DIRECTION_PATH,
    DESIGN_EXPLORATION_PATH,
    PHASES,
    SCAFFOLD_PATH,
    VISUAL_PROMPTS_PATH,
    design_direction_count,
    phase_at,
)
from agent_pipeline.phases.models import Phase, PhaseKind

__all__ = [
    "APPROVED_DIRECTION_PATH",
    "DESIGN_EXPLORATION_PATH",
    "PHASES",
    "SCAFFOLD_PATH",
    "VISUAL_PROMPTS_PATH",
    "Phase",
    "PhaseKind",
    "design_direction_count",
    "phase_at",
]
