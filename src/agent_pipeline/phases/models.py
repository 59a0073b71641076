"""Phase descriptors.

A Phase is an immutable description of one step of the run: which worker
model runs it, how its prompt is built from the RunContext, which
post-processing follows (PhaseKind) and for which scope tiers it is
optional. A phase's identity is its 1-based position in the catalog.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet

from agent_pipeline.state.models import RunContext, ScopeTier


class PhaseKind(str, Enum):
    """Post-processing applied after a phase's job finishes.

    Attributes:
        STANDARD: No post-processing.
        DESIGN_EXPLORATION: Generate mockup variants, select one, write the
            approved direction and request a code scaffold.
        DESIGN_TRANSLATION: Generate brand assets from the visual prompts.
    """

    STANDARD = "standard"
    DESIGN_EXPLORATION = "design_exploration"
    DESIGN_TRANSLATION = "design_translation"


PromptBuilder = Callable[[RunContext], str]


@dataclass(frozen=True)
class Phase:
    """Immutable description of one pipeline phase."""

    name: str
    model: str
    emoji: str
    kind: PhaseKind
    prompt: PromptBuilder = field(compare=False)
    optional_for: FrozenSet[ScopeTier] = frozenset()

    def skipped_for(self, scope: ScopeTier) -> bool:
        return scope in self.optional_for

    @property
    def title(self) -> str:
        return f"{self.emoji} {self.name}"
