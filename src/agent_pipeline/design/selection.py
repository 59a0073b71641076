"""Approved design direction document."""

from typing import Sequence

from agent_pipeline.design.models import DesignVariant


def render_approved_direction(
    variants: Sequence[DesignVariant],
    selected: DesignVariant,
    feedback: str = "",
) -> str:
    """Render ``approved-direction.md`` for the selected variant.

    The Design Translator reads this file for the mockup it must follow.
    """
    lines = [
        "# Approved Design Direction",
        "",
        f"Selected: `{selected.key}`: **{selected.name}**",
        "",
        "## Image Reference",
        selected.image_url,
        "",
        "## Design Philosophy",
        selected.philosophy,
        "",
    ]
    if feedback:
        lines += ["## User Feedback", feedback, ""]
    lines.append("## All Variants")
    lines += [f"{i}. **{v.name}**: {v.image_url}" for i, v in enumerate(variants, start=1)]
    return "\n".join(lines)


def auto_selection_notice(variants: Sequence[DesignVariant]) -> str:
    """Announcement used when a non-interactive run picks variant 1."""
    listing = "\n".join(f"{i}. {v.name}: {v.image_url}" for i, v in enumerate(variants, start=1))
    return (
        f"🎨 *Design Explorer complete.* Auto-selected direction-1: *{variants[0].name}*. "
        f"Add `--interactive` to choose.\n{listing}"
    )
