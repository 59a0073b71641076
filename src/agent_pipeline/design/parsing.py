"""Parsers for the agent-written design documents.

Agents describe images as markdown sections:

    ## direction-1
    name: "Midnight Glass"
    philosophy: "Dark, translucent surfaces"
    prompt: "high-fidelity UI screenshot of ..."
    size: "16:9"
    output: "docs/design/mockups/direction-1.png"

Bold markers are ignored. Sections without a prompt or output are skipped.
Unknown aspect ratios fall back to the document's default.
"""

import re
from typing import List, Optional

from agent_pipeline.design.models import ImageSpec


ASPECT_RATIOS = frozenset(
    {"1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3", "21:9", "5:4", "4:5"}
)

_SECTION = re.compile(r"^##\s+", re.MULTILINE)
_NAME = re.compile(r"name:\s*[\"']([^\"']+)[\"']")
_PHILOSOPHY = re.compile(r"philosophy:\s*[\"']([^\"']+)[\"']")
_PROMPT = re.compile(r"prompt:\s*[\"']([\s\S]+?)[\"']\s*\n")
_SIZE = re.compile(r"size:\s*[\"']?([^\"'\n]+)[\"']?")
_OUTPUT = re.compile(r"output:\s*[\"']?([^\"'\n]+)[\"']?")


def _sections(markdown: str) -> List[str]:
    # Text before the first heading is not a section
    return [s.replace("**", "") for s in _SECTION.split(markdown)[1:]]


def _group(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def _aspect_ratio(section: str, default: str) -> str:
    size = _group(_SIZE, section) or default
    return size if size in ASPECT_RATIOS else default


def parse_design_exploration(markdown: str) -> List[ImageSpec]:
    """Parse ``## direction-N`` sections into mockup specs (default 16:9)."""
    specs = []
    for section in _sections(markdown + "\n"):
        heading = section.split("\n", 1)[0].strip().lower()
        key = heading.split()[0] if heading else ""
        if not key.startswith("direction-"):
            continue

        prompt = _group(_PROMPT, section)
        output = _group(_OUTPUT, section)
        if not prompt or not output:
            continue

        specs.append(
            ImageSpec(
                key=key,
                name=_group(_NAME, section) or key,
                philosophy=_group(_PHILOSOPHY, section) or "",
                prompt=prompt,
                size=_aspect_ratio(section, "16:9"),
                output=output,
            )
        )
    return specs


def parse_visual_prompts(markdown: str) -> List[ImageSpec]:
    """Parse every ``##`` section into a brand-asset spec (default 1:1)."""
    specs = []
    for section in _sections(markdown + "\n"):
        title = section.split("\n", 1)[0].strip()
        prompt = _group(_PROMPT, section)
        output = _group(_OUTPUT, section)
        if not prompt or not output:
            continue

        specs.append(
            ImageSpec(
                key=title,
                name=title,
                prompt=prompt,
                size=_aspect_ratio(section, "1:1"),
                output=output,
            )
        )
    return specs
