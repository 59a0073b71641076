"""Keyword classification of the operator's request.

Decides, from the prompt text alone:
- the scope tier (how much to build)
- the run mode for an existing repository (feature or fix)
- the phase to start from when none was given
- the branch slug

All functions are pure and case-insensitive.
"""

import re
from typing import Pattern

from agent_pipeline.state.models import RunMode, ScopeTier


NANO_KEYWORDS = re.compile(
    r"\b(single page|one page|landing page|simple|quick|just a|todo|calculator|"
    r"counter|minimal|demo|prototype|toy)\b"
)

COMPLEXITY_SIGNALS = [
    re.compile(pattern)
    for pattern in (
        r"\b(api|rest|graphql|grpc)\b",
        r"\b(auth|oauth|jwt|login|signup)\b",
        r"\b(database|sql|postgres|mysql|mongo|redis|supabase)\b",
        r"\b(real.?time|websocket|stream|live)\b",
        r"\b(payment|stripe|billing|subscription)\b",
        r"\b(search|filter|sort|paginate)\b",
        r"\b(analytics|dashboard|chart|metric)\b",
        r"\b(upload|media|file|cdn)\b",
        r"\b(notification|email|sms|push)\b",
        r"\b(ai|ml|llm|embedding|vector)\b",
        r"\b(multi.?tenant|enterprise|saas|platform)\b",
        r"\b(cache|queue|job|worker|webhook)\b",
    )
]

FIX_KEYWORDS = re.compile(r"\b(fix|bug|typo|broken|error|crash|wrong|patch|hotfix)\b")

# Start-phase rules, checked in order; first match wins
START_PHASE_RULES = [
    (
        5,
        re.compile(
            r"\b(fix|bug|typo|hotfix|patch|broken|error|crash|rename|refactor|"
            r"update dep|upgrade)\b"
        ),
    ),
    (
        3,
        re.compile(
            r"\b(redesign|rebrand|new look|theme|logo|color|font|ui refresh|visual|"
            r"design system)\b"
        ),
    ),
    (
        4,
        re.compile(
            r"\b(translate design|implement design|code the design|build from mockup|"
            r"mockup to code)\b"
        ),
    ),
    (
        2,
        re.compile(
            r"\b(api|database|schema|migrate|infrastructure|deploy|auth|endpoint|"
            r"backend|microservice)\b"
        ),
    ),
]

SLUG_MAX_LENGTH = 40


def _matches(pattern: Pattern[str], text: str) -> bool:
    return pattern.search(text) is not None


def infer_scope(prompt: str) -> ScopeTier:
    """Estimate the scope tier from word count and complexity keywords.

    - nano: at most 30 words, or at most 50 with a "simple" keyword
    - large: 4+ complexity signals or more than 120 words
    - standard: 2+ signals or more than 50 words
    - micro: everything else

    Example:
        >>> infer_scope("a todo app")
        <ScopeTier.NANO: 'nano'>
    """
    lower = prompt.lower()
    words = len(prompt.split())

    if words <= 30 or (words <= 50 and _matches(NANO_KEYWORDS, lower)):
        return ScopeTier.NANO

    signals = sum(1 for pattern in COMPLEXITY_SIGNALS if _matches(pattern, lower))

    if signals >= 4 or words > 120:
        return ScopeTier.LARGE
    if signals >= 2 or words > 50:
        return ScopeTier.STANDARD
    return ScopeTier.MICRO


def infer_mode(prompt: str) -> RunMode:
    """Fix keywords select FIX; anything else is a feature."""
    if _matches(FIX_KEYWORDS, prompt.lower()):
        return RunMode.FIX
    return RunMode.FEAT


def infer_start_phase(prompt: str) -> int:
    """Pick the first phase worth running for an existing repository.

    Code-only changes start at the Engineer (5), visual changes at the
    Design Explorer (3), design implementation at the Design Translator
    (4), architecture-level changes at the Architect (2), and everything
    else from the beginning.
    """
    lower = prompt.lower()
    for phase, pattern in START_PHASE_RULES:
        if _matches(pattern, lower):
            return phase
    return 1


def slugify(text: str) -> str:
    """Lowercase kebab-case slug of at most 40 characters.

    Example:
        >>> slugify("Add dark mode!")
        'add-dark-mode'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH]
