"""The fixed, ordered list of pipeline phases and their prompt builders.

Prompts scale deliverables to the run's scope tier. Every builder is a
pure function of the RunContext.
"""

from typing import Dict, List

from agent_pipeline.phases.models import Phase, PhaseKind
from agent_pipeline.state.models import RunContext, ScopeTier


OPUS = "claude-4.6-opus-high-thinking"
CODEX = "gpt-5.3-codex-high"
GPT = "gpt-5.2-high"
COMPOSER = "composer-1.5"

DESIGN_EXPLORATION_PATH = "docs/design/design-exploration.md"
VISUAL_PROMPTS_PATH = "docs/design/visual-prompts.md"
APPROVED_DIRECTION_PATH = "docs/design/approved-direction.md"
SCAFFOLD_PATH = "docs/design/v0-scaffold.md"

ENV_CHECK = (
    "ENVIRONMENT: Check architecture docs for required API keys/env vars.\n"
    "If a key is missing, implement a mock/fallback and write BLOCKER in the handoff."
)

NO_IMAGE_WORK = (
    "DO NOT generate images. DO NOT report missing image-generation API keys as "
    "blockers. The pipeline generates images automatically after you finish."
)


def design_direction_count(scope: ScopeTier) -> int:
    """Number of mockup directions requested for a scope tier."""
    if scope in (ScopeTier.NANO, ScopeTier.MICRO):
        return 2
    if scope == ScopeTier.LARGE:
        return 4
    return 3


def _by_scope(scope: ScopeTier, options: Dict[ScopeTier, str]) -> str:
    return options.get(scope, options[ScopeTier.STANDARD])


def _header(role: str, ctx: RunContext) -> str:
    return f"{role}. PROJECT: {ctx.project} | SCOPE: {ctx.scope.value.upper()}"


def requirements_prompt(ctx: RunContext) -> str:
    docs = _by_scope(
        ctx.scope,
        {
            ScopeTier.NANO: (
                "docs/requirements/01-requirements.md: 3-5 Must reqs, "
                "Given/When/Then criteria only"
            ),
            ScopeTier.MICRO: (
                "docs/requirements/00-project-brief.md: vision + constraints (half page)\n"
                "docs/requirements/01-requirements.md: 5-8 Must/Should reqs"
            ),
            ScopeTier.STANDARD: (
                "docs/requirements/00-project-brief.md: vision, personas, constraints\n"
                "docs/requirements/01-requirements.md: 8-12 Must/Should reqs, Given/When/Then\n"
                "docs/requirements/glossary.md: key terms"
            ),
            ScopeTier.LARGE: (
                "docs/requirements/00-project-brief.md: vision, personas, constraints, "
                "success metrics\n"
                "docs/requirements/01-requirements.md: 15-20 Must/Should reqs, Given/When/Then\n"
                "docs/requirements/glossary.md: domain terms"
            ),
        },
    )
    return "\n".join(
        [
            _header("Requirements Engineer", ctx),
            f"IDEA: {ctx.user_prompt}",
            "",
            "Create (no planning, no preamble):",
            docs,
            "",
            "## Handoff: artifacts, open questions, env vars needed, blockers",
            ENV_CHECK,
        ]
    )


def architect_prompt(ctx: RunContext) -> str:
    docs = _by_scope(
        ctx.scope,
        {
            ScopeTier.NANO: (
                "docs/architecture/00-system-overview.md: Mermaid diagram + tech stack "
                "decisions (1 page max)"
            ),
            ScopeTier.MICRO: (
                "docs/architecture/00-system-overview.md: Mermaid diagram + components\n"
                "docs/architecture/api-spec.md: endpoints"
            ),
            ScopeTier.STANDARD: (
                "docs/architecture/00-system-overview.md: Mermaid, components, deployment\n"
                "docs/architecture/adr/: 1-2 ADRs max\n"
                "docs/architecture/api-spec.md: endpoints\n"
                "docs/architecture/data-model.md: Mermaid ER"
            ),
            ScopeTier.LARGE: (
                "docs/architecture/00-system-overview.md: Mermaid, components, deployment\n"
                "docs/architecture/adr/: 3-5 ADRs (significant decisions only)\n"
                "docs/architecture/api-spec.md: all endpoints + schemas\n"
                "docs/architecture/data-model.md: Mermaid ER"
            ),
        },
    )
    return "\n".join(
        [
            "Architect. Read docs/requirements/ first.",
            f"PROJECT: {ctx.project} | SCOPE: {ctx.scope.value.upper()}",
            "",
            "Create (no planning):",
            docs,
            "",
            "## Handoff: artifacts, env vars needed, blockers",
            ENV_CHECK,
        ]
    )


def design_explorer_prompt(ctx: RunContext) -> str:
    count = design_direction_count(ctx.scope)
    directions = []
    for n in range(1, count + 1):
        experimental = n == count and count > 2
        name = "<experimental, breaks conventions>" if experimental else "<evocative name>"
        directions.append(
            "\n".join(
                [
                    f"## direction-{n}",
                    f'name: "{name}"',
                    'philosophy: "<1 sentence>"',
                    'prompt: "high-fidelity UI screenshot of [app type] app, [exact layout], '
                    "[hex colors e.g. #0a0a0f bg #7c3aed accent], [typography: font style + "
                    "weights], [surface: glass/metal/matte], [1-2 unique elements]. "
                    'Photorealistic, actual content, no lorem ipsum, 16:9."',
                    'size: "16:9"',
                    f'output: "docs/design/mockups/direction-{n}.png"',
                ]
            )
        )

    rules = [
        "FORMAT RULES:",
        '- Write keys as plain text: name: "..." not **name:** "...". '
        "The pipeline parses this file.",
        "- Each direction = different studio, zero overlap in color/layout/typography. "
        "Exact hex values in every prompt.",
    ]
    if count > 2:
        rules.append(
            "- Last direction is experimental (radial nav / brutalist / vertical text etc)."
        )

    return "\n".join(
        [
            "Design Explorer. Read docs/requirements/ + docs/architecture/ first.",
            f"PROJECT: {ctx.project} | SCOPE: {ctx.scope.value.upper()} -> {count} directions",
            "",
            f"Create {DESIGN_EXPLORATION_PATH} with EXACTLY this structure:",
            "",
            "## CONTEXT",
            "App: <one-line>",
            "Anti-patterns: <what to avoid>",
            "",
            "\n\n".join(directions),
            "",
            *rules,
            "",
            NO_IMAGE_WORK,
            "Your only job is writing this markdown file.",
            "",
            "## Handoff: open questions, env vars for the app itself, blockers",
            ENV_CHECK,
        ]
    )


VISUAL_PROMPTS_FORMAT = f"""{VISUAL_PROMPTS_PATH} FORMAT: one ## section per asset:
## Logo
name: "logo"
prompt: "<detailed image prompt with exact hex colors, style, subject>"
size: "1:1"
output: "public/assets/logo.png"

Include ALL visual assets the app needs: logo, favicon, og-image, hero/banner,
background textures, illustrations, feature images.
Use exact hex values from design-spec.md. Prompts describe raster images, never SVG.
Minimum assets: logo (1:1), favicon (1:1), og-image (16:9)."""


def design_translator_prompt(ctx: RunContext) -> str:
    dc = ctx.design_context
    lines = [_header("Design Translator", ctx)]
    if dc is not None:
        lines.append(f"APPROVED: {dc.approved_mockup_url} ({dc.variant_name})")
        if dc.feedback:
            lines.append(f"FEEDBACK: {dc.feedback}")
        if dc.scaffold_path:
            lines.append(f"V0 SCAFFOLD: {dc.scaffold_path} (refine to match mockup)")
    else:
        lines.append(f"Read {APPROVED_DIRECTION_PATH} for the mockup URL.")

    components = _by_scope(
        ctx.scope,
        {
            ScopeTier.NANO: "Button, Card",
            ScopeTier.MICRO: "Button, Card, Input, Badge",
            ScopeTier.STANDARD: "all components visible in mockup",
        },
    )
    screens = _by_scope(
        ctx.scope,
        {
            ScopeTier.NANO: "1 primary screen",
            ScopeTier.MICRO: "2-3 screens",
            ScopeTier.STANDARD: "all major screens",
        },
    )
    with_assets = ctx.scope != ScopeTier.NANO

    lines += [
        "",
        "Analyze mockup via vision, then output:",
        "1. docs/design/design-spec.md: exact hex palette, type scale, spacing, component list",
        "2. design-system/tailwind.config.ts: full custom theme from spec values only",
        "3. design-system/globals.css: CSS vars, @import fonts, base + utility styles",
        f"4. design-system/components/ui/: {components} (all states: hover/focus/active/disabled)",
        f"5. screens/: {screens} (pixel-intent mockup match)",
    ]
    if with_assets:
        lines.append(f"6. {VISUAL_PROMPTS_PATH}: ALL visual assets the app needs")
    lines += [
        "",
        "Mockup = source of truth. No invention. Every value extracted from Step 1.",
        NO_IMAGE_WORK,
    ]
    if with_assets:
        lines += ["", VISUAL_PROMPTS_FORMAT]
    lines += ["## Handoff: artifacts, blockers unrelated to image generation", ENV_CHECK]
    return "\n".join(lines)


def engineer_prompt(ctx: RunContext) -> str:
    tests = _by_scope(
        ctx.scope,
        {
            ScopeTier.NANO: "No tests required.",
            ScopeTier.MICRO: "Tests for critical paths only.",
            ScopeTier.STANDARD: "Tests for all critical paths.",
        },
    )
    return "\n".join(
        [
            "Engineer. Read docs/requirements/, docs/architecture/, docs/design/design-spec.md.",
            f"PROJECT: {ctx.project} | SCOPE: {ctx.scope.value.upper()}",
            "",
            "1. Import from design-system/components/ui/: theme tokens only, never hardcode",
            "2. Use screens/ as UI base: add logic, don't redesign",
            "3. Implement: routing, state, data fetching, error handling, all component states",
            "4. Use the pre-generated PNGs in public/assets/ (logo, favicon, og-image, hero)",
            f"5. {tests}",
            "6. vercel.json for deployment + README.md",
            "Conventional commits: feat/fix/refactor/test/docs",
            "",
            "VISUAL ASSETS:",
            "- Never write SVG files or inline SVG for logos, illustrations or brand imagery",
            "- Use an icon library (lucide-react, heroicons) for icons",
            "- If an image is missing from public/assets/, use a CSS placeholder and note it "
            "in the handoff",
            ENV_CHECK,
        ]
    )


def qa_prompt(ctx: RunContext) -> str:
    micro = ctx.scope == ScopeTier.MICRO
    max_findings = 3 if micro else 5
    checks = (
        "correctness, basic security, code quality"
        if micro
        else "correctness, OWASP security, performance, code quality, a11y, design compliance"
    )
    review_date = ctx.started_at.date().isoformat()
    return "\n".join(
        [
            "QA Reviewer. Read docs/ + src/ + tests/.",
            f"PROJECT: {ctx.project} | SCOPE: {ctx.scope.value.upper()}",
            "",
            f"Create docs/reviews/review-{review_date}.md:",
            f"- Max {max_findings} findings (CRITICAL/WARNING only)",
            f"- Check: {checks}",
            "- Requirements traceability matrix",
            "- Verdict: PASS / PASS WITH ISSUES / FAIL",
            "",
            "Read only. No code changes.",
            ENV_CHECK,
        ]
    )


PHASES: List[Phase] = [
    Phase("Requirements Engineer", GPT, "📋", PhaseKind.STANDARD, requirements_prompt),
    Phase("Architect", OPUS, "🏗️", PhaseKind.STANDARD, architect_prompt),
    Phase("Design Explorer", GPT, "🎨", PhaseKind.DESIGN_EXPLORATION, design_explorer_prompt),
    Phase("Design Translator", OPUS, "🖌️", PhaseKind.DESIGN_TRANSLATION, design_translator_prompt),
    Phase("Engineer", CODEX, "⚙️", PhaseKind.STANDARD, engineer_prompt),
    Phase(
        "QA Reviewer",
        COMPOSER,
        "🔍",
        PhaseKind.STANDARD,
        qa_prompt,
        optional_for=frozenset({ScopeTier.NANO}),
    ),
]


def phase_at(index: int) -> Phase:
    """Return the phase at a 1-based index.

    Raises:
        IndexError: If the index is outside 1..len(PHASES).
    """
    if not 1 <= index <= len(PHASES):
        raise IndexError(f"phase index must be 1-{len(PHASES)}, got {index}")
    return PHASES[index - 1]
