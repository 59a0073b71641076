"""Run preparation: everything between parsing arguments and phase 1.

RunPreparer turns a RunRequest into a RunPlan:
1. Ensure the repository exists (create it when absent)
2. Verify the agent service can see it
3. Resolve AUTO mode and infer the start phase
4. Create the feat/fix target branch when missing
5. Infer the scope tier unless overridden

open_channel() then sets up the chat channel and kick-off thread.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from agent_pipeline.agents.client import AgentClient
from agent_pipeline.classifier.scope import infer_mode, infer_scope, infer_start_phase, slugify
from agent_pipeline.config import PipelineSettings
from agent_pipeline.github.client import GitHubClient
from agent_pipeline.hitl.slack import SlackClient
from agent_pipeline.phases.catalog import PHASES
from agent_pipeline.phases.models import Phase
from agent_pipeline.state.models import RunContext, RunMode, ScopeTier


logger = logging.getLogger(__name__)


SCOPE_DESCRIPTIONS = {
    ScopeTier.NANO: "minimal deliverables, QA skipped",
    ScopeTier.MICRO: "lean deliverables, 2 design variants",
    ScopeTier.STANDARD: "standard deliverables, 3 design variants",
    ScopeTier.LARGE: "full deliverables, 4 design variants",
}

MODE_LABELS = {
    RunMode.INIT: "🚀 Initial build",
    RunMode.FEAT: "✨ Feature",
    RunMode.FIX: "🔧 Fix",
}


@dataclass
class RunRequest:
    """What the operator asked for on the command line.

    Attributes:
        project: Project (and repository) name.
        prompt: The operator's request.
        mode: Forced mode, or AUTO.
        start_phase: 1-based resume point, or None to infer it.
        resume_ref: Branch to resume from (required with start_phase > 1).
        interactive: Gate each phase on the operator.
        scope: Scope override, or None to infer it.
        dry_run: Print the plan and launch nothing.
    """

    project: str
    prompt: str
    mode: RunMode = RunMode.AUTO
    start_phase: Optional[int] = None
    resume_ref: Optional[str] = None
    interactive: bool = False
    scope: Optional[ScopeTier] = None
    dry_run: bool = False

    def validate(self, phase_count: int = len(PHASES)) -> None:
        """Raise ValueError for argument combinations that cannot run."""
        if not self.project.strip() or not self.prompt.strip():
            raise ValueError("--project and --prompt are required")
        if self.start_phase is not None and not 1 <= self.start_phase <= phase_count:
            raise ValueError(f"--from must be 1-{phase_count}")
        if self.start_phase is not None and self.start_phase > 1 and not self.resume_ref and not self.dry_run:
            raise ValueError("--from requires --ref (the branch to resume from)")


@dataclass
class RunPlan:
    """A prepared run, ready for the orchestrator."""

    context: RunContext
    start_phase: int
    is_new_repo: bool
    scope_overridden: bool


class RunPreparer:
    """Prepares repositories, branches and chat for a run."""

    def __init__(
        self,
        settings: PipelineSettings,
        agents: AgentClient,
        github: GitHubClient,
        slack: Optional[SlackClient] = None,
        phases: Sequence[Phase] = PHASES,
    ):
        self.settings = settings
        self.agents = agents
        self.github = github
        self.slack = slack
        self.phases = list(phases)

    async def prepare(self, request: RunRequest) -> RunPlan:
        """Resolve everything the run needs before phase 1.

        Raises:
            ValueError: If the request is invalid.
            RepositoryAccessError: If the agent service cannot see the repo.
            GitHubAPIError: If the repository or branch cannot be created.
        """
        request.validate(len(self.phases))
        owner = self.settings.github_owner
        default_branch = self.settings.default_branch

        repo = await self.github.ensure_repo(owner, request.project, default_branch=default_branch)
        await self.agents.verify_repository_access(owner, request.project)

        mode = request.mode
        if mode == RunMode.AUTO:
            mode = RunMode.INIT if repo.is_new else infer_mode(request.prompt)
        logger.info(
            "Project: %s (%s), %s mode",
            request.project,
            "new repo" if repo.is_new else "existing",
            mode.value,
        )

        start_phase = request.start_phase
        if start_phase is None:
            start_phase = 1 if repo.is_new else infer_start_phase(request.prompt)
            if start_phase > 1:
                logger.info(
                    "Auto-skipping to phase %d (%s) based on prompt",
                    start_phase,
                    self.phases[start_phase - 1].name,
                )

        target_branch = default_branch
        if mode.uses_feature_branch:
            target_branch = f"{mode.value}/{slugify(request.prompt)}"
            if not request.dry_run:
                if await self.github.branch_exists(owner, request.project, target_branch):
                    logger.info("Branch exists: %s", target_branch)
                else:
                    await self.github.create_branch(owner, request.project, target_branch, default_branch)
        logger.info("Target: %s | Phases: %d-%d", target_branch, start_phase, len(self.phases))

        me = await self.agents.whoami()
        logger.info("Agent service key: %s (%s)", me.get("apiKeyName"), me.get("userEmail"))

        scope = request.scope or infer_scope(request.prompt)
        logger.info(
            "Scope: %s%s, %s",
            scope.value.upper(),
            " (manual override)" if request.scope else "",
            SCOPE_DESCRIPTIONS[scope],
        )

        context = RunContext(
            project=request.project,
            user_prompt=request.prompt,
            repo_url=repo.clone_url,
            owner=owner,
            target_branch=target_branch,
            current_ref=request.resume_ref or target_branch,
            mode=mode,
            scope=scope,
        )
        return RunPlan(
            context=context,
            start_phase=start_phase,
            is_new_repo=repo.is_new,
            scope_overridden=request.scope is not None,
        )

    async def open_channel(self, plan: RunPlan) -> None:
        """Ensure the project channel and post the kick-off message.

        Sets ``chat_channel`` and ``chat_thread`` on the plan's context.
        Does nothing without a chat client.
        """
        if self.slack is None:
            return
        context = plan.context

        channel, is_new = await self.slack.ensure_channel(context.project)
        if channel is None:
            logger.warning("Chat channel unavailable, continuing without chat")
            return
        if is_new:
            await self.slack.set_channel_context(channel, context.owner, context.project, context.user_prompt)

        context.chat_channel = channel
        context.chat_thread = await self.slack.post_message(
            channel, kickoff_message(context, plan.start_phase, self.phases)
        )


def kickoff_message(context: RunContext, start_phase: int, phases: Sequence[Phase] = PHASES) -> str:
    if start_phase > 1:
        names = " → ".join(p.name for p in phases[start_phase - 1:])
        phase_line = f"Phases {start_phase}-{len(phases)}: {names}"
    else:
        phase_line = f"All {len(phases)} phases"

    prompt = context.user_prompt
    if len(prompt) > 300:
        prompt = prompt[:300] + "…"

    return "\n".join(
        [
            f"{MODE_LABELS.get(context.mode, context.mode.value)}: *{context.project}*",
            f"Branch: `{context.target_branch}` · Scope: *{context.scope.value.upper()}*",
            phase_line,
            f"Prompt: _{prompt}_",
            f"Repo: https://github.com/{context.full_name}",
        ]
    )


def render_dry_run(
    plan: RunPlan,
    settings: PipelineSettings,
    interactive: bool,
    phases: Sequence[Phase] = PHASES,
) -> List[str]:
    """Lines describing what a run would do, without doing it."""
    context = plan.context
    lines = ["DRY RUN: planned execution"]
    for index, phase in enumerate(phases, start=1):
        if index < plan.start_phase:
            reason = " (skipped, before --from)"
        elif phase.skipped_for(context.scope):
            reason = f" (skipped, {context.scope.value} scope)"
        else:
            reason = ""
        lines.append(f"  {index}. {phase.title} [{phase.model}]{reason}")

    lines += [
        "",
        f"  Owner: {context.owner}",
        f"  Repo: https://github.com/{context.full_name}",
        f"  Mode: {context.mode.value} | Branch: {context.target_branch}",
        f"  Scope: {context.scope.value.upper()} | Interactive: {interactive}",
        f"  Images: {'ready' if settings.image_generation_enabled else 'skipped (no key)'}",
        f"  Scaffold: {'ready' if settings.scaffold_enabled else 'skipped (no key)'}",
        f"  Deploy: {'ready' if settings.deploy_enabled else 'skipped (no token)'}",
        "",
        "  No agents launched. Remove --dry-run to execute.",
    ]
    return lines
