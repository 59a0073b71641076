"""Pipeline orchestrator driving a run through the fixed phase list.

For each phase the orchestrator submits an agent job against the current
ref, waits for it, runs the phase kind's post-processing, gates on the
operator when interactive, and merges the produced branch into the target
branch. The produced branch becomes the ref the next phase starts from.

Halting conditions:
- operator stop at an approval gate (the remote job is left alone)
- phase failure, unless an interactive operator chooses to retry
- merge conflict, always (with manual recovery instructions)

Finalization (deploy, then pull request) runs exactly once, only when no
phase halted the run. Missing optional capabilities degrade it; they never
fail the run.

The orchestrator delegates all work to injected dependencies and uses the
run state machine for transitions and the event emitter for observability.

Source:
- agent_pipeline/agents/client.py (AgentClient)
- agent_pipeline/github/client.py (GitHubClient, MergeConflict)
- agent_pipeline/jobs/poller.py (JobPoller)
- agent_pipeline/hitl/protocol.py (ApprovalFrontend)
- agent_pipeline/design/assets.py (AssetGenerator)
- agent_pipeline/state/machine.py (RunStateMachine)
- agent_pipeline/events/emitter.py (EventEmitter)
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence

from agent_pipeline.agents.client import AgentClient
from agent_pipeline.config import MissingCapability
from agent_pipeline.deploy.client import DeployClient
from agent_pipeline.design.assets import AssetGenerator
from agent_pipeline.design.scaffold import ScaffoldClient, render_scaffold_document
from agent_pipeline.design.selection import auto_selection_notice, render_approved_direction
from agent_pipeline.events.emitter import EventEmitter
from agent_pipeline.events.models import EventType, PipelineEvent
from agent_pipeline.github.client import GitHubClient, MergeConflict
from agent_pipeline.github.models import MergeStatus
from agent_pipeline.hitl.models import DecisionKind, VariantSelection
from agent_pipeline.hitl.protocol import ApprovalFrontend, ApprovalRequest
from agent_pipeline.jobs.poller import AGENT_VOCABULARY, JobPoller, JobTerminatedUnsuccessfully, JobTimedOut
from agent_pipeline.phases.catalog import APPROVED_DIRECTION_PATH, PHASES, SCAFFOLD_PATH
from agent_pipeline.phases.models import Phase, PhaseKind
from agent_pipeline.reporting import format_duration, progress_bar, summary_lines, summary_message
from agent_pipeline.state.machine import RunStateMachine
from agent_pipeline.state.models import (
    NO_JOB,
    DesignContext,
    PhaseRecord,
    PhaseStatus,
    RunContext,
    RunResult,
    RunStatus,
)
from agent_pipeline.transport.client import APIError
from agent_pipeline.transport.retry import TransientTransportError


logger = logging.getLogger(__name__)


class PhaseError(Exception):
    """Raised when a phase's job finished but its result is unusable."""


# Failures the operator may retry in place; anything else propagates
PHASE_FAILURES = (
    JobTerminatedUnsuccessfully,
    JobTimedOut,
    APIError,
    TransientTransportError,
    PhaseError,
)


@dataclass
class PhaseAttempt:
    """What one attempt at a phase has produced so far.

    Discarded when the attempt fails; applied to the RunContext only after
    the produced ref is merged.
    """

    job_id: str = NO_JOB
    produced_ref: Optional[str] = None
    design_context: Optional[DesignContext] = None


PostProcessor = Callable[[Phase, RunContext, PhaseAttempt], Awaitable[None]]


class PipelineOrchestrator:
    """Runs the phase list for one RunContext.

    Attributes:
        agents: Agent job submission, status and followups.
        github: Branch merges, file commits and pull requests.
        poller: Poller configured for agent jobs.
        frontend: Approval front-end, also used for progress announcements.
        event_emitter: Emits pipeline events for observability.
        assets: Image fan-out for the design phases (optional).
        scaffold: Code scaffold client (optional).
        deployer: Deployment client (optional).
        phases: The ordered phase list.
        interactive: Gate every phase on the operator and offer retries.
        default_branch: Base branch for pull requests.
    """

    def __init__(
        self,
        agents: AgentClient,
        github: GitHubClient,
        poller: JobPoller,
        frontend: ApprovalFrontend,
        event_emitter: EventEmitter,
        assets: Optional[AssetGenerator] = None,
        scaffold: Optional[ScaffoldClient] = None,
        deployer: Optional[DeployClient] = None,
        phases: Sequence[Phase] = PHASES,
        interactive: bool = False,
        default_branch: str = "main",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.agents = agents
        self.github = github
        self.poller = poller
        self.frontend = frontend
        self.event_emitter = event_emitter
        self.assets = assets
        self.scaffold = scaffold
        self.deployer = deployer
        self.phases = list(phases)
        self.interactive = interactive
        self.default_branch = default_branch
        self._clock = clock

        self._post_processors: Dict[PhaseKind, PostProcessor] = {
            PhaseKind.STANDARD: self._no_post_processing,
            PhaseKind.DESIGN_EXPLORATION: self._explore_design,
            PhaseKind.DESIGN_TRANSLATION: self._translate_design,
        }
        missing = set(PhaseKind) - set(self._post_processors)
        if missing:
            raise ValueError(f"no post-processing for phase kinds: {sorted(k.value for k in missing)}")

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(self, context: RunContext, start_phase: int = 1) -> RunResult:
        """Run every phase from ``start_phase`` and finalize.

        Args:
            context: The run's context; ``current_ref`` is where the first
                executed phase starts from.
            start_phase: 1-based resume point; earlier phases are skipped.

        Returns:
            The run log with its final status.
        """
        if not 1 <= start_phase <= len(self.phases):
            raise ValueError(f"start_phase must be 1-{len(self.phases)}, got {start_phase}")

        result = RunResult()
        machine = RunStateMachine(context.project)
        started = self._clock()

        index = 1
        while index <= len(self.phases) and not machine.is_terminal:
            phase = self.phases[index - 1]

            if index < start_phase:
                await self._record(context, result, PhaseRecord(phase=phase.name, status=PhaseStatus.SKIPPED))
                index += 1
                continue

            if phase.skipped_for(context.scope):
                logger.info(
                    "PHASE %d/%d: %s skipped (%s scope)",
                    index,
                    len(self.phases),
                    phase.title,
                    context.scope.value,
                )
                await self._record(
                    context, result, PhaseRecord(phase=phase.name, status=PhaseStatus.SKIPPED_SCOPE)
                )
                index += 1
                continue

            await self._transition(machine, context, RunStatus.PHASE, phase_index=index)
            retry = await self._attempt_phase(index, phase, context, result, machine, start_phase)
            if not retry:
                index += 1

        if not machine.is_terminal and result.phases_succeeded:
            await self._finalize(context, result, machine)

        result.status = machine.status
        result.total_seconds = self._clock() - started
        await self._report(context, result)
        return result

    async def _attempt_phase(
        self,
        index: int,
        phase: Phase,
        context: RunContext,
        result: RunResult,
        machine: RunStateMachine,
        start_phase: int,
    ) -> bool:
        """Run one attempt at a phase.

        Returns True when the operator asked to retry the same phase.
        Halting outcomes move ``machine`` to a terminal status.
        """
        attempt = PhaseAttempt()
        started = self._clock()

        try:
            approved = await self._run_phase(index, phase, context, attempt)
        except MergeConflict as conflict:
            await self._halt_on_conflict(index, phase, context, result, machine, attempt, conflict)
            return False
        except PHASE_FAILURES as exc:
            return await self._handle_failure(phase, context, result, machine, attempt, exc)

        if not approved:
            await self._record(
                context,
                result,
                PhaseRecord(
                    phase=phase.name,
                    job_id=attempt.job_id,
                    status=PhaseStatus.STOPPED,
                    detail=attempt.produced_ref,
                ),
            )
            await self._safe_announce(
                f"🛑 Pipeline stopped after {phase.name}. Branch: `{attempt.produced_ref}`"
            )
            await self._transition(machine, context, RunStatus.STOPPED)
            return False

        # Merged: the produced branch is the next phase's starting point
        context.current_ref = attempt.produced_ref
        if attempt.design_context is not None:
            context.design_context = attempt.design_context

        duration = self._clock() - started
        await self._record(
            context,
            result,
            PhaseRecord(
                phase=phase.name,
                job_id=attempt.job_id,
                status=PhaseStatus.COMPLETED,
                detail=attempt.produced_ref,
                duration_seconds=duration,
            ),
        )
        await self._safe_announce(
            "\n".join(
                [
                    f"{phase.emoji} *{phase.name}* ✅ {format_duration(duration)} · "
                    f"merged to `{context.target_branch}`",
                    f"<{context.branch_url(attempt.produced_ref)}|branch> · "
                    f"<{self.agents.agent_url(attempt.job_id)}|agent>",
                    progress_bar(len(self.phases), index, start_phase),
                ]
            )
        )
        return False

    async def _run_phase(
        self,
        index: int,
        phase: Phase,
        context: RunContext,
        attempt: PhaseAttempt,
    ) -> bool:
        """Submit, await, post-process, gate and merge one phase.

        Returns:
            False if the operator stopped the run at the approval gate.

        Raises:
            MergeConflict: If the produced branch conflicts with the target.
            PhaseError, JobTerminatedUnsuccessfully, JobTimedOut, APIError,
            TransientTransportError: On phase failure.
        """
        logger.info(
            "PHASE %d/%d: %s",
            index,
            len(self.phases),
            phase.title,
            extra={"phase": phase.name, "source_ref": context.current_ref},
        )

        attempt.job_id = await self.agents.submit(phase, context, context.current_ref)
        await self._safe_announce(
            f"{phase.emoji} *{phase.name}* · <{self.agents.agent_url(attempt.job_id)}|agent> · running…"
        )

        status = await self.poller.wait(attempt.job_id, self.agents.status, AGENT_VOCABULARY)
        if not status.produced_ref:
            raise PhaseError(f"Agent {attempt.job_id} finished but created no branch")
        attempt.produced_ref = status.produced_ref
        logger.info("Agent branch: %s", attempt.produced_ref, extra={"phase": phase.name})

        await self._post_processors[phase.kind](phase, context, attempt)

        if self.interactive and not await self._gate(phase, context, attempt):
            return False

        merge = await self.github.merge(
            context.owner, context.project, attempt.produced_ref, context.target_branch
        )
        if merge.status == MergeStatus.CONFLICT:
            raise MergeConflict(head=attempt.produced_ref, base=context.target_branch)
        if merge.status == MergeStatus.ERROR:
            raise PhaseError(merge.message or f"Merge of {attempt.produced_ref} failed")
        return True

    async def _gate(self, phase: Phase, context: RunContext, attempt: PhaseAttempt) -> bool:
        """Ask the operator to approve the phase. Returns False on stop."""

        async def send_followup(text: str) -> None:
            await self.agents.inject_followup(attempt.job_id, text)
            status = await self.poller.wait(attempt.job_id, self.agents.status, AGENT_VOCABULARY)
            if status.produced_ref:
                attempt.produced_ref = status.produced_ref

        request = ApprovalRequest(
            phase_name=phase.name,
            emoji=phase.emoji,
            job_id=attempt.job_id,
            produced_ref=attempt.produced_ref,
            branch_url=context.branch_url(attempt.produced_ref),
        )
        decision = await self.frontend.present_for_approval(request, send_followup)

        await self._safe_emit(
            self._event(
                context,
                EventType.APPROVAL,
                phase=phase.name,
                job_id=attempt.job_id,
                decision=decision.kind.value,
                automatic=decision.automatic,
            )
        )
        return decision.kind == DecisionKind.APPROVE

    async def _handle_failure(
        self,
        phase: Phase,
        context: RunContext,
        result: RunResult,
        machine: RunStateMachine,
        attempt: PhaseAttempt,
        exc: Exception,
    ) -> bool:
        """Record a phase failure and decide between retry and halt."""
        detail = str(exc)
        if attempt.produced_ref:
            detail = f"{detail} (branch {attempt.produced_ref})"

        logger.error(
            "Phase failed: %s",
            detail,
            extra={"phase": phase.name, "job_id": attempt.job_id, "error_type": type(exc).__name__},
        )
        if isinstance(exc, JobTimedOut):
            await self._safe_emit(
                self._event(
                    context,
                    EventType.TIMEOUT,
                    phase=phase.name,
                    job_id=exc.job_id,
                    elapsed_seconds=exc.elapsed,
                )
            )

        await self._record(
            context,
            result,
            PhaseRecord(phase=phase.name, job_id=attempt.job_id, status=PhaseStatus.FAILED, detail=detail),
        )
        if self.interactive:
            if await self.frontend.choose_retry(phase.name, detail):
                logger.info("Retrying %s", phase.name, extra={"source_ref": context.current_ref})
                result.mark_last_retried()
                return True
        else:
            await self._safe_announce(f"❌ *{phase.name}* failed\n```{detail[:300]}```")

        await self._transition(machine, context, RunStatus.FAILED, details={"phase": phase.name})
        return False

    async def _halt_on_conflict(
        self,
        index: int,
        phase: Phase,
        context: RunContext,
        result: RunResult,
        machine: RunStateMachine,
        attempt: PhaseAttempt,
        conflict: MergeConflict,
    ) -> None:
        instructions = conflict.recovery_instructions(next_phase=index + 1)
        logger.error(
            "Merge conflict: %s -> %s. Resolve manually:\n  %s",
            conflict.head,
            conflict.base,
            "\n  ".join(instructions),
            extra={"phase": phase.name, "job_id": attempt.job_id},
        )
        await self._record(
            context,
            result,
            PhaseRecord(
                phase=phase.name,
                job_id=attempt.job_id,
                status=PhaseStatus.MERGE_CONFLICT,
                detail=f"{conflict.head} -> {conflict.base}; {instructions[-1]}",
            ),
        )
        await self._safe_announce(
            f"⚠️ *{phase.name}*: merge conflict `{conflict.head}` → `{conflict.base}`\n```\n"
            + "\n".join(instructions)
            + "\n```"
        )
        await self._transition(machine, context, RunStatus.FAILED, details={"phase": phase.name})

    # ------------------------------------------------------------------
    # Phase kind post-processing
    # ------------------------------------------------------------------

    async def _no_post_processing(self, phase: Phase, context: RunContext, attempt: PhaseAttempt) -> None:
        return None

    async def _explore_design(self, phase: Phase, context: RunContext, attempt: PhaseAttempt) -> None:
        """Generate mockups, select a direction, commit it and request a scaffold."""
        if self.assets is None:
            logger.info("Skipping variant generation (no image generator)")
            return

        branch = attempt.produced_ref
        variants = await self.assets.generate_design_variants(context.owner, context.project, branch)
        if not variants:
            logger.info("No variants generated, proceeding without visual selection")
            return

        if self.interactive:
            selection = await self.frontend.select_variant(variants)
        else:
            selection = VariantSelection(index=0, automatic=True)
            logger.info(
                'Auto-selecting direction-1 ("%s"), use --interactive to choose', variants[0].name
            )
            await self._safe_announce(auto_selection_notice(variants))

        selected = variants[min(selection.index, len(variants) - 1)]
        await self.github.commit_file(
            context.owner,
            context.project,
            branch,
            APPROVED_DIRECTION_PATH,
            render_approved_direction(variants, selected, selection.feedback),
            "chore: add approved design direction [pipeline]",
        )
        logger.info("Approved: %s -> %s", selected.name, APPROVED_DIRECTION_PATH)

        scaffold_path = None
        if self.scaffold is not None and self.scaffold.enabled:
            scaffold = await self.scaffold.generate(selected.image_url, selection.feedback)
            if scaffold:
                await self.github.commit_file(
                    context.owner,
                    context.project,
                    branch,
                    SCAFFOLD_PATH,
                    render_scaffold_document(selected, scaffold),
                    "chore: add v0 code scaffold [pipeline]",
                )
                scaffold_path = SCAFFOLD_PATH
                logger.info("Scaffold committed -> %s", SCAFFOLD_PATH)

        attempt.design_context = DesignContext(
            approved_mockup_url=selected.image_url,
            variant_name=selected.name,
            feedback=selection.feedback,
            scaffold_path=scaffold_path,
        )

    async def _translate_design(self, phase: Phase, context: RunContext, attempt: PhaseAttempt) -> None:
        """Generate the brand assets listed by the Design Translator."""
        if self.assets is None:
            logger.info("Skipping brand assets (no image generator)")
            return
        batch = await self.assets.generate_brand_assets(context.owner, context.project, attempt.produced_ref)
        if batch.failed:
            logger.warning("%d brand asset(s) could not be generated", batch.failed)

    # ------------------------------------------------------------------
    # Finalization and summary
    # ------------------------------------------------------------------

    async def _finalize(self, context: RunContext, result: RunResult, machine: RunStateMachine) -> None:
        """Deploy the target branch, then open a pull request (feat/fix)."""
        await self._transition(machine, context, RunStatus.FINALIZING)
        logger.info("FINAL STEPS")

        preview_url = await self._deploy(context, result)

        if context.mode.uses_feature_branch:
            await self._open_pull_request(context, result, preview_url)
        else:
            await self._record(
                context,
                result,
                PhaseRecord(phase="Deployed to main", status=PhaseStatus.COMPLETED, detail=context.target_branch),
            )

        await self._transition(machine, context, RunStatus.COMPLETED)

    async def _deploy(self, context: RunContext, result: RunResult) -> Optional[str]:
        try:
            if self.deployer is None:
                raise MissingCapability("deploy", "PIPELINE_VERCEL_TOKEN")
            preview_url = await self.deployer.deploy(context.owner, context.project, context.target_branch)
        except MissingCapability as e:
            logger.info("Skipping deploy: %s", e)
            await self._record(context, result, PhaseRecord(phase="Deploy", status=PhaseStatus.DEGRADED, detail=str(e)))
            return None
        except (APIError, TransientTransportError) as e:
            logger.error("Deploy failed: %s", e)
            await self._record(
                context, result, PhaseRecord(phase="Deploy", status=PhaseStatus.DEGRADED, detail=str(e)[:300])
            )
            return None

        if preview_url is None:
            await self._record(
                context,
                result,
                PhaseRecord(phase="Deploy", status=PhaseStatus.DEGRADED, detail="build failed or timed out"),
            )
            return None

        await self._record(context, result, PhaseRecord(phase="Deploy", status=PhaseStatus.COMPLETED, detail=preview_url))
        await self._safe_announce(f"🚀 *Final preview live*: {preview_url}")
        return preview_url

    async def _open_pull_request(self, context: RunContext, result: RunResult, preview_url: Optional[str]) -> None:
        title = f"{context.mode.value}: {context.user_prompt[:72]}"
        body_lines = [
            "## Summary",
            context.user_prompt,
            "",
            "## Pipeline",
            *[f"- ✅ {name}" for name in result.completed_phases()],
        ]
        if preview_url:
            body_lines += ["", "## Preview", preview_url]

        try:
            url = await self.github.open_change_request(
                context.owner,
                context.project,
                context.target_branch,
                self.default_branch,
                title,
                "\n".join(body_lines),
            )
        except (APIError, TransientTransportError) as e:
            logger.error("Pull request failed: %s", e)
            await self._record(
                context, result, PhaseRecord(phase="Pull Request", status=PhaseStatus.DEGRADED, detail=str(e)[:300])
            )
            return

        await self._record(context, result, PhaseRecord(phase="Pull Request", status=PhaseStatus.COMPLETED, detail=url))
        await self._safe_announce(f"🔀 *Pull Request ready for review:*\n{url}")

    async def _report(self, context: RunContext, result: RunResult) -> None:
        logger.info("PIPELINE SUMMARY (%s)", result.status.value)
        for line in summary_lines(result):
            logger.info(line)
        logger.info("Total: %s", format_duration(result.total_seconds or 0))

        await self._safe_announce(summary_message(result))
        await self._safe_emit(
            self._event(
                context,
                EventType.COMPLETION,
                status=result.status.value,
                duration_seconds=result.total_seconds,
            )
        )

    # ------------------------------------------------------------------
    # State and events
    # ------------------------------------------------------------------

    async def _record(self, context: RunContext, result: RunResult, record: PhaseRecord) -> None:
        """Append to the run log and emit the matching phase event."""
        result.append(record)
        if record.status == PhaseStatus.COMPLETED:
            event_type = EventType.PHASE_COMPLETED
        elif record.status.is_skip:
            event_type = EventType.PHASE_SKIPPED
        elif record.status in (PhaseStatus.FAILED, PhaseStatus.MERGE_CONFLICT):
            event_type = EventType.PHASE_FAILED
        else:
            return
        await self._safe_emit(self._event(context, event_type, **record.model_dump(mode="json")))

    async def _transition(
        self,
        machine: RunStateMachine,
        context: RunContext,
        to_status: RunStatus,
        phase_index: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Transition the run and emit a state-transition event."""
        from_status = machine.status
        machine.transition(to_status, phase_index=phase_index, details=details)
        await self._safe_emit(
            self._event(
                context,
                EventType.STATE_TRANSITION,
                from_status=from_status.value,
                to_status=to_status.value,
                phase_index=machine.phase_index,
            )
        )

    def _event(self, context: RunContext, event_type: EventType, **details) -> PipelineEvent:
        return PipelineEvent(
            event_type=event_type,
            project=context.project,
            repository=context.full_name,
            details=details,
        )

    async def _safe_announce(self, text: str) -> None:
        """Announce progress; a failed chat post is logged and the run continues."""
        try:
            await self.frontend.announce(text)
        except (APIError, TransientTransportError) as e:
            logger.warning("Progress announcement failed: %s", e, extra={"announcement": text[:200]})

    async def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={
                    "event_type": event.event_type.value,
                    "project": event.project,
                },
            )
