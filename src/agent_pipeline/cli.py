"""Command-line entry point for the agent pipeline.

Usage:
    agent-pipeline -p <name> -m "<prompt>"
    agent-pipeline -p <name> -m "<prompt>" --interactive
    agent-pipeline -p <name> -m "<prompt>" --init|--feat|--fix
    agent-pipeline -p <name> -m "<prompt>" --from 3 --ref <branch>
    agent-pipeline -p <name> -m "<prompt>" --dry-run
    agent-pipeline --status <agent-id>
    agent-pipeline --models
    agent-pipeline --verify

Exit status is 0 when the run completed or the operator stopped it, and 1
on pre-flight errors or a failed run.
"""

import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pydantic import ValidationError

from agent_pipeline.agents.client import AgentClient, RepositoryAccessError
from agent_pipeline.bootstrap import RunPreparer, RunRequest, render_dry_run
from agent_pipeline.config import PipelineSettings, get_settings
from agent_pipeline.deploy.client import DeployClient
from agent_pipeline.design.assets import AssetGenerator
from agent_pipeline.design.images import ImageClient
from agent_pipeline.design.scaffold import ScaffoldClient
from agent_pipeline.events.metrics import PipelineMetrics, build_event_emitter, write_metrics_textfile
from agent_pipeline.github.client import GitHubClient
from agent_pipeline.hitl.protocol import ApprovalFrontend
from agent_pipeline.hitl.slack import SlackApprovalFrontend, SlackClient
from agent_pipeline.hitl.terminal import TerminalApprovalFrontend
from agent_pipeline.jobs.poller import JobPoller
from agent_pipeline.orchestrator import PipelineOrchestrator
from agent_pipeline.phases.catalog import PHASES
from agent_pipeline.state.models import RunContext, RunMode, RunStatus, ScopeTier
from agent_pipeline.transport.client import APIError, ServiceClient
from agent_pipeline.transport.retry import RetryingTransport, RetryPolicy, TransientTransportError


logger = logging.getLogger(__name__)


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact (None when not configured).
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "(not set)"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: PipelineSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Pipeline configuration:")
    logger.info(f"  Agent service URL: {settings.cursor_base_url}")
    logger.info(f"  Agent service key: {_redact_secret(settings.cursor_api_key)}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  GitHub Owner: {settings.github_owner}")
    logger.info(f"  Default Branch: {settings.default_branch}")
    logger.info(f"  Vercel Token: {_redact_secret(settings.vercel_token)}")
    logger.info(f"  Slack Bot Token: {_redact_secret(settings.slack_bot_token)}")
    logger.info(f"  NanoBanana Key: {_redact_secret(settings.nanobanana_api_key)}")
    logger.info(f"  v0 Key: {_redact_secret(settings.v0_api_key)}")
    logger.info(f"  Retries: {settings.max_retries} (base delay {settings.retry_base_delay}s)")
    logger.info(f"  Job polling: every {settings.job_poll_interval}s, at most {settings.job_max_polls} polls")
    logger.info(f"  Approval timeout: {settings.approval_timeout}s")
    for warning in settings.capability_warnings():
        logger.warning(warning)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-pipeline",
        description="Run the multi-phase agent build pipeline for one project.",
    )
    parser.add_argument("-p", "--project", help="Project name (kebab-case)")
    parser.add_argument("-m", "--prompt", help="Project or feature description")

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument("--init", dest="mode", action="store_const", const=RunMode.INIT, help="Force init mode")
    modes.add_argument("--feat", dest="mode", action="store_const", const=RunMode.FEAT, help="Force feature mode")
    modes.add_argument("--fix", dest="mode", action="store_const", const=RunMode.FIX, help="Force fix mode")
    parser.set_defaults(mode=RunMode.AUTO)

    parser.add_argument(
        "-f",
        "--from",
        dest="start_phase",
        type=int,
        help=f"Start from phase N (1-{len(PHASES)})",
    )
    parser.add_argument("-r", "--ref", help="Source branch for --from")
    parser.add_argument("-i", "--interactive", action="store_true", help="Pause after each phase for review")
    parser.add_argument(
        "--scope",
        type=ScopeTier,
        choices=list(ScopeTier),
        metavar="{" + ",".join(s.value for s in ScopeTier) + "}",
        help="Override the inferred scope",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show the plan without launching agents")

    parser.add_argument("-s", "--status", metavar="AGENT_ID", help="Print the raw status of one agent")
    parser.add_argument("--models", action="store_true", help="List available agent models")
    parser.add_argument("--verify", action="store_true", help="Show which API key is in use")
    return parser


def request_from_args(args: argparse.Namespace) -> RunRequest:
    """Build and validate a RunRequest.

    Raises:
        ValueError: For argument combinations that cannot run.
    """
    request = RunRequest(
        project=args.project or "",
        prompt=args.prompt or "",
        mode=args.mode,
        start_phase=args.start_phase,
        resume_ref=args.ref,
        interactive=args.interactive,
        scope=args.scope,
        dry_run=args.dry_run,
    )
    request.validate(len(PHASES))
    return request


@dataclass
class Services:
    """Service clients for one process, closed together."""

    agents: AgentClient
    github: GitHubClient
    images: ImageClient
    scaffold: ScaffoldClient
    deployer: DeployClient
    slack: Optional[SlackClient] = None

    def clients(self) -> List[ServiceClient]:
        clients: List[ServiceClient] = [self.agents, self.github, self.images, self.scaffold, self.deployer]
        if self.slack is not None:
            clients.append(self.slack)
        return clients

    async def close(self) -> None:
        for client in self.clients():
            await client.close()


def build_services(settings: PipelineSettings) -> Services:
    """Create every service client from settings."""
    transport = RetryingTransport(
        RetryPolicy(max_retries=settings.max_retries, base_delay=settings.retry_base_delay)
    )
    timeout = settings.request_timeout

    github = GitHubClient(settings.github_token, transport, base_url=settings.github_base_url, timeout=timeout)
    slack = None
    if settings.chat_enabled:
        slack = SlackClient(
            settings.slack_bot_token,
            transport,
            base_url=settings.slack_base_url,
            user_id=settings.slack_user_id,
            timeout=timeout,
        )

    return Services(
        agents=AgentClient(settings.cursor_api_key, transport, base_url=settings.cursor_base_url, timeout=timeout),
        github=github,
        images=ImageClient(settings.nanobanana_api_key, transport, base_url=settings.nanobanana_base_url),
        scaffold=ScaffoldClient(settings.v0_api_key, transport, base_url=settings.v0_base_url),
        deployer=DeployClient(
            settings.vercel_token,
            transport,
            JobPoller(settings.deploy_poll_interval, settings.deploy_max_polls),
            base_url=settings.vercel_base_url,
            timeout=timeout,
        ),
        slack=slack,
    )


def build_frontend(
    settings: PipelineSettings,
    services: Services,
    context: RunContext,
) -> ApprovalFrontend:
    """Chat approvals when a run channel exists, otherwise the terminal."""
    terminal = TerminalApprovalFrontend()
    if services.slack is None or context.chat_channel is None:
        return terminal
    return SlackApprovalFrontend(
        services.slack,
        context.chat_channel,
        thread=context.chat_thread,
        poll_interval=settings.approval_poll_interval,
        timeout=settings.approval_timeout,
        selection_timeout=settings.selection_timeout,
        fallback=terminal,
    )


def _build_orchestrator(
    settings: PipelineSettings,
    services: Services,
    context: RunContext,
    interactive: bool,
    metrics: PipelineMetrics,
) -> PipelineOrchestrator:
    """Wire all pipeline dependencies into a PipelineOrchestrator."""
    image_poller = JobPoller(settings.image_poll_interval, settings.image_max_polls)

    return PipelineOrchestrator(
        agents=services.agents,
        github=services.github,
        poller=JobPoller(settings.job_poll_interval, settings.job_max_polls),
        frontend=build_frontend(settings, services, context),
        event_emitter=build_event_emitter(metrics),
        assets=AssetGenerator(services.images, services.github, image_poller) if services.images.enabled else None,
        scaffold=services.scaffold,
        deployer=services.deployer,
        interactive=interactive,
        default_branch=settings.default_branch,
    )


async def _show_status(services: Services, agent_id: str) -> int:
    print(json.dumps(await services.agents.get_agent(agent_id), indent=2))
    return 0


async def _show_models(services: Services) -> int:
    print("Available models:")
    for model in await services.agents.list_models():
        print(f"  {model}")
    return 0


async def _verify(services: Services) -> int:
    me = await services.agents.whoami()
    print(f"API key: {me.get('apiKeyName')} ({me.get('userEmail')})")
    return 0


async def _run_pipeline(settings: PipelineSettings, services: Services, request: RunRequest) -> int:
    preparer = RunPreparer(settings, services.agents, services.github, services.slack)
    plan = await preparer.prepare(request)

    if request.dry_run:
        for line in render_dry_run(plan, settings, request.interactive):
            print(line)
        return 0

    await preparer.open_channel(plan)

    metrics = PipelineMetrics()
    orchestrator = _build_orchestrator(settings, services, plan.context, request.interactive, metrics)
    result = await orchestrator.run(plan.context, start_phase=plan.start_phase)

    if settings.metrics_textfile:
        write_metrics_textfile(metrics, settings.metrics_textfile)

    return 1 if result.status == RunStatus.FAILED else 0


async def _dispatch(args: argparse.Namespace, settings: PipelineSettings) -> int:
    services = build_services(settings)
    try:
        if args.status:
            return await _show_status(services, args.status)
        if args.models:
            return await _show_models(services)
        if args.verify:
            return await _verify(services)
        return await _run_pipeline(settings, services, request_from_args(args))
    finally:
        await services.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, load settings and run the requested command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)

    is_query = bool(args.status or args.models or args.verify)
    if not is_query:
        try:
            request_from_args(args)
        except ValueError as e:
            parser.error(str(e))

    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("PRE-FLIGHT FAILED:")
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            logger.error(f"  PIPELINE_{field.upper()}: {error['msg']}")
        return 1

    if not is_query:
        _log_configuration(settings)

    try:
        return asyncio.run(_dispatch(args, settings))
    except RepositoryAccessError as e:
        logger.error(str(e))
        return 1
    except (APIError, TransientTransportError) as e:
        logger.error("Pipeline error: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
