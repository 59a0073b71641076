"""Unit tests for run preparation and the command-line entry point."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agent_pipeline import cli
from agent_pipeline.agents.client import RepositoryAccessError
from agent_pipeline.bootstrap import RunPreparer, RunRequest, kickoff_message, render_dry_run
from agent_pipeline.config import PipelineSettings
from agent_pipeline.github.models import RepositoryInfo
from agent_pipeline.hitl.slack import SlackApprovalFrontend
from agent_pipeline.hitl.terminal import TerminalApprovalFrontend
from agent_pipeline.phases.catalog import PHASES
from agent_pipeline.state.models import RunMode, ScopeTier


def run_async(coro):
    return asyncio.run(coro)


def _make_settings(**overrides) -> PipelineSettings:
    fields = dict(
        cursor_api_key="key_abc123",
        github_token="ghp_test",
        github_owner="acme",
        vercel_token=None,
        slack_bot_token=None,
        nanobanana_api_key=None,
        v0_api_key=None,
    )
    fields.update(overrides)
    return PipelineSettings(_env_file=None, **fields)


@pytest.fixture
def agents():
    agents = AsyncMock()
    agents.whoami.return_value = {"apiKeyName": "ci", "userEmail": "ci@acme.dev"}
    return agents


def _make_github(is_new: bool, branch_exists: bool = False) -> AsyncMock:
    github = AsyncMock()
    github.ensure_repo.return_value = RepositoryInfo(clone_url="https://github.com/acme/shop.git", is_new=is_new)
    github.branch_exists.return_value = branch_exists
    return github


# ---------------------------------------------------------------------------
# RunRequest validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "request_kwargs,message",
    [
        (dict(project="", prompt="x"), "--project and --prompt"),
        (dict(project="shop", prompt="  "), "--project and --prompt"),
        (dict(project="shop", prompt="x", start_phase=7), "--from must be 1-6"),
        (dict(project="shop", prompt="x", start_phase=3), "--from requires --ref"),
    ],
)
def test_invalid_requests(request_kwargs, message):
    with pytest.raises(ValueError, match=message):
        RunRequest(**request_kwargs).validate(len(PHASES))


def test_dry_run_may_resume_without_ref():
    RunRequest(project="shop", prompt="x", start_phase=3, dry_run=True).validate(len(PHASES))


# ---------------------------------------------------------------------------
# RunPreparer
# ---------------------------------------------------------------------------


def test_new_repo_runs_init_from_phase_one(agents):
    github = _make_github(is_new=True)
    preparer = RunPreparer(_make_settings(), agents, github)

    plan = run_async(preparer.prepare(RunRequest(project="shop", prompt="fix the tiny todo app")))

    assert plan.context.mode == RunMode.INIT
    assert plan.start_phase == 1
    assert plan.context.target_branch == "main"
    assert plan.context.current_ref == "main"
    assert plan.is_new_repo
    github.create_branch.assert_not_awaited()
    agents.verify_repository_access.assert_awaited_once_with("acme", "shop")


def test_existing_repo_infers_mode_phase_and_branch(agents):
    github = _make_github(is_new=False)
    preparer = RunPreparer(_make_settings(), agents, github)

    plan = run_async(preparer.prepare(RunRequest(project="shop", prompt="Fix the broken cart")))

    assert plan.context.mode == RunMode.FIX
    assert plan.start_phase == 5
    assert plan.context.target_branch == "fix/fix-the-broken-cart"
    github.create_branch.assert_awaited_once_with("acme", "shop", "fix/fix-the-broken-cart", "main")


def test_existing_branch_is_reused(agents):
    github = _make_github(is_new=False, branch_exists=True)
    preparer = RunPreparer(_make_settings(), agents, github)

    run_async(preparer.prepare(RunRequest(project="shop", prompt="add wishlists", mode=RunMode.FEAT)))

    github.create_branch.assert_not_awaited()


def test_resume_ref_and_scope_override(agents):
    github = _make_github(is_new=False)
    preparer = RunPreparer(_make_settings(), agents, github)
    request = RunRequest(
        project="shop",
        prompt="add wishlists",
        start_phase=3,
        resume_ref="cursor/architect-1",
        scope=ScopeTier.LARGE,
    )

    plan = run_async(preparer.prepare(request))

    assert plan.start_phase == 3
    assert plan.context.current_ref == "cursor/architect-1"
    assert plan.context.scope == ScopeTier.LARGE
    assert plan.scope_overridden


def test_dry_run_creates_no_branch(agents):
    github = _make_github(is_new=False)
    preparer = RunPreparer(_make_settings(), agents, github)

    plan = run_async(preparer.prepare(RunRequest(project="shop", prompt="add wishlists", dry_run=True)))

    github.create_branch.assert_not_awaited()
    lines = render_dry_run(plan, _make_settings(), interactive=False)
    assert lines[0] == "DRY RUN: planned execution"
    assert "(skipped, nano scope)" in lines[6]
    assert "  Deploy: skipped (no token)" in lines
    assert lines[-1] == "  No agents launched. Remove --dry-run to execute."


def test_repository_access_error_propagates(agents):
    agents.verify_repository_access.side_effect = RepositoryAccessError("acme", "shop")
    preparer = RunPreparer(_make_settings(), agents, _make_github(is_new=False))

    with pytest.raises(RepositoryAccessError):
        run_async(preparer.prepare(RunRequest(project="shop", prompt="add wishlists")))


def test_open_channel_posts_kickoff(agents):
    slack = AsyncMock()
    slack.ensure_channel.return_value = ("C123", True)
    slack.post_message.return_value = "1700000000.0001"
    preparer = RunPreparer(_make_settings(), agents, _make_github(is_new=True), slack)
    plan = run_async(preparer.prepare(RunRequest(project="shop", prompt="a todo app")))

    run_async(preparer.open_channel(plan))

    assert plan.context.chat_channel == "C123"
    assert plan.context.chat_thread == "1700000000.0001"
    slack.set_channel_context.assert_awaited_once_with("C123", "acme", "shop", "a todo app")


def test_open_channel_without_channel_keeps_terminal(agents):
    slack = AsyncMock()
    slack.ensure_channel.return_value = (None, False)
    preparer = RunPreparer(_make_settings(), agents, _make_github(is_new=True), slack)
    plan = run_async(preparer.prepare(RunRequest(project="shop", prompt="a todo app")))

    run_async(preparer.open_channel(plan))

    assert plan.context.chat_channel is None
    slack.post_message.assert_not_awaited()


def test_kickoff_message_for_resumed_run(agents):
    preparer = RunPreparer(_make_settings(), agents, _make_github(is_new=False))
    plan = run_async(
        preparer.prepare(RunRequest(project="shop", prompt="a" * 400, start_phase=5, resume_ref="r"))
    )

    message = kickoff_message(plan.context, 5, PHASES)

    assert "Phases 5-6: Engineer → QA Reviewer" in message
    assert "a" * 300 + "…" in message


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def test_parser_maps_flags():
    args = cli.build_parser().parse_args(
        ["-p", "shop", "-m", "add wishlists", "--feat", "--from", "3", "-r", "cursor/a-1", "-i", "--scope", "large"]
    )

    request = cli.request_from_args(args)

    assert request.mode == RunMode.FEAT
    assert request.start_phase == 3
    assert request.resume_ref == "cursor/a-1"
    assert request.interactive
    assert request.scope == ScopeTier.LARGE


def test_parser_defaults_to_auto_mode():
    args = cli.build_parser().parse_args(["-p", "shop", "-m", "x"])

    assert args.mode == RunMode.AUTO
    assert args.scope is None


def test_mode_flags_are_exclusive():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["-p", "shop", "-m", "x", "--feat", "--fix"])


def test_main_rejects_invalid_request():
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["-p", "shop", "-m", "x", "--from", "4"])

    assert exc_info.value.code == 2


def test_main_pre_flight_failure(monkeypatch):
    monkeypatch.delenv("PIPELINE_CURSOR_API_KEY", raising=False)
    monkeypatch.setattr(cli, "get_settings", lambda: PipelineSettings(_env_file=None))

    assert cli.main(["-p", "shop", "-m", "x"]) == 1


def test_redact_secret():
    assert cli._redact_secret(None) == "(not set)"
    assert cli._redact_secret("abc") == "***"
    assert cli._redact_secret("ghp_secret") == "ghp_******"


def test_frontend_choice():
    settings = _make_settings(slack_bot_token="xoxb-1")
    services = cli.build_services(settings)
    context = run_async(
        RunPreparer(settings, AsyncMock(), _make_github(is_new=True)).prepare(RunRequest(project="shop", prompt="x"))
    ).context

    assert isinstance(cli.build_frontend(settings, services, context), TerminalApprovalFrontend)
    context.chat_channel = "C1"
    assert isinstance(cli.build_frontend(settings, services, context), SlackApprovalFrontend)
    assert isinstance(cli.build_frontend(settings, cli.build_services(_make_settings()), context), TerminalApprovalFrontend)
