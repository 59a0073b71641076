"""Unit tests for the agent and deployment clients using httpx.MockTransport."""

import asyncio
import base64
import json
from typing import List

import httpx
import pytest

from agent_pipeline.agents.client import AgentClient, RepositoryAccessError
from agent_pipeline.config import MissingCapability
from agent_pipeline.deploy.client import DeployClient
from agent_pipeline.jobs.poller import JobPoller
from agent_pipeline.phases.models import Phase, PhaseKind
from agent_pipeline.state.models import RunContext, RunMode, ScopeTier
from agent_pipeline.transport.client import APIError
from agent_pipeline.transport.retry import RetryingTransport, RetryPolicy


def run_async(coro):
    return asyncio.run(coro)


async def _no_sleep(seconds):
    return None


def _recorder(handler, requests: List[httpx.Request]) -> httpx.MockTransport:
    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(record)


def _transport() -> RetryingTransport:
    return RetryingTransport(RetryPolicy(max_retries=1), sleep=_no_sleep)


def _make_context() -> RunContext:
    return RunContext(
        project="shop",
        user_prompt="add a shopping cart",
        repo_url="https://github.com/acme/shop.git",
        owner="acme",
        target_branch="feat/cart",
        current_ref="feat/cart",
        mode=RunMode.FEAT,
        scope=ScopeTier.MICRO,
    )


# ---------------------------------------------------------------------------
# AgentClient
# ---------------------------------------------------------------------------


def _make_agents(handler, requests: List[httpx.Request]) -> AgentClient:
    return AgentClient("key_abc", _transport(), http_transport=_recorder(handler, requests))


def test_submit_sends_prompt_source_and_model():
    requests: List[httpx.Request] = []
    agents = _make_agents(lambda request: httpx.Response(201, json={"id": "bc_42"}), requests)
    phase = Phase("Architect", "claude-opus", "🏗️", PhaseKind.STANDARD, lambda ctx: f"design {ctx.project}")

    job_id = run_async(agents.submit(phase, _make_context(), "cursor/requirements-1"))

    assert job_id == "bc_42"
    request = requests[0]
    assert request.url.path == "/v0/agents"
    body = json.loads(request.content)
    assert body["prompt"]["text"] == "design shop"
    assert body["source"] == {"repository": "https://github.com/acme/shop.git", "ref": "cursor/requirements-1"}
    assert body["model"] == "claude-opus"
    assert body["target"]["autoCreatePr"] is False
    expected = "Basic " + base64.b64encode(b"key_abc:").decode()
    assert request.headers["Authorization"] == expected


@pytest.mark.parametrize(
    "record,expected_ref",
    [
        ({"status": "FINISHED", "target": {"branchName": "cursor/arch-1"}}, "cursor/arch-1"),
        ({"status": "RUNNING", "target": {"branchName": ""}}, None),
        ({"status": "CREATING"}, None),
    ],
)
def test_status_reads_produced_branch(record, expected_ref):
    agents = _make_agents(lambda request: httpx.Response(200, json={"id": "bc_1", **record}), [])

    status = run_async(agents.status("bc_1"))

    assert status.state == record["status"]
    assert status.produced_ref == expected_ref


def test_inject_followup_posts_text():
    requests: List[httpx.Request] = []
    agents = _make_agents(lambda request: httpx.Response(200, json={"id": "bc_1"}), requests)

    run_async(agents.inject_followup("bc_1", "make the header sticky"))

    assert requests[0].url.path == "/v0/agents/bc_1/followup"
    assert json.loads(requests[0].content) == {"prompt": {"text": "make the header sticky"}}


def test_repository_access_check():
    repos = {"repositories": [{"owner": "acme", "name": "shop"}, {"owner": "acme", "name": "blog"}]}
    agents = _make_agents(lambda request: httpx.Response(200, json=repos), [])

    run_async(agents.verify_repository_access("acme", "shop"))
    with pytest.raises(RepositoryAccessError, match="acme/wiki"):
        run_async(agents.verify_repository_access("acme", "wiki"))


def test_client_error_is_api_error():
    agents = _make_agents(lambda request: httpx.Response(404, json={"error": "not found"}), [])

    with pytest.raises(APIError) as exc_info:
        run_async(agents.get_agent("bc_missing"))

    assert exc_info.value.status_code == 404
    assert exc_info.value.service == "cursor"


def test_non_json_success_body_is_api_error():
    agents = _make_agents(lambda request: httpx.Response(200, text="<html>gateway</html>"), [])

    with pytest.raises(APIError) as exc_info:
        run_async(agents.status("bc_1"))

    assert exc_info.value.status_code == 200
    assert "gateway" in exc_info.value.response_body
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_list_models_and_agent_url():
    agents = _make_agents(lambda request: httpx.Response(200, json={"models": ["gpt-5", "claude-opus"]}), [])

    assert run_async(agents.list_models()) == ["gpt-5", "claude-opus"]
    assert AgentClient.agent_url("bc_7") == "https://cursor.com/agents?id=bc_7"


# ---------------------------------------------------------------------------
# DeployClient
# ---------------------------------------------------------------------------


def _make_deployer(states: List[str], requests: List[httpx.Request], token="vercel_tok") -> DeployClient:
    remaining = list(states)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "dpl_1"})
        return httpx.Response(200, json={"readyState": remaining.pop(0), "url": "shop-abc.vercel.app"})

    return DeployClient(
        token,
        _transport(),
        JobPoller(interval=10, max_attempts=3, sleep=_no_sleep),
        http_transport=_recorder(handler, requests),
    )


def test_deploy_returns_preview_url():
    requests: List[httpx.Request] = []
    deployer = _make_deployer(["QUEUED", "BUILDING", "READY"], requests)

    url = run_async(deployer.deploy("acme", "shop", "feat/cart"))

    assert url == "https://shop-abc.vercel.app"
    create = json.loads(requests[0].content)
    assert create["gitSource"] == {"type": "github", "org": "acme", "repo": "shop", "ref": "feat/cart"}
    assert requests[0].headers["Authorization"] == "Bearer vercel_tok"
    assert [r.url.path for r in requests[1:]] == ["/v13/deployments/dpl_1"] * 3


@pytest.mark.parametrize("states", [["BUILDING", "ERROR"], ["BUILDING", "BUILDING", "BUILDING"]])
def test_failed_or_slow_build_returns_none(states):
    deployer = _make_deployer(states, [])

    assert run_async(deployer.deploy("acme", "shop", "main")) is None


def test_deploy_without_token_is_missing_capability():
    requests: List[httpx.Request] = []
    deployer = _make_deployer([], requests, token=None)

    with pytest.raises(MissingCapability):
        run_async(deployer.deploy("acme", "shop", "main"))
    assert requests == []
