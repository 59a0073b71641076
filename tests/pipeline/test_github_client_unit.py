"""Unit tests for the GitHub client using httpx.MockTransport."""

import asyncio
import base64
import json
from typing import List

import httpx
import pytest

from agent_pipeline.github.client import GitHubAPIError, GitHubClient, MergeConflict
from agent_pipeline.github.models import FileChange, MergeStatus
from agent_pipeline.transport.retry import RetryingTransport, RetryPolicy


def run_async(coro):
    return asyncio.run(coro)


async def _no_sleep(seconds):
    return None


def _make_client(handler, requests: List[httpx.Request]) -> GitHubClient:
    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return GitHubClient(
        token="ghp_test",
        transport=RetryingTransport(RetryPolicy(max_retries=1), sleep=_no_sleep),
        http_transport=httpx.MockTransport(record),
        sleep=_no_sleep,
    )


# ---------------------------------------------------------------------------
# Merges
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (201, MergeStatus.MERGED),
        (204, MergeStatus.MERGED),
        (409, MergeStatus.CONFLICT),
        (422, MergeStatus.ERROR),
    ],
)
def test_merge_outcomes(status_code, expected):
    requests: List[httpx.Request] = []

    def handler(request):
        body = {"sha": "abc123"} if status_code == 201 else {"message": "nope"}
        return httpx.Response(status_code, json=body)

    github = _make_client(handler, requests)
    result = run_async(github.merge("acme", "shop", "cursor/engineer-1", "feat/cart"))

    assert result.status == expected
    payload = json.loads(requests[0].content)
    assert payload["head"] == "cursor/engineer-1"
    assert payload["base"] == "feat/cart"
    assert requests[0].headers["Authorization"] == "Bearer ghp_test"


def test_merge_conflict_recovery_instructions():
    conflict = MergeConflict(head="cursor/designer-2", base="main")

    instructions = conflict.recovery_instructions(next_phase=4)

    assert "git merge origin/cursor/designer-2" in instructions
    assert instructions[-1] == "Resume with: --from 4 --ref cursor/designer-2"


# ---------------------------------------------------------------------------
# Branches and repositories
# ---------------------------------------------------------------------------


def test_branch_exists_maps_404_to_false():
    def handler(request):
        if request.url.path.endswith("/branches/main"):
            return httpx.Response(200, json={"name": "main"})
        return httpx.Response(404, json={"message": "Branch not found"})

    github = _make_client(handler, [])

    assert run_async(github.branch_exists("acme", "shop", "main")) is True
    assert run_async(github.branch_exists("acme", "shop", "feat/cart")) is False


def test_create_branch_points_at_source_sha():
    requests: List[httpx.Request] = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"object": {"sha": "base-sha"}})
        return httpx.Response(201, json={"ref": "refs/heads/feat/cart"})

    github = _make_client(handler, requests)
    run_async(github.create_branch("acme", "shop", "feat/cart", "main"))

    assert requests[0].url.path == "/repos/acme/shop/git/refs/heads/main"
    assert json.loads(requests[1].content) == {"ref": "refs/heads/feat/cart", "sha": "base-sha"}


def test_ensure_repo_creates_and_waits_for_default_branch():
    branch_checks = {"count": 0}

    def handler(request):
        path = request.url.path
        if path == "/repos/acme/new-app":
            return httpx.Response(404)
        if path == "/user/repos":
            return httpx.Response(201, json={"html_url": "https://github.com/acme/new-app"})
        if path.endswith("/branches/main"):
            branch_checks["count"] += 1
            return httpx.Response(200 if branch_checks["count"] >= 2 else 404, json={})
        return httpx.Response(500)

    github = _make_client(handler, [])
    info = run_async(github.ensure_repo("acme", "new-app"))

    assert info.is_new
    assert info.clone_url == "https://github.com/acme/new-app.git"
    assert branch_checks["count"] == 2


def test_ensure_repo_existing():
    github = _make_client(lambda request: httpx.Response(200, json={"name": "shop"}), [])

    info = run_async(github.ensure_repo("acme", "shop"))

    assert not info.is_new


def test_api_error_carries_status():
    github = _make_client(lambda request: httpx.Response(403, text="forbidden"), [])

    with pytest.raises(GitHubAPIError) as exc_info:
        run_async(github.get_branch_sha("acme", "shop", "main"))

    assert exc_info.value.status_code == 403


# ---------------------------------------------------------------------------
# Contents
# ---------------------------------------------------------------------------


def test_read_file_missing_returns_none():
    github = _make_client(lambda request: httpx.Response(404), [])

    assert run_async(github.read_file("acme", "shop", "main", "docs/x.md")) is None


def test_commit_file_updates_existing_sha():
    requests: List[httpx.Request] = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"sha": "old-sha"})
        return httpx.Response(200, json={"content": {}})

    github = _make_client(handler, requests)
    run_async(github.commit_file("acme", "shop", "cursor/x", "docs/a.md", "hello", "docs: a"))

    body = json.loads(requests[1].content)
    assert body["sha"] == "old-sha"
    assert body["branch"] == "cursor/x"
    assert base64.b64decode(body["content"]) == b"hello"


def test_commit_files_is_one_commit_and_moves_ref_last():
    requests: List[httpx.Request] = []

    def handler(request):
        path = request.url.path
        if path.endswith("/git/refs/heads/cursor/x") and request.method == "GET":
            return httpx.Response(200, json={"object": {"sha": "head-sha"}})
        if "/git/commits/" in path:
            return httpx.Response(200, json={"tree": {"sha": "base-tree"}})
        if path.endswith("/git/blobs"):
            return httpx.Response(201, json={"sha": f"blob-{len(requests)}"})
        if path.endswith("/git/trees"):
            return httpx.Response(201, json={"sha": "new-tree"})
        if path.endswith("/git/commits"):
            return httpx.Response(201, json={"sha": "new-commit"})
        return httpx.Response(200, json={"object": {"sha": "new-commit"}})

    github = _make_client(handler, requests)
    files = [FileChange("public/logo.png", b"\x89PNG"), FileChange("public/hero.png", b"\x89PNG2")]

    sha = run_async(github.commit_files("acme", "shop", "cursor/x", files, "feat: assets"))

    assert sha == "new-commit"
    assert [r.method for r in requests][-1] == "PATCH"
    assert sum(1 for r in requests if r.url.path.endswith("/git/blobs")) == 2
    commit_body = json.loads(next(r for r in requests if r.url.path.endswith("/git/commits")).content)
    assert commit_body["parents"] == ["head-sha"]


def test_commit_files_failure_leaves_ref_untouched():
    requests: List[httpx.Request] = []

    def handler(request):
        path = request.url.path
        if path.endswith("/git/trees"):
            return httpx.Response(422, json={"message": "bad tree"})
        if "/git/commits/" in path:
            return httpx.Response(200, json={"tree": {"sha": "base-tree"}})
        return httpx.Response(200, json={"object": {"sha": "head-sha"}, "sha": "blob"})

    github = _make_client(handler, requests)

    with pytest.raises(GitHubAPIError):
        run_async(github.commit_files("acme", "shop", "cursor/x", [FileChange("a.png", b"1")], "m"))

    assert not any(r.method == "PATCH" for r in requests)


def test_open_change_request_returns_url():
    requests: List[httpx.Request] = []
    github = _make_client(
        lambda request: httpx.Response(201, json={"html_url": "https://github.com/acme/shop/pull/7", "number": 7}),
        requests,
    )

    url = run_async(github.open_change_request("acme", "shop", "feat/cart", "main", "feat: cart", "body"))

    assert url == "https://github.com/acme/shop/pull/7"
    assert json.loads(requests[0].content)["base"] == "main"
