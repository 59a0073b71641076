"""GitHub API client for repository, branch and content operations.

This module provides an async wrapper around the GitHub REST API for:
- Ensuring the project repository exists
- Branch existence checks, creation and merges
- Reading and committing files (single-file and atomic multi-file)
- Opening pull requests

Retries, backoff and rate limiting are handled by the shared
RetryingTransport; this client only interprets final responses.

Source:
- agent_pipeline/transport/client.py (ServiceClient, APIError)
- agent_pipeline/github/models.py (FileChange, MergeResult, RepositoryInfo)
"""

import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from agent_pipeline.github.models import FileChange, MergeResult, MergeStatus, RepositoryInfo
from agent_pipeline.transport.client import APIError, ServiceClient
from agent_pipeline.transport.retry import RetryingTransport


logger = logging.getLogger(__name__)


class GitHubAPIError(APIError):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """


class MergeConflict(Exception):
    """Raised when a phase branch cannot be merged automatically.

    Carries what the operator needs to resolve the conflict by hand and
    resume the run.

    Attributes:
        head: Branch that was being merged.
        base: Branch it was being merged into.
    """

    def __init__(self, head: str, base: str):
        self.head = head
        self.base = base
        super().__init__(f"Merge conflict: {head} -> {base}")

    def recovery_instructions(self, next_phase: int) -> List[str]:
        """Manual git steps followed by the command-line resume hint."""
        return [
            "git fetch origin",
            f"git checkout {self.base}",
            f"git merge origin/{self.head}",
            f"# fix conflicts, then: git push origin {self.base}",
            f"Resume with: --from {next_phase} --ref {self.head}",
        ]


class GitHubClient(ServiceClient):
    """Async GitHub API client.

    Supports both github.com and GitHub Enterprise Server via ``base_url``.

    Example:
        >>> async with GitHubClient(token, transport) as github:
        ...     if not await github.branch_exists("acme", "shop", "feat/cart"):
        ...         await github.create_branch("acme", "shop", "feat/cart")
    """

    service = "github"

    def __init__(
        self,
        token: str,
        transport: RetryingTransport,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(base_url, transport, timeout=timeout, http_transport=http_transport)
        self.token = token
        self._sleep = sleep

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "agent-pipeline/1.0",
        }

    def _error_for(self, response: httpx.Response, method: str, path: str) -> GitHubAPIError:
        base = super()._error_for(response, method, path)
        return GitHubAPIError(
            message=f"GitHub API error: {response.status_code} ({method} {path})",
            service=base.service,
            status_code=base.status_code,
            response_body=base.response_body,
            request_url=base.request_url,
        )

    async def _get_optional(self, path: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
        """GET a resource, returning None on 404."""
        response = await self._request("GET", path, **kwargs)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise self._error_for(response, "GET", path)
        return self._decode(response, "GET", path)

    @staticmethod
    def clone_url(owner: str, repo: str) -> str:
        return f"https://github.com/{owner}/{repo}.git"

    @staticmethod
    def raw_url(owner: str, repo: str, ref: str, path: str) -> str:
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{ref}/{path}"

    # ------------------------------------------------------------------
    # Repositories and branches
    # ------------------------------------------------------------------

    async def get_repo(self, owner: str, repo: str) -> Optional[Dict[str, Any]]:
        return await self._get_optional(f"/repos/{owner}/{repo}")

    async def ensure_repo(
        self,
        owner: str,
        repo: str,
        default_branch: str = "main",
        wait_attempts: int = 15,
        wait_interval: float = 2.0,
    ) -> RepositoryInfo:
        """Return the repository, creating it when it does not exist.

        A new repository is created with an initial commit; this method
        then waits for its default branch to become visible, proceeding
        with a warning if it never does.

        Raises:
            GitHubAPIError: If creation fails.
        """
        if await self.get_repo(owner, repo) is not None:
            logger.info("Repository github.com/%s/%s (existing)", owner, repo)
            return RepositoryInfo(clone_url=self.clone_url(owner, repo), is_new=False)

        logger.info("Creating repository github.com/%s/%s", owner, repo)
        created = await self._request_json(
            "POST",
            "/user/repos",
            json_data={
                "name": repo,
                "description": "Auto-created by agent pipeline",
                "private": False,
                "auto_init": True,
            },
        )
        logger.info("Created %s", created.get("html_url"), extra={"owner": owner, "repo": repo})

        for _ in range(wait_attempts):
            await self._sleep(wait_interval)
            if await self.branch_exists(owner, repo, default_branch):
                logger.info("Branch '%s' is ready", default_branch)
                break
        else:
            logger.warning(
                "Timed out waiting for branch '%s', proceeding",
                default_branch,
                extra={"owner": owner, "repo": repo},
            )

        return RepositoryInfo(clone_url=self.clone_url(owner, repo), is_new=True)

    async def branch_exists(self, owner: str, repo: str, branch: str) -> bool:
        return await self._get_optional(f"/repos/{owner}/{repo}/branches/{branch}") is not None

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        """Return the commit SHA a branch points at.

        Raises:
            GitHubAPIError: If the branch does not exist.
        """
        data = await self._request_json("GET", f"/repos/{owner}/{repo}/git/refs/heads/{branch}")
        return data["object"]["sha"]

    async def create_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        from_branch: str = "main",
    ) -> None:
        sha = await self.get_branch_sha(owner, repo, from_branch)
        await self._request_json(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json_data={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        logger.info(
            "Created branch %s (from %s)",
            branch,
            from_branch,
            extra={"owner": owner, "repo": repo},
        )

    async def merge(self, owner: str, repo: str, head: str, base: str) -> MergeResult:
        """Merge ``head`` into ``base``.

        GitHub answers 201 with the merge commit, 204 when base already
        contains head, and 409 on conflicts. Anything else is an error.
        """
        logger.info("Merging %s -> %s", head, base, extra={"owner": owner, "repo": repo})
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/merges",
            json_data={
                "base": base,
                "head": head,
                "commit_message": f"chore: merge {head} into {base} [agent pipeline]",
            },
        )

        if response.status_code == 201:
            try:
                sha = response.json().get("sha")
            except ValueError:
                sha = None
            logger.info("Merged", extra={"head": head, "base": base, "sha": sha})
            return MergeResult(status=MergeStatus.MERGED, sha=sha)
        if response.status_code == 204:
            logger.info("Nothing to merge (already up to date)", extra={"head": head, "base": base})
            return MergeResult(status=MergeStatus.MERGED)
        if response.status_code == 409:
            logger.error("Merge conflict", extra={"head": head, "base": base})
            return MergeResult(status=MergeStatus.CONFLICT, message=response.text[:300])

        logger.error(
            "Merge failed",
            extra={"head": head, "base": base, "status_code": response.status_code},
        )
        return MergeResult(
            status=MergeStatus.ERROR,
            message=f"merge {head} -> {base} failed ({response.status_code}): {response.text[:300]}",
        )

    async def open_change_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
    ) -> Optional[str]:
        """Open a pull request and return its URL.

        Raises:
            GitHubAPIError: If GitHub rejects the pull request.
        """
        logger.info(
            "Creating pull request",
            extra={"owner": owner, "repo": repo, "title": title, "head": head, "base": base},
        )
        data = await self._request_json(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json_data={"title": title, "body": body, "head": head, "base": base, "draft": False},
        )
        url = data.get("html_url")
        logger.info("Pull request created", extra={"pr_url": url, "pr_number": data.get("number")})
        return url

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    def _contents_path(self, owner: str, repo: str, path: str) -> str:
        return f"/repos/{owner}/{repo}/contents/{quote(path)}"

    async def read_file(self, owner: str, repo: str, ref: str, path: str) -> Optional[str]:
        """Return the text of ``path`` at ``ref``, or None if it does not exist."""
        api_path = self._contents_path(owner, repo, path)
        response = await self._request(
            "GET",
            api_path,
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw"},
        )
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise self._error_for(response, "GET", api_path)
        return response.text

    async def commit_file(
        self,
        owner: str,
        repo: str,
        branch: str,
        path: str,
        content: str,
        message: str,
    ) -> None:
        """Create or update a single text file on ``branch``."""
        api_path = self._contents_path(owner, repo, path)
        existing = await self._get_optional(api_path, params={"ref": branch})

        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if existing and "sha" in existing:
            body["sha"] = existing["sha"]

        await self._request_json("PUT", api_path, json_data=body)
        logger.info("Committed %s", path, extra={"owner": owner, "repo": repo, "branch": branch})

    async def commit_files(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: List[FileChange],
        message: str,
    ) -> str:
        """Commit several files as one commit using the git data API.

        Blobs are created first, then one tree and one commit on top of the
        branch head; the branch ref is moved only once everything else
        succeeded, so a failure leaves the branch untouched.

        Returns:
            SHA of the new commit.
        """
        if not files:
            raise ValueError("commit_files needs at least one file")

        prefix = f"/repos/{owner}/{repo}/git"
        base_sha = await self.get_branch_sha(owner, repo, branch)
        base_commit = await self._request_json("GET", f"{prefix}/commits/{base_sha}")
        base_tree = base_commit["tree"]["sha"]

        tree_entries = []
        for change in files:
            blob = await self._request_json(
                "POST",
                f"{prefix}/blobs",
                json_data={"content": change.base64, "encoding": "base64"},
            )
            tree_entries.append(
                {"path": change.path, "mode": "100644", "type": "blob", "sha": blob["sha"]}
            )

        tree = await self._request_json(
            "POST",
            f"{prefix}/trees",
            json_data={"base_tree": base_tree, "tree": tree_entries},
        )
        commit = await self._request_json(
            "POST",
            f"{prefix}/commits",
            json_data={"message": message, "tree": tree["sha"], "parents": [base_sha]},
        )
        await self._request_json(
            "PATCH",
            f"{prefix}/refs/heads/{branch}",
            json_data={"sha": commit["sha"]},
        )

        logger.info(
            "Committed %d file(s) to %s",
            len(files),
            branch,
            extra={"owner": owner, "repo": repo, "sha": commit["sha"]},
        )
        return commit["sha"]
