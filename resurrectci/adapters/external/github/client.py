# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
GitHub API Client

Provides HTTP client for publishing fixes through the GitHub API with:
- Token authentication
- Automatic retries with exponential backoff for transient failures
- Circuit breaker for fault tolerance
- Rate limit handling
- Pull request check aggregation
"""

import base64
from typing import Optional, Dict, Any, List
from datetime import datetime
import httpx

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import CheckState
from resurrectci.core.models import ChangeRequest
from resurrectci.core.ports import SourceControlHost
from resurrectci.exceptions import ExternalServiceError, GitHubAPIError
from resurrectci.utils.logging import get_logger
from resurrectci.utils.retry import retry
from resurrectci.utils.circuit_breaker import CircuitBreaker

logger = get_logger(__name__)

FAILING_CONCLUSIONS = {"failure", "cancelled", "timed_out", "action_required", "startup_failure"}


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, ExternalServiceError) and exc.is_transient


class GitHubClient(SourceControlHost):
    """
    HTTP client for GitHub API.

    Features:
    - Token authentication
    - Automatic retries with exponential backoff
    - Circuit breaker pattern for fault tolerance
    - Rate limit tracking and handling
    - Comprehensive error handling

    Example:
        ```python
        client = GitHubClient(token="ghp_...")

        await client.create_branch("myorg", "web", "resurrect-fix-1", base="main")
        await client.update_file(
            "myorg", "web", "package.json", content, "fix: add missing dependency", "resurrect-fix-1"
        )
        pr = await client.create_change_request(
            "myorg", "web", title="...", body="...", head="resurrect-fix-1", base="main"
        )
        ```
    """

    API_VERSION = "2022-11-28"

    def __init__(
        self,
        token: Optional[str] = None,
        settings: Optional[Settings] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: GitHub personal access token or app token
            settings: Application settings
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.settings = settings or get_settings()
        self.token = token or self.settings.github_token
        self.timeout = timeout

        if not self.token:
            logger.warning("github_client_no_token", message="GitHub token not configured")

        self.client = httpx.AsyncClient(
            base_url=self.settings.github_api_base_url,
            timeout=timeout,
            headers=self._get_default_headers(),
            follow_redirects=True,
            transport=transport,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            success_threshold=2,
            timeout=60.0,
            expected_exception=GitHubAPIError,
            name="github_api",
        )

        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset: Optional[datetime] = None

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }

        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        return headers

    def _update_rate_limit(self, headers: httpx.Headers) -> None:
        """Update rate limit information from response headers."""
        if "x-ratelimit-remaining" in headers:
            self._rate_limit_remaining = int(headers["x-ratelimit-remaining"])

        if "x-ratelimit-reset" in headers:
            self._rate_limit_reset = datetime.fromtimestamp(int(headers["x-ratelimit-reset"]))

    def _check_rate_limit(self) -> None:
        """Refuse to send when the remaining quota is exhausted."""
        if self._rate_limit_remaining is not None and self._rate_limit_remaining < 10:
            logger.warning(
                "github_rate_limit_low",
                remaining=self._rate_limit_remaining,
                reset_at=self._rate_limit_reset.isoformat() if self._rate_limit_reset else None,
            )

            if self._rate_limit_remaining == 0:
                wait_seconds = 0.0
                if self._rate_limit_reset:
                    wait_seconds = (self._rate_limit_reset - datetime.now()).total_seconds()

                if wait_seconds > 0:
                    raise GitHubAPIError(
                        f"GitHub API rate limit exceeded. Resets in {wait_seconds:.0f} seconds.",
                        status_code=429,
                    )

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Make HTTP request to GitHub API with error handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (without base URL)
            **kwargs: Additional arguments for httpx request

        Returns:
            Response JSON data

        Raises:
            GitHubAPIError: On API errors
        """
        self._check_rate_limit()

        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "github_http_error",
                method=method,
                endpoint=endpoint,
                error=str(e),
            )
            raise GitHubAPIError(f"HTTP error calling GitHub API: {e}") from e

        self._update_rate_limit(response.headers)

        if response.status_code >= 400:
            try:
                error_message = response.json().get("message", response.text)
            except ValueError:
                error_message = response.text

            log = logger.info if response.status_code == 404 else logger.error
            log(
                "github_api_error",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
                message=error_message,
            )

            raise GitHubAPIError(error_message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    async def _send(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.circuit_breaker.call(self._request, method, endpoint, **kwargs)

    @retry(max_attempts=3, base_delay=1.0, exceptions=(GitHubAPIError,), should_retry=_is_transient)
    async def get(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Make GET request to GitHub API."""
        return await self._send("GET", endpoint, **kwargs)

    @retry(max_attempts=3, base_delay=1.0, exceptions=(GitHubAPIError,), should_retry=_is_transient)
    async def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make POST request to GitHub API."""
        return await self._send("POST", endpoint, json=json, **kwargs)

    @retry(max_attempts=3, base_delay=1.0, exceptions=(GitHubAPIError,), should_retry=_is_transient)
    async def put(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make PUT request to GitHub API."""
        return await self._send("PUT", endpoint, json=json, **kwargs)

    @retry(max_attempts=3, base_delay=1.0, exceptions=(GitHubAPIError,), should_retry=_is_transient)
    async def delete(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make DELETE request to GitHub API."""
        return await self._send("DELETE", endpoint, json=json, **kwargs)

    # Branches and files

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        """Return the commit sha a branch points to."""
        data = await self.get(f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        return data["object"]["sha"]

    async def create_branch(self, owner: str, repo: str, branch: str, base: str) -> None:
        """
        Create `branch` from the head of `base`.

        An existing branch of the same name is reused.

        Raises:
            GitHubAPIError: If the base branch cannot be read or the ref cannot be created
        """
        sha = await self.get_branch_sha(owner, repo, base)

        logger.info("github_create_branch", owner=owner, repo=repo, branch=branch, base=base, sha=sha[:7])

        try:
            await self.post(
                f"/repos/{owner}/{repo}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except GitHubAPIError as e:
            if e.status_code != 422:
                raise
            logger.info("github_branch_exists", owner=owner, repo=repo, branch=branch)

    async def get_file(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the contents API entry of a file, or None when it does not exist."""
        params = {"ref": ref} if ref else None
        try:
            return await self.get(f"/repos/{owner}/{repo}/contents/{path}", params=params)
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Optional[str]:
        entry = await self.get_file(owner, repo, path, ref)
        if entry is None or "content" not in entry:
            return None
        return base64.b64decode(entry["content"]).decode("utf-8")

    async def update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> None:
        existing = await self.get_file(owner, repo, path, ref=branch)

        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if existing is not None:
            body["sha"] = existing["sha"]

        logger.info(
            "github_write_file",
            owner=owner,
            repo=repo,
            path=path,
            branch=branch,
            created=existing is None,
        )

        await self.put(f"/repos/{owner}/{repo}/contents/{path}", json=body)

    async def delete_file(
        self, owner: str, repo: str, path: str, message: str, branch: str
    ) -> None:
        existing = await self.get_file(owner, repo, path, ref=branch)
        if existing is None:
            raise GitHubAPIError(f"Cannot delete {path}: file not found on {branch}", status_code=404)

        logger.info("github_delete_file", owner=owner, repo=repo, path=path, branch=branch)

        await self.delete(
            f"/repos/{owner}/{repo}/contents/{path}",
            json={"message": message, "sha": existing["sha"], "branch": branch},
        )

    # Pull requests

    async def create_change_request(
        self, owner: str, repo: str, title: str, body: str, head: str, base: str
    ) -> ChangeRequest:
        logger.info("github_create_pull_request", owner=owner, repo=repo, head=head, base=base)

        data = await self.post(
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return ChangeRequest(
            number=data["number"],
            url=data.get("html_url", ""),
            owner=owner,
            repo=repo,
            branch=head,
            base=base,
            title=title,
        )

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return await self.get(f"/repos/{owner}/{repo}/pulls/{number}")

    async def get_change_status(self, owner: str, repo: str, number: int) -> CheckState:
        """
        Aggregate commit statuses and check runs on the pull request head.

        Returns:
            FAILING if anything failed, PENDING while anything is still running,
            NO_CHECKS when nothing reports on the head commit, PASSING otherwise
        """
        pr = await self.get_pull_request(owner, repo, number)
        sha = pr["head"]["sha"]

        combined = await self.get(f"/repos/{owner}/{repo}/commits/{sha}/status")
        runs = await self.get(f"/repos/{owner}/{repo}/commits/{sha}/check-runs")

        return aggregate_check_state(combined, runs.get("check_runs", []))

    async def merge_change(
        self, owner: str, repo: str, number: int, commit_title: Optional[str] = None
    ) -> None:
        body: Dict[str, Any] = {"merge_method": "squash"}
        if commit_title:
            body["commit_title"] = commit_title

        logger.info("github_merge_pull_request", owner=owner, repo=repo, number=number)

        data = await self.put(f"/repos/{owner}/{repo}/pulls/{number}/merge", json=body)
        if data and data.get("merged") is False:
            raise GitHubAPIError(data.get("message", "Pull request was not merged"), status_code=405)

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        """
        Create a comment on an issue or pull request.

        Args:
            owner: Repository owner
            repo: Repository name
            number: Issue or PR number
            body: Comment body
        """
        logger.info("github_create_comment", owner=owner, repo=repo, issue_number=number)

        await self.post(f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body})

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def aggregate_check_state(combined_status: Dict[str, Any], check_runs: List[Dict[str, Any]]) -> CheckState:
    """Fold a combined commit status and a list of check runs into one CheckState."""
    statuses = combined_status.get("statuses") or []
    combined_state = combined_status.get("state")

    if not statuses and not check_runs:
        return CheckState.NO_CHECKS

    if statuses and combined_state in ("failure", "error"):
        return CheckState.FAILING
    if any(run.get("conclusion") in FAILING_CONCLUSIONS for run in check_runs):
        return CheckState.FAILING

    if statuses and combined_state == "pending":
        return CheckState.PENDING
    if any(run.get("status") != "completed" for run in check_runs):
        return CheckState.PENDING

    return CheckState.PASSING
