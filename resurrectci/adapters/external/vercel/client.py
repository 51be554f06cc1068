# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Vercel API Client

Reads deployment state and build events, lists recent deployments and
triggers git-based redeploys through the Vercel REST API.
"""

import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import DeploymentEnvironment, DeploymentStatus
from resurrectci.core.ports import DeploymentPlatform, PlatformDeployment, PlatformLogEvent
from resurrectci.exceptions import VercelAPIError, MissingCredentialsError
from resurrectci.utils.circuit_breaker import CircuitBreaker
from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_MAP = {
    "BUILDING": DeploymentStatus.BUILDING,
    "INITIALIZING": DeploymentStatus.BUILDING,
    "READY": DeploymentStatus.READY,
    "ERROR": DeploymentStatus.ERROR,
    "QUEUED": DeploymentStatus.QUEUED,
    "CANCELED": DeploymentStatus.CANCELED,
}


def map_status(state: Optional[str]) -> DeploymentStatus:
    """Map a Vercel readyState to the internal status. Unknown values count as building."""
    if not state:
        return DeploymentStatus.BUILDING
    return STATUS_MAP.get(state.upper(), DeploymentStatus.BUILDING)


def map_environment(target: Optional[str]) -> DeploymentEnvironment:
    if target == "production":
        return DeploymentEnvironment.PRODUCTION
    if target == "development":
        return DeploymentEnvironment.DEVELOPMENT
    return DeploymentEnvironment.PREVIEW


def _from_millis(value: Any) -> Optional[datetime]:
    if not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def parse_deployment(data: Dict[str, Any]) -> PlatformDeployment:
    """Build a PlatformDeployment from a v13 deployment or a v6 list item."""
    meta = data.get("meta") or {}
    url = data.get("url")
    if url and not url.startswith("http"):
        url = f"https://{url}"

    repository = None
    if meta.get("githubCommitOrg") and meta.get("githubCommitRepo"):
        repository = f"{meta['githubCommitOrg']}/{meta['githubCommitRepo']}"

    return PlatformDeployment(
        id=data.get("id") or data.get("uid"),
        name=data.get("name", ""),
        status=map_status(data.get("readyState") or data.get("state") or data.get("status")),
        environment=map_environment(data.get("target")),
        branch=meta.get("githubCommitRef") or "main",
        commit=meta.get("githubCommitSha"),
        url=url,
        created_at=_from_millis(data.get("createdAt") or data.get("created")),
        ready_at=_from_millis(data.get("ready")),
        project_id=data.get("projectId"),
        repository=repository,
    )


def parse_events(body: str) -> List[PlatformLogEvent]:
    """
    Parse the events endpoint body, either a JSON array or newline-delimited JSON.

    Positions are the event index in the stream, so they stay stable across polls.
    Lines that are not JSON are skipped.
    """
    body = body.strip()
    if not body:
        return []

    raw: List[Any]
    if body.startswith("["):
        raw = json.loads(body)
    else:
        raw = []
        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                raw.append(json.loads(line))
            except ValueError:
                logger.debug("vercel_event_unparseable", line=line[:120])

    events = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        payload = item.get("payload") or {}
        text = item.get("text") or payload.get("text")
        if not text:
            continue
        events.append(
            PlatformLogEvent(
                position=position,
                message=text.rstrip("\n"),
                kind=item.get("type"),
                timestamp=_from_millis(item.get("created") or payload.get("date")),
            )
        )
    return events


class VercelClient(DeploymentPlatform):
    """
    HTTP client for the Vercel REST API.

    Transport failures are retried with tenacity; repeated server failures
    open a circuit breaker.

    Example:
        ```python
        async with VercelClient(token="vc_...") as vercel:
            deployment = await vercel.get_status("dpl_123")
            events = await vercel.get_log_events("dpl_123")
        ```
    """

    def __init__(
        self,
        token: Optional[str] = None,
        team_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Vercel client.

        Args:
            token: Vercel API token (defaults to settings)
            team_id: Team scope added to every request (defaults to settings)
            settings: Application settings
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.settings = settings or get_settings()
        self.token = token or self.settings.vercel_token
        self.team_id = team_id or self.settings.vercel_team_id

        if not self.token:
            logger.warning("vercel_client_no_token", message="Vercel token not configured")

        self.client = httpx.AsyncClient(
            base_url=self.settings.vercel_api_base_url,
            timeout=httpx.Timeout(timeout),
            headers=self._get_headers(),
            transport=transport,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            timeout=60.0,
            expected_exception=VercelAPIError,
            name="vercel_api",
        )

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _params(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(extra or {})
        if self.team_id:
            params["teamId"] = self.team_id
        return params

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        return await self.client.request(method, endpoint, **kwargs)

    async def _checked(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        if not self.token:
            raise MissingCredentialsError("VERCEL_TOKEN")

        try:
            response = await self._send(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("vercel_api_timeout", method=method, endpoint=endpoint)
            raise VercelAPIError(f"Request timed out: {e}", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error("vercel_http_error", method=method, endpoint=endpoint, error=str(e))
            raise VercelAPIError(f"HTTP error: {e}") from e

        if response.status_code >= 400:
            detail = self._extract_error_detail(response)
            logger.error(
                "vercel_api_error",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
                error=detail,
            )
            raise VercelAPIError(
                detail or f"API request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        return await self.circuit_breaker.call(self._checked, method, endpoint, **kwargs)

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message", str(error))
        if error:
            return str(error)
        return str(data)

    async def get_status(self, deployment_id: str) -> PlatformDeployment:
        response = await self._request("GET", f"/v13/deployments/{deployment_id}", params=self._params())
        return parse_deployment(response.json())

    async def get_log_events(self, deployment_id: str) -> List[PlatformLogEvent]:
        response = await self._request(
            "GET",
            f"/v2/deployments/{deployment_id}/events",
            params=self._params({"builds": 1}),
        )
        return parse_events(response.text)

    async def list_deployments(self, limit: int = 10) -> List[PlatformDeployment]:
        response = await self._request("GET", "/v6/deployments", params=self._params({"limit": limit}))
        return [parse_deployment(item) for item in response.json().get("deployments", [])]

    async def get_project(self, project: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/v9/projects/{project}", params=self._params())
        return response.json()

    async def trigger_deployment(
        self,
        project: str,
        environment: DeploymentEnvironment,
        branch: str,
        repository: Optional[str] = None,
    ) -> PlatformDeployment:
        """
        Start a git-based deployment of `branch`.

        The git source is taken from `repository` ("owner/repo") when given,
        otherwise from the project's linked repository.

        Raises:
            VercelAPIError: If the project has no linked repository or the request fails
        """
        if repository and "/" in repository:
            org, repo = repository.split("/", 1)
            git_source: Dict[str, Any] = {"type": "github", "org": org, "repo": repo, "ref": branch}
        else:
            link = (await self.get_project(project)).get("link") or {}
            if link.get("repoId"):
                git_source = {"type": link.get("type", "github"), "repoId": link["repoId"], "ref": branch}
            elif link.get("org") and link.get("repo"):
                git_source = {"type": link.get("type", "github"), "org": link["org"], "repo": link["repo"], "ref": branch}
            else:
                raise VercelAPIError(f"Project {project} has no linked git repository", status_code=400)

        body: Dict[str, Any] = {"name": project, "project": project, "gitSource": git_source}
        if environment == DeploymentEnvironment.PRODUCTION:
            body["target"] = "production"

        logger.info("vercel_trigger_deployment", project=project, environment=environment.value, branch=branch)

        response = await self._request("POST", "/v13/deployments", params=self._params(), json=body)
        return parse_deployment(response.json())

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
