# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Kestra API Client

Starts the remediation flow through its webhook trigger and reads execution
state through the admin API.
"""

from typing import Optional, Dict, Any

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import ExecutionState
from resurrectci.core.ports import Availability, ExecutionStatus, WorkflowEngine
from resurrectci.exceptions import KestraAPIError, MissingCredentialsError
from resurrectci.utils.circuit_breaker import CircuitBreaker
from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)


class KestraClient(WorkflowEngine):
    """
    HTTP client for a Kestra server.

    The webhook trigger needs no credentials; reading an execution requires
    `KESTRA_API_TOKEN`.

    Example:
        ```python
        kestra = KestraClient()
        if await kestra.is_available():
            execution_id = await kestra.trigger_execution({"deployment_id": "dpl_1", ...})
        ```
    """

    HEALTH_TIMEOUT = 3.0

    def __init__(
        self,
        settings: Optional[Settings] = None,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.kestra_url).rstrip("/")
        self.api_token = api_token or self.settings.kestra_api_token
        self.namespace = self.settings.kestra_namespace
        self.flow_id = self.settings.kestra_flow_id
        self.webhook_key = self.settings.kestra_webhook_key

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=3,
            timeout=120.0,
            expected_exception=KestraAPIError,
            name="kestra_api",
        )

    @property
    def webhook_path(self) -> str:
        return f"/api/v1/executions/webhook/{self.namespace}/{self.flow_id}/{self.webhook_key}"

    def _admin_headers(self) -> Dict[str, str]:
        if not self.api_token:
            raise MissingCredentialsError("KESTRA_API_TOKEN")
        return {"Authorization": f"Bearer {self.api_token}"}

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        return await self.client.request(method, endpoint, **kwargs)

    async def _checked(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._send(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("kestra_http_error", method=method, endpoint=endpoint, error=str(e))
            raise KestraAPIError(f"HTTP error: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "kestra_api_error",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise KestraAPIError(
                f"{method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self.circuit_breaker.call(self._checked, method, endpoint, **kwargs)

    async def is_available(self) -> Availability:
        if not self.base_url:
            return Availability.down("KESTRA_URL is not configured")

        try:
            response = await self.client.get("/health", timeout=self.HEALTH_TIMEOUT)
        except httpx.HTTPError as e:
            logger.info("kestra_unreachable", url=self.base_url, error=str(e))
            return Availability.down(f"Kestra unreachable at {self.base_url}: {e}")

        if response.status_code >= 500:
            return Availability.down(f"Kestra health check returned {response.status_code}")

        return Availability.up()

    async def trigger_execution(self, inputs: Dict[str, Any]) -> Optional[str]:
        logger.info(
            "kestra_trigger_execution",
            namespace=self.namespace,
            flow_id=self.flow_id,
            deployment_id=inputs.get("deployment_id"),
        )

        data = await self._request("POST", self.webhook_path, json=inputs)
        execution_id = data.get("id")

        logger.info("kestra_execution_started", execution_id=execution_id)
        return execution_id

    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        """
        Read the current state of an execution.

        Raises:
            MissingCredentialsError: If no API token is configured
            KestraAPIError: If the request fails
        """
        data = await self._request(
            "GET",
            f"/api/v1/executions/{execution_id}",
            headers=self._admin_headers(),
        )

        raw_state = (data.get("state") or {}).get("current", "RUNNING")
        try:
            state = ExecutionState(raw_state)
        except ValueError:
            state = ExecutionState.RUNNING

        return ExecutionStatus(id=execution_id, state=state, outputs=data.get("outputs") or {})

    async def close(self) -> None:
        await self.client.aclose()
