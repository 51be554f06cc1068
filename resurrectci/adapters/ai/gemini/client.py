# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

import json
import re
from typing import Optional, Dict, Any, List

import httpx
import structlog

from resurrectci.adapters.ai.gemini.prompts import SYSTEM_PROMPT, build_analysis_prompt
from resurrectci.core.config import Settings, get_settings
from resurrectci.core.models import AIAnalysis
from resurrectci.core.ports import AIAnalysisProvider
from resurrectci.exceptions import GeminiAPIError, MissingCredentialsError

logger = structlog.get_logger(__name__)


class GeminiClient(AIAnalysisProvider):
    """
    Client for the Gemini `generateContent` endpoint.

    Makes exactly one HTTP call per `analyze()`. Rate limiting and retries are
    the caller's job; failures surface as `GeminiAPIError` with the HTTP
    status so callers can tell rate limits (429) from other errors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        settings: Optional[Settings] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key (defaults to settings)
            model: Model name (defaults to settings)
            settings: Application settings
            timeout: Request timeout in seconds (defaults to settings)
            transport: Optional httpx transport (tests)
        """
        self.settings = settings or get_settings()
        self.api_key = api_key or self.settings.gemini_api_key
        self.model = model or self.settings.gemini_model
        self.timeout = timeout or self.settings.gemini_api_timeout

        self.client = httpx.AsyncClient(
            base_url=self.settings.gemini_api_base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

        logger.info(
            "gemini_client_initialized",
            model=self.model,
            configured=self.is_configured,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def analyze(
        self,
        error_text: str,
        log_lines: List[str],
        metadata: Dict[str, Any],
    ) -> AIAnalysis:
        """
        Ask Gemini for a root cause and a fix.

        Args:
            error_text: The failing log line(s)
            log_lines: Error-level build log lines
            metadata: Deployment name, environment and branch

        Returns:
            AIAnalysis with the model's answer

        Raises:
            MissingCredentialsError: If no API key is configured
            GeminiAPIError: If the request fails
        """
        if not self.api_key:
            raise MissingCredentialsError("GEMINI_API_KEY")

        prompt = build_analysis_prompt(error_text, log_lines, metadata)
        text = await self.generate(prompt)
        return self._parse_analysis(text)

    async def generate(self, prompt: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.2,
                "maxOutputTokens": 4096,
                "responseMimeType": "application/json",
            },
        }
        endpoint = f"/models/{self.model}:generateContent"

        try:
            response = await self.client.post(endpoint, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as e:
            logger.error("gemini_api_timeout", model=self.model, timeout=self.timeout)
            raise GeminiAPIError(f"Request timed out after {self.timeout}s", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error("gemini_api_network_error", model=self.model, error=str(e))
            raise GeminiAPIError(f"Network error: {e}", status_code=503) from e

        if response.status_code >= 400:
            detail = self._extract_error_detail(response)
            logger.warning(
                "gemini_api_error",
                model=self.model,
                status_code=response.status_code,
                error=detail,
            )
            raise GeminiAPIError(
                detail or f"API request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise GeminiAPIError(f"Unexpected response shape: {str(data)[:200]}") from e

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            error_json = response.json()
        except ValueError:
            return response.text

        if isinstance(error_json, dict) and "error" in error_json:
            if isinstance(error_json["error"], dict):
                return error_json["error"].get("message", str(error_json["error"]))
            return str(error_json["error"])
        return str(error_json)

    def _parse_analysis(self, text: str) -> AIAnalysis:
        """
        Parse the model answer into an AIAnalysis.

        Accepts bare JSON, fenced JSON, or prose; prose becomes the root cause.
        """
        json_text = text.strip()

        fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", json_text, re.DOTALL)
        if fenced:
            json_text = fenced.group(1)
        elif not json_text.startswith("{"):
            match = re.search(r"\{.*\}", json_text, re.DOTALL)
            if match:
                json_text = match.group(0)

        try:
            parsed = json.loads(json_text)
        except json.JSONDecodeError:
            logger.warning("gemini_response_not_json", response_text=text[:300])
            return AIAnalysis(root_cause=text.strip(), suggested_patch=text.strip())

        def as_text(value: Any) -> Optional[str]:
            if value is None:
                return None
            if isinstance(value, str):
                return value
            return json.dumps(value, indent=2)

        return AIAnalysis(
            root_cause=as_text(parsed.get("analysis")) or "No analysis provided",
            suggested_patch=as_text(parsed.get("fix")),
            prevention=as_text(parsed.get("prevention")),
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
