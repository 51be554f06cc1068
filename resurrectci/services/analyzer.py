# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Fix Strategy Analyzer

Combines a pattern pass over the error text with a rate-limited AI analysis
to produce a FixStrategy for a DeploymentError.
"""

import asyncio
import json
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import ErrorStatus, FileAction, FixType
from resurrectci.core.models import AIAnalysis, Deployment, DeploymentError, FileChange, FixStrategy
from resurrectci.core.ports import AIAnalysisProvider
from resurrectci.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    GeminiAPIError,
    RateLimitExceededError,
    ResurrectCIException,
)
from resurrectci.services import templates
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.utils.logging import get_logger
from resurrectci.utils.rate_limiter import SlidingWindowRateLimiter
from resurrectci.utils.retry import retry_async

logger = get_logger(__name__)

ManifestReader = Callable[[str], Awaitable[Optional[str]]]

MANIFEST_PATH = "package.json"
DEFAULT_SOURCE_FILE = "src/App.tsx"

UNRESOLVED_MODULE = re.compile(r"(?:Can't resolve|Cannot find module) '([^']+)'")
FILE_REFERENCE = re.compile(r"\bin ([^\s:]+):")
MISSING_SCRIPT = re.compile(r'missing script:\s*"?([\w:.-]+)"?', re.IGNORECASE)
CODE_BLOCK = re.compile(r"```[\w+-]*\n(.*?)```", re.DOTALL)

CONFIG_FILES = re.compile(
    r"(^|/)(tsconfig[\w.-]*\.json|vite\.config\.\w+|next\.config\.\w+|"
    r"vercel\.json|\.env[\w.]*|\.babelrc|babel\.config\.\w+|\.eslintrc[\w.]*)$"
)

RATE_LIMIT_MARKERS = ("429", "quota", "rate limit")


@dataclass(frozen=True)
class FixPlan:
    """Outcome of the pattern pass, before any file content is produced."""
    type: FixType
    kind: str
    target: Optional[str] = None
    module: Optional[str] = None
    script: Optional[str] = None


def package_name(module: str) -> str:
    """
    Reduce an import specifier to the package that provides it.

    `@scope/pkg/sub` becomes `@scope/pkg`, `lodash/debounce` becomes `lodash`.
    """
    parts = module.split("/")
    if module.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


def component_path(module: str) -> str:
    """Map a relative import to the stub file created for it under src/."""
    path = module
    while path.startswith("./") or path.startswith("../"):
        path = path[2:] if path.startswith("./") else path[3:]
    path = path.lstrip("/")
    if "." not in path.rsplit("/", 1)[-1]:
        path = f"{path}.tsx"
    return f"src/{path}"


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, RateLimitExceededError):
        return True
    if isinstance(error, ExternalServiceError) and error.is_rate_limited:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def extract_code(patch: Optional[str]) -> Optional[str]:
    """Return the first fenced code block of an AI patch, or the patch itself."""
    if not patch or not patch.strip():
        return None
    match = CODE_BLOCK.search(patch)
    if match:
        return match.group(1)
    return patch


class FixStrategyAnalyzer:
    """
    Decides how a deployment error gets fixed.

    Example:
        ```python
        analyzer = FixStrategyAnalyzer(registry, provider=GeminiClient())
        strategy = await analyzer.analyze(deployment, error, manifest_reader=reader)
        ```
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        provider: Optional[AIAnalysisProvider] = None,
        settings: Optional[Settings] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        self.registry = registry
        self.provider = provider
        self.settings = settings or get_settings()
        self.limiter = limiter or SlidingWindowRateLimiter(
            max_calls=self.settings.ai_rate_limit_calls,
            window_seconds=self.settings.ai_rate_limit_window_seconds,
            min_spacing_seconds=self.settings.ai_min_spacing_seconds,
            name="ai_analysis",
            sleep=sleep,
        )
        self._sleep = sleep
        self._jitter = jitter

    # Pattern pass

    def classify(self, error_text: str) -> FixPlan:
        if "Module not found" in error_text or "Can't resolve" in error_text:
            match = UNRESOLVED_MODULE.search(error_text)
            module = match.group(1) if match else None
            if module and module.startswith("."):
                return FixPlan(FixType.DEPENDENCY, "component", target=component_path(module), module=module)
            return FixPlan(
                FixType.DEPENDENCY,
                "package",
                target=MANIFEST_PATH,
                module=package_name(module) if module else None,
            )

        if "TypeScript error" in error_text or "Property" in error_text or "does not exist" in error_text:
            match = FILE_REFERENCE.search(error_text)
            target = match.group(1) if match else DEFAULT_SOURCE_FILE
            return FixPlan(self._source_fix_type(target), "typescript", target=target)

        if "npm ERR!" in error_text or "missing script" in error_text.lower():
            match = MISSING_SCRIPT.search(error_text)
            return FixPlan(
                FixType.BUILD_SCRIPT,
                "script",
                target=MANIFEST_PATH,
                script=match.group(1) if match else None,
            )

        match = FILE_REFERENCE.search(error_text)
        target = match.group(1) if match else None
        return FixPlan(self._source_fix_type(target), "generic", target=target)

    @staticmethod
    def _source_fix_type(target: Optional[str]) -> FixType:
        if target and CONFIG_FILES.search(target):
            return FixType.CONFIG
        return FixType.SYNTAX

    # AI pass

    def _retry_delay(self, error: Exception, attempt: int) -> float:
        base = self.settings.ai_backoff_base_seconds
        if is_rate_limit_error(error):
            return base * (2 ** attempt) + self._jitter(0, base)
        return 0.5 * (attempt + 1)

    @staticmethod
    def _should_retry(error: Exception) -> bool:
        if isinstance(error, ConfigurationError):
            return False
        return isinstance(error, (ExternalServiceError, RateLimitExceededError))

    async def _call_provider(self, error_text: str, log_lines: list, metadata: Dict[str, Any]) -> AIAnalysis:
        await self.limiter.acquire()
        timeout = self.settings.gemini_api_timeout * 2
        try:
            return await asyncio.wait_for(
                self.provider.analyze(error_text, log_lines, metadata),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise GeminiAPIError(f"Analysis timed out after {timeout}s", status_code=504) from e

    async def request_analysis(self, deployment: Deployment, error: DeploymentError) -> AIAnalysis:
        """
        Ask the AI provider about an error.

        Never raises for provider problems: a missing provider, missing
        credentials or exhausted retries produce a degraded analysis.
        """
        if self.provider is None or not self.provider.is_configured:
            logger.info("ai_analysis_skipped", deployment_id=deployment.id, reason="not_configured")
            return AIAnalysis(
                root_cause=templates.UNAVAILABLE_ANALYSIS.format(reason="no AI provider configured"),
                degraded=True,
            )

        metadata = {
            "name": deployment.name,
            "environment": deployment.environment.value,
            "branch": deployment.branch,
        }
        log_lines = [entry.message for entry in error.logs]

        try:
            analysis = await retry_async(
                self._call_provider,
                error.error_text,
                log_lines,
                metadata,
                max_attempts=self.settings.ai_max_retries + 1,
                exceptions=(ResurrectCIException,),
                should_retry=self._should_retry,
                delay_for=self._retry_delay,
                sleep=self._sleep,
            )
        except ResurrectCIException as e:
            logger.warning(
                "ai_analysis_degraded",
                deployment_id=deployment.id,
                error_id=error.id,
                error=str(e),
            )
            if is_rate_limit_error(e):
                return AIAnalysis(root_cause=templates.RATE_LIMITED_ANALYSIS, degraded=True)
            return AIAnalysis(
                root_cause=templates.UNAVAILABLE_ANALYSIS.format(reason=e.message),
                degraded=True,
            )

        logger.info("ai_analysis_completed", deployment_id=deployment.id, error_id=error.id)
        return analysis

    # Strategy

    async def _read_manifest(self, reader: Optional[ManifestReader]) -> Dict[str, Any]:
        if reader is None:
            return templates.default_manifest()
        try:
            raw = await reader(MANIFEST_PATH)
        except ResurrectCIException as e:
            logger.warning("manifest_read_failed", error=str(e))
            return templates.default_manifest()
        if not raw:
            return templates.default_manifest()
        try:
            manifest = json.loads(raw)
        except ValueError:
            logger.warning("manifest_unparseable")
            return templates.default_manifest()
        return manifest if isinstance(manifest, dict) else templates.default_manifest()

    async def build_strategy(
        self,
        plan: FixPlan,
        analysis: AIAnalysis,
        error_text: str,
        manifest_reader: Optional[ManifestReader] = None,
    ) -> FixStrategy:
        description = f"Automated fix for: {error_text[:100]}..."
        changes: list = []
        commit_message = "fix: automated error resolution"

        if plan.kind == "component":
            changes.append(FileChange(plan.target, templates.component_template(plan.module), FileAction.CREATE))
            commit_message = f"fix: create missing component {plan.module.split('/')[-1]}"

        elif plan.kind == "package":
            if plan.module:
                manifest = await self._read_manifest(manifest_reader)
                manifest.setdefault("dependencies", {})[plan.module] = "latest"
                changes.append(FileChange(MANIFEST_PATH, templates.render_manifest(manifest)))
                commit_message = f"fix: add missing dependency {plan.module}"

        elif plan.kind == "script":
            manifest = await self._read_manifest(manifest_reader)
            scripts = manifest.setdefault("scripts", {})
            name = plan.script or "build"
            scripts[name] = templates.DEFAULT_SCRIPTS.get(name, f'echo "No {name} script configured"')
            changes.append(FileChange(MANIFEST_PATH, templates.render_manifest(manifest)))
            commit_message = "fix: add missing build scripts"

        elif plan.kind == "typescript":
            patch = None if analysis.degraded else extract_code(analysis.suggested_patch)
            changes.append(FileChange(plan.target, patch or templates.FALLBACK_SOURCE_TEMPLATE))
            commit_message = "fix: resolve TypeScript errors"

        else:
            patch = None if analysis.degraded else extract_code(analysis.suggested_patch)
            if plan.target and patch:
                changes.append(FileChange(plan.target, patch))

        return FixStrategy(
            type=plan.type,
            description=description,
            changes=tuple(changes),
            commit_message=commit_message,
            root_cause=analysis.root_cause,
            degraded=analysis.degraded,
        )

    async def analyze(
        self,
        deployment: Deployment,
        error: DeploymentError,
        manifest_reader: Optional[ManifestReader] = None,
    ) -> FixStrategy:
        """
        Produce and record the FixStrategy for `error`.

        Args:
            deployment: Deployment the error belongs to
            error: The detected error (status detected)
            manifest_reader: Reads a repository file by path, used for package.json edits

        Returns:
            The strategy, also stored on the error in the registry
        """
        plan = self.classify(error.error_text)
        logger.info(
            "fix_strategy_classified",
            deployment_id=deployment.id,
            error_id=error.id,
            fix_type=plan.type.value,
            kind=plan.kind,
            target=plan.target,
        )

        self.registry.transition_error(deployment.id, error.id, ErrorStatus.ANALYZING)

        analysis = await self.request_analysis(deployment, error)
        strategy = await self.build_strategy(plan, analysis, error.error_text, manifest_reader)

        self.registry.record_analysis(
            deployment.id,
            error.id,
            analysis=analysis.root_cause,
            suggested_fix=strategy,
        )
        return strategy
