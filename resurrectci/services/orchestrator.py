# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Remediation Orchestrator

Runs the remediation pipeline for detected deployment errors:
analyze -> workflow -> patch -> review -> merge -> redeploy.

Errors of one deployment are handled strictly one at a time in arrival
order; different deployments are remediated concurrently.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional, Set

import structlog

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import ActionType, ErrorStatus
from resurrectci.core.models import AutomatedAction, ChangeRequest, DeploymentError
from resurrectci.exceptions import RemediationDepthExceededError, ResurrectCIException
from resurrectci.services.analyzer import FixStrategyAnalyzer
from resurrectci.services.ledger import ActionLedger
from resurrectci.services.merge_supervisor import MergeSupervisor
from resurrectci.services.patch_builder import PatchBuilder
from resurrectci.services.redeploy import RedeployTrigger
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.services.review import ReviewTrigger
from resurrectci.services.workflow_dispatcher import WorkflowDispatcher

logger = structlog.get_logger(__name__)


@dataclass
class RemediationResult:
    deployment_id: str
    error_id: str
    success: bool
    stage: str
    message: str
    duration_ms: int = 0
    change_request: Optional[ChangeRequest] = None
    redeploy_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "error_id": self.error_id,
            "success": self.success,
            "stage": self.stage,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "pr_url": self.change_request.url if self.change_request else None,
            "redeploy_id": self.redeploy_id,
            "metadata": self.metadata,
        }


class RemediationOrchestrator:
    """
    Queues detected errors per deployment and runs one remediation attempt
    at a time for each deployment.

    Example:
        ```python
        orchestrator = RemediationOrchestrator(registry, ledger, analyzer, dispatcher,
                                               patch_builder, review, merge_supervisor, redeployer)
        poller.on_error = orchestrator.submit
        ```
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        ledger: ActionLedger,
        analyzer: FixStrategyAnalyzer,
        dispatcher: WorkflowDispatcher,
        patch_builder: PatchBuilder,
        review: ReviewTrigger,
        merge_supervisor: MergeSupervisor,
        redeployer: RedeployTrigger,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.analyzer = analyzer
        self.dispatcher = dispatcher
        self.patch_builder = patch_builder
        self.review = review
        self.merge_supervisor = merge_supervisor
        self.redeployer = redeployer
        self.settings = settings or get_settings()
        self.automation_enabled = self.settings.automation_enabled

        self._queues: Dict[str, Deque[DeploymentError]] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._queued_ids: Set[str] = set()
        self.results: Dict[str, RemediationResult] = {}

        logger.info(
            "orchestrator_initialized",
            automation_enabled=self.automation_enabled,
            max_remediation_depth=self.settings.max_remediation_depth,
        )

    # Queueing

    def submit(self, error: DeploymentError) -> bool:
        """
        Queue an error for remediation.

        Returns:
            False when automation is disabled and the error was not queued
        """
        if not self.automation_enabled:
            logger.info(
                "remediation_skipped",
                deployment_id=error.deployment_id,
                error_id=error.id,
                reason="automation_disabled",
            )
            return False

        if error.id in self._queued_ids:
            return True

        self._queued_ids.add(error.id)
        queue = self._queues.setdefault(error.deployment_id, deque())
        queue.append(error)
        logger.info(
            "remediation_queued",
            deployment_id=error.deployment_id,
            error_id=error.id,
            queued=len(queue),
        )

        if error.deployment_id not in self._workers:
            self._workers[error.deployment_id] = asyncio.create_task(
                self._work(error.deployment_id),
                name=f"remediate:{error.deployment_id}",
            )
        return True

    async def _work(self, deployment_id: str) -> None:
        queue = self._queues[deployment_id]
        try:
            while queue:
                error = queue.popleft()
                try:
                    if not self.automation_enabled:
                        logger.info("remediation_skipped", deployment_id=deployment_id, error_id=error.id,
                                    reason="automation_disabled")
                        continue
                    await self.remediate(error)
                finally:
                    self._queued_ids.discard(error.id)
        finally:
            self._workers.pop(deployment_id, None)
            if not queue:
                self._queues.pop(deployment_id, None)

    def resubmit_detected(self) -> int:
        """
        Queue every error still waiting in the detected state, such as errors
        that arrived while automation was disabled.

        Returns:
            Number of errors queued
        """
        queued = 0
        for deployment in self.registry.list():
            for error in deployment.errors:
                if error.status != ErrorStatus.DETECTED or error.id in self._queued_ids:
                    continue
                if self.submit(error):
                    queued += 1
        if queued:
            logger.info("remediation_resubmitted", errors=queued)
        return queued

    def in_flight(self, deployment_id: str) -> bool:
        return deployment_id in self._workers

    def pending(self, deployment_id: str) -> int:
        return len(self._queues.get(deployment_id, ()))

    async def drain(self) -> None:
        """Wait until every queued remediation has finished."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        self._queued_ids.clear()

    # Pipeline

    def _fail_error(self, deployment_id: str, error_id: str) -> None:
        if not self.registry.contains(deployment_id):
            return
        current = self.registry.get_error(deployment_id, error_id)
        if not current.status.is_terminal:
            self.registry.transition_error(deployment_id, error_id, ErrorStatus.FAILED)

    def _fail_action(self, action: Optional[AutomatedAction], reason: str) -> None:
        if action is not None and not self.ledger.get(action.id).is_terminal:
            self.ledger.fail(action.id, reason)

    async def remediate(self, error: DeploymentError) -> RemediationResult:
        """
        Run one full remediation attempt for `error`.

        Every failure is recorded on the ledger and leaves the error failed;
        nothing is raised to the caller except cancellation.
        """
        start_time = datetime.now(timezone.utc)
        deployment_id = error.deployment_id
        stage = "start"
        action: Optional[AutomatedAction] = None

        def finish(success: bool, message: str, **kwargs) -> RemediationResult:
            result = RemediationResult(
                deployment_id=deployment_id,
                error_id=error.id,
                success=success,
                stage=stage,
                message=message,
                duration_ms=int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000),
                **kwargs,
            )
            self.results[error.id] = result
            log = logger.info if success else logger.warning
            log("remediation_finished", **result.to_dict())
            return result

        try:
            deployment = self.registry.require(deployment_id)

            limit = self.settings.max_remediation_depth
            if deployment.remediation_depth >= limit:
                stage = "depth_guard"
                raise RemediationDepthExceededError(deployment_id, deployment.remediation_depth, limit)

            logger.info("remediation_started", deployment_id=deployment_id, error_id=error.id)

            stage = "analyze"
            action = self.ledger.create(
                deployment_id, ActionType.ANALYZE_CODE, "Analyze deployment error and plan a fix", error_id=error.id
            )
            self.ledger.start(action.id)
            strategy = await self.analyzer.analyze(
                deployment, error, manifest_reader=self.patch_builder.manifest_reader(deployment)
            )
            self.ledger.complete(
                action.id,
                f"{strategy.type.value} fix planned ({len(strategy.changes)} file(s))"
                + (" from error patterns only" if strategy.degraded else ""),
            )

            self.registry.transition_error(deployment_id, error.id, ErrorStatus.FIXING)

            stage = "workflow"
            action = None
            await self.dispatcher.dispatch(deployment, error)

            stage = "create_pr"
            action = self.ledger.create(
                deployment_id, ActionType.CREATE_PR, f"Create fix pull request for {deployment.name}", error_id=error.id
            )
            self.ledger.start(action.id)
            change = await self.patch_builder.build(deployment, strategy)
            self.ledger.complete(action.id, f"PR #{change.number} created: {change.url}")

            stage = "review"
            action = None
            await self.review.request(deployment, error, change)

            stage = "merge"
            merged = await self.merge_supervisor.supervise(deployment, error, change)
            if not merged:
                self._fail_error(deployment_id, error.id)
                return finish(False, f"PR #{change.number} was not merged", change_request=change)

            stage = "redeploy"
            redeploy = await self.redeployer.redeploy(deployment, error)
            self.registry.transition_error(deployment_id, error.id, ErrorStatus.RESOLVED, fix_applied=True)

            stage = "done"
            if redeploy is None:
                return finish(True, f"PR #{change.number} merged; redeploy could not be started",
                              change_request=change)
            return finish(True, f"PR #{change.number} merged; redeploy {redeploy.id} started",
                          change_request=change, redeploy_id=redeploy.id)

        except ResurrectCIException as e:
            logger.warning(
                "remediation_failed",
                deployment_id=deployment_id,
                error_id=error.id,
                stage=stage,
                error=e.message,
            )
            self._fail_action(action, e.message)
            self._fail_error(deployment_id, error.id)
            return finish(False, e.message)

        except Exception as e:
            logger.error(
                "remediation_crashed",
                deployment_id=deployment_id,
                error_id=error.id,
                stage=stage,
                error=str(e),
                exc_info=True,
            )
            self._fail_action(action, f"Unexpected error: {e}")
            self._fail_error(deployment_id, error.id)
            return finish(False, str(e))
