# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Deployment Monitor Service

Single entry point for the API layer: starts and stops monitoring, exposes
deployments, errors and actions, and lets callers observe action changes.
"""

from typing import List, Optional

from resurrectci.core.enums import DeploymentEnvironment
from resurrectci.core.models import AutomatedAction, Deployment, DeploymentError
from resurrectci.services.ledger import ActionLedger, ActionListener
from resurrectci.services.orchestrator import RemediationOrchestrator
from resurrectci.services.poller import DeploymentPoller
from resurrectci.services.redeploy import RedeployTrigger
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.services.workflow_dispatcher import WorkflowDispatcher
from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)


class DeploymentMonitorService:
    """
    Facade over the registry, poller, orchestrator and ledger.

    Example:
        ```python
        monitor = build_monitor_service(settings)
        monitor.on_action(lambda action: print(action.type, action.status))
        monitor.start_monitoring()
        ```
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        ledger: ActionLedger,
        poller: DeploymentPoller,
        orchestrator: RemediationOrchestrator,
        redeployer: RedeployTrigger,
        dispatcher: Optional[WorkflowDispatcher] = None,
        resources: Optional[list] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.poller = poller
        self.orchestrator = orchestrator
        self.redeployer = redeployer
        self.dispatcher = dispatcher
        self._resources = list(resources or [])

        if self.poller.on_error is None:
            self.poller.on_error = self.orchestrator.submit

    # Lifecycle

    def start_monitoring(self) -> None:
        self.poller.start()
        logger.info("monitoring_started")

    def stop_monitoring(self) -> None:
        self.poller.stop()
        logger.info("monitoring_stopped")

    @property
    def is_monitoring(self) -> bool:
        return self.poller.is_running

    async def close(self) -> None:
        """Stop every background task and close the adapters' HTTP clients."""
        self.stop_monitoring()
        if self.dispatcher is not None:
            self.dispatcher.close()
        await self.orchestrator.close()
        for resource in self._resources:
            await resource.close()
        logger.info("monitor_service_closed")

    # Observers

    def on_action(self, listener: ActionListener) -> None:
        self.ledger.subscribe(listener)

    def remove_listener(self, listener: ActionListener) -> bool:
        return self.ledger.unsubscribe(listener)

    # Queries

    def list_deployments(self) -> List[Deployment]:
        return self.registry.list()

    def get_deployment(self, deployment_id: str) -> Deployment:
        return self.registry.require(deployment_id)

    def get_errors_for(self, deployment_id: str) -> List[DeploymentError]:
        return self.registry.errors_for(deployment_id)

    def get_actions_for(self, deployment_id: str) -> List[AutomatedAction]:
        self.registry.require(deployment_id)
        return self.ledger.for_deployment(deployment_id)

    def tracked_deployments(self) -> List[str]:
        return self.poller.tracked_ids

    # Automation

    @property
    def automation_enabled(self) -> bool:
        return self.orchestrator.automation_enabled

    def set_automation_enabled(self, enabled: bool) -> None:
        """Toggle automation. Re-enabling queues errors detected while it was off."""
        was_enabled = self.orchestrator.automation_enabled
        self.orchestrator.automation_enabled = enabled
        logger.info("automation_toggled", enabled=enabled)
        if enabled and not was_enabled:
            self.orchestrator.resubmit_detected()

    # Commands

    def track_deployment(self, deployment_id: str) -> None:
        self.poller.track(deployment_id)

    async def trigger_deployment(
        self,
        project: str,
        environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION,
        branch: str = "main",
        repository: Optional[str] = None,
    ) -> Deployment:
        return await self.redeployer.trigger(project, environment, branch, repository=repository)
