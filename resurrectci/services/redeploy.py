# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Optional

import structlog

from resurrectci.core.enums import ActionType, DeploymentEnvironment
from resurrectci.core.models import Deployment, DeploymentError
from resurrectci.core.ports import DeploymentPlatform
from resurrectci.exceptions import ResurrectCIException
from resurrectci.services.ledger import ActionLedger
from resurrectci.services.poller import DeploymentPoller, to_deployment
from resurrectci.services.registry import DeploymentRegistry

logger = structlog.get_logger(__name__)


class RedeployTrigger:
    """
    Starts a fresh deployment after a fix has been merged.

    The new deployment records the failed one as its parent and is handed to
    the poller, so a fix that does not work is detected like any other failure.
    """

    def __init__(
        self,
        platform: DeploymentPlatform,
        registry: DeploymentRegistry,
        poller: DeploymentPoller,
        ledger: ActionLedger,
    ):
        self.platform = platform
        self.registry = registry
        self.poller = poller
        self.ledger = ledger

    async def redeploy(
        self,
        deployment: Deployment,
        error: Optional[DeploymentError] = None,
    ) -> Optional[Deployment]:
        """
        Redeploy the project, branch and environment of `deployment`.

        Returns:
            The registered redeploy, or None when the platform refused it
        """
        action = self.ledger.create(
            deployment.id,
            ActionType.RETRY_DEPLOYMENT,
            f"Redeploy {deployment.name} ({deployment.environment.value}) from {deployment.branch}",
            error_id=error.id if error else None,
        )
        self.ledger.start(action.id)

        try:
            remote = await self.platform.trigger_deployment(
                deployment.project_id or deployment.name,
                deployment.environment,
                deployment.branch,
                repository=deployment.repository,
            )
        except ResurrectCIException as e:
            logger.error("redeploy_failed", deployment_id=deployment.id, error=str(e))
            self.ledger.fail(action.id, f"Redeploy failed: {e.message}")
            return None

        redeploy = self.registry.upsert(
            to_deployment(
                remote,
                parent_deployment_id=deployment.id,
                remediation_depth=deployment.remediation_depth + 1,
            )
        )
        self.poller.track(redeploy.id)

        logger.info(
            "redeploy_triggered",
            deployment_id=deployment.id,
            redeploy_id=redeploy.id,
            remediation_depth=redeploy.remediation_depth,
        )
        self.ledger.complete(action.id, f"New deployment {redeploy.id} triggered")
        return redeploy

    async def trigger(
        self,
        project: str,
        environment: DeploymentEnvironment,
        branch: str,
        repository: Optional[str] = None,
    ) -> Deployment:
        """Start a deployment on request (no parent) and track it."""
        remote = await self.platform.trigger_deployment(project, environment, branch, repository=repository)
        deployment = self.registry.upsert(to_deployment(remote))
        self.poller.track(deployment.id)
        logger.info("deployment_triggered", deployment_id=deployment.id, project=project, branch=branch)
        return deployment

