# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Optional

import structlog

from resurrectci.core.enums import ActionType
from resurrectci.core.models import AutomatedAction, ChangeRequest, Deployment, DeploymentError
from resurrectci.core.ports import CodeReviewService
from resurrectci.exceptions import ResurrectCIException
from resurrectci.services.ledger import ActionLedger

logger = structlog.get_logger(__name__)


class ReviewTrigger:
    """
    Requests an automated code review on a fix PR.

    Best effort: a missing reviewer skips the step and a failed request only
    fails its own action.
    """

    def __init__(self, reviewer: Optional[CodeReviewService], ledger: ActionLedger):
        self.reviewer = reviewer
        self.ledger = ledger

    async def request(
        self,
        deployment: Deployment,
        error: DeploymentError,
        change: ChangeRequest,
    ) -> AutomatedAction:
        action = self.ledger.create(
            deployment.id,
            ActionType.ANALYZE_CODE,
            f"CodeRabbit review of PR #{change.number}",
            error_id=error.id,
        )

        if self.reviewer is None:
            return self.ledger.complete(action.id, "Review skipped: no reviewer configured")

        try:
            installed = await self.reviewer.is_installed(change.owner, change.repo)
        except ResurrectCIException as e:
            logger.warning("review_probe_failed", repo=change.full_name, error=str(e))
            installed = False

        if not installed:
            logger.info("review_skipped", repo=change.full_name, pr_number=change.number)
            return self.ledger.complete(
                action.id, f"Review skipped: CodeRabbit is not installed on {change.full_name}"
            )

        self.ledger.start(action.id)
        try:
            await self.reviewer.request_review(change)
        except ResurrectCIException as e:
            logger.warning("review_request_failed", repo=change.full_name, pr_number=change.number, error=str(e))
            return self.ledger.fail(action.id, f"Review request failed: {e.message}")

        logger.info("review_requested", repo=change.full_name, pr_number=change.number)
        return self.ledger.complete(action.id, f"Review requested on PR #{change.number}")
