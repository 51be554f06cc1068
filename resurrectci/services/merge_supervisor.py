# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Merge Supervisor

Watches a fix PR's checks and merges it once they are observed passing.
"""

import asyncio
from typing import Optional

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import ActionStatus, ActionType, CheckState
from resurrectci.core.models import ChangeRequest, Deployment, DeploymentError
from resurrectci.core.ports import SourceControlHost
from resurrectci.exceptions import ExternalServiceError, ResurrectCIException
from resurrectci.services.ledger import ActionLedger
from resurrectci.utils.logging import get_logger
from resurrectci.utils.scheduling import PeriodicTask, TaskOutcome

logger = get_logger(__name__)


class MergeSupervisor:
    """
    Polls a pull request's check state until it can be merged.

    Supervision ends on the first of: checks passing (merge), checks failing,
    a merge error, or the deadline. A PR is never merged without a passing
    observation; a PR with no checks at all counts as passing only when
    `allow_merge_without_checks` is set.
    """

    def __init__(
        self,
        host: SourceControlHost,
        ledger: ActionLedger,
        settings: Optional[Settings] = None,
    ):
        self.host = host
        self.ledger = ledger
        self.settings = settings or get_settings()

    def _can_merge(self, state: CheckState) -> bool:
        if state == CheckState.PASSING:
            return True
        return state == CheckState.NO_CHECKS and self.settings.allow_merge_without_checks

    async def supervise(
        self,
        deployment: Deployment,
        error: DeploymentError,
        change: ChangeRequest,
    ) -> bool:
        """
        Supervise `change` until it is merged or supervision gives up.

        Returns:
            True when the PR was merged
        """
        action = self.ledger.create(
            deployment.id,
            ActionType.FIX_ISSUE,
            f"Monitor and merge PR #{change.number}",
            error_id=error.id,
        )
        self.ledger.start(action.id)
        deadline_at = asyncio.get_running_loop().time() + self.settings.merge_deadline_seconds

        async def poll() -> bool:
            try:
                state = await self.host.get_change_status(change.owner, change.repo, change.number)
            except ExternalServiceError as e:
                if e.is_transient:
                    logger.warning("merge_status_poll_failed", pr_number=change.number, error=str(e))
                    return False
                self.ledger.fail(action.id, f"Could not read checks for PR #{change.number}: {e.message}")
                return True
            except ResurrectCIException as e:
                logger.error("merge_status_unavailable", pr_number=change.number, error=e.message)
                self.ledger.fail(action.id, f"Could not read checks for PR #{change.number}: {e.message}")
                return True

            logger.debug("merge_status_polled", pr_number=change.number, state=state.value)

            if state == CheckState.FAILING:
                self.ledger.fail(action.id, f"Checks failed on PR #{change.number}; manual fix required")
                return True

            if not self._can_merge(state):
                return False

            if asyncio.get_running_loop().time() >= deadline_at:
                return False

            try:
                await self.host.merge_change(
                    change.owner,
                    change.repo,
                    change.number,
                    commit_title=f"{change.title} (#{change.number})" if change.title else None,
                )
            except ExternalServiceError as e:
                logger.error("merge_failed", pr_number=change.number, error=str(e))
                self.ledger.fail(action.id, f"Merge of PR #{change.number} failed: {e.message}")
                return True

            logger.info("pr_merged", repo=change.full_name, pr_number=change.number)
            self.ledger.complete(action.id, f"PR #{change.number} merged")
            return True

        task = PeriodicTask(
            name=f"merge:{change.full_name}#{change.number}",
            interval=self.settings.merge_poll_interval_seconds,
            tick=poll,
            deadline=self.settings.merge_deadline_seconds,
        )

        try:
            outcome = await task.wait()
        finally:
            task.cancel()

        if outcome == TaskOutcome.DEADLINE_EXCEEDED:
            logger.warning("merge_deadline_exceeded", pr_number=change.number)
            self.ledger.fail(
                action.id,
                f"PR #{change.number} checks did not pass within "
                f"{self.settings.merge_deadline_seconds}s; manual merge required",
            )
            return False

        final = self.ledger.get(action.id)
        if not final.is_terminal:
            self.ledger.fail(action.id, f"Supervision of PR #{change.number} was cancelled")
            return False
        return final.status == ActionStatus.COMPLETED
