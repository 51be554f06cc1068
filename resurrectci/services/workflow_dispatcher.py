# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Workflow Dispatcher

Hands a remediation to the external workflow engine when it is reachable.
The in-process pipeline continues either way; the dispatcher only records
what happened in the action ledger.
"""

import asyncio
from typing import Optional

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import ActionType, ExecutionState
from resurrectci.core.models import AutomatedAction, Deployment, DeploymentError
from resurrectci.core.ports import WorkflowEngine
from resurrectci.exceptions import ConfigurationError, ResurrectCIException
from resurrectci.services.ledger import ActionLedger
from resurrectci.utils.logging import get_logger
from resurrectci.utils.scheduling import PeriodicTask, TaskOutcome

logger = get_logger(__name__)

FALLBACK_RESULT = "Workflow engine unavailable ({reason}); continuing with in-process remediation"


class WorkflowDispatcher:
    """
    Triggers the remediation flow on the workflow engine.

    `dispatch()` returns as soon as the trigger decision is made. When the
    engine reports an execution id, a background watch follows the execution
    and completes the trigger_workflow action once it ends.
    """

    def __init__(
        self,
        engine: Optional[WorkflowEngine],
        ledger: ActionLedger,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.ledger = ledger
        self.settings = settings or get_settings()
        self._watches: dict[str, PeriodicTask] = {}

    @property
    def active_watches(self) -> int:
        return sum(1 for watch in self._watches.values() if watch.running)

    def _fallback(self, action: AutomatedAction, reason: str) -> AutomatedAction:
        logger.info("workflow_fallback", deployment_id=action.deployment_id, reason=reason)
        return self.ledger.complete(action.id, FALLBACK_RESULT.format(reason=reason))

    async def dispatch(self, deployment: Deployment, error: DeploymentError) -> AutomatedAction:
        """
        Trigger the workflow for an error.

        Returns:
            The trigger_workflow action as of the moment dispatch returns
        """
        action = self.ledger.create(
            deployment.id,
            ActionType.TRIGGER_WORKFLOW,
            f"Trigger remediation workflow for {deployment.name}",
            error_id=error.id,
        )

        if self.engine is None:
            return self._fallback(action, "not configured")

        availability = await self.engine.is_available()
        if not availability:
            return self._fallback(action, availability.reason or "unreachable")

        self.ledger.start(action.id)
        inputs = {
            "deployment_id": deployment.id,
            "project_name": deployment.name,
            "branch": deployment.branch,
            "error_message": error.error_text,
            "error_logs": "\n".join(entry.message for entry in error.logs),
        }

        try:
            execution_id = await self.engine.trigger_execution(inputs)
        except ResurrectCIException as e:
            logger.warning("workflow_trigger_failed", deployment_id=deployment.id, error=str(e))
            return self._fallback(action, f"trigger failed: {e.message}")

        if not execution_id:
            return self.ledger.complete(action.id, "Workflow triggered")

        self._watch(action, execution_id)
        return self.ledger.get(action.id)

    def _watch(self, action: AutomatedAction, execution_id: str) -> PeriodicTask:
        async def poll() -> bool:
            try:
                execution = await self.engine.get_execution(execution_id)
            except ConfigurationError as e:
                self.ledger.complete(
                    action.id,
                    f"Workflow execution {execution_id} started; status unavailable ({e.message})",
                )
                return True

            if execution.state == ExecutionState.SUCCESS:
                self.ledger.complete(action.id, f"Workflow execution {execution_id} succeeded")
                return True
            if execution.state in (ExecutionState.FAILED, ExecutionState.KILLED):
                self.ledger.fail(
                    action.id,
                    f"Workflow execution {execution_id} ended with state {execution.state.value}",
                )
                return True
            return False

        watch = PeriodicTask(
            name=f"workflow:{execution_id}",
            interval=self.settings.execution_poll_interval_seconds,
            tick=poll,
            deadline=self.settings.execution_deadline_seconds,
        )
        watch.start().add_done_callback(lambda task: self._on_watch_done(action, execution_id, watch, task))
        self._watches[execution_id] = watch
        logger.info("workflow_watch_started", action_id=action.id, execution_id=execution_id)
        return watch

    def _on_watch_done(
        self, action: AutomatedAction, execution_id: str, watch: PeriodicTask, task: asyncio.Task
    ) -> None:
        self._watches.pop(execution_id, None)
        if self.ledger.get(action.id).is_terminal:
            return
        if task.cancelled() or watch.outcome == TaskOutcome.CANCELLED:
            self.ledger.fail(action.id, f"Workflow execution {execution_id} watch cancelled")
        elif watch.outcome == TaskOutcome.DEADLINE_EXCEEDED:
            self.ledger.fail(action.id, f"Workflow execution {execution_id} did not finish before the deadline")

    async def wait_for(self, execution_id: str) -> Optional[TaskOutcome]:
        watch = self._watches.get(execution_id)
        if watch is None:
            return None
        return await watch.wait()

    def close(self) -> None:
        for watch in list(self._watches.values()):
            watch.cancel()
        self._watches.clear()
