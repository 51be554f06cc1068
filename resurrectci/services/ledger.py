# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Action ledger.

Append-only audit trail of every orchestration step. Each transition is
published synchronously to observers in registration order.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from resurrectci.core.enums import ActionStatus, ActionType
from resurrectci.core.models import AutomatedAction
from resurrectci.exceptions import ActionNotFoundError
from resurrectci.utils.locks import KeyedLock
from resurrectci.utils.logging import get_logger
from resurrectci.utils.pubsub import Publisher

logger = get_logger(__name__)

ActionListener = Callable[[AutomatedAction], None]


class ActionLedger:
    """
    Records AutomatedActions and fans out their transitions.

    Observers receive a snapshot of the action after every change, including
    creation. Terminal actions cannot change again.

    Example:
        ```python
        ledger = ActionLedger()
        ledger.subscribe(lambda action: print(action.type, action.status))

        action = ledger.create("dpl_1", ActionType.CREATE_PR, "Open fix PR", error_id="err_1")
        ledger.start(action.id)
        ledger.complete(action.id, "PR #12 opened")
        ```
    """

    def __init__(self) -> None:
        self._actions: dict[str, AutomatedAction] = {}
        self._by_deployment: dict[str, list[str]] = {}
        self._guard = threading.Lock()
        self._locks = KeyedLock()
        self.events: Publisher[AutomatedAction] = Publisher("automated_actions")

    def subscribe(self, listener: ActionListener) -> None:
        self.events.subscribe(listener)

    def unsubscribe(self, listener: ActionListener) -> bool:
        return self.events.unsubscribe(listener)

    def create(
        self,
        deployment_id: str,
        action_type: ActionType,
        description: str,
        error_id: Optional[str] = None,
    ) -> AutomatedAction:
        action = AutomatedAction(
            deployment_id=deployment_id,
            type=action_type,
            description=description,
            error_id=error_id,
        )
        with self._locks.hold(deployment_id):
            with self._guard:
                self._actions[action.id] = action
                self._by_deployment.setdefault(deployment_id, []).append(action.id)
            snapshot = action.snapshot()

        logger.info(
            "action_created",
            action_id=action.id,
            deployment_id=deployment_id,
            error_id=error_id,
            type=action_type.value,
        )
        self.events.publish(snapshot)
        return snapshot

    def _transition(self, action_id: str, status: ActionStatus, result: Optional[str] = None) -> AutomatedAction:
        action = self._require(action_id)
        with self._locks.hold(action.deployment_id):
            action.transition_to(status, result)
            snapshot = action.snapshot()

        log = logger.warning if status == ActionStatus.FAILED else logger.info
        log(
            "action_transition",
            action_id=action_id,
            deployment_id=action.deployment_id,
            type=action.type.value,
            status=status.value,
            result=result,
        )
        self.events.publish(snapshot)
        return snapshot

    def start(self, action_id: str) -> AutomatedAction:
        return self._transition(action_id, ActionStatus.IN_PROGRESS)

    def complete(self, action_id: str, result: str) -> AutomatedAction:
        """Complete an action, starting it first if it is still pending."""
        if self._require(action_id).status == ActionStatus.PENDING:
            self.start(action_id)
        return self._transition(action_id, ActionStatus.COMPLETED, result)

    def fail(self, action_id: str, result: str) -> AutomatedAction:
        return self._transition(action_id, ActionStatus.FAILED, result)

    def _require(self, action_id: str) -> AutomatedAction:
        with self._guard:
            action = self._actions.get(action_id)
        if action is None:
            raise ActionNotFoundError(action_id)
        return action

    def get(self, action_id: str) -> AutomatedAction:
        action = self._require(action_id)
        with self._locks.hold(action.deployment_id):
            return action.snapshot()

    def for_deployment(self, deployment_id: str) -> list[AutomatedAction]:
        """All actions of a deployment, newest first."""
        with self._guard:
            ids = list(self._by_deployment.get(deployment_id, []))
            actions = [self._actions[i] for i in ids]
        with self._locks.hold(deployment_id):
            snapshots = [a.snapshot() for a in actions]
        # creation order breaks created_at ties
        return [a for _, a in sorted(enumerate(snapshots), key=lambda p: (p[1].created_at, p[0]), reverse=True)]

    def all(self) -> list[AutomatedAction]:
        with self._guard:
            deployment_ids = list(self._by_deployment.keys())
        actions = [a for d in deployment_ids for a in self.for_deployment(d)]
        return sorted(actions, key=lambda a: a.created_at, reverse=True)

    def __len__(self) -> int:
        with self._guard:
            return len(self._actions)
