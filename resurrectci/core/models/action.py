# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from resurrectci.core.enums import ActionType, ActionStatus
from resurrectci.core.models.deployment import utcnow, new_id
from resurrectci.exceptions import InvalidStateTransitionError

_ALLOWED = {
    ActionStatus.PENDING: {ActionStatus.IN_PROGRESS, ActionStatus.FAILED},
    ActionStatus.IN_PROGRESS: {ActionStatus.COMPLETED, ActionStatus.FAILED},
    ActionStatus.COMPLETED: set(),
    ActionStatus.FAILED: set(),
}


@dataclass
class AutomatedAction:
    """
    One step of a remediation attempt, as recorded in the action ledger.

    Lifecycle is pending -> in_progress -> completed | failed, with
    pending -> failed allowed. `result` and `completed_at` are written once,
    on the terminal transition.
    """
    deployment_id: str
    type: ActionType
    description: str
    error_id: Optional[str] = None
    status: ActionStatus = ActionStatus.PENDING
    result: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: new_id("action"))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition_to(self, new_status: ActionStatus, result: Optional[str] = None) -> None:
        if new_status not in _ALLOWED[self.status]:
            raise InvalidStateTransitionError(
                "AutomatedAction", self.id, self.status.value, new_status.value
            )
        self.status = new_status
        if new_status.is_terminal:
            self.result = result
            self.completed_at = utcnow()

    def snapshot(self) -> "AutomatedAction":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deployment_id": self.deployment_id,
            "error_id": self.error_id,
            "type": self.type.value,
            "status": self.status.value,
            "description": self.description,
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
