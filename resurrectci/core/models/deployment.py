# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from resurrectci.core.enums import (
    DeploymentStatus,
    DeploymentEnvironment,
    ErrorStatus,
    LogLevel,
    LogSource,
)
from resurrectci.core.models.fix import FixStrategy
from resurrectci.exceptions import InvalidStateTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


@dataclass(frozen=True)
class LogEntry:
    """
    One line of deployment output.

    `position` is the platform's event index; locally generated notes carry
    None and are never deduplicated.
    """
    deployment_id: str
    message: str
    level: LogLevel = LogLevel.INFO
    source: LogSource = LogSource.BUILD
    timestamp: datetime = field(default_factory=utcnow)
    position: Optional[int] = None
    id: str = field(default_factory=lambda: new_id("log"))

    @property
    def dedup_key(self) -> Optional[tuple[str, int]]:
        if self.position is None:
            return None
        return (self.message, self.position)

    @property
    def is_error(self) -> bool:
        return self.level == LogLevel.ERROR


@dataclass
class DeploymentError:
    """
    A failure detected in a deployment's logs and the remediation state attached to it.

    Status only moves forward: detected -> analyzing -> fixing -> resolved,
    with failed reachable from every non-terminal state.
    """
    deployment_id: str
    error_text: str
    logs: tuple[LogEntry, ...] = ()
    status: ErrorStatus = ErrorStatus.DETECTED
    analysis: Optional[str] = None
    suggested_fix: Optional[FixStrategy] = None
    fix_applied: bool = False
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: new_id("err"))

    def can_transition_to(self, new_status: ErrorStatus) -> bool:
        if self.status.is_terminal:
            return False
        if new_status == ErrorStatus.FAILED:
            return True
        return new_status.rank == self.status.rank + 1

    def transition_to(self, new_status: ErrorStatus) -> None:
        """
        Move to `new_status`.

        Raises:
            InvalidStateTransitionError: If the move skips a step, goes backward or leaves a terminal state
        """
        if not self.can_transition_to(new_status):
            raise InvalidStateTransitionError(
                "DeploymentError", self.id, self.status.value, new_status.value
            )
        self.status = new_status

    @property
    def is_outstanding(self) -> bool:
        return not self.status.is_terminal

    def snapshot(self) -> "DeploymentError":
        return replace(self)


@dataclass
class Deployment:
    """
    A deployment known to the registry.

    `logs` and `errors` only ever grow (up to the registry's log cap).
    `parent_deployment_id` and `remediation_depth` link redeploys to the
    deployment whose failure produced them.
    """
    id: str
    name: str
    status: DeploymentStatus = DeploymentStatus.QUEUED
    environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION
    branch: str = "main"
    commit: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    url: Optional[str] = None
    duration: Optional[str] = None
    logs: list[LogEntry] = field(default_factory=list)
    errors: list[DeploymentError] = field(default_factory=list)

    repository: Optional[str] = None
    project_id: Optional[str] = None
    parent_deployment_id: Optional[str] = None
    remediation_depth: int = 0

    def __post_init__(self) -> None:
        if self.project_id is None:
            self.project_id = self.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def outstanding_error(self) -> Optional[DeploymentError]:
        for error in self.errors:
            if error.is_outstanding:
                return error
        return None

    def error_logs(self) -> list[LogEntry]:
        return [entry for entry in self.logs if entry.is_error]

    def snapshot(self) -> "Deployment":
        """Copy safe to hand to readers; later registry writes do not show through."""
        return replace(
            self,
            logs=list(self.logs),
            errors=[error.snapshot() for error in self.errors],
        )
