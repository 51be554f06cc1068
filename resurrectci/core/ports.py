# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Interfaces of the external systems the remediation loop drives.

Services depend on these abstract classes; the concrete HTTP adapters live in
`resurrectci.adapters`. Tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from resurrectci.core.enums import (
    CheckState,
    DeploymentEnvironment,
    DeploymentStatus,
    ExecutionState,
)
from resurrectci.core.models import AIAnalysis, ChangeRequest


@dataclass(frozen=True)
class Availability:
    """
    Result of probing a best-effort collaborator.

    Callers branch on `available` and log `reason` when it is not.
    """
    available: bool
    reason: Optional[str] = None

    @classmethod
    def up(cls) -> "Availability":
        return cls(True)

    @classmethod
    def down(cls, reason: str) -> "Availability":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.available


@dataclass(frozen=True)
class PlatformDeployment:
    """ Deployment as reported by the deployment platform. """
    id: str
    name: str
    status: DeploymentStatus
    environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION
    branch: str = "main"
    commit: Optional[str] = None
    url: Optional[str] = None
    created_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    project_id: Optional[str] = None
    repository: Optional[str] = None


@dataclass(frozen=True)
class PlatformLogEvent:
    """ One build event. `kind` is the platform's event type (stdout, stderr, error, ...). """
    position: int
    message: str
    kind: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ExecutionStatus:
    """ Snapshot of a workflow engine execution. """
    id: str
    state: ExecutionState
    outputs: dict[str, Any] = field(default_factory=dict)


class DeploymentPlatform(ABC):
    """ Hosting platform that builds and serves deployments. """

    @abstractmethod
    async def get_status(self, deployment_id: str) -> PlatformDeployment:
        ...

    @abstractmethod
    async def get_log_events(self, deployment_id: str) -> list[PlatformLogEvent]:
        ...

    @abstractmethod
    async def trigger_deployment(
        self,
        project: str,
        environment: DeploymentEnvironment,
        branch: str,
        repository: Optional[str] = None,
    ) -> PlatformDeployment:
        ...

    @abstractmethod
    async def list_deployments(self, limit: int = 10) -> list[PlatformDeployment]:
        ...


class SourceControlHost(ABC):
    """ Git hosting service used to publish fixes as pull requests. """

    @abstractmethod
    async def create_branch(self, owner: str, repo: str, branch: str, base: str) -> None:
        ...

    @abstractmethod
    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Optional[str]:
        """Return the decoded file content, or None when the file does not exist."""

    @abstractmethod
    async def update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> None:
        """Create or overwrite a file on a branch."""

    @abstractmethod
    async def delete_file(
        self, owner: str, repo: str, path: str, message: str, branch: str
    ) -> None:
        ...

    @abstractmethod
    async def create_change_request(
        self, owner: str, repo: str, title: str, body: str, head: str, base: str
    ) -> ChangeRequest:
        ...

    @abstractmethod
    async def get_change_status(self, owner: str, repo: str, number: int) -> CheckState:
        ...

    @abstractmethod
    async def merge_change(
        self, owner: str, repo: str, number: int, commit_title: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        ...


class WorkflowEngine(ABC):
    """ Orchestration engine that can run the remediation flow out of process. """

    @abstractmethod
    async def is_available(self) -> Availability:
        ...

    @abstractmethod
    async def trigger_execution(self, inputs: dict[str, Any]) -> Optional[str]:
        """Start an execution and return its id when the engine reports one."""

    @abstractmethod
    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        ...


class CodeReviewService(ABC):
    """ Automated reviewer for pull requests. """

    @abstractmethod
    async def is_installed(self, owner: str, repo: str) -> bool:
        ...

    @abstractmethod
    async def request_review(self, change: ChangeRequest) -> None:
        ...


class AIAnalysisProvider(ABC):
    """ Black-box "analyze this failure and suggest a fix" capability. """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def analyze(
        self,
        error_text: str,
        log_lines: list[str],
        metadata: dict[str, Any],
    ) -> AIAnalysis:
        ...
