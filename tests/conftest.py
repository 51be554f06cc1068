# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Shared fixtures: fast settings and in-memory stand-ins for the external systems."""

from dataclasses import replace
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from resurrectci.core.config import Settings
from resurrectci.core.enums import (
    CheckState,
    DeploymentEnvironment,
    DeploymentStatus,
    ExecutionState,
)
from resurrectci.core.models import AIAnalysis, ChangeRequest, Deployment
from resurrectci.core.ports import (
    AIAnalysisProvider,
    Availability,
    CodeReviewService,
    DeploymentPlatform,
    ExecutionStatus,
    PlatformDeployment,
    PlatformLogEvent,
    SourceControlHost,
    WorkflowEngine,
)
from resurrectci.exceptions import VercelAPIError
from resurrectci.services.analyzer import FixStrategyAnalyzer
from resurrectci.services.ledger import ActionLedger
from resurrectci.services.merge_supervisor import MergeSupervisor
from resurrectci.services.monitor import DeploymentMonitorService
from resurrectci.services.orchestrator import RemediationOrchestrator
from resurrectci.services.patch_builder import PatchBuilder
from resurrectci.services.poller import DeploymentPoller
from resurrectci.services.redeploy import RedeployTrigger
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.services.review import ReviewTrigger
from resurrectci.services.workflow_dispatcher import WorkflowDispatcher
from resurrectci.utils.rate_limiter import SlidingWindowRateLimiter


def _next_item(sequence: List[Any]) -> Any:
    """Pop items until one is left, then keep returning it. Exceptions are raised."""
    item = sequence.pop(0) if len(sequence) > 1 else sequence[0]
    if isinstance(item, Exception):
        raise item
    return item


class FakePlatform(DeploymentPlatform):
    """Deployment platform whose deployments follow scripted status sequences."""

    def __init__(self) -> None:
        self.statuses: Dict[str, List[Any]] = {}
        self.events: Dict[str, List[Any]] = {}
        self.recent: List[PlatformDeployment] = []
        self.triggered: List[Dict[str, Any]] = []
        self.status_calls: Dict[str, int] = {}
        self.trigger_error: Optional[Exception] = None
        self.redeploy_status = DeploymentStatus.READY

    def add(self, deployment_id: str, *statuses: Any, name: str = "web", **kwargs) -> None:
        self.statuses[deployment_id] = [
            s if isinstance(s, Exception) else PlatformDeployment(id=deployment_id, name=name, status=s, **kwargs)
            for s in statuses
        ]

    async def get_status(self, deployment_id: str) -> PlatformDeployment:
        self.status_calls[deployment_id] = self.status_calls.get(deployment_id, 0) + 1
        if deployment_id not in self.statuses:
            raise VercelAPIError(f"Deployment {deployment_id} not found", status_code=404)
        return _next_item(self.statuses[deployment_id])

    async def get_log_events(self, deployment_id: str) -> List[PlatformLogEvent]:
        events = self.events.get(deployment_id, [])
        if events and isinstance(events[0], Exception):
            raise events.pop(0)
        return list(events)

    async def trigger_deployment(
        self,
        project: str,
        environment: DeploymentEnvironment,
        branch: str,
        repository: Optional[str] = None,
    ) -> PlatformDeployment:
        if self.trigger_error is not None:
            raise self.trigger_error
        self.triggered.append(
            {"project": project, "environment": environment, "branch": branch, "repository": repository}
        )
        remote = PlatformDeployment(
            id=f"dpl_new_{len(self.triggered)}",
            name=project,
            status=DeploymentStatus.QUEUED,
            environment=environment,
            branch=branch,
            repository=repository,
            url=f"https://{project}-{len(self.triggered)}.vercel.app",
        )
        self.statuses[remote.id] = [replace(remote, status=self.redeploy_status)]
        return remote

    async def list_deployments(self, limit: int = 10) -> List[PlatformDeployment]:
        return self.recent[:limit]


class FakeSourceControl(SourceControlHost):
    """Git host that records every call. `check_states` is consumed one item per poll."""

    def __init__(self) -> None:
        self.files: Dict[str, str] = {}
        self.branches: List[tuple] = []
        self.writes: List[Dict[str, str]] = []
        self.deletes: List[Dict[str, str]] = []
        self.pull_requests: List[ChangeRequest] = []
        self.check_states: List[Any] = [CheckState.PASSING]
        self.status_calls = 0
        self.merged: List[tuple] = []
        self.comments: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    async def create_branch(self, owner: str, repo: str, branch: str, base: str) -> None:
        self._maybe_fail("create_branch")
        self.branches.append((owner, repo, branch, base))

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Optional[str]:
        self._maybe_fail("get_file_content")
        return self.files.get(f"{owner}/{repo}@{ref}:{path}")

    async def update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> None:
        self._maybe_fail("update_file")
        self.writes.append({"repo": f"{owner}/{repo}", "path": path, "content": content,
                            "message": message, "branch": branch})

    async def delete_file(self, owner: str, repo: str, path: str, message: str, branch: str) -> None:
        self._maybe_fail("delete_file")
        self.deletes.append({"repo": f"{owner}/{repo}", "path": path, "message": message, "branch": branch})

    async def create_change_request(
        self, owner: str, repo: str, title: str, body: str, head: str, base: str
    ) -> ChangeRequest:
        self._maybe_fail("create_change_request")
        number = 42 + len(self.pull_requests)
        change = ChangeRequest(
            number=number,
            url=f"https://github.com/{owner}/{repo}/pull/{number}",
            owner=owner,
            repo=repo,
            branch=head,
            base=base,
            title=title,
        )
        self.pull_requests.append(change)
        return change

    async def get_change_status(self, owner: str, repo: str, number: int) -> CheckState:
        self.status_calls += 1
        return _next_item(self.check_states)

    async def merge_change(
        self, owner: str, repo: str, number: int, commit_title: Optional[str] = None
    ) -> None:
        self._maybe_fail("merge_change")
        self.merged.append((number, commit_title))

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        self._maybe_fail("create_issue_comment")
        self.comments.append((number, body))


class FakeWorkflowEngine(WorkflowEngine):
    def __init__(self) -> None:
        self.availability = Availability.up()
        self.execution_id: Optional[str] = "exec_1"
        self.states: List[Any] = [ExecutionState.SUCCESS]
        self.trigger_error: Optional[Exception] = None
        self.triggered: List[Dict[str, Any]] = []

    async def is_available(self) -> Availability:
        return self.availability

    async def trigger_execution(self, inputs: Dict[str, Any]) -> Optional[str]:
        if self.trigger_error is not None:
            raise self.trigger_error
        self.triggered.append(inputs)
        return self.execution_id

    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        return ExecutionStatus(id=execution_id, state=_next_item(self.states))


class FakeReviewer(CodeReviewService):
    def __init__(self, installed: bool = True) -> None:
        self.installed = installed
        self.probe_error: Optional[Exception] = None
        self.request_error: Optional[Exception] = None
        self.requested: List[ChangeRequest] = []

    async def is_installed(self, owner: str, repo: str) -> bool:
        if self.probe_error is not None:
            raise self.probe_error
        return self.installed

    async def request_review(self, change: ChangeRequest) -> None:
        if self.request_error is not None:
            raise self.request_error
        self.requested.append(change)


class FakeAIProvider(AIAnalysisProvider):
    """Answers from `responses` in order; an Exception item is raised instead."""

    def __init__(self, responses: Optional[List[Any]] = None, configured: bool = True) -> None:
        self.responses = list(responses or [AIAnalysis(root_cause="Missing import")])
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def analyze(self, error_text: str, log_lines: List[str], metadata: Dict[str, Any]) -> AIAnalysis:
        self.calls.append({"error_text": error_text, "log_lines": log_lines, "metadata": metadata})
        return _next_item(self.responses)


FAST_SETTINGS = {
    "environment": "test",
    "vercel_token": "vc_test",
    "github_token": "ghp_test",
    "github_default_owner": "acme",
    "kestra_url": "http://kestra.test",
    "gemini_api_key": "",
    "poll_interval_seconds": 0.01,
    "monitoring_window_seconds": 2.0,
    "discovery_interval_seconds": 0.01,
    "merge_poll_interval_seconds": 0.01,
    "merge_deadline_seconds": 1.0,
    "execution_poll_interval_seconds": 0.01,
    "execution_deadline_seconds": 1.0,
    "ai_min_spacing_seconds": 0,
    "ai_backoff_base_seconds": 1.0,
    "ai_max_retries": 3,
}


@pytest.fixture
def make_settings():
    """Factory for Settings that ignore the environment's .env file."""
    def factory(**overrides) -> Settings:
        return Settings(_env_file=None, **{**FAST_SETTINGS, **overrides})
    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def make_deployment():
    def factory(deployment_id: str = "proj-1", **kwargs) -> Deployment:
        values = {
            "name": "web",
            "status": DeploymentStatus.ERROR,
            "branch": "main",
            "repository": "acme/web",
        }
        values.update(kwargs)
        return Deployment(id=deployment_id, **values)
    return factory


@pytest.fixture
def registry() -> DeploymentRegistry:
    return DeploymentRegistry(max_deployments=50, max_logs_per_deployment=500)


@pytest.fixture
def ledger() -> ActionLedger:
    return ActionLedger()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def source_control() -> FakeSourceControl:
    return FakeSourceControl()


@pytest.fixture
def workflow_engine() -> FakeWorkflowEngine:
    return FakeWorkflowEngine()


@pytest.fixture
def reviewer() -> FakeReviewer:
    return FakeReviewer()


@pytest.fixture
def ai_provider() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture
def make_ai_provider():
    """FakeAIProvider factory: `make_ai_provider([error, analysis], configured=True)`."""
    return FakeAIProvider


@pytest.fixture
def unlimited() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_calls=1000, window_seconds=60, name="test")


@pytest.fixture
def graph(settings, registry, ledger, platform, source_control, reviewer):
    """
    The service graph wired from fakes, the way build_monitor_service wires adapters.

    No workflow engine and no AI provider: both degrade to their fallbacks.
    """
    poller = DeploymentPoller(platform, registry, settings=settings)
    dispatcher = WorkflowDispatcher(None, ledger, settings=settings)
    redeployer = RedeployTrigger(platform, registry, poller, ledger)
    orchestrator = RemediationOrchestrator(
        registry=registry,
        ledger=ledger,
        analyzer=FixStrategyAnalyzer(registry, provider=None, settings=settings),
        dispatcher=dispatcher,
        patch_builder=PatchBuilder(source_control, settings=settings),
        review=ReviewTrigger(reviewer, ledger),
        merge_supervisor=MergeSupervisor(source_control, ledger, settings=settings),
        redeployer=redeployer,
        settings=settings,
    )
    monitor = DeploymentMonitorService(
        registry=registry,
        ledger=ledger,
        poller=poller,
        orchestrator=orchestrator,
        redeployer=redeployer,
        dispatcher=dispatcher,
    )
    return SimpleNamespace(
        settings=settings,
        registry=registry,
        ledger=ledger,
        platform=platform,
        source_control=source_control,
        reviewer=reviewer,
        poller=poller,
        dispatcher=dispatcher,
        redeployer=redeployer,
        orchestrator=orchestrator,
        monitor=monitor,
    )
