# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Deployment Poller

Follows deployments on the platform: status, build events and newly created
deployments. Each tracked deployment gets its own PeriodicTask that stops on
a terminal status or when the monitoring window closes.
"""

from datetime import datetime
from typing import Callable, List, Optional

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import DeploymentStatus, LogLevel, LogSource
from resurrectci.core.models import Deployment, DeploymentError, LogEntry, utcnow
from resurrectci.core.ports import DeploymentPlatform, PlatformDeployment
from resurrectci.exceptions import ResurrectCIException
from resurrectci.services.log_classifier import ErrorDetector, LogClassifier
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.utils.logging import get_logger
from resurrectci.utils.scheduling import PeriodicTask, TaskOutcome

logger = get_logger(__name__)

ErrorCallback = Callable[[DeploymentError], None]

FETCHING_LOGS_NOTE = "📡 Fetching build logs..."
DEPLOYMENT_FAILED_NOTE = "❌ Deployment failed"


def format_duration(started: Optional[datetime], finished: Optional[datetime]) -> Optional[str]:
    """Format the time between two instants as "1m 5s" or "42s"."""
    if started is None or finished is None:
        return None
    seconds = max(0, int((finished - started).total_seconds()))
    minutes, seconds = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def to_deployment(
    platform_deployment: PlatformDeployment,
    parent_deployment_id: Optional[str] = None,
    remediation_depth: int = 0,
) -> Deployment:
    kwargs = {}
    if platform_deployment.created_at is not None:
        kwargs["created_at"] = platform_deployment.created_at
    return Deployment(
        id=platform_deployment.id,
        name=platform_deployment.name,
        status=platform_deployment.status,
        environment=platform_deployment.environment,
        branch=platform_deployment.branch,
        commit=platform_deployment.commit,
        url=platform_deployment.url,
        repository=platform_deployment.repository,
        project_id=platform_deployment.project_id,
        parent_deployment_id=parent_deployment_id,
        remediation_depth=remediation_depth,
        **kwargs,
    )


class DeploymentPoller:
    """
    Polls the deployment platform and feeds the registry.

    Example:
        ```python
        poller = DeploymentPoller(vercel, registry, on_error=orchestrator.submit)
        poller.start()
        poller.track("dpl_123")
        ```
    """

    def __init__(
        self,
        platform: DeploymentPlatform,
        registry: DeploymentRegistry,
        classifier: Optional[LogClassifier] = None,
        detector: Optional[ErrorDetector] = None,
        settings: Optional[Settings] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.platform = platform
        self.registry = registry
        self.classifier = classifier or LogClassifier()
        self.detector = detector or ErrorDetector(registry)
        self.settings = settings or get_settings()
        self.on_error = on_error

        self._trackers: dict[str, PeriodicTask] = {}
        self._discovery: Optional[PeriodicTask] = None
        self._fetch_failing: set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._discovery is not None and self._discovery.running

    @property
    def tracked_ids(self) -> List[str]:
        return [deployment_id for deployment_id, task in self._trackers.items() if task.running]

    def is_tracking(self, deployment_id: str) -> bool:
        task = self._trackers.get(deployment_id)
        return task is not None and task.running

    # Tracking

    def track(self, deployment_id: str) -> PeriodicTask:
        """Start following a deployment. Calling it again for a tracked id is a no-op."""
        task = self._trackers.get(deployment_id)
        if task is not None and task.running:
            return task

        async def tick() -> bool:
            return await self.poll_once(deployment_id)

        task = PeriodicTask(
            name=f"track:{deployment_id}",
            interval=self.settings.poll_interval_seconds,
            tick=tick,
            deadline=self.settings.monitoring_window_seconds,
        )
        self._trackers[deployment_id] = task
        task.start().add_done_callback(lambda _: self._on_tracker_done(deployment_id, task))
        logger.info("deployment_tracking_started", deployment_id=deployment_id)
        return task

    def _on_tracker_done(self, deployment_id: str, task: PeriodicTask) -> None:
        if self._trackers.get(deployment_id) is task:
            del self._trackers[deployment_id]
        self._fetch_failing.discard(deployment_id)
        if task.outcome == TaskOutcome.DEADLINE_EXCEEDED:
            logger.info("deployment_tracking_window_closed", deployment_id=deployment_id)
        else:
            logger.info("deployment_tracking_stopped", deployment_id=deployment_id, ticks=task.ticks)

    async def wait(self, deployment_id: str) -> Optional[TaskOutcome]:
        task = self._trackers.get(deployment_id)
        if task is None:
            return None
        return await task.wait()

    def _note(
        self,
        deployment_id: str,
        message: str,
        source: LogSource = LogSource.SYSTEM,
        level: LogLevel = LogLevel.INFO,
    ) -> None:
        self.registry.append_logs(
            deployment_id,
            [LogEntry(deployment_id=deployment_id, message=message, level=level, source=source)],
        )

    def _fetch_failed(self, deployment_id: str, error: ResurrectCIException) -> None:
        logger.warning("deployment_poll_failed", deployment_id=deployment_id, error=str(error))
        if deployment_id in self._fetch_failing or not self.registry.contains(deployment_id):
            return
        self._fetch_failing.add(deployment_id)
        self._note(deployment_id, FETCHING_LOGS_NOTE)

    async def poll_once(self, deployment_id: str) -> bool:
        """
        Fetch status and build events once.

        Returns:
            True when the deployment reached a terminal status and its final
            events were read, i.e. tracking can stop
        """
        try:
            remote = await self.platform.get_status(deployment_id)
        except ResurrectCIException as e:
            self._fetch_failed(deployment_id, e)
            return False

        if not self.registry.contains(deployment_id):
            self.registry.upsert(to_deployment(remote))

        duration = None
        if remote.status == DeploymentStatus.READY:
            current = self.registry.require(deployment_id)
            duration = format_duration(remote.created_at or current.created_at, remote.ready_at or utcnow())

        changed = self.registry.update_status(deployment_id, remote.status, url=remote.url, duration=duration)
        if changed:
            logger.info("deployment_status_changed", deployment_id=deployment_id, status=remote.status.value)
            self._note(deployment_id, f"Status changed to: {remote.status.value}")
            if remote.status == DeploymentStatus.READY:
                self._note(deployment_id, f"Deployment ready: {remote.url}", source=LogSource.DEPLOY)
            elif remote.status == DeploymentStatus.ERROR:
                self._note(deployment_id, DEPLOYMENT_FAILED_NOTE, source=LogSource.DEPLOY, level=LogLevel.ERROR)

        try:
            events = await self.platform.get_log_events(deployment_id)
        except ResurrectCIException as e:
            self._fetch_failed(deployment_id, e)
            return False
        self._fetch_failing.discard(deployment_id)

        stored = self.registry.append_logs(deployment_id, self.classifier.to_entries(deployment_id, events))
        error = self.detector.detect(deployment_id, stored)
        if error is not None and self.on_error is not None:
            self.on_error(error)

        return remote.status.is_terminal

    # Discovery

    async def discover(self) -> List[str]:
        """
        Register the platform's most recent deployments and track the
        non-terminal ones that are new.

        Returns:
            Ids of deployments that started being tracked
        """
        try:
            recent = await self.platform.list_deployments(limit=self.settings.discovery_limit)
        except ResurrectCIException as e:
            logger.warning("deployment_discovery_failed", error=str(e))
            return []

        started = []
        for remote in recent:
            if not remote.id or self.registry.contains(remote.id):
                continue
            self.registry.upsert(to_deployment(remote))
            if not remote.status.is_terminal:
                self.track(remote.id)
                started.append(remote.id)

        if started:
            logger.info("deployments_discovered", deployment_ids=started)
        return started

    def start(self) -> None:
        if self.is_running:
            return

        async def tick() -> bool:
            await self.discover()
            return False

        self._discovery = PeriodicTask(
            name="deployment_discovery",
            interval=self.settings.discovery_interval_seconds,
            tick=tick,
        )
        self._discovery.start()
        logger.info("deployment_discovery_started", interval=self.settings.discovery_interval_seconds)

    def stop(self) -> None:
        if self._discovery is not None:
            self._discovery.cancel()
            self._discovery = None
        for task in list(self._trackers.values()):
            task.cancel()
        logger.info("deployment_polling_stopped")
