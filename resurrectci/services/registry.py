# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
In-memory deployment registry.

Single source of truth for deployment state. Writes for one deployment are
serialized with a per-id lock; readers always receive snapshots.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Iterable, Optional

from resurrectci.core.enums import DeploymentStatus, ErrorStatus
from resurrectci.core.models import Deployment, DeploymentError, FixStrategy, LogEntry
from resurrectci.exceptions import DeploymentNotFoundError, DeploymentErrorNotFoundError
from resurrectci.utils.locks import KeyedLock
from resurrectci.utils.logging import get_logger
from resurrectci.utils.pubsub import Publisher

logger = get_logger(__name__)


class DeploymentRegistry:
    """
    Stores deployments, their logs and their detected errors.

    Example:
        ```python
        registry = DeploymentRegistry()
        registry.upsert(Deployment(id="dpl_1", name="web"))
        stored = registry.append_logs("dpl_1", [LogEntry("dpl_1", "Cloning...", position=0)])
        ```
    """

    def __init__(self, max_deployments: int = 200, max_logs_per_deployment: int = 5000):
        self.max_deployments = max_deployments
        self.max_logs_per_deployment = max_logs_per_deployment
        self.updates: Publisher[Deployment] = Publisher("deployment_updates")

        self._deployments: "OrderedDict[str, Deployment]" = OrderedDict()
        self._seen: dict[str, set[tuple[str, int]]] = {}
        self._guard = threading.Lock()
        self._locks = KeyedLock()

    def _get(self, deployment_id: str) -> Deployment:
        with self._guard:
            deployment = self._deployments.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return deployment

    def _find_error(self, deployment: Deployment, error_id: str) -> DeploymentError:
        for error in deployment.errors:
            if error.id == error_id:
                return error
        raise DeploymentErrorNotFoundError(deployment.id, error_id)

    def _publish(self, deployment: Deployment) -> None:
        self.updates.publish(deployment.snapshot())

    # Deployments

    def upsert(self, deployment: Deployment) -> Deployment:
        """
        Insert a deployment, or refresh the header fields of a known one.

        Logs and errors of a known deployment are kept; those of `deployment`
        are ignored for an existing id.
        """
        with self._locks.hold(deployment.id):
            with self._guard:
                existing = self._deployments.get(deployment.id)
                if existing is None:
                    stored = deployment.snapshot()
                    self._deployments[deployment.id] = stored
                    self._seen[deployment.id] = {
                        entry.dedup_key for entry in stored.logs if entry.dedup_key
                    }
                    created = True
                else:
                    stored = existing
                    created = False

            if not created:
                stored.name = deployment.name or stored.name
                stored.status = deployment.status
                stored.environment = deployment.environment
                stored.branch = deployment.branch or stored.branch
                stored.commit = deployment.commit or stored.commit
                stored.url = deployment.url or stored.url
                stored.duration = deployment.duration or stored.duration
                stored.repository = deployment.repository or stored.repository
                if deployment.parent_deployment_id:
                    stored.parent_deployment_id = deployment.parent_deployment_id
                    stored.remediation_depth = deployment.remediation_depth

            snapshot = stored.snapshot()

        if created:
            logger.info(
                "deployment_registered",
                deployment_id=deployment.id,
                name=deployment.name,
                status=deployment.status.value,
                remediation_depth=deployment.remediation_depth,
            )
            self._evict()

        self.updates.publish(snapshot)
        return snapshot

    def get(self, deployment_id: str) -> Optional[Deployment]:
        with self._guard:
            deployment = self._deployments.get(deployment_id)
        if deployment is None:
            return None
        with self._locks.hold(deployment_id):
            return deployment.snapshot()

    def require(self, deployment_id: str) -> Deployment:
        """Like get(), raising DeploymentNotFoundError for unknown ids."""
        deployment = self.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return deployment

    def contains(self, deployment_id: str) -> bool:
        with self._guard:
            return deployment_id in self._deployments

    def list(self) -> list[Deployment]:
        """All deployments, newest first."""
        with self._guard:
            ids = list(self._deployments.keys())
        snapshots = [d for d in (self.get(i) for i in ids) if d is not None]
        return sorted(snapshots, key=lambda d: d.created_at, reverse=True)

    def update_status(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        url: Optional[str] = None,
        duration: Optional[str] = None,
    ) -> bool:
        """Set the deployment status. Returns True when the status changed."""
        deployment = self._get(deployment_id)
        with self._locks.hold(deployment_id):
            changed = deployment.status != status
            deployment.status = status
            if url:
                deployment.url = url
            if duration:
                deployment.duration = duration
        if changed:
            self._publish(deployment)
        return changed

    # Logs

    def append_logs(self, deployment_id: str, logs: Iterable[LogEntry]) -> list[LogEntry]:
        """
        Append log entries in order and return the ones actually stored.

        Platform entries already present (same message and position) are
        skipped. Local notes (position None) are always stored.
        """
        deployment = self._get(deployment_id)
        stored: list[LogEntry] = []

        with self._locks.hold(deployment_id):
            seen = self._seen.setdefault(deployment_id, set())
            for entry in logs:
                key = entry.dedup_key
                if key is not None:
                    if key in seen:
                        continue
                    seen.add(key)
                deployment.logs.append(entry)
                stored.append(entry)

            overflow = len(deployment.logs) - self.max_logs_per_deployment
            if overflow > 0:
                del deployment.logs[:overflow]

        if stored:
            self._publish(deployment)
        return stored

    def logs_for(self, deployment_id: str) -> list[LogEntry]:
        return list(self.require(deployment_id).logs)

    # Errors

    def add_error(self, deployment_id: str, error: DeploymentError, exclusive: bool = True) -> Optional[DeploymentError]:
        """
        Attach a detected error to a deployment.

        With `exclusive`, nothing is added while another error on the same
        deployment is still outstanding, and None is returned.
        """
        deployment = self._get(deployment_id)
        with self._locks.hold(deployment_id):
            if exclusive and deployment.outstanding_error() is not None:
                return None
            deployment.errors.append(error)
            snapshot = error.snapshot()

        logger.info(
            "deployment_error_detected",
            deployment_id=deployment_id,
            error_id=error.id,
            error=error.error_text[:200],
        )
        self._publish(deployment)
        return snapshot

    def transition_error(
        self,
        deployment_id: str,
        error_id: str,
        status: ErrorStatus,
        analysis: Optional[str] = None,
        suggested_fix: Optional[FixStrategy] = None,
        fix_applied: Optional[bool] = None,
    ) -> DeploymentError:
        """
        Move an error forward and optionally record analysis results.

        Raises:
            InvalidStateTransitionError: If the move is not forward
        """
        deployment = self._get(deployment_id)
        with self._locks.hold(deployment_id):
            error = self._find_error(deployment, error_id)
            previous = error.status
            error.transition_to(status)
            if analysis is not None:
                error.analysis = analysis
            if suggested_fix is not None:
                error.suggested_fix = suggested_fix
            if fix_applied is not None:
                error.fix_applied = fix_applied
            snapshot = error.snapshot()

        logger.info(
            "deployment_error_transition",
            deployment_id=deployment_id,
            error_id=error_id,
            from_status=previous.value,
            to_status=status.value,
        )
        self._publish(deployment)
        return snapshot

    def record_analysis(
        self,
        deployment_id: str,
        error_id: str,
        analysis: Optional[str] = None,
        suggested_fix: Optional[FixStrategy] = None,
    ) -> DeploymentError:
        """Store analysis output without changing the error status."""
        deployment = self._get(deployment_id)
        with self._locks.hold(deployment_id):
            error = self._find_error(deployment, error_id)
            if analysis is not None:
                error.analysis = analysis
            if suggested_fix is not None:
                error.suggested_fix = suggested_fix
            snapshot = error.snapshot()
        self._publish(deployment)
        return snapshot

    def get_error(self, deployment_id: str, error_id: str) -> DeploymentError:
        deployment = self._get(deployment_id)
        with self._locks.hold(deployment_id):
            return self._find_error(deployment, error_id).snapshot()

    def errors_for(self, deployment_id: str) -> list[DeploymentError]:
        return list(self.require(deployment_id).errors)

    # Capacity

    def _evict(self) -> None:
        with self._guard:
            excess = len(self._deployments) - self.max_deployments
            if excess <= 0:
                return
            victims = [
                deployment_id
                for deployment_id, deployment in self._deployments.items()
                if deployment.is_terminal and deployment.outstanding_error() is None
            ][:excess]
            for deployment_id in victims:
                del self._deployments[deployment_id]
                self._seen.pop(deployment_id, None)

        for deployment_id in victims:
            self._locks.discard(deployment_id)
            logger.info("deployment_evicted", deployment_id=deployment_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._deployments)
