# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Unit tests for the in-memory deployment registry."""

from datetime import datetime, timedelta, timezone

import pytest

from resurrectci.core.enums import DeploymentStatus, ErrorStatus, LogLevel
from resurrectci.core.models import Deployment, DeploymentError, LogEntry
from resurrectci.exceptions import (
    DeploymentErrorNotFoundError,
    DeploymentNotFoundError,
    InvalidStateTransitionError,
)
from resurrectci.services.registry import DeploymentRegistry


class TestDeploymentRegistry:
    """Test suite for DeploymentRegistry."""

    def test_upsert_and_get(self, registry: DeploymentRegistry):
        registry.upsert(Deployment(id="dpl_1", name="web", status=DeploymentStatus.BUILDING))

        stored = registry.get("dpl_1")
        assert stored is not None
        assert stored.name == "web"
        assert registry.contains("dpl_1")
        assert len(registry) == 1

    def test_readers_receive_snapshots(self, registry: DeploymentRegistry):
        registry.upsert(Deployment(id="dpl_1", name="web"))

        stored = registry.get("dpl_1")
        stored.status = DeploymentStatus.ERROR
        stored.logs.append(LogEntry("dpl_1", "outside write"))

        fresh = registry.get("dpl_1")
        assert fresh.status == DeploymentStatus.QUEUED
        assert fresh.logs == []

    def test_upsert_existing_keeps_logs(self, registry: DeploymentRegistry):
        registry.upsert(Deployment(id="dpl_1", name="web"))
        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Cloning", position=0)])

        registry.upsert(Deployment(id="dpl_1", name="web", status=DeploymentStatus.READY, url="https://web.app"))

        stored = registry.require("dpl_1")
        assert stored.status == DeploymentStatus.READY
        assert stored.url == "https://web.app"
        assert [entry.message for entry in stored.logs] == ["Cloning"]

    def test_unknown_deployment(self, registry: DeploymentRegistry):
        assert registry.get("missing") is None
        with pytest.raises(DeploymentNotFoundError):
            registry.require("missing")
        with pytest.raises(DeploymentNotFoundError):
            registry.append_logs("missing", [])

    def test_list_newest_first(self, registry: DeploymentRegistry):
        now = datetime.now(timezone.utc)
        registry.upsert(Deployment(id="old", name="web", created_at=now - timedelta(minutes=5)))
        registry.upsert(Deployment(id="new", name="web", created_at=now))

        assert [d.id for d in registry.list()] == ["new", "old"]

    def test_update_status_reports_change(self, registry: DeploymentRegistry):
        registry.upsert(Deployment(id="dpl_1", name="web", status=DeploymentStatus.BUILDING))

        assert registry.update_status("dpl_1", DeploymentStatus.READY, duration="42s") is True
        assert registry.update_status("dpl_1", DeploymentStatus.READY) is False
        assert registry.require("dpl_1").duration == "42s"


class TestRegistryLogs:
    """Test suite for log appending and deduplication."""

    @pytest.fixture
    def registry(self) -> DeploymentRegistry:
        registry = DeploymentRegistry(max_logs_per_deployment=10)
        registry.upsert(Deployment(id="dpl_1", name="web"))
        return registry

    def test_platform_entries_deduplicated(self, registry: DeploymentRegistry):
        first = registry.append_logs("dpl_1", [
            LogEntry("dpl_1", "Installing dependencies", position=0),
            LogEntry("dpl_1", "Building", position=1),
        ])
        second = registry.append_logs("dpl_1", [
            LogEntry("dpl_1", "Installing dependencies", position=0),
            LogEntry("dpl_1", "Building", position=1),
            LogEntry("dpl_1", "Build failed", position=2),
        ])

        assert len(first) == 2
        assert [entry.message for entry in second] == ["Build failed"]
        assert len(registry.logs_for("dpl_1")) == 3

    def test_same_message_at_new_position_is_kept(self, registry: DeploymentRegistry):
        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Retrying", position=4)])
        stored = registry.append_logs("dpl_1", [LogEntry("dpl_1", "Retrying", position=5)])

        assert len(stored) == 1

    def test_local_notes_always_stored(self, registry: DeploymentRegistry):
        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Status changed to: building")])
        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Status changed to: building")])

        assert len(registry.logs_for("dpl_1")) == 2

    def test_log_cap_keeps_newest(self, registry: DeploymentRegistry):
        registry.append_logs("dpl_1", [LogEntry("dpl_1", f"line {i}", position=i) for i in range(15)])

        logs = registry.logs_for("dpl_1")
        assert len(logs) == 10
        assert logs[0].message == "line 5"
        assert logs[-1].message == "line 14"

    def test_updates_published(self, registry: DeploymentRegistry):
        received = []
        registry.updates.subscribe(received.append)

        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Building", position=0)])
        registry.append_logs("dpl_1", [LogEntry("dpl_1", "Building", position=0)])

        assert len(received) == 1
        assert received[0].logs[0].message == "Building"

    def test_error_level_entries(self, registry: DeploymentRegistry):
        registry.append_logs("dpl_1", [
            LogEntry("dpl_1", "ok", position=0),
            LogEntry("dpl_1", "Error: boom", level=LogLevel.ERROR, position=1),
        ])

        assert len(registry.require("dpl_1").error_logs()) == 1


class TestRegistryErrors:
    """Test suite for error registration and transitions."""

    @pytest.fixture
    def registry(self) -> DeploymentRegistry:
        registry = DeploymentRegistry()
        registry.upsert(Deployment(id="dpl_1", name="web", status=DeploymentStatus.ERROR))
        return registry

    def test_exclusive_add_while_outstanding(self, registry: DeploymentRegistry):
        first = registry.add_error("dpl_1", DeploymentError("dpl_1", "first"))
        second = registry.add_error("dpl_1", DeploymentError("dpl_1", "second"))

        assert first is not None
        assert second is None
        assert len(registry.errors_for("dpl_1")) == 1

    def test_new_error_allowed_after_resolution(self, registry: DeploymentRegistry):
        first = registry.add_error("dpl_1", DeploymentError("dpl_1", "first"))
        registry.transition_error("dpl_1", first.id, ErrorStatus.FAILED)

        second = registry.add_error("dpl_1", DeploymentError("dpl_1", "second"))
        assert second is not None

    def test_non_exclusive_add(self, registry: DeploymentRegistry):
        registry.add_error("dpl_1", DeploymentError("dpl_1", "first"))
        registry.add_error("dpl_1", DeploymentError("dpl_1", "second"), exclusive=False)

        assert len(registry.errors_for("dpl_1")) == 2

    def test_transition_records_results(self, registry: DeploymentRegistry):
        error = registry.add_error("dpl_1", DeploymentError("dpl_1", "boom"))

        registry.transition_error("dpl_1", error.id, ErrorStatus.ANALYZING, analysis="missing import")
        registry.transition_error("dpl_1", error.id, ErrorStatus.FIXING)
        updated = registry.transition_error("dpl_1", error.id, ErrorStatus.RESOLVED, fix_applied=True)

        assert updated.status == ErrorStatus.RESOLVED
        assert updated.analysis == "missing import"
        assert updated.fix_applied is True

    def test_backward_transition_rejected(self, registry: DeploymentRegistry):
        error = registry.add_error("dpl_1", DeploymentError("dpl_1", "boom"))
        registry.transition_error("dpl_1", error.id, ErrorStatus.ANALYZING)
        registry.transition_error("dpl_1", error.id, ErrorStatus.FIXING)

        with pytest.raises(InvalidStateTransitionError):
            registry.transition_error("dpl_1", error.id, ErrorStatus.ANALYZING)
        assert registry.get_error("dpl_1", error.id).status == ErrorStatus.FIXING

    def test_record_analysis_keeps_status(self, registry: DeploymentRegistry):
        error = registry.add_error("dpl_1", DeploymentError("dpl_1", "boom"))

        updated = registry.record_analysis("dpl_1", error.id, analysis="root cause")

        assert updated.status == ErrorStatus.DETECTED
        assert updated.analysis == "root cause"

    def test_unknown_error(self, registry: DeploymentRegistry):
        with pytest.raises(DeploymentErrorNotFoundError):
            registry.get_error("dpl_1", "err_missing")


class TestRegistryEviction:
    """Test suite for capacity limits."""

    def test_oldest_terminal_deployment_evicted(self):
        registry = DeploymentRegistry(max_deployments=2)
        for deployment_id in ("dpl_1", "dpl_2", "dpl_3"):
            registry.upsert(Deployment(id=deployment_id, name="web", status=DeploymentStatus.READY))

        assert not registry.contains("dpl_1")
        assert registry.contains("dpl_2")
        assert registry.contains("dpl_3")

    def test_active_deployments_never_evicted(self):
        registry = DeploymentRegistry(max_deployments=2)
        registry.upsert(Deployment(id="building", name="web", status=DeploymentStatus.BUILDING))
        registry.upsert(Deployment(id="failed", name="web", status=DeploymentStatus.ERROR))
        registry.add_error("failed", DeploymentError("failed", "boom"))
        registry.upsert(Deployment(id="ready", name="web", status=DeploymentStatus.READY))

        assert registry.contains("building")
        assert registry.contains("failed")
        assert not registry.contains("ready")
