# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Unit tests for the remediation orchestrator, wired from in-memory fakes."""

from unittest.mock import AsyncMock, Mock

import pytest

from resurrectci.core.enums import (
    ActionStatus,
    ActionType,
    CheckState,
    DeploymentStatus,
    ErrorStatus,
)
from resurrectci.core.models import DeploymentError
from resurrectci.core.ports import PlatformLogEvent
from resurrectci.exceptions import GitHubAPIError, VercelAPIError

MODULE_ERROR = "Module not found: Error: Can't resolve './components/Header' in '/vercel/path0/src'"


@pytest.fixture
def failed(graph, make_deployment):
    """Register a failed deployment with one detected error and return the error."""
    def factory(deployment_id: str = "proj-1", error_text: str = MODULE_ERROR, **kwargs) -> DeploymentError:
        if not graph.registry.contains(deployment_id):
            graph.registry.upsert(make_deployment(deployment_id, **kwargs))
        return graph.registry.add_error(deployment_id, DeploymentError(deployment_id, error_text), exclusive=False)
    return factory


class TestRemediationPipeline:
    """Test suite for RemediationOrchestrator.remediate."""

    @pytest.mark.asyncio
    async def test_full_pipeline_resolves_error(self, graph, failed):
        error = failed()

        result = await graph.orchestrator.remediate(error)

        assert result.success is True
        assert result.stage == "done"
        assert result.redeploy_id == "dpl_new_1"
        assert result.change_request.number == 42

        stored = graph.registry.get_error("proj-1", error.id)
        assert stored.status == ErrorStatus.RESOLVED
        assert stored.fix_applied is True
        assert stored.suggested_fix is not None

        actions = list(reversed(graph.ledger.for_deployment("proj-1")))
        assert [a.type for a in actions] == [
            ActionType.ANALYZE_CODE,
            ActionType.TRIGGER_WORKFLOW,
            ActionType.CREATE_PR,
            ActionType.ANALYZE_CODE,
            ActionType.FIX_ISSUE,
            ActionType.RETRY_DEPLOYMENT,
        ]
        assert all(a.status == ActionStatus.COMPLETED for a in actions)
        assert all(a.error_id == error.id for a in actions)

        assert graph.source_control.writes[0]["path"] == "src/components/Header.tsx"
        assert len(graph.source_control.merged) == 1
        assert graph.reviewer.requested[0].number == 42

        redeploy = graph.registry.require("dpl_new_1")
        assert redeploy.parent_deployment_id == "proj-1"
        assert redeploy.remediation_depth == 1
        await graph.poller.wait("dpl_new_1")
        assert graph.registry.require("dpl_new_1").status == DeploymentStatus.READY

    @pytest.mark.asyncio
    async def test_pull_request_failure(self, graph, failed):
        graph.source_control.fail_on["create_branch"] = GitHubAPIError("Reference already exists", status_code=422)
        error = failed()

        result = await graph.orchestrator.remediate(error)

        assert result.success is False
        assert result.stage == "create_pr"
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.FAILED
        create_pr = [a for a in graph.ledger.for_deployment("proj-1") if a.type == ActionType.CREATE_PR][0]
        assert create_pr.status == ActionStatus.FAILED
        assert graph.platform.triggered == []

    @pytest.mark.asyncio
    async def test_failing_checks_leave_error_failed(self, graph, failed):
        graph.source_control.check_states = [CheckState.FAILING]
        error = failed()

        result = await graph.orchestrator.remediate(error)

        assert result.success is False
        assert result.stage == "merge"
        assert result.change_request.number == 42
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.FAILED
        assert graph.source_control.merged == []
        assert graph.platform.triggered == []

    @pytest.mark.asyncio
    async def test_depth_guard(self, graph, failed):
        error = failed(remediation_depth=3, parent_deployment_id="proj-0")

        result = await graph.orchestrator.remediate(error)

        assert result.success is False
        assert result.stage == "depth_guard"
        assert "manual intervention required" in result.message
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.FAILED
        assert graph.ledger.for_deployment("proj-1") == []
        assert graph.source_control.branches == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, graph, failed):
        graph.orchestrator.analyzer = Mock()
        graph.orchestrator.analyzer.analyze = AsyncMock(side_effect=RuntimeError("boom"))
        error = failed()

        result = await graph.orchestrator.remediate(error)

        assert result.success is False
        assert result.stage == "analyze"
        analyze = graph.ledger.for_deployment("proj-1")[0]
        assert analyze.status == ActionStatus.FAILED
        assert analyze.result == "Unexpected error: boom"
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.FAILED

    @pytest.mark.asyncio
    async def test_redeploy_failure_still_resolves(self, graph, failed):
        graph.platform.trigger_error = VercelAPIError("Internal Server Error", status_code=500)
        error = failed()

        result = await graph.orchestrator.remediate(error)

        assert result.success is True
        assert "redeploy could not be started" in result.message
        assert result.redeploy_id is None
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.RESOLVED
        retry = graph.ledger.for_deployment("proj-1")[0]
        assert retry.type == ActionType.RETRY_DEPLOYMENT
        assert retry.status == ActionStatus.FAILED


class TestRemediationQueue:
    """Test suite for per-deployment queueing."""

    @pytest.mark.asyncio
    async def test_disabled_automation_does_not_queue(self, graph, failed):
        graph.monitor.set_automation_enabled(False)
        error = failed()

        assert graph.orchestrator.submit(error) is False
        assert not graph.orchestrator.in_flight("proj-1")
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.DETECTED

    @pytest.mark.asyncio
    async def test_errors_of_one_deployment_run_in_order(self, graph, failed):
        first = failed()
        second = failed(error_text="Error: missing script: \"build\"\nnpm ERR! missing script: build")

        assert graph.orchestrator.submit(first) is True
        assert graph.orchestrator.submit(second) is True
        assert graph.orchestrator.in_flight("proj-1")
        assert graph.orchestrator.pending("proj-1") == 2

        await graph.orchestrator.drain()

        error_ids = [a.error_id for a in reversed(graph.ledger.for_deployment("proj-1"))]
        boundary = error_ids.index(second.id)
        assert set(error_ids[:boundary]) == {first.id}
        assert set(error_ids[boundary:]) == {second.id}
        assert graph.orchestrator.results[first.id].success is True
        assert graph.orchestrator.results[second.id].success is True
        assert not graph.orchestrator.in_flight("proj-1")
        graph.poller.stop()

    @pytest.mark.asyncio
    async def test_detected_failure_is_remediated_end_to_end(self, graph):
        graph.platform.add("dpl_1", DeploymentStatus.BUILDING, DeploymentStatus.ERROR, repository="acme/web")
        graph.platform.events["dpl_1"] = [
            PlatformLogEvent(position=1, message="Cloning github.com/acme/web"),
            PlatformLogEvent(position=2, message=MODULE_ERROR),
        ]

        graph.monitor.track_deployment("dpl_1")
        await graph.poller.wait("dpl_1")
        await graph.orchestrator.drain()

        errors = graph.monitor.get_errors_for("dpl_1")
        assert len(errors) == 1
        assert errors[0].status == ErrorStatus.RESOLVED
        assert graph.registry.require("dpl_new_1").parent_deployment_id == "dpl_1"
        graph.poller.stop()

    @pytest.mark.asyncio
    async def test_errors_detected_while_disabled_run_when_enabled(self, graph):
        graph.monitor.set_automation_enabled(False)
        graph.platform.add("dpl_1", DeploymentStatus.BUILDING, DeploymentStatus.ERROR, repository="acme/web")
        graph.platform.events["dpl_1"] = [PlatformLogEvent(position=1, message=MODULE_ERROR)]

        graph.monitor.track_deployment("dpl_1")
        await graph.poller.wait("dpl_1")
        assert [e.status for e in graph.monitor.get_errors_for("dpl_1")] == [ErrorStatus.DETECTED]
        assert graph.ledger.for_deployment("dpl_1") == []

        graph.monitor.set_automation_enabled(True)
        assert graph.orchestrator.in_flight("dpl_1")
        await graph.orchestrator.drain()

        errors = graph.monitor.get_errors_for("dpl_1")
        assert len(errors) == 1
        assert errors[0].status == ErrorStatus.RESOLVED
        assert graph.ledger.for_deployment("dpl_1") != []
        graph.poller.stop()

    @pytest.mark.asyncio
    async def test_resubmitting_does_not_queue_twice(self, graph, failed):
        error = failed()

        assert graph.orchestrator.submit(error) is True
        assert graph.orchestrator.resubmit_detected() == 0
        assert graph.orchestrator.pending("proj-1") == 1

        await graph.orchestrator.drain()
        assert graph.registry.get_error("proj-1", error.id).status == ErrorStatus.RESOLVED
        graph.poller.stop()

    @pytest.mark.asyncio
    async def test_close_cancels_workers(self, graph, failed):
        graph.source_control.check_states = [CheckState.PENDING]
        error = failed()

        graph.orchestrator.submit(error)
        await graph.orchestrator.close()

        assert not graph.orchestrator.in_flight("proj-1")
