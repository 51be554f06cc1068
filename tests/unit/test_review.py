# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Unit tests for the review trigger."""

import pytest

from resurrectci.core.enums import ActionStatus, ActionType
from resurrectci.core.models import ChangeRequest, DeploymentError
from resurrectci.exceptions import CodeRabbitError, GitHubAPIError
from resurrectci.services.review import ReviewTrigger


class TestReviewTrigger:
    """Test suite for ReviewTrigger."""

    @pytest.fixture
    def change(self) -> ChangeRequest:
        return ChangeRequest(
            number=42,
            url="https://github.com/acme/web/pull/42",
            owner="acme",
            repo="web",
            branch="resurrect-fix-1",
            base="main",
        )

    @pytest.fixture
    def error(self) -> DeploymentError:
        return DeploymentError("proj-1", "Module not found")

    @pytest.mark.asyncio
    async def test_review_requested(self, reviewer, ledger, make_deployment, error, change):
        trigger = ReviewTrigger(reviewer, ledger)

        action = await trigger.request(make_deployment(), error, change)

        assert action.type == ActionType.ANALYZE_CODE
        assert action.status == ActionStatus.COMPLETED
        assert action.result == "Review requested on PR #42"
        assert action.error_id == error.id
        assert reviewer.requested == [change]

    @pytest.mark.asyncio
    async def test_no_reviewer(self, ledger, make_deployment, error, change):
        action = await ReviewTrigger(None, ledger).request(make_deployment(), error, change)

        assert action.status == ActionStatus.COMPLETED
        assert action.result.startswith("Review skipped")

    @pytest.mark.asyncio
    async def test_not_installed(self, reviewer, ledger, make_deployment, error, change):
        reviewer.installed = False

        action = await ReviewTrigger(reviewer, ledger).request(make_deployment(), error, change)

        assert action.status == ActionStatus.COMPLETED
        assert action.result == "Review skipped: CodeRabbit is not installed on acme/web"
        assert reviewer.requested == []

    @pytest.mark.asyncio
    async def test_probe_failure_treated_as_not_installed(self, reviewer, ledger, make_deployment, error, change):
        reviewer.probe_error = GitHubAPIError("Server Error", status_code=502)

        action = await ReviewTrigger(reviewer, ledger).request(make_deployment(), error, change)

        assert action.status == ActionStatus.COMPLETED
        assert "not installed" in action.result

    @pytest.mark.asyncio
    async def test_request_failure_only_fails_review_action(self, reviewer, ledger, make_deployment, error, change):
        reviewer.request_error = CodeRabbitError("Could not request review", status_code=403)

        action = await ReviewTrigger(reviewer, ledger).request(make_deployment(), error, change)

        assert action.status == ActionStatus.FAILED
        assert action.result.startswith("Review request failed")
