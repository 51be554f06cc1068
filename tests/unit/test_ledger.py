# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""Unit tests for the action ledger."""

from unittest.mock import Mock

import pytest

from resurrectci.core.enums import ActionStatus, ActionType
from resurrectci.exceptions import ActionNotFoundError, InvalidStateTransitionError
from resurrectci.services.ledger import ActionLedger


class TestActionLedger:
    """Test suite for ActionLedger."""

    def test_create_is_pending(self, ledger: ActionLedger):
        action = ledger.create("dpl_1", ActionType.CREATE_PR, "Open PR", error_id="err_1")

        assert action.status == ActionStatus.PENDING
        assert action.error_id == "err_1"
        assert ledger.get(action.id).description == "Open PR"
        assert len(ledger) == 1

    def test_observers_see_every_transition_in_order(self, ledger: ActionLedger):
        seen = []
        ledger.subscribe(lambda action: seen.append(action.status))

        action = ledger.create("dpl_1", ActionType.FIX_ISSUE, "Merge PR")
        ledger.start(action.id)
        ledger.complete(action.id, "PR #42 merged")

        assert seen == [ActionStatus.PENDING, ActionStatus.IN_PROGRESS, ActionStatus.COMPLETED]

    def test_observers_called_in_registration_order(self, ledger: ActionLedger):
        calls = []
        ledger.subscribe(lambda action: calls.append("first"))
        ledger.subscribe(lambda action: calls.append("second"))

        ledger.create("dpl_1", ActionType.ANALYZE_CODE, "Analyze")

        assert calls == ["first", "second"]

    def test_failing_observer_does_not_block_others(self, ledger: ActionLedger):
        broken = Mock(side_effect=RuntimeError("observer bug"))
        healthy = Mock()
        ledger.subscribe(broken)
        ledger.subscribe(healthy)

        action = ledger.create("dpl_1", ActionType.ANALYZE_CODE, "Analyze")

        healthy.assert_called_once()
        assert ledger.get(action.id).status == ActionStatus.PENDING

    def test_unsubscribe(self, ledger: ActionLedger):
        listener = Mock()
        ledger.subscribe(listener)

        assert ledger.unsubscribe(listener) is True
        assert ledger.unsubscribe(listener) is False

        ledger.create("dpl_1", ActionType.ANALYZE_CODE, "Analyze")
        listener.assert_not_called()

    def test_complete_starts_pending_action(self, ledger: ActionLedger):
        seen = []
        ledger.subscribe(lambda action: seen.append(action.status))
        action = ledger.create("dpl_1", ActionType.TRIGGER_WORKFLOW, "Trigger")

        completed = ledger.complete(action.id, "Workflow triggered")

        assert completed.status == ActionStatus.COMPLETED
        assert completed.result == "Workflow triggered"
        assert seen == [ActionStatus.PENDING, ActionStatus.IN_PROGRESS, ActionStatus.COMPLETED]

    def test_terminal_action_cannot_change(self, ledger: ActionLedger):
        action = ledger.create("dpl_1", ActionType.RETRY_DEPLOYMENT, "Redeploy")
        ledger.fail(action.id, "Redeploy failed")

        with pytest.raises(InvalidStateTransitionError):
            ledger.complete(action.id, "late success")
        with pytest.raises(InvalidStateTransitionError):
            ledger.fail(action.id, "again")

        assert ledger.get(action.id).result == "Redeploy failed"

    def test_for_deployment_newest_first(self, ledger: ActionLedger):
        first = ledger.create("dpl_1", ActionType.ANALYZE_CODE, "Analyze")
        second = ledger.create("dpl_1", ActionType.CREATE_PR, "Open PR")
        ledger.create("dpl_2", ActionType.ANALYZE_CODE, "Other deployment")

        actions = ledger.for_deployment("dpl_1")

        assert [a.id for a in actions] == [second.id, first.id]
        assert ledger.for_deployment("unknown") == []
        assert len(ledger.all()) == 3

    def test_returned_actions_are_snapshots(self, ledger: ActionLedger):
        action = ledger.create("dpl_1", ActionType.ANALYZE_CODE, "Analyze")
        ledger.start(action.id)

        assert action.status == ActionStatus.PENDING
        assert ledger.get(action.id).status == ActionStatus.IN_PROGRESS

    def test_unknown_action(self, ledger: ActionLedger):
        with pytest.raises(ActionNotFoundError):
            ledger.get("action_missing")
        with pytest.raises(ActionNotFoundError):
            ledger.start("action_missing")
