"""
Tests for the issue status state machine.
"""

from datetime import datetime, timezone

import pytest

from src.core import InvalidTransitionException, ValidationException
from src.issues.domain import IssueStateMachine

NOW = datetime(2024, 6, 10, 9, 30, tzinfo=timezone.utc)
STATUSES = ["pending", "in_progress", "resolved"]


class TestDefaultPolicy:
    """Any status may move to any other."""

    @pytest.mark.parametrize("current", STATUSES)
    @pytest.mark.parametrize("target", STATUSES)
    def test_every_transition_allowed(self, current, target):
        fields = IssueStateMachine().plan(current, target, NOW)
        assert fields["status"] == target

    @pytest.mark.parametrize("current", STATUSES)
    @pytest.mark.parametrize("target", STATUSES)
    def test_resolved_at_tracks_resolved_status(self, current, target):
        fields = IssueStateMachine().plan(current, target, NOW)
        if target == "resolved":
            assert fields["resolved_at"] == NOW
        else:
            assert fields["resolved_at"] is None

    def test_reopen_clears_resolved_at(self):
        fields = IssueStateMachine().plan("resolved", "pending", NOW)
        assert fields == {"status": "pending", "resolved_at": None}

    def test_unknown_target_rejected(self):
        with pytest.raises(ValidationException):
            IssueStateMachine().plan("pending", "closed", NOW)


class TestForwardOnlyPolicy:
    """pending -> in_progress -> resolved only."""

    def test_forward_moves_allowed(self):
        machine = IssueStateMachine(forward_only=True)
        assert machine.plan("pending", "in_progress", NOW)["status"] == "in_progress"
        assert machine.plan("in_progress", "resolved", NOW)["resolved_at"] == NOW
        assert machine.plan("pending", "resolved", NOW)["status"] == "resolved"

    @pytest.mark.parametrize("current,target", [
        ("resolved", "pending"),
        ("resolved", "in_progress"),
        ("in_progress", "pending"),
    ])
    def test_backward_moves_rejected(self, current, target):
        machine = IssueStateMachine(forward_only=True)
        with pytest.raises(InvalidTransitionException) as exc_info:
            machine.plan(current, target, NOW)
        assert exc_info.value.current == current
        assert exc_info.value.target == target

    def test_allowed_targets(self):
        machine = IssueStateMachine(forward_only=True)
        assert machine.allowed_targets("resolved") == ["resolved"]
        assert machine.can_transition("pending", "in_progress")
        assert not machine.can_transition("in_progress", "pending")
