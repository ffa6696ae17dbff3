"""
Issue Status State Machine
==========================

pending -> in_progress -> resolved, with resolved_at tied to the
resolved state: set on entering it, cleared on leaving it.

By default any status may move to any other (administrator override).
The forward-only policy allows just the lifecycle order plus same-state
updates.
"""

from datetime import datetime
from typing import Dict, List, Optional

from src.config import IssueStatus, VALID_STATUSES
from src.core import InvalidTransitionException, ValidationException


class IssueStateMachine:
    """Plans the field changes for a status transition."""

    FORWARD_TRANSITIONS: Dict[str, List[str]] = {
        IssueStatus.PENDING: [IssueStatus.PENDING, IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED],
        IssueStatus.IN_PROGRESS: [IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED],
        IssueStatus.RESOLVED: [IssueStatus.RESOLVED],
    }

    def __init__(self, forward_only: bool = False):
        self._forward_only = forward_only

    @property
    def forward_only(self) -> bool:
        return self._forward_only

    def allowed_targets(self, current: str) -> List[str]:
        if self._forward_only:
            return list(self.FORWARD_TRANSITIONS.get(current, []))
        return list(VALID_STATUSES)

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed_targets(current)

    def plan(self, current: str, target: str, now: datetime) -> Dict[str, Optional[datetime] | str]:
        """
        Field updates that move an issue from ``current`` to ``target``.

        Raises:
            ValidationException: target is not a defined status
            InvalidTransitionException: forward-only policy forbids the move
        """
        if target not in VALID_STATUSES:
            raise ValidationException(
                f"Unknown status '{target}'",
                {"field": "status", "allowed": list(VALID_STATUSES)}
            )
        if not self.can_transition(current, target):
            raise InvalidTransitionException(current, target)

        return {
            "status": target,
            "resolved_at": now if target == IssueStatus.RESOLVED else None,
        }
