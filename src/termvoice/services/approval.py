"""Time-boxed approval-dialog context."""

from __future__ import annotations

import logging

from termvoice.models import INACTIVE_APPROVAL, ApprovalState, Verdict

logger = logging.getLogger(__name__)


class ApprovalTracker:
    """
    Tracks whether the monitored program is showing an approval dialog.

    The state is a deadline checked lazily on every access; nothing runs in the
    background. The latest prompt always wins: each approval verdict replaces
    the previous deadline.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._state = INACTIVE_APPROVAL

    def current(self, now: float) -> ApprovalState:
        """Return the state as of ``now``, clearing it once the deadline passed."""
        if self._state.active and not self._state.is_active(now):
            logger.debug("Approval context expired")
            self._state = INACTIVE_APPROVAL
        return self._state

    def observe(self, verdict: Verdict, now: float) -> ApprovalState:
        if verdict.is_approval:
            return self.activate(now)
        return self.current(now)

    def activate(self, now: float) -> ApprovalState:
        if not self._state.is_active(now):
            logger.debug("Approval context opened")
        self._state = ApprovalState(active=True, deadline=now + self.timeout_seconds)
        return self._state

    def reset(self) -> None:
        """Clear the context immediately (mode transitions, stop requests)."""
        self._state = INACTIVE_APPROVAL


__all__ = ["ApprovalTracker"]
