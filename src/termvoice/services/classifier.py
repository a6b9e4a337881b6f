"""Line classifier separating narrative content from terminal noise."""

from __future__ import annotations

import re

from termvoice.models import INACTIVE_APPROVAL, ApprovalState, Verdict
from termvoice.services.patterns import DEFAULT_PATTERNS, PatternTable

_ALNUM_SPACE_RE = re.compile(r"^[A-Za-z0-9\s]+$")


class GarbageClassifier:
    """
    Pure, rule-ordered classifier for normalized lines.

    The verdict depends only on the line, the approval state handed in and the
    configured pattern table, so the same inputs always yield the same result.
    Approval expiry is resolved by the caller before calling ``classify``.

    Attributes:
        min_length: Lines shorter than this (after trimming) are garbage
        approval_short_length: While an approval dialog is open, short
            alphanumeric lines below this length are treated as keystroke noise
        patterns: Pattern table consulted for every rule
    """

    def __init__(
        self,
        min_length: int = 3,
        approval_short_length: int = 20,
        patterns: PatternTable = DEFAULT_PATTERNS,
    ):
        self.min_length = min_length
        self.approval_short_length = approval_short_length
        self.patterns = patterns

    def classify(self, line: str, approval: ApprovalState = INACTIVE_APPROVAL) -> Verdict:
        clean = line.strip()
        p = self.patterns

        if len(clean) < self.min_length:
            return Verdict.GARBAGE
        if clean.lower() in p.exact_garbage:
            return Verdict.GARBAGE
        if any(pattern.search(clean) for pattern in p.garbage):
            return Verdict.GARBAGE
        if (
            approval.active
            and len(clean) < self.approval_short_length
            and _ALNUM_SPACE_RE.match(clean)
        ):
            return Verdict.GARBAGE
        if self.is_tool_chatter(clean):
            return Verdict.TOOL_CHATTER
        if any(pattern.search(clean) for pattern in p.approval_prompt):
            return Verdict.APPROVAL_PROMPT
        if any(pattern.search(clean) for pattern in p.approval_option):
            return Verdict.APPROVAL_OPTION
        return Verdict.CONTENT

    def is_tool_chatter(self, text: str) -> bool:
        """Return True for verb+target bookkeeping lines and tool output shapes."""
        p = self.patterns
        match = p.tool_verbs.match(text)
        if match and p.tool_targets.search(match.group("rest")):
            return True
        return any(pattern.search(text) for pattern in p.tool_output)


__all__ = ["GarbageClassifier"]
