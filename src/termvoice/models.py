"""Core value types shared across the narration pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class SourceKind(str, Enum):
    TERMINAL = "terminal"
    STRUCTURED = "structured"


class Verdict(str, Enum):
    """Classification of a single normalized line."""

    GARBAGE = "garbage"
    TOOL_CHATTER = "tool_chatter"
    APPROVAL_PROMPT = "approval_prompt"
    APPROVAL_OPTION = "approval_option"
    CONTENT = "content"

    @property
    def is_approval(self) -> bool:
        return self in (Verdict.APPROVAL_PROMPT, Verdict.APPROVAL_OPTION)


@dataclass(frozen=True)
class RawEvent:
    """One unit of input produced by a source adapter."""

    payload: bytes | str
    source_kind: SourceKind
    received_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class NormalizedLine:
    text: str
    emitted_at: float


@dataclass(frozen=True)
class ApprovalState:
    active: bool = False
    deadline: float | None = None

    def is_active(self, now: float) -> bool:
        """Return True while the approval context has not expired."""
        if not self.active:
            return False
        return self.deadline is None or now < self.deadline


INACTIVE_APPROVAL = ApprovalState()


@dataclass(frozen=True)
class Utterance:
    """A finalized block of text destined for speech."""

    text: str
    produced_at: float


@dataclass(frozen=True)
class DedupEntry:
    text: str
    inserted_at: float


__all__ = [
    "ApprovalState",
    "DedupEntry",
    "INACTIVE_APPROVAL",
    "NormalizedLine",
    "RawEvent",
    "SourceKind",
    "Utterance",
    "Verdict",
]
