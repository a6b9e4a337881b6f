"""
Message Aggregator for marker-delimited narration blocks.

The monitored program prints narrative text as a block that starts with a
leading marker glyph, followed by continuation lines wrapped by its renderer:

    ⏺ Building the cache layer now
      It uses a write-ahead log
    ✻ Thinking…

The aggregator reassembles such a block into a single utterance:

    lines → MessageAggregator.feed() → Utterance("Building ... write-ahead log")

States:
    IDLE        waiting for a start-of-narration marker
    COLLECTING  appending continuation lines until a stop condition fires
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List

from termvoice.models import Utterance, Verdict
from termvoice.services.patterns import DEFAULT_PATTERNS, PatternTable

logger = logging.getLogger(__name__)

_STOP_VERDICTS = frozenset(
    {
        Verdict.GARBAGE,
        Verdict.TOOL_CHATTER,
        Verdict.APPROVAL_PROMPT,
        Verdict.APPROVAL_OPTION,
    }
)


class AggregatorState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"


class MessageAggregator:
    """
    Two-state machine grouping consecutive lines into one utterance.

    Attributes:
        classify: Classifies the text after a marker; a block only starts when
            that remainder is content
        marker: Leading glyph that opens a narration block
        min_length: The remainder must be longer than this to open a block
    """

    def __init__(
        self,
        classify: Callable[[str], Verdict],
        marker: str = "⏺",
        min_length: int = 10,
        patterns: PatternTable = DEFAULT_PATTERNS,
    ):
        self.classify = classify
        self.marker = marker
        self.min_length = min_length
        self.patterns = patterns
        self.buffer: List[str] = []
        self.state = AggregatorState.IDLE
        self.last_boundary_at: float | None = None

    @property
    def collecting(self) -> bool:
        return self.state is AggregatorState.COLLECTING

    def feed(self, line: str, verdict: Verdict, now: float) -> List[Utterance]:
        """
        Consume one normalized line and return any utterance it completed.

        A new marker line both flushes the current block and opens the next
        one, so nothing is lost between two consecutive blocks.
        """
        clean = line.strip()

        if self.collecting:
            if not self._is_stop(clean, verdict):
                self.buffer.append(clean)
                return []
            emitted = self._flush(now)
        else:
            emitted = []

        if clean.startswith(self.marker):
            self._start(clean[len(self.marker):].strip(), now)
        return emitted

    def finish(self, now: float) -> List[Utterance]:
        """Flush an unterminated block at end of stream."""
        if self.collecting:
            return self._flush(now)
        return []

    def reset(self) -> None:
        """Abandon any partially collected block."""
        self.buffer = []
        self.state = AggregatorState.IDLE

    def _start(self, remainder: str, now: float) -> None:
        self.last_boundary_at = now
        if len(remainder) <= self.min_length:
            return
        verdict = self.classify(remainder)
        if verdict is not Verdict.CONTENT:
            logger.debug(f"Narration marker ignored ({verdict.value}): {remainder[:50]}")
            return
        self.buffer = [remainder]
        self.state = AggregatorState.COLLECTING

    def _is_stop(self, clean: str, verdict: Verdict) -> bool:
        p = self.patterns
        if not clean:
            return True
        if clean.startswith(self.marker):
            return True
        if clean.startswith(p.stop_glyphs):
            return True
        if any(pattern.search(clean) for pattern in p.stop_markers):
            return True
        return verdict in _STOP_VERDICTS

    def _flush(self, now: float) -> List[Utterance]:
        text = " ".join(self.buffer).strip()
        self.buffer = []
        self.state = AggregatorState.IDLE
        self.last_boundary_at = now
        if not text:
            return []
        return [Utterance(text=text, produced_at=now)]


__all__ = ["AggregatorState", "MessageAggregator"]
