"""Deduplication cache for recently spoken utterances."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import List, Optional

from termvoice.models import DedupEntry, Utterance

logger = logging.getLogger(__name__)


class DedupCache:
    """
    Bounded memory of recently accepted utterances.

    An utterance is suppressed when it exactly matches a live entry, or when
    either text contains the other. Containment also suppresses distinct short
    phrases that happen to be substrings of longer ones ("the fix" vs "the fix
    works"); that trade-off is accepted to catch re-rendered lines that drift
    by truncation or extension.

    Two modes:
        window   entries expire after ``window_seconds``; when ``max_entries``
                 is exceeded the oldest entries are evicted one by one
        session  ``window_seconds`` is None; entries never expire and the oldest
                 half is dropped whenever ``max_entries`` is exceeded

    Expiry is lazy: it runs on every ``accept`` call, never on a timer.
    """

    def __init__(
        self,
        window_seconds: Optional[float] = 5.0,
        max_entries: int = 100,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    @classmethod
    def for_session(cls, max_entries: int = 100) -> "DedupCache":
        return cls(window_seconds=None, max_entries=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[DedupEntry]:
        return [DedupEntry(text=text, inserted_at=ts) for text, ts in self._entries.items()]

    def accept(self, utterance: Utterance, now: float) -> bool:
        """Return True when the utterance is novel and has been recorded."""
        self._purge(now)
        text = utterance.text.strip()

        if text in self._entries:
            logger.debug(f"Suppressed duplicate: {text[:50]}")
            return False
        for seen in self._entries:
            if text in seen or seen in text:
                logger.debug(f"Suppressed overlapping utterance: {text[:50]}")
                return False

        self._entries[text] = now
        self._evict()
        return True

    def clear(self) -> None:
        self._entries.clear()

    def _purge(self, now: float) -> None:
        if self.window_seconds is None:
            return
        cutoff = now - self.window_seconds
        while self._entries:
            oldest_text, inserted_at = next(iter(self._entries.items()))
            if inserted_at >= cutoff:
                break
            del self._entries[oldest_text]

    def _evict(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        if self.window_seconds is None:
            drop = len(self._entries) // 2
        else:
            drop = len(self._entries) - self.max_entries
        for _ in range(drop):
            self._entries.popitem(last=False)


__all__ = ["DedupCache"]
