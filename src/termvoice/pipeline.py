"""
Narration pipeline coordinator.

Owns the single shared state bundle (approval context, aggregation buffer,
dedup cache, playback queue) and applies every mutation in response to one
serialized event at a time:

    RawEvent ─┬─ terminal ──→ StreamNormalizer → lines ─┐
              └─ structured → TextSegmenter → sentences ┴→ classifier
                                                            → approval tracker
                                                            → aggregator (terminal)
                                                            → dedup → speech queue

All methods must be called from the event loop that drives the speech queue.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from termvoice.config import Settings
from termvoice.models import RawEvent, SourceKind, Utterance, Verdict
from termvoice.services.aggregator import MessageAggregator
from termvoice.services.approval import ApprovalTracker
from termvoice.services.classifier import GarbageClassifier
from termvoice.services.dedup import DedupCache
from termvoice.services.normalizer import StreamNormalizer
from termvoice.services.patterns import (
    APPROVAL_DIALOG_SEQUENCE,
    DEFAULT_PATTERNS,
    PATTERN_TABLE_VERSION,
    PatternTable,
)
from termvoice.services.speech_queue import CancelFn, SpeakFn, SpeechQueue
from termvoice.services.text_segmenter import TextSegmenter

logger = logging.getLogger(__name__)


@dataclass
class PipelineState:
    """Everything the pipeline mutates, owned by one coordinator."""

    approval: ApprovalTracker
    aggregator: MessageAggregator
    dedup: DedupCache
    queue: SpeechQueue
    compact_until: Optional[float] = None
    last_line: Optional[str] = None

    def compact_active(self, now: float) -> bool:
        return self.compact_until is not None and now < self.compact_until


class NarrationPipeline:
    """Turns raw source events into deduplicated, queued utterances."""

    def __init__(
        self,
        classifier: GarbageClassifier,
        queue: SpeechQueue,
        *,
        approval_timeout: float = 10.0,
        narration_marker: str = "⏺",
        min_narration_length: int = 10,
        dedup: Optional[DedupCache] = None,
        stop_tokens: Sequence[str] = ("//stfu", "cvstfu!"),
        compact_window: float = 5.0,
        min_utterance_length: int = 10,
        speak_approval_prompts: bool = True,
        min_sentence_length: int = 15,
        patterns: PatternTable = DEFAULT_PATTERNS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.classifier = classifier
        self.patterns = patterns
        self.clock = clock
        self.stop_tokens = tuple(stop_tokens)
        self.compact_window = compact_window
        self.min_utterance_length = min_utterance_length
        self.speak_approval_prompts = speak_approval_prompts
        self.min_sentence_length = min_sentence_length
        self.normalizer = StreamNormalizer(clock=clock)
        self._raw_tail = b""
        self.segmenter = TextSegmenter(min_chars=min_sentence_length)
        self.state = PipelineState(
            approval=ApprovalTracker(timeout_seconds=approval_timeout),
            aggregator=MessageAggregator(
                classify=self._classify_now,
                marker=narration_marker,
                min_length=min_narration_length,
                patterns=patterns,
            ),
            dedup=dedup if dedup is not None else DedupCache(),
            queue=queue,
        )
        logger.debug(f"Narration pipeline ready (pattern table v{PATTERN_TABLE_VERSION})")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        speak: SpeakFn,
        cancel: Optional[CancelFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "NarrationPipeline":
        classifier = GarbageClassifier(
            min_length=settings.min_line_length,
            approval_short_length=settings.approval_short_line_length,
        )
        return cls(
            classifier,
            SpeechQueue(speak, cancel),
            approval_timeout=settings.approval_timeout_seconds,
            narration_marker=settings.narration_marker,
            min_narration_length=settings.min_narration_length,
            dedup=DedupCache(
                window_seconds=settings.dedup_window,
                max_entries=settings.dedup_max_entries,
            ),
            stop_tokens=settings.stop_tokens,
            compact_window=settings.compact_window_seconds,
            min_utterance_length=settings.min_utterance_length,
            speak_approval_prompts=settings.speak_approval_prompts,
            min_sentence_length=settings.min_sentence_length,
            clock=clock,
        )

    @property
    def queue(self) -> SpeechQueue:
        return self.state.queue

    # -- entry points -----------------------------------------------------

    def handle_event(self, event: RawEvent) -> None:
        if event.source_kind is SourceKind.TERMINAL:
            self.handle_chunk(event.payload)
        else:
            payload = event.payload
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8", errors="replace")
            self.handle_text_block(payload)

    def handle_chunk(self, chunk: bytes | str) -> None:
        """Process one raw terminal chunk."""
        raw = chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
        # The dialog sequence may straddle two reads
        window = self._raw_tail + raw
        if APPROVAL_DIALOG_SEQUENCE in window:
            logger.debug("Focus tracking disabled; treating as approval dialog")
            self.state.approval.activate(self.clock())
        self._raw_tail = window[-(len(APPROVAL_DIALOG_SEQUENCE) - 1):]
        for line in self.normalizer.feed(chunk):
            self.handle_line(line.text)

    def handle_line(self, text: str) -> None:
        """Process one complete, normalized terminal line."""
        if self.stop_requested(text):
            return

        state = self.state
        now = self.clock()
        clean = text.strip()

        if clean and clean == state.last_line:
            return
        state.last_line = clean

        if self._detect_mode_reset(clean, now):
            return
        if state.compact_active(now) and any(p.search(clean) for p in self.patterns.history):
            logger.debug(f"Skipped history echo: {clean[:50]}")
            return

        verdict = self.classifier.classify(clean, state.approval.current(now))
        state.approval.observe(verdict, now)
        if clean and verdict is not Verdict.CONTENT:
            logger.debug(f"Filtered ({verdict.value}): {clean[:50]}")

        for utterance in state.aggregator.feed(clean, verdict, now):
            self.submit(utterance)

        if verdict is Verdict.APPROVAL_PROMPT and self.speak_approval_prompts:
            marker = state.aggregator.marker
            prompt = clean[len(marker):].strip() if clean.startswith(marker) else clean
            self.submit(Utterance(text=prompt, produced_at=now))

    def handle_text_block(self, text: str) -> None:
        """Process one ``text`` block from the structured source."""
        state = self.state
        for sentence in self.segmenter.split(text):
            if self.stop_requested(sentence):
                continue
            now = self.clock()
            if self._detect_mode_reset(sentence, now):
                continue
            if len(sentence) <= self.min_sentence_length:
                continue

            verdict = self.classifier.classify(sentence, state.approval.current(now))
            state.approval.observe(verdict, now)
            if verdict is Verdict.CONTENT or (
                verdict is Verdict.APPROVAL_PROMPT and self.speak_approval_prompts
            ):
                self.submit(Utterance(text=sentence, produced_at=now))
            else:
                logger.debug(f"Filtered ({verdict.value}): {sentence[:50]}")

    def finish(self) -> None:
        """End of stream: flush the partial line and any open narration block."""
        for line in self.normalizer.flush():
            self.handle_line(line.text)
        for utterance in self.state.aggregator.finish(self.clock()):
            self.submit(utterance)

    def submit(self, utterance: Utterance) -> bool:
        """Deduplicate and enqueue; returns True when the utterance was queued."""
        text = utterance.text.strip()
        if len(text) <= self.min_utterance_length:
            return False
        if not self.state.dedup.accept(utterance, self.clock()):
            return False
        logger.info(f"Speaking: {text[:80]}")
        self.state.queue.enqueue(utterance)
        return True

    def stop_speaking(self) -> None:
        """Silence everything now and forget what was said."""
        self.state.queue.cancel_all()
        self.state.dedup.clear()
        self.state.aggregator.reset()

    # -- helpers ----------------------------------------------------------

    def _classify_now(self, text: str) -> Verdict:
        return self.classifier.classify(text, self.state.approval.current(self.clock()))

    def stop_requested(self, text: str) -> bool:
        """Silence speech if ``text`` carries a stop token; returns True when it did."""
        if any(token in text for token in self.stop_tokens):
            logger.info("Stop token received")
            self.stop_speaking()
            return True
        return False

    def _detect_mode_reset(self, clean: str, now: float) -> bool:
        p = self.patterns
        if _contains_any(clean, p.compact_markers):
            self.state.compact_until = now + self.compact_window
            logger.info("Compact transition detected; clearing speech history")
        elif _contains_any(clean, p.plan_markers):
            logger.info("Plan-mode transition detected; clearing speech history")
        else:
            return False
        self.state.approval.reset()
        self.state.dedup.clear()
        return True

    def spoken_history(self) -> List[str]:
        return [entry.text for entry in self.state.dedup.entries]


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(needle in text for needle in needles)


__all__ = ["NarrationPipeline", "PipelineState"]
