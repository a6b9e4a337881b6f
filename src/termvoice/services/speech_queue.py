"""
Speech Queue for strictly ordered, single-flight playback.

Architecture:
    accepted utterances → SpeechQueue.enqueue() → speak(text) → audio device

Exactly one ``speak`` call is in flight at any time. When it completes, with
success or failure, the next pending utterance starts automatically. The
queue must be driven from a running asyncio event loop; all state changes
happen on that loop, so no locking is needed.

Usage:
    queue = SpeechQueue(backend.speak, backend.cancel)
    queue.enqueue(Utterance("Hello there, friend", produced_at=now))
    ...
    queue.cancel_all()      # barge-in / stop token / SIGINT
    await queue.wait_idle() # drain before exit
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Deque, Optional

from termvoice.models import Utterance

logger = logging.getLogger(__name__)

SpeakFn = Callable[[str], Awaitable[object]]
CancelFn = Callable[[], object]


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


class SpeechQueue:
    """
    Ordered playback sequencer with cancellation.

    Attributes:
        speak: Awaitable speech collaborator invoked once per utterance
        cancel: Optional collaborator that stops in-flight audio immediately
    """

    def __init__(self, speak: SpeakFn, cancel: Optional[CancelFn] = None):
        self.speak = speak
        self.cancel = cancel
        self.pending: Deque[Utterance] = deque()
        self.now_playing: Optional[Utterance] = None
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> PlaybackState:
        return PlaybackState.PLAYING if self.now_playing is not None else PlaybackState.IDLE

    def enqueue(self, utterance: Utterance) -> None:
        """Append an utterance and start playback if nothing is playing."""
        self.pending.append(utterance)
        logger.debug(f"Queued for speech ({len(self.pending)} pending): {utterance.text[:50]}")
        if self.now_playing is None:
            self._play_next()

    def cancel_all(self) -> None:
        """
        Drop everything pending and stop the current playback.

        Idempotent and safe with nothing in flight. A completion callback that
        races this call finds its task no longer current and does nothing, so
        the queue always ends idle and empty.
        """
        dropped = len(self.pending)
        self.pending.clear()
        task, self._task = self._task, None
        was_playing = self.now_playing is not None
        self.now_playing = None
        if task is not None and not task.done():
            task.cancel()
        if self.cancel is not None:
            try:
                self.cancel()
            except Exception as e:
                logger.warning(f"Speech cancel hook failed: {e}")
        self._idle.set()
        if dropped or was_playing:
            logger.info(f"Speech cancelled ({dropped} pending dropped)")

    async def wait_idle(self) -> None:
        """Wait until the queue has drained or been cancelled."""
        await self._idle.wait()

    def _play_next(self) -> None:
        if not self.pending:
            self._idle.set()
            return
        utterance = self.pending.popleft()
        self.now_playing = utterance
        self._idle.clear()
        self._task = asyncio.get_running_loop().create_task(self._run(utterance))

    async def _run(self, utterance: Utterance) -> None:
        try:
            await self.speak(utterance.text)
        except asyncio.CancelledError:
            logger.debug(f"Playback cancelled: {utterance.text[:50]}")
            return
        except Exception:
            logger.debug("Speech backend failed; continuing with next utterance", exc_info=True)
        if self._task is not asyncio.current_task():
            return
        self._task = None
        self.now_playing = None
        self._play_next()


__all__ = ["PlaybackState", "SpeechQueue"]
