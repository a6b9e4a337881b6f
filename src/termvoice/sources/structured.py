"""Polling adapter for the structured message store."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Optional

import aiosqlite
from pydantic import ValidationError

from termvoice.models import RawEvent, SourceKind
from termvoice.pipeline import NarrationPipeline
from termvoice.repository import MessageStore
from termvoice.schemas.messages import StoredMessage

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class StructuredMessageSource:
    """
    Emit ``text`` blocks of new assistant messages as structured RawEvents.

    The cursor is the largest timestamp seen so far. It advances past every
    fetched row, malformed or not, so a bad record is reported once and never
    blocks the records behind it.
    """

    def __init__(
        self,
        store: MessageStore,
        pipeline: NarrationPipeline,
        *,
        poll_interval: float = 0.5,
        cursor: Optional[int] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.poll_interval = poll_interval
        self.cursor = now_ms() if cursor is None else cursor

    async def poll_once(self) -> int:
        """Fetch and dispatch new rows; returns how many text blocks were emitted."""
        rows = await self.store.fetch_since(self.cursor)
        emitted = 0
        for row in rows:
            self.cursor = max(self.cursor, row.timestamp)
            if row.message is None:
                logger.warning(f"Skipping unreadable message at {row.timestamp}")
                continue
            try:
                message = StoredMessage.model_validate_json(row.message)
            except (ValidationError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping malformed message at {row.timestamp}: {e}")
                continue
            for text in message.text_blocks():
                self.pipeline.handle_event(
                    RawEvent(payload=text, source_kind=SourceKind.STRUCTURED)
                )
                emitted += 1
        return emitted

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop`` is set or the task is cancelled."""
        stop = stop or asyncio.Event()
        logger.info(f"Watching {self.store.path} from cursor {self.cursor}")
        while not stop.is_set():
            try:
                await self.poll_once()
            except aiosqlite.Error as e:
                logger.warning(f"Message store poll failed, retrying: {e}")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass


__all__ = ["StructuredMessageSource", "now_ms"]
