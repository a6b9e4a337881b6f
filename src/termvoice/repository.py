"""Read-only SQLite access to the structured message store."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import aiosqlite

from termvoice.schemas.messages import MessageRow

logger = logging.getLogger(__name__)

_FETCH_SINCE_SQL = """
    SELECT message, timestamp
    FROM assistant_messages
    WHERE typeof(timestamp) = 'integer' AND timestamp > ?
    ORDER BY timestamp ASC
"""


class MessageStore:
    """Poll assistant messages newer than a timestamp cursor."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def initialize(self) -> None:
        """Open the SQLite connection in read-only mode."""

        if self._connection is not None:
            return
        if not self._path.exists():
            raise FileNotFoundError(f"Message store not found: {self._path}")

        uri = f"{self._path.resolve().as_uri()}?mode=ro"
        self._connection = await aiosqlite.connect(uri, uri=True)
        self._connection.row_factory = aiosqlite.Row
        # Decode payloads ourselves so one badly encoded row cannot fail a poll
        self._connection.text_factory = bytes
        logger.info(f"Opened message store {self._path}")

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def fetch_since(self, cursor: int) -> List[MessageRow]:
        """Return rows with ``timestamp > cursor`` in ascending order.

        Rows whose timestamp is not an integer can never advance the cursor, so
        the query leaves them out. Undecodable payloads come back as None.
        """

        assert self._connection is not None, "call initialize() first"
        rows: List[MessageRow] = []
        async with self._connection.execute(_FETCH_SINCE_SQL, (cursor,)) as cursor_obj:
            async for row in cursor_obj:
                message = row["message"]
                if isinstance(message, bytes):
                    try:
                        message = message.decode("utf-8")
                    except UnicodeDecodeError:
                        message = None
                elif message is not None and not isinstance(message, str):
                    message = None
                rows.append(MessageRow(message=message, timestamp=row["timestamp"]))
        return rows


__all__ = ["MessageStore"]
