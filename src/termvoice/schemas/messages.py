"""Schemas for records read from the structured message store."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContentBlock(BaseModel):
    """One typed block of an assistant message; only ``text`` blocks are spoken."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class StoredMessage(BaseModel):
    """Decoded ``message`` column of an ``assistant_messages`` row."""

    model_config = ConfigDict(extra="ignore")

    content: List[ContentBlock] = Field(default_factory=list)

    def text_blocks(self) -> List[str]:
        return [
            block.text
            for block in self.content
            if block.type == "text" and block.text and block.text.strip()
        ]


class MessageRow(BaseModel):
    """Raw row as fetched from the store, before the payload is decoded."""

    message: Optional[str] = None
    timestamp: int


__all__ = ["ContentBlock", "MessageRow", "StoredMessage"]
