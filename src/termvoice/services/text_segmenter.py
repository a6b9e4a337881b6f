"""
Sentence segmentation for structured message text.

Structured records deliver whole paragraphs at once. Speaking them sentence by
sentence keeps each utterance short enough to be cancelled promptly and lets
deduplication work at sentence granularity.

    text block → TextSegmenter.split() → sentences → classifier

Usage:
    segmenter = TextSegmenter(min_chars=15)
    for sentence in segmenter.split(block_text):
        ...
"""

import re
from typing import Iterator, List, Optional


class TextSegmenter:
    """
    Stateful text segmenter that splits text into sentences.

    Splits at delimiter boundaries (., ?, !, newline) but only after
    accumulating a minimum number of characters, so very short fragments are
    merged with the sentence that follows them.

    Attributes:
        min_chars: Minimum characters before a split is allowed
        delimiters: List of delimiter strings that trigger splits
    """

    DEFAULT_DELIMITERS = ['. ', '? ', '! ', '.\n', '?\n', '!\n', '\n']

    def __init__(
        self,
        min_chars: int = 15,
        delimiters: Optional[List[str]] = None
    ):
        self.min_chars = min_chars
        self.delimiters = delimiters or self.DEFAULT_DELIMITERS
        self._buffer = ""
        self._delimiter_pattern = self._compile_pattern(self.delimiters)

    @staticmethod
    def _compile_pattern(delimiters: List[str]) -> re.Pattern:
        # Longest first so ".\n" wins over "\n"
        sorted_delims = sorted(delimiters, key=len, reverse=True)
        escaped = [re.escape(d) for d in sorted_delims]
        return re.compile('|'.join(escaped))

    def consume(self, chunk: str) -> Iterator[str]:
        """
        Consume a text chunk and yield any complete sentences.

        Args:
            chunk: Text appended to the internal buffer

        Yields:
            Sentences ending at a delimiter found past ``min_chars``
        """
        if not chunk:
            return

        self._buffer += chunk

        while len(self._buffer) >= self.min_chars:
            match = self._delimiter_pattern.search(self._buffer, pos=self.min_chars)
            if not match:
                break

            end_pos = match.end()
            sentence = self._buffer[:end_pos].strip()
            self._buffer = self._buffer[end_pos:]

            if sentence:
                yield sentence

    def flush(self) -> Optional[str]:
        """Return the remaining buffered text, if any, and clear the buffer."""
        if self._buffer.strip():
            sentence = self._buffer.strip()
            self._buffer = ""
            return sentence
        self._buffer = ""
        return None

    def split(self, text: str) -> List[str]:
        """Split a complete text block into sentences."""
        self.reset()
        sentences = list(self.consume(text))
        tail = self.flush()
        if tail:
            sentences.append(tail)
        return sentences

    def reset(self) -> None:
        self._buffer = ""


__all__ = ["TextSegmenter"]
