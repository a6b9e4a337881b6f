"""
Stream Normalizer for terminal output.

Turns raw PTY byte chunks into complete, printable lines:

    PTY chunks → StreamNormalizer.feed() → lines → classifier

Control sequences are stripped only once a line is complete, so an escape
sequence or a multi-byte UTF-8 character split across two chunks is handled
exactly as if it had arrived in one piece.

Usage:
    normalizer = StreamNormalizer()

    for chunk in chunks:
        for line in normalizer.feed(chunk):
            handle(line)

    for line in normalizer.flush():  # on EOF / process exit
        handle(line)
"""

from __future__ import annotations

import codecs
import re
import time
from typing import Callable, List, Tuple

from termvoice.models import NormalizedLine

# CSI: ESC [ params intermediates final
_CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
# 8-bit CSI
_CSI8_RE = re.compile(r"\x9b[0-?]*[ -/]*[@-~]")
# OSC: ESC ] ... terminated by BEL, ST, the next ESC or the end of the line
_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\|(?=\x1b)|$)")
# DCS / SOS / PM / APC: ESC P|X|^|_ ... with the same terminators as OSC
_STRING_SEQ_RE = re.compile(r"\x1b[PX^_][^\x07\x1b]*(?:\x07|\x1b\\|(?=\x1b)|$)")
# Character set designation
_CHARSET_RE = re.compile(r"\x1b[()*+][A-Za-z0-9]")
# Keypad modes, save/restore cursor and other two-byte escapes
_SHORT_ESC_RE = re.compile(r"\x1b[<=>78cDEHMNZ]")
# Remaining control characters except tab, newline and carriage return
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_STRIP_SEQUENCE = (
    _OSC_RE,
    _STRING_SEQ_RE,
    _CSI_RE,
    _CSI8_RE,
    _CHARSET_RE,
    _SHORT_ESC_RE,
    _CONTROL_RE,
)


def strip_control_sequences(text: str) -> str:
    """Remove terminal control sequences and unprintable control characters."""
    for pattern in _STRIP_SEQUENCE:
        text = pattern.sub("", text)
    return text


def _finish_line(raw: str) -> str:
    # A carriage return is only meaningful to the renderer; drop it from the
    # logical line so the result never carries control bytes other than tab.
    return strip_control_sequences(raw).replace("\r", "")


def normalize(chunk: str, carry: str) -> Tuple[List[str], str]:
    """
    Split ``carry + chunk`` into complete, cleaned lines.

    Returns the list of complete lines and the trailing incomplete fragment,
    which must be passed back as ``carry`` with the next chunk. The carry is
    kept raw (unstripped) so sequences split across chunks are still removed.
    """
    text = carry + chunk
    parts = text.split("\n")
    new_carry = parts.pop()
    return [_finish_line(part) for part in parts], new_carry


class StreamNormalizer:
    """
    Stateful wrapper around :func:`normalize` for byte streams.

    Decodes with an incremental UTF-8 decoder so multi-byte characters split
    between chunks are never replaced with U+FFFD.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""

    @property
    def carry(self) -> str:
        return self._carry

    def feed(self, chunk: bytes | str) -> List[NormalizedLine]:
        """Consume one chunk and return every line it completed."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        lines, self._carry = normalize(text, self._carry)
        now = self._clock()
        return [NormalizedLine(text=line, emitted_at=now) for line in lines]

    def flush(self) -> List[NormalizedLine]:
        """Flush the trailing fragment at end of stream."""
        remainder = self._carry + self._decoder.decode(b"", final=True)
        self._carry = ""
        if not remainder:
            return []
        line = _finish_line(remainder)
        if not line:
            return []
        return [NormalizedLine(text=line, emitted_at=self._clock())]

    def reset(self) -> None:
        self._decoder.reset()
        self._carry = ""


__all__ = ["StreamNormalizer", "normalize", "strip_control_sequences"]
