"""
Pseudo-terminal source adapter.

Runs the monitored command on a PTY, copies its output to our stdout
byte-for-byte and hands every chunk to the narration pipeline. Keystrokes on
our stdin are proxied to the child, so the session stays fully interactive.

    user ⇄ stdin/stdout ⇄ TerminalSource ⇄ PTY master ⇄ child
                               │
                               └─ RawEvent(TERMINAL) → NarrationPipeline
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import signal
import struct
import sys
import termios
import tty
from typing import List, Optional, Sequence

from termvoice.models import RawEvent, SourceKind
from termvoice.pipeline import NarrationPipeline

logger = logging.getLogger(__name__)

READ_SIZE = 4096
COMMAND_NOT_FOUND = 127


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); fd 0 is already the PTY slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except BlockingIOError:
            continue
        view = view[written:]


class TerminalSource:
    """
    Drive one interactive child process through a PTY.

    Attributes:
        pipeline: Receives every output chunk as a terminal RawEvent
        argv: Command line of the monitored program
        term: Value of ``TERM`` exported to the child
        input_fd: Descriptor proxied to the child, or None to disable input
        output_fd: Descriptor receiving the unmodified child output; stdout
            when None
    """

    def __init__(
        self,
        pipeline: NarrationPipeline,
        argv: Sequence[str],
        *,
        term: str = "xterm-256color",
        input_fd: Optional[int] = None,
        output_fd: Optional[int] = None,
    ):
        if not argv:
            raise ValueError("argv must name a command")
        self.pipeline = pipeline
        self.argv: List[str] = list(argv)
        self.term = term
        self.input_fd = input_fd
        self.output_fd = output_fd

        self._master_fd: Optional[int] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._eof: Optional[asyncio.Event] = None
        self._saved_tty_attrs: Optional[list] = None

    def feed(self, chunk: bytes) -> None:
        """Hand one output chunk to the pipeline; errors never stop passthrough."""
        try:
            self.pipeline.handle_event(RawEvent(payload=chunk, source_kind=SourceKind.TERMINAL))
        except Exception:
            logger.exception("Narration pipeline failed on terminal chunk")

    def finish(self) -> None:
        try:
            self.pipeline.finish()
        except Exception:
            logger.exception("Narration pipeline failed while flushing")

    async def run(self) -> int:
        """Run the child to completion and return its exit status."""
        loop = asyncio.get_running_loop()
        master_fd, slave_fd = os.openpty()
        self._master_fd = master_fd
        self._eof = asyncio.Event()
        self._copy_winsize()

        env = {**os.environ, "TERM": self.term}
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Could not start {self.argv[0]!r}: {e}")
            os.close(master_fd)
            self._master_fd = None
            return COMMAND_NOT_FOUND
        finally:
            # Only the child keeps the slave open, so EOF arrives when it exits
            os.close(slave_fd)

        logger.info(f"Started {self.argv[0]!r} on PTY (pid {self._process.pid})")
        if self.output_fd is None:
            self.output_fd = sys.stdout.fileno()
        os.set_blocking(master_fd, False)
        loop.add_reader(master_fd, self._on_output)
        self._install_signal_handlers(loop)
        self._enter_raw_mode(loop)

        try:
            await self._eof.wait()
            returncode = await self._process.wait()
        finally:
            self._teardown(loop)
            self.finish()

        # Negative codes mean the child died from a signal
        if returncode < 0:
            returncode = 128 - returncode
        logger.info(f"{self.argv[0]!r} exited with status {returncode}")
        return returncode

    def _on_output(self) -> None:
        assert self._master_fd is not None and self._eof is not None
        try:
            data = os.read(self._master_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once the last slave descriptor closes
            data = b""
        if not data:
            asyncio.get_running_loop().remove_reader(self._master_fd)
            self._eof.set()
            return
        assert self.output_fd is not None
        _write_all(self.output_fd, data)
        self.feed(data)

    def _on_input(self) -> None:
        assert self.input_fd is not None
        try:
            data = os.read(self.input_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            data = b""
        if not data:
            asyncio.get_running_loop().remove_reader(self.input_fd)
            return
        if self._master_fd is not None:
            _write_all(self._master_fd, data)

    def _forward_signal(self, signum: int) -> None:
        logger.info(f"Received {signal.Signals(signum).name}; stopping speech")
        self.pipeline.stop_speaking()
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.send_signal(signum)
            except ProcessLookupError:
                pass

    def _copy_winsize(self) -> None:
        if self._master_fd is None or self.input_fd is None or not os.isatty(self.input_fd):
            return
        try:
            winsize = fcntl.ioctl(self.input_fd, termios.TIOCGWINSZ, b"\0" * 8)
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, winsize)
        except OSError as e:
            logger.debug(f"Could not copy window size: {e}")
            return
        rows, cols = struct.unpack("HHHH", winsize)[:2]
        logger.debug(f"Set PTY size to {rows}x{cols}")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self._forward_signal, signum)
        loop.add_signal_handler(signal.SIGWINCH, self._copy_winsize)

    def _enter_raw_mode(self, loop: asyncio.AbstractEventLoop) -> None:
        if self.input_fd is None:
            return
        if os.isatty(self.input_fd):
            self._saved_tty_attrs = termios.tcgetattr(self.input_fd)
            tty.setraw(self.input_fd)
        loop.add_reader(self.input_fd, self._on_input)

    def _teardown(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM, signal.SIGWINCH):
            loop.remove_signal_handler(signum)
        if self.input_fd is not None:
            loop.remove_reader(self.input_fd)
        if self._saved_tty_attrs is not None:
            termios.tcsetattr(self.input_fd, termios.TCSADRAIN, self._saved_tty_attrs)
            self._saved_tty_attrs = None
        if self._master_fd is not None:
            loop.remove_reader(self._master_fd)
            os.close(self._master_fd)
            self._master_fd = None


__all__ = ["TerminalSource"]
