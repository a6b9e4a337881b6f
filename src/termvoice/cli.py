"""Command-line entry point: ``termvoice [options] [--] [command args...]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from termvoice.config import Settings, get_settings
from termvoice.logging_handlers import DateStampedFileHandler, cleanup_old_logs
from termvoice.logging_settings import apply_logging_settings, parse_logging_settings
from termvoice.pipeline import NarrationPipeline
from termvoice.repository import MessageStore
from termvoice.services.tts_service import SpeechBackend
from termvoice.sources.structured import StructuredMessageSource
from termvoice.sources.terminal import TerminalSource

logger = logging.getLogger(__name__)

EXIT_USAGE = 2
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termvoice",
        description="Speak an AI coding assistant's narration aloud.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  termvoice                      # run `claude` on a PTY and narrate it
  termvoice -- claude --resume   # pass arguments to the monitored command
  termvoice --db                 # narrate new records from the message store
  termvoice --provider command   # speak with espeak instead of a cloud API
""",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--db",
        action="store_true",
        help="Read structured messages from the message store instead of a PTY",
    )
    mode.add_argument(
        "--terminal",
        action="store_true",
        help="Run the command on a PTY and narrate its output (default)",
    )
    parser.add_argument("--db-path", type=Path, help="Message store location")
    parser.add_argument("--since", type=int, metavar="MS", help="Initial store cursor (ms since epoch)")
    parser.add_argument("--debug", action="store_true", help="Write a debug log file")
    parser.add_argument("--provider", choices=["openai", "deepgram", "command"], help="Speech provider")
    parser.add_argument("--voice", help="Speech voice")
    parser.add_argument("--dedup", choices=["window", "session"], help="Deduplication mode")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Exit without waiting for queued speech to finish",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to monitor")
    return parser


def resolve_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Apply command-line overrides on top of the environment settings."""
    settings = base or get_settings()
    overrides = {
        "tts_provider": args.provider,
        "tts_voice": args.voice,
        "dedup_mode": args.dedup,
        "message_db_path": args.db_path,
    }
    update = {key: value for key, value in overrides.items() if value is not None}
    if args.debug:
        update["debug"] = True
    return settings.model_copy(update=update) if update else settings


def configure_logging(settings: Settings, *, console: bool) -> Optional[Path]:
    """
    Configure the root logger; returns the debug log path when one is open.

    ``console`` must be False while the terminal is in raw passthrough, since
    anything written to it would corrupt the monitored program's screen.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: List[logging.Handler] = []
    log_path: Optional[Path] = None

    if settings.debug:
        file_handler = DateStampedFileHandler(settings.log_dir)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
        log_path = file_handler.log_path
        log_level = logging.DEBUG

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging_settings = parse_logging_settings(settings.logging_settings_path)
    if not settings.debug:
        apply_logging_settings(logging_settings)
    if log_level > logging.DEBUG:
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    cleanup_old_logs(settings.log_dir, logging_settings.retention_hours)
    return log_path


async def run_terminal(
    settings: Settings,
    backend: SpeechBackend,
    argv: Sequence[str],
    *,
    wait: bool = True,
) -> int:
    pipeline = NarrationPipeline.from_settings(settings, backend.speak, backend.cancel)
    stdin_fd = sys.stdin.fileno() if sys.stdin is not None else None
    source = TerminalSource(pipeline, argv, term=settings.term, input_fd=stdin_fd)
    try:
        returncode = await source.run()
        if wait:
            await pipeline.queue.wait_idle()
    finally:
        pipeline.queue.cancel_all()
        await backend.close()
    return returncode


async def run_structured(
    settings: Settings,
    backend: SpeechBackend,
    *,
    since: Optional[int] = None,
    wait: bool = True,
) -> int:
    pipeline = NarrationPipeline.from_settings(settings, backend.speak, backend.cancel)
    store = MessageStore(settings.message_db_path)
    try:
        await store.initialize()
    except FileNotFoundError as e:
        logger.error(str(e))
        print(f"termvoice: {e}", file=sys.stderr)
        return 1

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    source = StructuredMessageSource(
        store, pipeline, poll_interval=settings.poll_interval_seconds, cursor=since
    )

    def _on_signal() -> None:
        pipeline.stop_speaking()
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _on_signal)
    stdin_fd = _watch_stdin(loop, pipeline)

    try:
        await source.run(stop)
        if wait:
            await pipeline.queue.wait_idle()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        if stdin_fd is not None:
            loop.remove_reader(stdin_fd)
        pipeline.queue.cancel_all()
        await store.close()
        await backend.close()
    return 0


def _watch_stdin(loop: asyncio.AbstractEventLoop, pipeline: NarrationPipeline) -> Optional[int]:
    """Listen for the stop token typed on stdin while narrating the store."""
    if sys.stdin is None or sys.stdin.closed:
        return None
    fd = sys.stdin.fileno()
    pending = bytearray()

    def _on_readable() -> None:
        try:
            data = os.read(fd, 1024)
        except OSError:
            data = b""
        if not data:
            loop.remove_reader(fd)
            return
        pending.extend(data)
        *lines, rest = pending.split(b"\n")
        pending[:] = rest
        for line in lines:
            pipeline.stop_requested(line.decode("utf-8", errors="replace"))

    loop.add_reader(fd, _on_readable)
    return fd


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    backend = SpeechBackend(settings)
    reason = backend.unavailable_reason()
    if reason:
        print(f"termvoice: speech unavailable: {reason}", file=sys.stderr)
        return EXIT_USAGE

    wait = not args.no_wait
    if args.db:
        return await run_structured(settings, backend, since=args.since, wait=wait)

    argv = list(args.command)
    if argv and argv[0] == "--":
        argv = argv[1:]
    if not argv:
        argv = [settings.command]
    return await run_terminal(settings, backend, argv, wait=wait)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load .env into the environment before settings and logging read it
    load_dotenv()
    settings = resolve_settings(args)
    log_path = configure_logging(settings, console=args.db)
    if log_path is not None:
        print(f"termvoice: debug log at {log_path}", file=sys.stderr)
    logger.info(f"termvoice starting ({'structured' if args.db else 'terminal'} mode)")

    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
