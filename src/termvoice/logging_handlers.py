"""Debug log file handler and retention cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class DateStampedFileHandler(logging.FileHandler):
    """File handler writing to ``<directory>/<YYYY-MM-DD>/<prefix>_<time>.log``.

    Timestamps use the machine's local zone so the folder matches the day the
    session was run.
    """

    def __init__(
        self,
        directory: str | Path = "logs/termvoice",
        *,
        prefix: str = "termvoice",
        encoding: str | None = "utf-8",
        delay: bool = False,
        current_time: datetime | None = None,
    ) -> None:
        local_time = (current_time or datetime.now(timezone.utc)).astimezone()
        date_folder = local_time.strftime("%Y-%m-%d")
        file_name = f"{prefix}_{local_time.strftime('%H-%M-%S')}.log"
        log_path = (Path(directory) / date_folder / file_name).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path = log_path
        super().__init__(log_path, mode="a", encoding=encoding, delay=delay)


def cleanup_old_logs(
    directory: str | Path,
    retention_hours: int,
    now: Optional[datetime] = None,
) -> tuple[int, int]:
    """
    Delete ``*.log`` files under ``directory`` older than ``retention_hours``.

    Empty date folders left behind are removed too. A retention of 0 disables
    cleanup.

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    dir_path = Path(directory).resolve()
    if retention_hours <= 0 or not dir_path.exists():
        return (0, 0)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=retention_hours)
    deleted = 0
    errors = 0

    for log_file in dir_path.rglob("*.log"):
        try:
            mtime = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
            if mtime < cutoff:
                log_file.unlink()
                deleted += 1
                logger.debug(f"Deleted old log file: {log_file}")
        except OSError as e:
            errors += 1
            logger.warning(f"Failed to delete {log_file}: {e}")

    for date_dir in dir_path.iterdir():
        if date_dir.is_dir() and not any(date_dir.iterdir()):
            try:
                date_dir.rmdir()
            except OSError:
                pass

    if deleted:
        logger.info(f"Log cleanup: {deleted} file(s) deleted, {errors} error(s)")
    return (deleted, errors)


__all__ = ["DateStampedFileHandler", "cleanup_old_logs"]
