"""Helpers for parsing the simple logging settings file.

The file holds ``key = value`` lines, for example::

    # off | debug | info | warning
    terminal = warning
    pipeline = info
    speech = info
    retention_hours = 48
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

_LEVEL_MAP: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": None,
}

OFF = logging.CRITICAL + 10

_DEFAULT_KEYS = ("terminal", "pipeline", "speech")
_DEFAULT_LEVEL = "info"
_DEFAULT_RETENTION_HOURS = 48

# Logger namespaces governed by each settings key
LOGGER_GROUPS: dict[str, tuple[str, ...]] = {
    "terminal": ("termvoice.sources",),
    "pipeline": ("termvoice.pipeline", "termvoice.services", "termvoice.repository"),
    "speech": ("termvoice.services.speech_queue", "termvoice.services.tts_service", "httpx"),
}


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None
    pipeline_level: int | None
    speech_level: int | None
    retention_hours: int

    def level_for(self, key: str) -> int | None:
        return getattr(self, f"{key}_level")


def _resolve_level(value: str) -> int | None:
    return _LEVEL_MAP.get(value.strip().lower(), _LEVEL_MAP[_DEFAULT_LEVEL])


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Parse the logging settings file; a missing file yields the defaults."""

    levels: dict[str, int | None] = {
        key: _LEVEL_MAP[_DEFAULT_LEVEL] for key in _DEFAULT_KEYS
    }
    retention_hours = _DEFAULT_RETENTION_HOURS

    if path.exists():
        for raw_line in path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            key = key.lower()
            if key == "retention_hours":
                try:
                    retention_hours = max(0, int(value))
                except ValueError:
                    retention_hours = _DEFAULT_RETENTION_HOURS
            elif key in _DEFAULT_KEYS:
                levels[key] = _resolve_level(value)

    return LoggingSettings(
        terminal_level=levels["terminal"],
        pipeline_level=levels["pipeline"],
        speech_level=levels["speech"],
        retention_hours=retention_hours,
    )


def apply_logging_settings(settings: LoggingSettings) -> None:
    """Set logger levels per group; ``off`` silences the group entirely."""
    for key in _DEFAULT_KEYS:
        level = settings.level_for(key)
        for name in LOGGER_GROUPS[key]:
            # Levels are inherited by child loggers, the disabled flag is not
            logging.getLogger(name).setLevel(OFF if level is None else level)


__all__ = [
    "LOGGER_GROUPS",
    "OFF",
    "LoggingSettings",
    "apply_logging_settings",
    "parse_logging_settings",
]
