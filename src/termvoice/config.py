"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Classifier
    min_line_length: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("TERMVOICE_MIN_LINE_LENGTH", "min_line_length"),
    )
    approval_short_line_length: int = Field(
        default=20,
        ge=1,
        validation_alias=AliasChoices(
            "TERMVOICE_APPROVAL_SHORT_LINE_LENGTH", "approval_short_line_length"
        ),
    )

    # Approval context
    approval_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices(
            "TERMVOICE_APPROVAL_TIMEOUT", "approval_timeout_seconds"
        ),
    )

    # Aggregator
    narration_marker: str = Field(
        default="⏺",
        min_length=1,
        validation_alias=AliasChoices("TERMVOICE_NARRATION_MARKER", "narration_marker"),
    )
    min_narration_length: int = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices(
            "TERMVOICE_MIN_NARRATION_LENGTH", "min_narration_length"
        ),
    )

    # Deduplication
    dedup_mode: Literal["window", "session"] = Field(
        default="window",
        validation_alias=AliasChoices("TERMVOICE_DEDUP_MODE", "dedup_mode"),
    )
    dedup_window_seconds: float = Field(
        default=5.0,
        gt=0,
        validation_alias=AliasChoices("TERMVOICE_DEDUP_WINDOW", "dedup_window_seconds"),
    )
    dedup_max_entries: int = Field(
        default=100,
        ge=1,
        validation_alias=AliasChoices("TERMVOICE_DEDUP_MAX_ENTRIES", "dedup_max_entries"),
    )

    # Pipeline
    stop_tokens: list[str] = Field(
        default_factory=lambda: ["//stfu", "cvstfu!"],
        validation_alias=AliasChoices("TERMVOICE_STOP_TOKENS", "stop_tokens"),
        description="Literal markers that silence speech when seen in a line.",
    )
    compact_window_seconds: float = Field(
        default=5.0,
        ge=0,
        validation_alias=AliasChoices(
            "TERMVOICE_COMPACT_WINDOW", "compact_window_seconds"
        ),
    )
    min_utterance_length: int = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices(
            "TERMVOICE_MIN_UTTERANCE_LENGTH", "min_utterance_length"
        ),
    )
    speak_approval_prompts: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "TERMVOICE_SPEAK_APPROVAL_PROMPTS", "speak_approval_prompts"
        ),
    )

    # Structured-message source
    message_db_path: Path = Field(
        default_factory=lambda: Path.home() / ".claude" / "__store.db",
        validation_alias=AliasChoices("TERMVOICE_MESSAGE_DB", "message_db_path"),
    )
    poll_interval_seconds: float = Field(
        default=0.5,
        gt=0,
        validation_alias=AliasChoices("TERMVOICE_POLL_INTERVAL", "poll_interval_seconds"),
    )
    min_sentence_length: int = Field(
        default=15,
        ge=0,
        validation_alias=AliasChoices(
            "TERMVOICE_MIN_SENTENCE_LENGTH", "min_sentence_length"
        ),
    )

    # Terminal source
    command: str = Field(
        default="claude",
        validation_alias=AliasChoices("TERMVOICE_COMMAND", "command"),
    )
    term: str = Field(
        default="xterm-256color",
        validation_alias=AliasChoices("TERMVOICE_TERM", "term"),
    )

    # Speech backend
    tts_provider: Literal["openai", "deepgram", "command"] = Field(
        default="openai",
        validation_alias=AliasChoices("TERMVOICE_TTS_PROVIDER", "tts_provider"),
    )
    tts_voice: str = Field(
        default="onyx",
        validation_alias=AliasChoices("TERMVOICE_TTS_VOICE", "tts_voice"),
    )
    tts_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TERMVOICE_TTS_MODEL", "tts_model"),
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    deepgram_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("DEEPGRAM_API_KEY", "deepgram_api_key"),
    )
    tts_command: str = Field(
        default="espeak",
        validation_alias=AliasChoices("TERMVOICE_TTS_COMMAND", "tts_command"),
    )
    audio_player: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TERMVOICE_AUDIO_PLAYER", "audio_player"),
        description="Player executable; auto-detected when unset.",
    )
    tts_timeout_seconds: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("TERMVOICE_TTS_TIMEOUT", "tts_timeout_seconds"),
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("TERMVOICE_DEBUG", "debug"),
    )
    log_dir: Path = Field(
        default_factory=lambda: Path("logs/termvoice"),
        validation_alias=AliasChoices("TERMVOICE_LOG_DIR", "log_dir"),
    )
    logging_settings_path: Path = Field(
        default_factory=lambda: PROJECT_ROOT / "logging_settings.conf",
        validation_alias=AliasChoices(
            "TERMVOICE_LOGGING_SETTINGS", "logging_settings_path"
        ),
    )

    @field_validator("stop_tokens")
    @classmethod
    def _drop_blank_tokens(cls, value: list[str]) -> list[str]:
        return [token for token in value if token.strip()]

    @property
    def dedup_window(self) -> float | None:
        """Window passed to the dedup cache; None selects session mode."""
        if self.dedup_mode == "session":
            return None
        return self.dedup_window_seconds


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
