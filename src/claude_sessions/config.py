"""Configuration management for the sessions monitor."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionsSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    state_dir: Path = Field(
        default=Path("~/.claude/widget"), validation_alias="CLAUDE_SESSIONS_STATE_DIR"
    )
    socket_path: Path | None = Field(default=None, validation_alias="CLAUDE_SESSIONS_SOCKET_PATH")
    http_host: str = Field(default="127.0.0.1", validation_alias="CLAUDE_SESSIONS_HTTP_HOST")
    http_port: int = Field(default=19847, validation_alias="CLAUDE_SESSIONS_HTTP_PORT")
    idle_timeout_seconds: float = Field(default=300.0, validation_alias="CLAUDE_SESSIONS_IDLE_TIMEOUT")
    poll_interval_seconds: float = Field(default=0.5, validation_alias="CLAUDE_SESSIONS_POLL_INTERVAL")
    stale_threshold: int = Field(default=3, validation_alias="CLAUDE_SESSIONS_STALE_THRESHOLD")
    request_timeout_seconds: float = Field(
        default=2.0, validation_alias="CLAUDE_SESSIONS_REQUEST_TIMEOUT"
    )
    memory_process_match: str = Field(default="claude", validation_alias="CLAUDE_SESSIONS_PROCESS_MATCH")
    log_level: str = Field(default="INFO", validation_alias="CLAUDE_SESSIONS_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CLAUDE_SESSIONS_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("socket_path", mode="before")
    @classmethod
    def _blank_socket_path(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("http_port")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if not 0 <= value <= 65535:
            raise ValueError("CLAUDE_SESSIONS_HTTP_PORT must be between 0 and 65535")
        return value

    @field_validator("idle_timeout_seconds", "poll_interval_seconds", "request_timeout_seconds")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts and intervals must be positive")
        return value

    @field_validator("stale_threshold")
    @classmethod
    def _validate_stale_threshold(cls, value: int) -> int:
        if value < 1:
            raise ValueError("CLAUDE_SESSIONS_STALE_THRESHOLD must be >= 1")
        return value

    @property
    def resolved_socket_path(self) -> Path:
        """Ingest socket location; defaults to ``state.sock`` inside the state directory."""

        return self.socket_path if self.socket_path is not None else self.state_dir / "state.sock"

    @property
    def session_names_path(self) -> Path:
        return self.state_dir / "session-names.json"

    @property
    def window_names_path(self) -> Path:
        return self.state_dir / "window-names.json"

    @property
    def base_url(self) -> str:
        return f"http://{self.http_host}:{self.http_port}"


@lru_cache(maxsize=1)
def get_settings() -> SessionsSettings:
    """Return cached settings instance."""

    settings = SessionsSettings()
    settings.state_dir = settings.state_dir.expanduser().resolve()
    if settings.socket_path is not None:
        settings.socket_path = settings.socket_path.expanduser().resolve()
    return settings


__all__ = ["SessionsSettings", "get_settings"]
