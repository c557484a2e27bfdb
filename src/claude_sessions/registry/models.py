"""Hook event and session record models."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

END_EVENT = "end"
IDLE_STATE = "idle"

KNOWN_STATES = frozenset({"start", "running", "ready", "asking", "permission", "idle"})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


class HookEvent(BaseModel):
    """A lifecycle notification sent by a hook process.

    Hooks are shell scripts, so every field is optional and wrongly typed
    values fall back to the field default rather than rejecting the event.
    """

    model_config = ConfigDict(extra="ignore")

    event: str = Field(default="unknown", description="Event kind; becomes the session state.")
    session_id: str = Field(default="unknown", description="Stable id of the monitored session.")
    cwd: str = Field(default="", description="Working directory of the session.")
    tty: str = Field(default="", description="Controlling terminal device, if known.")
    timestamp: int = Field(default=0, description="Unix seconds declared by the hook.")
    context_percentage: float | None = Field(
        default=None, description="Fraction of the context window in use, 0-1."
    )
    input_tokens: int | None = Field(default=None, description="Total input tokens so far.")
    tool_name: str | None = Field(default=None, description="Tool about to run, for tool events.")

    @field_validator("event", "session_id", mode="before")
    @classmethod
    def _default_unknown(cls, value: Any) -> str:
        return value if isinstance(value, str) else "unknown"

    @field_validator("cwd", "tty", mode="before")
    @classmethod
    def _default_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_timestamp(cls, value: Any) -> int:
        converted = _as_int(value)
        return converted if converted is not None else 0

    @field_validator("context_percentage", mode="before")
    @classmethod
    def _optional_float(cls, value: Any) -> float | None:
        if not _is_number(value):
            return None
        try:
            converted = float(value)
        except OverflowError:
            return None
        return converted if math.isfinite(converted) else None

    @field_validator("input_tokens", mode="before")
    @classmethod
    def _optional_int(cls, value: Any) -> int | None:
        return _as_int(value)

    @field_validator("tool_name", mode="before")
    @classmethod
    def _optional_str(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @property
    def is_end(self) -> bool:
        return self.event == END_EVENT


def project_name(cwd: str) -> str:
    """Return the last path component of ``cwd`` ("" for an empty path)."""

    return PurePosixPath(cwd).name if cwd else ""


def format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


@dataclass(slots=True)
class SessionRecord:
    session_id: str
    state: str
    tty: str
    cwd: str
    project: str
    last_update: datetime
    timestamp: int
    context_percentage: float | None = None
    input_tokens: int | None = None

    @classmethod
    def from_event(cls, event: HookEvent, received_at: datetime) -> "SessionRecord":
        return cls(
            session_id=event.session_id,
            state=event.event,
            tty=event.tty,
            cwd=event.cwd,
            project=project_name(event.cwd),
            last_update=received_at,
            timestamp=event.timestamp,
            context_percentage=event.context_percentage,
            input_tokens=event.input_tokens,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state,
            "tty": self.tty,
            "cwd": self.cwd,
            "project": self.project,
            "last_update": format_timestamp(self.last_update),
            "timestamp": self.timestamp,
            "context_percentage": self.context_percentage,
            "input_tokens": self.input_tokens,
        }


@dataclass(slots=True)
class RegistrySnapshot:
    sessions: list[SessionRecord]
    server_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": [record.to_dict() for record in self.sessions],
            "server_time": format_timestamp(self.server_time),
        }


__all__ = [
    "END_EVENT",
    "IDLE_STATE",
    "KNOWN_STATES",
    "HookEvent",
    "RegistrySnapshot",
    "SessionRecord",
    "format_timestamp",
    "project_name",
]
