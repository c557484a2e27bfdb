"""Client-side views of the server snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

SINGLE_GROUP_PREFIX = "single_"

STATE_LABELS = {
    "start": "Starting",
    "running": "Running...",
    "ready": "Ready",
    "asking": "Needs response",
    "permission": "Needs permission",
    "idle": "Idle",
}


class SessionView(BaseModel):
    """A session as served by the state server, plus client-side enrichment."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    state: str
    tty: str = ""
    cwd: str = ""
    project: str = ""
    last_update: str = ""
    timestamp: int = 0
    context_percentage: float | None = None
    input_tokens: int | None = None

    custom_name: str | None = Field(default=None, description="User-chosen name from the name store.")
    terminal_tab_name: str | None = Field(default=None, description="Title of the owning terminal tab.")
    window_id: str | None = Field(default=None, description="Correlation key of the owning window.")
    memory_mb: int | None = Field(default=None, description="Resident memory of the session process.")

    @property
    def display_name(self) -> str:
        return self.custom_name or self.terminal_tab_name or self.project

    @property
    def state_label(self) -> str:
        return STATE_LABELS.get(self.state, self.state.capitalize())

    @property
    def memory_display(self) -> str | None:
        return f"{self.memory_mb}MB" if self.memory_mb is not None else None


class StateSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sessions: list[SessionView]
    server_time: str


@dataclass(slots=True)
class WindowGroup:
    id: str
    sessions: list[SessionView] = field(default_factory=list)
    custom_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.custom_name or f"Window {self.id}"

    @property
    def is_multi_tab(self) -> bool:
        return len(self.sessions) > 1

    @property
    def is_single(self) -> bool:
        return self.id.startswith(SINGLE_GROUP_PREFIX)


__all__ = ["SINGLE_GROUP_PREFIX", "STATE_LABELS", "SessionView", "StateSnapshot", "WindowGroup"]
