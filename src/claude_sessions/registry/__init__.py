"""Session registry and its data models."""

from .models import (
    END_EVENT,
    IDLE_STATE,
    KNOWN_STATES,
    HookEvent,
    RegistrySnapshot,
    SessionRecord,
)
from .store import SessionRegistry

__all__ = [
    "END_EVENT",
    "IDLE_STATE",
    "KNOWN_STATES",
    "HookEvent",
    "RegistrySnapshot",
    "SessionRecord",
    "SessionRegistry",
]
