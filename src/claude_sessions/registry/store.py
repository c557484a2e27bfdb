"""In-memory session registry owned by the state server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from .models import IDLE_STATE, KNOWN_STATES, HookEvent, RegistrySnapshot, SessionRecord

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Single-owner map from session id to the latest record for that session.

    Every operation runs under one ``asyncio.Lock`` so concurrent ingest
    handlers and query requests are applied in arrival order. Callers only
    ever receive copies of the stored records.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def apply(self, event: HookEvent) -> None:
        """Apply one hook event: ``end`` removes the session, anything else replaces it."""

        async with self._lock:
            if event.is_end:
                removed = self._sessions.pop(event.session_id, None)
                if removed is not None:
                    logger.info("Session ended", extra={"session_id": event.session_id})
                return

            if event.event not in KNOWN_STATES:
                logger.debug(
                    "Storing unrecognized event kind as state",
                    extra={"session_id": event.session_id, "event": event.event},
                )
            if event.session_id not in self._sessions:
                logger.info(
                    "Session registered",
                    extra={"session_id": event.session_id, "event": event.event, "tty": event.tty},
                )
            self._sessions[event.session_id] = SessionRecord.from_event(event, self._clock())
            logger.debug(
                "Applied event",
                extra={
                    "session_id": event.session_id,
                    "event": event.event,
                    "context_percentage": event.context_percentage,
                },
            )

    async def snapshot(self, idle_timeout_seconds: float) -> RegistrySnapshot:
        """Return all records, first marking those without recent events as idle.

        The idle promotion is written back to the registry and stays until the
        next event for that session arrives.
        """

        async with self._lock:
            now = self._clock()
            cutoff = timedelta(seconds=idle_timeout_seconds)
            for record in self._sessions.values():
                if record.state != IDLE_STATE and now - record.last_update > cutoff:
                    record.state = IDLE_STATE
                    logger.debug("Session went idle", extra={"session_id": record.session_id})
            sessions = [replace(record) for record in self._sessions.values()]
        return RegistrySnapshot(sessions=sessions, server_time=now)

    async def delete(self, session_id: str) -> bool:
        """Remove ``session_id`` regardless of its state; returns whether it existed."""

        async with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Session removed", extra={"session_id": session_id})
        return removed

    async def get(self, session_id: str) -> SessionRecord | None:
        async with self._lock:
            record = self._sessions.get(session_id)
            return replace(record) if record is not None else None

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["SessionRegistry"]
