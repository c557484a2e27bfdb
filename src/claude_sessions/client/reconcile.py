"""Polling loop that turns server snapshots into a stable, grouped session view."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar

from ..probes import MemoryProbe, TerminalIntrospector, TerminalTab, WindowFocuser
from .models import SINGLE_GROUP_PREFIX, SessionView, StateSnapshot, WindowGroup
from .names import NameStore
from .snapshot import SnapshotError

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN_TTY = "unknown"


class SnapshotSource(Protocol):
    async def fetch_state(self) -> StateSnapshot:
        ...

    async def delete_session(self, session_id: str) -> bool:
        ...


def has_tty(tty: str) -> bool:
    """Hooks report ``unknown`` when they cannot determine the terminal."""

    return bool(tty) and tty != UNKNOWN_TTY


def stable_order(
    items: Iterable[T],
    previous: Sequence[str],
    *,
    key: Callable[[T], str],
    new_sort_key: Callable[[T], Any] | None = None,
) -> list[T]:
    """Order ``items`` so previously seen keys keep their relative order.

    Unseen items are appended after all known ones, sorted by ``new_sort_key``
    when given and otherwise left in their incoming order.
    """

    positions = {item_key: index for index, item_key in enumerate(previous)}
    materialized = list(items)
    known = sorted(
        (item for item in materialized if key(item) in positions),
        key=lambda item: positions[key(item)],
    )
    unseen = [item for item in materialized if key(item) not in positions]
    if new_sort_key is not None:
        unseen.sort(key=new_sort_key)
    return known + unseen


class StaleTracker:
    """Counts consecutive passes in which a session's tty had no terminal tab."""

    def __init__(self, threshold: int = 3) -> None:
        if threshold < 1:
            raise ValueError("stale threshold must be >= 1")
        self._threshold = threshold
        self._counts: dict[str, int] = {}

    @property
    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    def observe(self, sessions: Iterable[SessionView], active_ttys: set[str]) -> list[str]:
        """Update counters for one pass and return the ids that just expired."""

        expired: list[str] = []
        present: set[str] = set()
        for session in sessions:
            session_id = session.session_id
            present.add(session_id)
            if session.tty and session.tty not in active_ttys:
                count = self._counts.get(session_id, 0) + 1
                if count >= self._threshold:
                    expired.append(session_id)
                    self._counts.pop(session_id, None)
                else:
                    self._counts[session_id] = count
            else:
                self._counts.pop(session_id, None)

        for session_id in list(self._counts):
            if session_id not in present:
                del self._counts[session_id]
        return expired


def build_window_groups(
    sessions: Sequence[SessionView],
    window_names: dict[str, str],
    previous_order: Sequence[str],
) -> list[WindowGroup]:
    """Group sessions sharing a window key; lone sessions become ``single_`` groups."""

    by_window: dict[str, list[SessionView]] = {}
    for session in sessions:
        if session.window_id is not None:
            by_window.setdefault(session.window_id, []).append(session)

    groups: list[WindowGroup] = []
    emitted: set[str] = set()
    for session in sessions:
        members = by_window.get(session.window_id) if session.window_id is not None else None
        if members is not None and len(members) > 1:
            if session.window_id in emitted:
                continue
            emitted.add(session.window_id)
            groups.append(
                WindowGroup(
                    id=session.window_id,
                    sessions=list(members),
                    custom_name=window_names.get(session.window_id),
                )
            )
        else:
            groups.append(WindowGroup(id=f"{SINGLE_GROUP_PREFIX}{session.session_id}", sessions=[session]))

    return stable_order(groups, previous_order, key=lambda group: group.id)


class ReconciliationEngine:
    """Polls the state server and publishes an enriched, ordered view.

    Each pass fetches a snapshot, enriches it with stored names, terminal tab
    info and memory usage, expires sessions whose tab is gone, then orders and
    groups the result. Passes never overlap. The terminal and memory probes
    run inline, so a pass takes longer as the number of sessions grows.
    """

    def __init__(
        self,
        source: SnapshotSource,
        *,
        session_names: NameStore,
        window_names: NameStore,
        introspector: TerminalIntrospector | None = None,
        memory_probe: MemoryProbe | None = None,
        focuser: WindowFocuser | None = None,
        interval: float = 0.5,
        stale_threshold: int = 3,
    ) -> None:
        self._source = source
        self._session_names = session_names
        self._window_names = window_names
        self._introspector = introspector
        self._memory_probe = memory_probe
        self._focuser = focuser
        self._interval = interval
        self._stale = StaleTracker(stale_threshold)
        self._listeners: list[Callable[["ReconciliationEngine"], None]] = []
        self._task: asyncio.Task[None] | None = None

        self.sessions: list[SessionView] = []
        self.window_groups: list[WindowGroup] = []
        self.is_connected = False
        self.last_error: str | None = None

    @property
    def stale_counts(self) -> dict[str, int]:
        return self._stale.counts

    def add_listener(self, callback: Callable[["ReconciliationEngine"], None]) -> None:
        """Register a callback invoked after every publish, including disconnects."""

        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            try:
                callback(self)
            except Exception:
                logger.exception("Listener failed", extra={"listener": repr(callback)})

    async def refresh(self) -> None:
        """Run one reconciliation pass."""

        try:
            snapshot = await self._source.fetch_state()
        except SnapshotError as exc:
            self._disconnect(exc)
            return

        tab_info = await self._tab_info()
        sessions = await self._enrich(snapshot.sessions, tab_info)

        if tab_info is not None:
            expired = self._stale.observe(sessions, set(tab_info))
            if expired:
                for session_id in expired:
                    logger.info("Removing stale session", extra={"session_id": session_id})
                    await self._source.delete_session(session_id)
                gone = set(expired)
                sessions = [session for session in sessions if session.session_id not in gone]

        ordered = stable_order(
            sessions,
            [session.session_id for session in self.sessions],
            key=lambda session: session.session_id,
            new_sort_key=lambda session: session.timestamp,
        )
        groups = build_window_groups(
            ordered,
            self._window_names.get_all_names(),
            [group.id for group in self.window_groups],
        )

        if not self.is_connected:
            logger.info("Connected to state server", extra={"sessions": len(ordered)})
        self.sessions = ordered
        self.window_groups = groups
        self.is_connected = True
        self.last_error = None
        logger.debug(
            "Reconciled snapshot",
            extra={"sessions": len(ordered), "groups": len(groups), "server_time": snapshot.server_time},
        )
        self._notify()

    def _disconnect(self, exc: SnapshotError) -> None:
        if self.is_connected or self.last_error is None:
            logger.info("Disconnected from state server", extra={"error": str(exc)})
        self.sessions = []
        self.window_groups = []
        self.is_connected = False
        self.last_error = str(exc)
        self._notify()

    async def _tab_info(self) -> dict[str, TerminalTab] | None:
        if self._introspector is None:
            return None
        try:
            return await self._introspector.tab_info()
        except OSError as exc:
            logger.debug("Terminal introspection failed", extra={"error": str(exc)})
            return None

    async def _memory_mb(self, tty: str) -> int | None:
        if self._memory_probe is None or not has_tty(tty):
            return None
        try:
            return await self._memory_probe.memory_mb(tty)
        except OSError as exc:
            logger.debug("Memory probe failed", extra={"tty": tty, "error": str(exc)})
            return None

    async def _enrich(
        self,
        sessions: Sequence[SessionView],
        tab_info: dict[str, TerminalTab] | None,
    ) -> list[SessionView]:
        custom_names = self._session_names.get_all_names()
        enriched: list[SessionView] = []
        for session in sessions:
            updates: dict[str, Any] = {"custom_name": custom_names.get(session.session_id)}
            tab = tab_info.get(session.tty) if tab_info is not None else None
            if tab is not None:
                updates["terminal_tab_name"] = tab.tab_name
                updates["window_id"] = tab.window_id
            updates["memory_mb"] = await self._memory_mb(session.tty)
            enriched.append(session.model_copy(update=updates))
        return enriched

    async def run(self) -> None:
        """Refresh immediately, then once per interval until cancelled."""

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            await self.refresh()
            next_tick += self._interval
            now = loop.time()
            if next_tick <= now:
                next_tick = now + self._interval
            await asyncio.sleep(next_tick - now)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="reconcile")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def rename_session(self, session_id: str, name: str) -> None:
        """Persist a session name and apply it to the published view right away."""

        self._session_names.set_name(session_id, name)
        new_name = self._session_names.get_name(session_id)

        def _renamed(session: SessionView) -> SessionView:
            if session.session_id != session_id:
                return session
            return session.model_copy(update={"custom_name": new_name})

        self.sessions = [_renamed(session) for session in self.sessions]
        for group in self.window_groups:
            group.sessions = [_renamed(session) for session in group.sessions]
        self._notify()

    def rename_window(self, window_id: str, name: str) -> None:
        self._window_names.set_name(window_id, name)
        new_name = self._window_names.get_name(window_id)
        for group in self.window_groups:
            if group.id == window_id:
                group.custom_name = new_name
        self._notify()

    async def focus_session(self, session: SessionView) -> bool:
        """Bring the terminal tab owning ``session`` to the front."""

        if self._focuser is None or not has_tty(session.tty):
            logger.info("Cannot focus session", extra={"session_id": session.session_id})
            return False
        try:
            return await self._focuser.focus(session.tty)
        except OSError as exc:
            logger.warning(
                "Focus request failed",
                extra={"session_id": session.session_id, "error": str(exc)},
            )
            return False


__all__ = [
    "ReconciliationEngine",
    "SnapshotSource",
    "StaleTracker",
    "build_window_groups",
    "has_tty",
    "stable_order",
]
