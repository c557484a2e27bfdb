from __future__ import annotations

import asyncio
from pathlib import Path

from claude_sessions.client import (
    NameStore,
    ReconciliationEngine,
    SessionView,
    SnapshotError,
    StaleTracker,
    StateSnapshot,
    build_window_groups,
    stable_order,
)
from claude_sessions.probes import TerminalTab


def session(session_id: str, *, tty: str = "", timestamp: int = 0, **extra) -> SessionView:
    return SessionView(
        session_id=session_id,
        state=extra.pop("state", "running"),
        tty=tty,
        cwd=f"/work/{session_id}",
        project=session_id,
        last_update="2025-01-01T00:00:00+00:00",
        timestamp=timestamp,
        **extra,
    )


class StubSource:
    def __init__(self, sessions: list[SessionView] | None = None) -> None:
        self.sessions = list(sessions or [])
        self.error: str | None = None
        self.deleted: list[str] = []

    async def fetch_state(self) -> StateSnapshot:
        if self.error:
            raise SnapshotError(self.error)
        return StateSnapshot(sessions=list(self.sessions), server_time="2025-01-01T00:00:00+00:00")

    async def delete_session(self, session_id: str) -> bool:
        self.deleted.append(session_id)
        self.sessions = [item for item in self.sessions if item.session_id != session_id]
        return True


class StubIntrospector:
    def __init__(self, tabs: dict[str, TerminalTab] | None = None) -> None:
        self.tabs = tabs

    async def tab_info(self) -> dict[str, TerminalTab] | None:
        return None if self.tabs is None else dict(self.tabs)


class StubMemoryProbe:
    def __init__(self, values: dict[str, int]) -> None:
        self.values = values
        self.calls: list[str] = []

    async def memory_mb(self, tty: str) -> int | None:
        self.calls.append(tty)
        return self.values.get(tty)


class StubFocuser:
    def __init__(self) -> None:
        self.focused: list[str] = []

    async def focus(self, tty: str) -> bool:
        self.focused.append(tty)
        return True


def make_engine(tmp_path: Path, source: StubSource, **kwargs) -> ReconciliationEngine:
    return ReconciliationEngine(
        source,
        session_names=NameStore(tmp_path / "session-names.json"),
        window_names=NameStore(tmp_path / "window-names.json"),
        **kwargs,
    )


def ids(items) -> list[str]:
    return [item.session_id for item in items]


def test_stable_order_keeps_known_and_appends_new() -> None:
    incoming = [session("C"), session("A"), session("B"), session("D")]

    ordered = stable_order(incoming, ["A", "B", "C"], key=lambda item: item.session_id)

    assert ids(ordered) == ["A", "B", "C", "D"]


def test_stable_order_sorts_new_items_by_timestamp() -> None:
    incoming = [session("late", timestamp=30), session("known"), session("early", timestamp=10)]

    ordered = stable_order(
        incoming,
        ["known"],
        key=lambda item: item.session_id,
        new_sort_key=lambda item: item.timestamp,
    )

    assert ids(ordered) == ["known", "early", "late"]


def test_stale_tracker_expires_after_threshold() -> None:
    tracker = StaleTracker(threshold=3)
    sessions = [session("gone", tty="/dev/ttys009"), session("here", tty="/dev/ttys001")]
    active = {"/dev/ttys001"}

    assert tracker.observe(sessions, active) == []
    assert tracker.observe(sessions, active) == []
    assert tracker.counts == {"gone": 2}
    assert tracker.observe(sessions, active) == ["gone"]
    assert tracker.counts == {}


def test_stale_tracker_resets_when_tty_reappears() -> None:
    tracker = StaleTracker(threshold=3)
    sessions = [session("flaky", tty="/dev/ttys002")]

    tracker.observe(sessions, set())
    tracker.observe(sessions, set())
    tracker.observe(sessions, {"/dev/ttys002"})

    assert tracker.counts == {}
    assert tracker.observe(sessions, set()) == []
    assert tracker.counts == {"flaky": 1}


def test_stale_tracker_skips_empty_tty_but_counts_unknown() -> None:
    tracker = StaleTracker(threshold=1)

    expired = tracker.observe([session("a", tty=""), session("b", tty="unknown")], set())

    assert expired == ["b"]
    assert tracker.counts == {}


def test_window_groups_wrap_multi_tab_windows_only() -> None:
    sessions = [
        session("a", window_id="10,10"),
        session("b", window_id="20,20"),
        session("c", window_id="10,10"),
        session("d"),
    ]

    groups = build_window_groups(sessions, {"10,10": "Main"}, [])

    assert [group.id for group in groups] == ["10,10", "single_b", "single_d"]
    assert ids(groups[0].sessions) == ["a", "c"]
    assert groups[0].display_name == "Main"
    assert groups[0].is_multi_tab
    assert groups[1].custom_name is None
    assert not groups[1].is_multi_tab


def test_window_groups_preserve_previous_order() -> None:
    sessions = [session("a"), session("b", window_id="w"), session("c", window_id="w")]

    groups = build_window_groups(sessions, {}, ["w", "single_z", "single_a"])

    assert [group.id for group in groups] == ["w", "single_a"]
    assert groups[0].display_name == "Window w"


def test_refresh_publishes_enriched_sessions(tmp_path: Path) -> None:
    source = StubSource([session("s1", tty="/dev/ttys001"), session("s2", tty="/dev/ttys002")])
    introspector = StubIntrospector(
        {
            "/dev/ttys001": TerminalTab(tab_name="api", window_id="0,0"),
            "/dev/ttys002": TerminalTab(tab_name="docs", window_id="0,0"),
        }
    )
    memory = StubMemoryProbe({"/dev/ttys001": 256})
    NameStore(tmp_path / "session-names.json").set_name("s2", "Writing")
    engine = make_engine(tmp_path, source, introspector=introspector, memory_probe=memory)

    asyncio.run(engine.refresh())

    assert engine.is_connected
    assert engine.last_error is None
    first, second = engine.sessions
    assert first.terminal_tab_name == "api"
    assert first.memory_mb == 256
    assert first.display_name == "api"
    assert second.custom_name == "Writing"
    assert second.display_name == "Writing"
    assert second.memory_mb is None
    assert [group.id for group in engine.window_groups] == ["0,0"]


def test_refresh_order_is_stable_across_passes(tmp_path: Path) -> None:
    source = StubSource([session("A", timestamp=1), session("B", timestamp=2), session("C", timestamp=3)])
    engine = make_engine(tmp_path, source)

    async def scenario():
        await engine.refresh()
        source.sessions = [session("C"), session("A"), session("B"), session("D", timestamp=4)]
        await engine.refresh()

    asyncio.run(scenario())

    assert ids(engine.sessions) == ["A", "B", "C", "D"]
    assert [group.id for group in engine.window_groups] == ["single_A", "single_B", "single_C", "single_D"]


def test_stale_session_is_deleted_after_three_passes(tmp_path: Path) -> None:
    source = StubSource([session("gone", tty="/dev/ttys009"), session("here", tty="/dev/ttys001")])
    introspector = StubIntrospector({"/dev/ttys001": TerminalTab(tab_name="t", window_id="1,1")})
    engine = make_engine(tmp_path, source, introspector=introspector)

    async def scenario():
        await engine.refresh()
        await engine.refresh()
        assert source.deleted == []
        assert ids(engine.sessions) == ["gone", "here"]
        await engine.refresh()

    asyncio.run(scenario())

    assert source.deleted == ["gone"]
    assert ids(engine.sessions) == ["here"]
    assert engine.stale_counts == {}


def test_session_with_unknown_tty_expires_like_any_other(tmp_path: Path) -> None:
    source = StubSource([session("orphan", tty="unknown"), session("here", tty="/dev/ttys001")])
    introspector = StubIntrospector({"/dev/ttys001": TerminalTab(tab_name="t", window_id="1,1")})
    memory = StubMemoryProbe({})
    engine = make_engine(tmp_path, source, introspector=introspector, memory_probe=memory)

    async def scenario():
        for _ in range(5):
            await engine.refresh()

    asyncio.run(scenario())

    assert source.deleted == ["orphan"]
    assert ids(engine.sessions) == ["here"]
    assert "unknown" not in memory.calls


def test_unavailable_introspection_skips_stale_detection(tmp_path: Path) -> None:
    source = StubSource([session("s1", tty="/dev/ttys009")])
    introspector = StubIntrospector({})
    engine = make_engine(tmp_path, source, introspector=introspector)

    async def scenario():
        await engine.refresh()
        await engine.refresh()
        introspector.tabs = None
        for _ in range(5):
            await engine.refresh()

    asyncio.run(scenario())

    assert source.deleted == []
    assert engine.stale_counts == {"s1": 2}
    assert engine.sessions[0].window_id is None


def test_fetch_failure_clears_everything(tmp_path: Path) -> None:
    source = StubSource([session("s1")])
    engine = make_engine(tmp_path, source)
    published: list[bool] = []
    engine.add_listener(lambda current: published.append(current.is_connected))

    async def scenario():
        await engine.refresh()
        source.error = "connection refused"
        await engine.refresh()

    asyncio.run(scenario())

    assert published == [True, False]
    assert engine.sessions == []
    assert engine.window_groups == []
    assert not engine.is_connected
    assert engine.last_error == "connection refused"


def test_rename_updates_view_without_polling(tmp_path: Path) -> None:
    source = StubSource([session("a", window_id="w"), session("b", window_id="w")])
    engine = make_engine(tmp_path, source)
    asyncio.run(engine.refresh())

    engine.rename_session("a", "Alpha")
    engine.rename_window("w", "Workspace")

    assert engine.sessions[0].custom_name == "Alpha"
    assert engine.window_groups[0].sessions[0].custom_name == "Alpha"
    assert engine.window_groups[0].display_name == "Workspace"
    assert NameStore(tmp_path / "window-names.json").get_name("w") == "Workspace"

    engine.rename_session("a", "")

    assert engine.sessions[0].custom_name is None
    assert NameStore(tmp_path / "session-names.json").get_all_names() == {}


def test_focus_delegates_to_focuser(tmp_path: Path) -> None:
    focuser = StubFocuser()
    engine = make_engine(tmp_path, StubSource(), focuser=focuser)

    assert asyncio.run(engine.focus_session(session("s1", tty="/dev/ttys004")))
    assert not asyncio.run(engine.focus_session(session("s2", tty="unknown")))
    assert focuser.focused == ["/dev/ttys004"]


def test_run_loop_polls_until_stopped(tmp_path: Path) -> None:
    source = StubSource([session("s1")])
    engine = make_engine(tmp_path, source, interval=0.01)
    passes: list[int] = []
    engine.add_listener(lambda current: passes.append(len(current.sessions)))

    async def scenario():
        engine.start()
        await asyncio.sleep(0.1)
        await engine.stop()

    asyncio.run(scenario())

    assert len(passes) >= 2
    assert engine.is_connected


def test_failing_listener_does_not_stop_polling(tmp_path: Path) -> None:
    source = StubSource([session("s1")])
    engine = make_engine(tmp_path, source, interval=0.01)
    calls: list[int] = []
    passes: list[int] = []

    def flaky(current: ReconciliationEngine) -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("render failed")

    engine.add_listener(flaky)
    engine.add_listener(lambda current: passes.append(len(current.sessions)))

    async def scenario():
        task = engine.start()
        await asyncio.sleep(0.1)
        assert not task.done()
        await engine.stop()

    asyncio.run(scenario())

    assert len(calls) >= 2
    assert len(passes) == len(calls)
