from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from claude_sessions.registry import HookEvent, SessionRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def start_event(session_id: str = "s1", **overrides) -> HookEvent:
    payload = {
        "event": "start",
        "session_id": session_id,
        "tty": "/dev/ttys001",
        "cwd": "/home/u/proj",
        "timestamp": 1000,
    }
    payload.update(overrides)
    return HookEvent.model_validate(payload)


def test_start_event_creates_record() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event())
        return await registry.snapshot(300)

    snapshot = asyncio.run(scenario())

    assert len(snapshot.sessions) == 1
    record = snapshot.sessions[0]
    assert record.session_id == "s1"
    assert record.state == "start"
    assert record.project == "proj"
    assert record.tty == "/dev/ttys001"
    assert record.last_update == clock.now


def test_end_event_removes_record() -> None:
    registry = SessionRegistry(clock=FakeClock())

    async def scenario():
        await registry.apply(start_event())
        await registry.apply(HookEvent(event="end", session_id="s1"))
        await registry.apply(HookEvent(event="end", session_id="never-seen"))
        return await registry.snapshot(300)

    assert asyncio.run(scenario()).sessions == []


def test_events_replace_rather_than_merge() -> None:
    registry = SessionRegistry(clock=FakeClock())

    async def scenario():
        await registry.apply(start_event(event="status", context_percentage=0.42, input_tokens=1200))
        await registry.apply(start_event(event="running", cwd="/home/u/other"))
        return await registry.get("s1")

    record = asyncio.run(scenario())

    assert record is not None
    assert record.state == "running"
    assert record.project == "other"
    assert record.context_percentage is None
    assert record.input_tokens is None


def test_reingesting_identical_event_only_refreshes_last_update() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event())
        first = await registry.get("s1")
        clock.advance(10)
        await registry.apply(start_event())
        second = await registry.get("s1")
        return first, second

    first, second = asyncio.run(scenario())

    assert second.last_update - first.last_update == timedelta(seconds=10)
    first.last_update = second.last_update
    assert first == second


def test_idle_promotion_is_sticky_until_next_event() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event())
        clock.advance(301)
        idle = await registry.snapshot(300)
        still_idle = await registry.snapshot(3600)
        await registry.apply(start_event(event="running"))
        resumed = await registry.snapshot(300)
        return idle, still_idle, resumed

    idle, still_idle, resumed = asyncio.run(scenario())

    assert idle.sessions[0].state == "idle"
    assert still_idle.sessions[0].state == "idle"
    assert resumed.sessions[0].state == "running"


def test_record_at_exact_timeout_is_not_idle() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event())
        clock.advance(300)
        return await registry.snapshot(300)

    assert asyncio.run(scenario()).sessions[0].state == "start"


def test_delete_removes_regardless_of_state() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event())
        clock.advance(1000)
        await registry.snapshot(300)
        removed = await registry.delete("s1")
        missing = await registry.delete("s1")
        return removed, missing, await registry.snapshot(300)

    removed, missing, snapshot = asyncio.run(scenario())

    assert removed is True
    assert missing is False
    assert snapshot.sessions == []


def test_snapshot_returns_copies() -> None:
    registry = SessionRegistry(clock=FakeClock())

    async def scenario():
        await registry.apply(start_event())
        snapshot = await registry.snapshot(300)
        snapshot.sessions[0].state = "tampered"
        return await registry.get("s1")

    assert asyncio.run(scenario()).state == "start"


def test_concurrent_events_last_writer_wins() -> None:
    registry = SessionRegistry(clock=FakeClock())
    states = ["start", "running", "asking", "ready"]

    async def scenario():
        await asyncio.gather(*(registry.apply(start_event(event=state)) for state in states))
        return await registry.snapshot(300)

    snapshot = asyncio.run(scenario())

    assert len(snapshot.sessions) == 1
    assert snapshot.sessions[0].state == "ready"


def test_snapshot_to_dict_shape() -> None:
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)

    async def scenario():
        await registry.apply(start_event(context_percentage=0.5))
        return await registry.snapshot(300)

    payload = asyncio.run(scenario()).to_dict()

    assert payload["server_time"] == "2025-01-01T00:00:00+00:00"
    assert payload["sessions"][0]["context_percentage"] == 0.5
    assert payload["sessions"][0]["last_update"] == "2025-01-01T00:00:00+00:00"
    assert set(payload["sessions"][0]) == {
        "session_id",
        "state",
        "tty",
        "cwd",
        "project",
        "last_update",
        "timestamp",
        "context_percentage",
        "input_tokens",
    }
