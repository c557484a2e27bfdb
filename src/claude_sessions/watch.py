"""Terminal presenter: runs the reconciliation loop and prints grouped sessions."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, TextIO

from .client import NameStore, ReconciliationEngine, SessionView, SnapshotClient
from .config import SessionsSettings, get_settings
from .probes import AppleScriptTerminal, PsMemoryProbe
from .server import configure_logging

logger = logging.getLogger(__name__)


def create_engine(
    settings: Optional[SessionsSettings] = None,
    *,
    client: SnapshotClient | None = None,
) -> ReconciliationEngine:
    """Build an engine wired to the configured server, name stores and local probes."""

    settings = settings or get_settings()
    client = client or SnapshotClient(settings.base_url, timeout=settings.request_timeout_seconds)
    terminal = AppleScriptTerminal.create()
    return ReconciliationEngine(
        client,
        session_names=NameStore(settings.session_names_path),
        window_names=NameStore(settings.window_names_path),
        introspector=terminal,
        memory_probe=PsMemoryProbe.create(process_match=settings.memory_process_match),
        focuser=terminal,
        interval=settings.poll_interval_seconds,
        stale_threshold=settings.stale_threshold,
    )


def _format_session(session: SessionView, indent: str = "") -> str:
    parts = [f"{indent}{session.display_name or session.session_id}", f"[{session.state_label}]"]
    if session.context_percentage is not None:
        parts.append(f"ctx {round(session.context_percentage * 100)}%")
    if session.memory_display:
        parts.append(session.memory_display)
    return "  ".join(parts)


def render(engine: ReconciliationEngine) -> str:
    if not engine.is_connected:
        return f"disconnected: {engine.last_error or 'no data yet'}"
    if not engine.window_groups:
        return "no active sessions"

    lines: list[str] = []
    for group in engine.window_groups:
        if group.is_multi_tab:
            lines.append(group.display_name)
            lines.extend(_format_session(session, "  ") for session in group.sessions)
        else:
            lines.extend(_format_session(session) for session in group.sessions)
    return "\n".join(lines)


def _printer(stream: TextIO):
    last: list[str] = [""]

    def _print(engine: ReconciliationEngine) -> None:
        text = render(engine)
        if text != last[0]:
            last[0] = text
            print(text, file=stream)
            print("", file=stream, flush=True)

    return _print


async def _watch(engine: ReconciliationEngine, client: SnapshotClient, *, once: bool, stream: TextIO) -> None:
    try:
        if once:
            await engine.refresh()
            print(render(engine), file=stream)
            return
        engine.add_listener(_printer(stream))
        await engine.run()
    finally:
        await client.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Watch live Claude session status")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    client = SnapshotClient(settings.base_url, timeout=settings.request_timeout_seconds)
    engine = create_engine(settings, client=client)
    try:
        asyncio.run(_watch(engine, client, once=args.once, stream=sys.stdout))
    except KeyboardInterrupt:
        logger.info("Watch stopped")


if __name__ == "__main__":
    main()
