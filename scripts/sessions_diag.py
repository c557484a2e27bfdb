"""Sessions monitor diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import socket
import sys
import time
from pathlib import Path

from claude_sessions.client import NameStore, SnapshotClient, SnapshotError
from claude_sessions.config import SessionsSettings


def load_client(settings: SessionsSettings) -> SnapshotClient:
    return SnapshotClient(settings.base_url, timeout=settings.request_timeout_seconds)


def cmd_state(args: argparse.Namespace) -> None:
    settings = SessionsSettings()

    async def _fetch():
        client = load_client(settings)
        try:
            return await client.fetch_state()
        finally:
            await client.aclose()

    try:
        snapshot = asyncio.run(_fetch())
    except SnapshotError as exc:
        print(f"State server unavailable: {exc}")
        raise SystemExit(1)

    if args.json:
        print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
    else:
        for session in snapshot.sessions:
            print(f"{session.session_id} [{session.state}] {session.project} {session.tty}")
        print(f"server_time={snapshot.server_time}")


def cmd_delete(args: argparse.Namespace) -> None:
    settings = SessionsSettings()

    async def _delete() -> bool:
        client = load_client(settings)
        try:
            return await client.delete_session(args.session_id)
        finally:
            await client.aclose()

    if not asyncio.run(_delete()):
        print(f"Failed to delete {args.session_id}")
        raise SystemExit(1)
    print(f"Deleted {args.session_id}")


def build_event(args: argparse.Namespace) -> dict[str, object]:
    payload: dict[str, object] = {
        "event": args.event,
        "session_id": args.session_id,
        "cwd": args.cwd,
        "tty": args.tty,
        "timestamp": args.timestamp if args.timestamp is not None else int(time.time()),
    }
    if args.context_percentage is not None:
        payload["context_percentage"] = args.context_percentage
    if args.input_tokens is not None:
        payload["input_tokens"] = args.input_tokens
    if args.tool_name:
        payload["tool_name"] = args.tool_name
    return payload


def send_event(socket_path: Path, payload: dict[str, object]) -> None:
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(1.0)
        sock.connect(str(socket_path))
        sock.sendall(json.dumps(payload).encode("utf-8"))


def cmd_send(args: argparse.Namespace) -> None:
    settings = SessionsSettings()
    socket_path = settings.resolved_socket_path.expanduser()
    payload = build_event(args)
    try:
        send_event(socket_path, payload)
    except OSError as exc:
        print(f"State server unavailable at {socket_path}: {exc}")
        raise SystemExit(1)
    print(json.dumps(payload))


def cmd_names(args: argparse.Namespace) -> None:
    settings = SessionsSettings()
    path = settings.session_names_path if args.kind == "sessions" else settings.window_names_path
    store = NameStore(path.expanduser())

    if args.set:
        key, name = args.set
        store.set_name(key, name)
    elif args.clear:
        store.clear_name(args.clear)

    print(json.dumps(store.get_all_names(), indent=2, sort_keys=True))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sessions monitor diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_state = sub.add_parser("state", help="Fetch the current snapshot")
    p_state.add_argument("--json", action="store_true", help="Output JSON")
    p_state.set_defaults(func=cmd_state)

    p_delete = sub.add_parser("delete", help="Remove a session from the server")
    p_delete.add_argument("session_id")
    p_delete.set_defaults(func=cmd_delete)

    p_send = sub.add_parser("send", help="Send one hook event to the ingest socket")
    p_send.add_argument("--event", default="start")
    p_send.add_argument("--session-id", required=True)
    p_send.add_argument("--cwd", default=str(Path.cwd()))
    p_send.add_argument("--tty", default="unknown")
    p_send.add_argument("--timestamp", type=int, default=None)
    p_send.add_argument("--context-percentage", type=float, default=None)
    p_send.add_argument("--input-tokens", type=int, default=None)
    p_send.add_argument("--tool-name", default=None)
    p_send.set_defaults(func=cmd_send)

    p_names = sub.add_parser("names", help="List or edit stored display names")
    p_names.add_argument("kind", choices=["sessions", "windows"])
    group = p_names.add_mutually_exclusive_group()
    group.add_argument("--set", nargs=2, metavar=("KEY", "NAME"))
    group.add_argument("--clear", metavar="KEY")
    p_names.set_defaults(func=cmd_names)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help(file=sys.stdout)
        return
    args.func(args)


if __name__ == "__main__":
    main()
