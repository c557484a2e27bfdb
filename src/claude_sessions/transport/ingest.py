"""Unix-socket listener receiving one hook event per connection."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
from pathlib import Path

from pydantic import ValidationError

from ..registry import HookEvent, SessionRegistry
from .errors import TransportError

logger = logging.getLogger(__name__)

INGEST_BUFFER_SIZE = 4096
ACCEPT_POLL_INTERVAL = 0.01
LISTEN_BACKLOG = 10


def decode_event(data: bytes) -> HookEvent | None:
    """Parse one event document, returning ``None`` for malformed payloads."""

    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Dropping unparsable hook payload", extra={"error": str(exc)})
        return None

    if not isinstance(payload, dict):
        logger.warning(
            "Dropping hook payload that is not an object",
            extra={"payload_type": type(payload).__name__},
        )
        return None

    try:
        return HookEvent.model_validate(payload)
    except ValidationError as exc:  # pragma: no cover - validators coerce every field
        logger.warning("Dropping invalid hook payload", extra={"error": str(exc)})
        return None


class EventIngestListener:
    """Accept hook connections on a Unix socket and apply their events.

    The accept loop polls a non-blocking socket and sleeps briefly when no
    connection is pending. Each accepted connection is handled by its own
    task; the sender never receives a reply.
    """

    def __init__(
        self,
        socket_path: Path,
        registry: SessionRegistry,
        *,
        buffer_size: int = INGEST_BUFFER_SIZE,
        poll_interval: float = ACCEPT_POLL_INTERVAL,
    ) -> None:
        self._socket_path = Path(socket_path)
        self._registry = registry
        self._buffer_size = buffer_size
        self._poll_interval = poll_interval
        self._sock: socket.socket | None = None
        self._accept_task: asyncio.Task[None] | None = None
        self._handlers: set[asyncio.Task[None]] = set()

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def running(self) -> bool:
        return self._accept_task is not None and not self._accept_task.done()

    async def start(self) -> None:
        if self._sock is not None:
            return

        try:
            self._socket_path.parent.mkdir(parents=True, exist_ok=True)
            if self._socket_path.exists():
                self._socket_path.unlink()
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise TransportError(f"Cannot prepare ingest socket at {self._socket_path}: {exc}") from exc

        try:
            sock.bind(str(self._socket_path))
            os.chmod(self._socket_path, 0o600)
            sock.listen(LISTEN_BACKLOG)
            sock.setblocking(False)
        except OSError as exc:
            sock.close()
            raise TransportError(f"Cannot listen on ingest socket {self._socket_path}: {exc}") from exc

        self._sock = sock
        self._accept_task = asyncio.create_task(self._accept_loop(sock), name="ingest-accept")
        logger.info("Hook listener started", extra={"socket_path": str(self._socket_path)})

    async def stop(self) -> None:
        """Stop accepting, close the socket and remove its filesystem entry.

        Handlers already running are left to finish.
        """

        if self._accept_task is not None:
            self._accept_task.cancel()
            try:
                await self._accept_task
            except asyncio.CancelledError:
                pass
            self._accept_task = None

        if self._sock is not None:
            self._sock.close()
            self._sock = None

        if self._socket_path.exists():
            self._socket_path.unlink()
        logger.info("Hook listener stopped", extra={"socket_path": str(self._socket_path)})

    async def _accept_loop(self, sock: socket.socket) -> None:
        while True:
            try:
                conn, _ = sock.accept()
            except (BlockingIOError, InterruptedError):
                await asyncio.sleep(self._poll_interval)
                continue
            except OSError as exc:
                logger.error("Hook listener accept failed", extra={"error": str(exc)})
                return

            conn.setblocking(False)
            task = asyncio.create_task(self._handle_connection(conn))
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def _handle_connection(self, conn: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        with conn:
            try:
                data = await loop.sock_recv(conn, self._buffer_size)
            except OSError as exc:
                logger.warning("Failed reading hook connection", extra={"error": str(exc)})
                return

            if not data:
                return

            event = decode_event(data)
            if event is None:
                return
            await self._registry.apply(event)


__all__ = ["ACCEPT_POLL_INTERVAL", "INGEST_BUFFER_SIZE", "EventIngestListener", "decode_event"]
