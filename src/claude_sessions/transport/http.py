"""Minimal HTTP endpoint serving registry snapshots to the widget client."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from http import HTTPStatus
from urllib.parse import unquote

from ..registry import SessionRegistry
from .errors import TransportError

logger = logging.getLogger(__name__)

REQUEST_CHUNK_SIZE = 1024
SESSIONS_PREFIX = "/sessions/"
STATE_PATHS = {"/state", "/"}


@dataclass(slots=True)
class HttpResponse:
    status: HTTPStatus
    body: bytes = b""
    content_type: str | None = None

    def encode(self) -> bytes:
        lines = [f"HTTP/1.1 {self.status.value} {self.status.phrase}"]
        if self.content_type:
            lines.append(f"Content-Type: {self.content_type}")
            lines.append("Access-Control-Allow-Origin: *")
        lines.append(f"Content-Length: {len(self.body)}")
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("ascii") + self.body


class SnapshotServer:
    """Serve ``GET /state`` and ``DELETE /sessions/{id}`` over a local TCP port.

    Only the first chunk of each connection is read; a request line that does
    not fit in it is not supported.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        host: str = "127.0.0.1",
        port: int = 19847,
        idle_timeout_seconds: float = 300.0,
        chunk_size: int = REQUEST_CHUNK_SIZE,
    ) -> None:
        self._registry = registry
        self._host = host
        self._port = port
        self._idle_timeout_seconds = idle_timeout_seconds
        self._chunk_size = chunk_size
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        """The bound port, which differs from the configured one when that was 0."""

        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        try:
            self._server = await asyncio.start_server(
                self._handle_connection, self._host, self._port, reuse_address=True
            )
        except OSError as exc:
            raise TransportError(f"Cannot listen on {self._host}:{self._port}: {exc}") from exc
        logger.info("Snapshot server started", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Snapshot server stopped", extra={"host": self._host})

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            data = await reader.read(self._chunk_size)
            if data:
                response = await self.handle_request(data)
                writer.write(response.encode())
                await writer.drain()
        except ConnectionError as exc:
            logger.debug("Client went away", extra={"error": str(exc)})
        finally:
            writer.close()

    async def handle_request(self, data: bytes) -> HttpResponse:
        """Route one raw request chunk to a response."""

        request_line = data.decode("utf-8", errors="replace").splitlines()[0] if data else ""
        parts = request_line.split()
        if len(parts) < 2:
            logger.debug("Malformed request line", extra={"request_line": request_line})
            return HttpResponse(HTTPStatus.BAD_REQUEST)

        method, target = parts[0].upper(), parts[1]
        path = target.split("?", 1)[0]
        logger.debug("Handling request", extra={"method": method, "path": path})

        if method == "GET" and path in STATE_PATHS:
            return await self._state_response()

        if method == "DELETE" and path.startswith(SESSIONS_PREFIX):
            session_id = unquote(path[len(SESSIONS_PREFIX):])
            if session_id:
                await self._registry.delete(session_id)
            return HttpResponse(HTTPStatus.OK)

        return HttpResponse(HTTPStatus.NOT_FOUND)

    async def _state_response(self) -> HttpResponse:
        snapshot = await self._registry.snapshot(self._idle_timeout_seconds)
        try:
            body = json.dumps(snapshot.to_dict(), allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            logger.error("Failed to encode snapshot", extra={"error": str(exc)})
            return HttpResponse(HTTPStatus.INTERNAL_SERVER_ERROR)
        return HttpResponse(HTTPStatus.OK, body=body, content_type="application/json")


__all__ = ["HttpResponse", "REQUEST_CHUNK_SIZE", "SnapshotServer"]
