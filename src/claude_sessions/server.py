"""State server bootstrap: hook ingest socket plus snapshot endpoint."""

import asyncio
import logging
import signal
from typing import Optional

from . import __version__
from .config import SessionsSettings, get_settings
from .registry import SessionRegistry
from .transport import EventIngestListener, SnapshotServer, TransportError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the sessions monitor."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


class StateServer:
    """Owns the session registry and both listeners that feed and expose it."""

    def __init__(
        self,
        settings: SessionsSettings,
        *,
        registry: SessionRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or SessionRegistry()
        self.ingest = EventIngestListener(settings.resolved_socket_path, self.registry)
        self.snapshots = SnapshotServer(
            self.registry,
            host=settings.http_host,
            port=settings.http_port,
            idle_timeout_seconds=settings.idle_timeout_seconds,
        )

    async def start(self) -> None:
        """Start both listeners; if the second fails the first is torn down again."""

        await self.ingest.start()
        try:
            await self.snapshots.start()
        except TransportError:
            await self.ingest.stop()
            raise
        logger.info(
            "State server running",
            extra={
                "version": __version__,
                "socket_path": str(self.ingest.socket_path),
                "port": self.snapshots.port,
            },
        )

    async def stop(self) -> None:
        await self.snapshots.stop()
        await self.ingest.stop()
        logger.info("State server stopped")

    async def serve_until(self, stop_event: asyncio.Event) -> None:
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()


def create_server(
    settings: Optional[SessionsSettings] = None,
    registry: SessionRegistry | None = None,
) -> StateServer:
    """Instantiate the state server from settings."""

    settings = settings or get_settings()
    return StateServer(settings, registry=registry)


async def _serve(server: StateServer) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)
    await server.serve_until(stop_event)


def main() -> None:
    """Entry point for running the state server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching state server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "socket_path": str(settings.resolved_socket_path),
            "port": settings.http_port,
        },
    )
    try:
        asyncio.run(_serve(server))
    except TransportError:
        logger.exception("State server failed to start")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
