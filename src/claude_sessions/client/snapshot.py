"""HTTP client for the state server's snapshot endpoint."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .models import StateSnapshot

logger = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
    """Raised when a snapshot cannot be fetched or decoded."""


class SnapshotClient:
    """Fetch snapshots from and send deletions to the state server."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:19847",
        *,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def fetch_state(self) -> StateSnapshot:
        try:
            response = await self._client.get("/state")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SnapshotError(f"State server request failed: {exc}") from exc

        try:
            return StateSnapshot.model_validate_json(response.content)
        except ValidationError as exc:
            raise SnapshotError(f"Invalid snapshot payload: {exc}") from exc

    async def delete_session(self, session_id: str) -> bool:
        """Ask the server to drop ``session_id``; failures are logged, not raised."""

        try:
            response = await self._client.delete(f"/sessions/{quote(session_id, safe='')}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to delete session on server",
                extra={"session_id": session_id, "error": str(exc)},
            )
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SnapshotClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["SnapshotClient", "SnapshotError"]
