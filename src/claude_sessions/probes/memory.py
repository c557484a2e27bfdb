"""Per-terminal memory probe backed by ``ps``."""

from __future__ import annotations

import logging
from typing import Protocol

from .runner import CommandNotFoundError, CommandRunner

logger = logging.getLogger(__name__)

DEV_PREFIX = "/dev/"


class MemoryProbe(Protocol):
    async def memory_mb(self, tty: str) -> int | None:
        ...


def parse_rss_mb(output: str, process_match: str) -> int | None:
    """Return the RSS in MB of the first ``ps`` line whose command matches."""

    for line in output.splitlines():
        stripped = line.strip()
        if process_match not in stripped:
            continue
        fields = stripped.split()
        try:
            rss_kb = int(fields[0])
        except (IndexError, ValueError):
            continue
        return rss_kb // 1024
    return None


class PsMemoryProbe:
    """Run ``ps -t <tty> -o rss,comm`` and report the matching process's RSS."""

    def __init__(self, runner: CommandRunner, *, process_match: str = "claude") -> None:
        self._runner = runner
        self._process_match = process_match

    @classmethod
    def create(cls, *, process_match: str = "claude") -> "PsMemoryProbe | None":
        try:
            return cls(CommandRunner("ps"), process_match=process_match)
        except CommandNotFoundError as exc:
            logger.warning("Memory probe unavailable", extra={"error": str(exc)})
            return None

    async def memory_mb(self, tty: str) -> int | None:
        if not tty.startswith(DEV_PREFIX):
            return None
        result = await self._runner.run("-t", tty[len(DEV_PREFIX):], "-o", "rss,comm")
        if not result.ok:
            return None
        return parse_rss_mb(result.stdout, self._process_match)


__all__ = ["MemoryProbe", "PsMemoryProbe", "parse_rss_mb"]
