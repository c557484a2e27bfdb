"""Async runner for the external helper commands used by the probes."""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

_STRIPPED_VARS = ("PYTHONHOME", "PYTHONPATH", "VIRTUAL_ENV")


def probe_environment() -> dict[str, str]:
    """Return the environment for helper subprocesses.

    Virtualenv variables are dropped and the locale is pinned to C for parsing.
    """

    env = {key: value for key, value in os.environ.items() if key not in _STRIPPED_VARS}
    env["LC_ALL"] = "C"
    return env


class CommandRunnerError(RuntimeError):
    """Base class for command runner errors."""


class CommandNotFoundError(CommandRunnerError):
    """Raised when a helper executable cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of one helper invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Execute one helper executable asynchronously with a timeout."""

    def __init__(self, executable: str | Path, *, timeout: float = 5.0) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._timeout = timeout

    @staticmethod
    def _resolve_executable(executable: str | Path) -> Path:
        candidate = Path(executable)
        if candidate.is_absolute() or len(candidate.parts) > 1:
            if candidate.exists() and candidate.is_file():
                return candidate
            raise CommandNotFoundError(f"Executable not found at {candidate}")

        binary = shutil.which(str(executable))
        if binary is None:
            raise CommandNotFoundError(f"{executable} executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def run(self, *args: str) -> CommandResult:
        return await self._invoke(*args)

    async def _invoke(self, *args: str) -> CommandResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=probe_environment(),
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(args=tuple(cmd), returncode=-1, stdout="", stderr="timed out")
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeCommandRunner(CommandRunner):
    """Test double that replays canned command results."""

    def __init__(self, responses: Iterable[CommandResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-helper")
        self._timeout = 5.0

    async def _invoke(self, *args: str) -> CommandResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
]
