"""Terminal.app introspection and focus via AppleScript."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .runner import CommandNotFoundError, CommandRunner

logger = logging.getLogger(__name__)

NOT_RUNNING = "NOT_RUNNING"

# Status glyphs the monitored CLI prepends to its tab title.
TAB_TITLE_PREFIXES = ("⠂", "⠐", "⠈", "⠁", "⠉", "⠘", "⠰", "⠠", "✳")

TAB_INFO_SCRIPT = """
tell application "System Events"
    if not (exists process "Terminal") then return "NOT_RUNNING"
end tell
tell application "Terminal"
    set output to ""
    repeat with w in windows
        set winBounds to bounds of w
        set boundsKey to (item 1 of winBounds as text) & "," & (item 2 of winBounds as text)
        repeat with t in tabs of w
            set output to output & (tty of t) & "\\t" & (custom title of t) & "\\t" & boundsKey & "\\n"
        end repeat
    end repeat
end tell
return output
"""

FOCUS_SCRIPT = """
tell application "Terminal"
    if not running then return "not running"
    repeat with w in windows
        repeat with t in tabs of w
            if tty of t is "{tty}" then
                set selected tab of w to t
                set index of w to 1
                activate
                return "focused"
            end if
        end repeat
    end repeat
end tell
return "not found"
"""


@dataclass(slots=True, frozen=True)
class TerminalTab:
    tab_name: str
    window_id: str


class TerminalIntrospector(Protocol):
    """Maps terminal devices to their tab and window.

    ``None`` means the terminal application is not running, in which case
    callers skip enrichment and stale detection for that pass.
    """

    async def tab_info(self) -> dict[str, TerminalTab] | None:
        ...


class WindowFocuser(Protocol):
    async def focus(self, tty: str) -> bool:
        ...


def clean_tab_name(name: str) -> str:
    cleaned = name.strip()
    for prefix in TAB_TITLE_PREFIXES:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break
    return cleaned.strip()


def parse_tab_info(output: str) -> dict[str, TerminalTab]:
    tabs: dict[str, TerminalTab] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3 or not parts[0]:
            continue
        tabs[parts[0]] = TerminalTab(tab_name=clean_tab_name(parts[1]), window_id=parts[2].strip())
    return tabs


def _safe_tty(tty: str) -> bool:
    return tty.startswith("/dev/") and '"' not in tty and "\\" not in tty


class AppleScriptTerminal:
    """Terminal.app bridge using ``osascript`` for both introspection and focus."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    @classmethod
    def create(cls) -> "AppleScriptTerminal | None":
        try:
            return cls(CommandRunner("osascript"))
        except CommandNotFoundError as exc:
            logger.info("Terminal introspection unavailable", extra={"error": str(exc)})
            return None

    async def tab_info(self) -> dict[str, TerminalTab] | None:
        result = await self._runner.run("-e", TAB_INFO_SCRIPT)
        if not result.ok:
            logger.debug("Terminal introspection failed", extra={"stderr": result.stderr.strip()})
            return None
        output = result.stdout.rstrip("\n")
        if output.strip() == NOT_RUNNING:
            return None
        return parse_tab_info(output)

    async def focus(self, tty: str) -> bool:
        if not _safe_tty(tty):
            logger.warning("Refusing to focus unsupported tty", extra={"tty": tty})
            return False
        result = await self._runner.run("-e", FOCUS_SCRIPT.format(tty=tty))
        if not result.ok:
            logger.warning(
                "Terminal focus failed",
                extra={"tty": tty, "stderr": result.stderr.strip()},
            )
            return False
        outcome = result.stdout.strip()
        logger.info("Focus result", extra={"tty": tty, "result": outcome})
        return outcome == "focused"


__all__ = [
    "AppleScriptTerminal",
    "TerminalIntrospector",
    "TerminalTab",
    "WindowFocuser",
    "clean_tab_name",
    "parse_tab_info",
]
