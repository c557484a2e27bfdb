"""External enrichment providers: terminal introspection, memory and focus."""

from .memory import MemoryProbe, PsMemoryProbe, parse_rss_mb
from .runner import (
    CommandNotFoundError,
    CommandResult,
    CommandRunner,
    CommandRunnerError,
    FakeCommandRunner,
)
from .terminal import (
    AppleScriptTerminal,
    TerminalIntrospector,
    TerminalTab,
    WindowFocuser,
    clean_tab_name,
    parse_tab_info,
)

__all__ = [
    "AppleScriptTerminal",
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
    "MemoryProbe",
    "PsMemoryProbe",
    "TerminalIntrospector",
    "TerminalTab",
    "WindowFocuser",
    "clean_tab_name",
    "parse_rss_mb",
    "parse_tab_info",
]
