"""Diagnostic logging through pluggable callbacks.

Components never print. They report through a callback with the signature
``callback(level, component, message)`` and the host decides where the
message goes (a Rich console in the CLI, a list in tests).
"""

from collections.abc import Callable

DebugCallback = Callable[[str, str, str], None]


class LogLevel:
    """Numeric ranks for the level strings passed to a debug callback.

    Hosts compare ranks to drop chatter below a chosen threshold.
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    _ranks = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Rank of a level string; unknown strings rank as debug."""
        return cls._ranks.get(level_str.lower(), cls.DEBUG)


class DebugLog:
    """Thin wrapper that forwards diagnostics to an optional callback."""

    def __init__(self, callback: DebugCallback | None = None) -> None:
        self._callback = callback

    def set_callback(self, callback: DebugCallback | None) -> None:
        """Replace the callback (None silences output)."""
        self._callback = callback

    def emit(self, level: str, component: str, message: str) -> None:
        if self._callback:
            self._callback(level, component, message)

    def debug(self, component: str, message: str) -> None:
        self.emit("debug", component, message)

    def info(self, component: str, message: str) -> None:
        self.emit("info", component, message)

    def warning(self, component: str, message: str) -> None:
        self.emit("warning", component, message)

    def error(self, component: str, message: str) -> None:
        self.emit("error", component, message)


def short_id(value: str | None) -> str:
    """First 8 characters of an id, for log lines."""
    return (value or "?")[:8]
