"""Provider factory functions for CLI.

Centralizes creation of the backend, store, realtime channel, tool
server client and desktop planner from environment variables. Hides
configuration details from command implementations.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console

from ..backend import ChatBackend, create_chat_backend
from ..diagnostics import DebugCallback, LogLevel
from ..notifications import Notification, NotificationLevel, Notifier
from ..realtime import RealtimeChannel, create_realtime_channel
from ..storage import MessageStore, create_message_store
from ..tools import AutomationSessionService, ToolServerClient

if TYPE_CHECKING:
    from ..tools.desktop import ActionPlanner

# Default console for output
_console = Console()

_LEVEL_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}

_NOTIFICATION_STYLES = {
    NotificationLevel.INFO: "cyan",
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}


class ConsoleNotifier(Notifier):
    """Prints notifications to a Rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or _console

    def notify(self, notification: Notification) -> None:
        style = _NOTIFICATION_STYLES[notification.level]
        line = f"[{style}]{notification.title}[/{style}]"
        if notification.description:
            line += f" [dim]{notification.description}[/dim]"
        self._console.print(line)


def make_debug_callback(console: Console | None = None, level: str = "warning") -> DebugCallback:
    """Debug callback that prints messages at or above ``level``."""
    con = console or _console
    threshold = LogLevel.from_string(level)

    def _callback(msg_level: str, component: str, message: str) -> None:
        if LogLevel.from_string(msg_level) < threshold:
            return
        style = _LEVEL_STYLES.get(msg_level, "white")
        con.print(f"[{style}][{component}][/{style}] {message}", highlight=False)

    return _callback


def _postgres_config() -> dict[str, Any]:
    return {
        "host": os.getenv("POSTGRES_HOST", "localhost"),
        "port": int(os.getenv("POSTGRES_PORT", "5432")),
        "database": os.getenv("POSTGRES_DB", "postgres"),
        "user": os.getenv("POSTGRES_USER", "postgres"),
        "password": os.getenv("POSTGRES_PASSWORD", "postgres"),
    }


def get_store() -> MessageStore:
    """Create the message store from environment variables.

    Environment variables:
        AGENTSTREAM_STORE: memory or postgres (default: postgres)
        POSTGRES_HOST: Database host (default: localhost)
        POSTGRES_PORT: Database port (default: 5432)
        POSTGRES_DB: Database name (default: postgres)
        POSTGRES_USER: Database user (default: postgres)
        POSTGRES_PASSWORD: Database password (default: postgres)
    """
    kind = os.getenv("AGENTSTREAM_STORE", "postgres").lower()
    if kind == "memory":
        return create_message_store("memory")
    return create_message_store("postgres", **_postgres_config())


def get_realtime(debug_callback: DebugCallback | None = None) -> RealtimeChannel:
    """Create the realtime channel matching the configured store."""
    kind = os.getenv("AGENTSTREAM_STORE", "postgres").lower()
    if kind == "memory":
        return create_realtime_channel("memory", debug_callback=debug_callback)
    return create_realtime_channel("postgres", debug_callback=debug_callback, **_postgres_config())


def get_backend(console: Console | None = None) -> ChatBackend:
    """Create the agent-chat backend from environment variables.

    Raises:
        SystemExit: If AGENTSTREAM_BACKEND_URL is not set

    Environment variables:
        AGENTSTREAM_BACKEND_URL: Functions host (required)
        AGENTSTREAM_API_KEY: Anonymous API key
        AGENTSTREAM_ACCESS_TOKEN: User access token
    """
    import typer

    con = console or _console
    base_url = os.getenv("AGENTSTREAM_BACKEND_URL")
    if not base_url:
        con.print("[red]Error: AGENTSTREAM_BACKEND_URL not set in environment[/red]")
        raise typer.Exit(code=1)

    return create_chat_backend(
        "http",
        base_url=base_url,
        api_key=os.getenv("AGENTSTREAM_API_KEY"),
        access_token=os.getenv("AGENTSTREAM_ACCESS_TOKEN"),
    )


def get_tool_client(console: Console | None = None) -> ToolServerClient:
    """Create the tool server client.

    Environment variables:
        TOOL_SERVER_URL: Tunnel URL of the local tool server (no default)
    """
    con = console or _console
    url = os.getenv("TOOL_SERVER_URL")
    if not url:
        con.print("[yellow]Warning: TOOL_SERVER_URL not set, local tools disabled[/yellow]")
    return ToolServerClient(url)


def get_sessions(debug_callback: DebugCallback | None = None) -> AutomationSessionService:
    """Automation session slot persisted under the user's home directory.

    Environment variables:
        AGENTSTREAM_SESSION_FILE: State file (default: ~/.agentstream/session.json)
    """
    path = os.getenv("AGENTSTREAM_SESSION_FILE")
    state_file = Path(path) if path else Path.home() / ".agentstream" / "session.json"
    return AutomationSessionService(state_file=state_file, debug_callback=debug_callback)


def get_planner() -> "ActionPlanner | None":
    """Create the desktop automation planner, if one is configured.

    Environment variables:
        DESKTOP_PLANNER_URL: Base URL of the vision-action model (no default)
        DESKTOP_PLANNER_API_KEY: Bearer token for the planner
        DESKTOP_PLANNER_ENDPOINT: Request path (default: /v1/actions)
    """
    base_url = os.getenv("DESKTOP_PLANNER_URL")
    if not base_url:
        return None

    from ..tools.desktop import HttpActionPlanner

    return HttpActionPlanner(
        base_url,
        api_key=os.getenv("DESKTOP_PLANNER_API_KEY"),
        endpoint=os.getenv("DESKTOP_PLANNER_ENDPOINT", "/v1/actions"),
    )
