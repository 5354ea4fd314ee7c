"""
agentstream: streaming client for multi-agent chat with local tool execution.

Each subpackage hides one design decision: the wire format of the stream,
how turns reach the backend, where messages are persisted, how row changes
are pushed, and how local tool commands are executed.
"""

__version__ = "0.1.0"

from .chat import ChatController, SendOptions, SendOutcome
from .config import ChatSettings
from .notifications import Notifier, RecordingNotifier
from .streaming import SSEDecoder, StallMonitor, ThrottledAccumulator, decode_stream
from .tools import AutomationSessionService, ToolCommand, ToolDispatchRouter, ToolResult

__all__ = [
    "AutomationSessionService",
    "ChatController",
    "ChatSettings",
    "Notifier",
    "RecordingNotifier",
    "SSEDecoder",
    "SendOptions",
    "SendOutcome",
    "StallMonitor",
    "ThrottledAccumulator",
    "ToolCommand",
    "ToolDispatchRouter",
    "ToolResult",
    "decode_stream",
]
