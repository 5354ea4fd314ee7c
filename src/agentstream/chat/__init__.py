from .controller import ChatController, derive_title
from .handoff import BackgroundHandoff, HandoffRegistry
from .markers import SystemMarker, parse_marker
from .models import SendOptions, SendOutcome
from .recovery import RecoveryCoordinator, RecoveryOutcome, error_text
from .session import StreamSession
from .state import MessageList

__all__ = [
    "BackgroundHandoff",
    "ChatController",
    "HandoffRegistry",
    "MessageList",
    "RecoveryCoordinator",
    "RecoveryOutcome",
    "SendOptions",
    "SendOutcome",
    "StreamSession",
    "SystemMarker",
    "derive_title",
    "error_text",
    "parse_marker",
]
