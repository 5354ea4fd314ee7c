"""Chat backend abstraction layer for agentstream."""

from .base import BackendError, ChatBackend, ChatStream, StreamAborted
from .factory import create_chat_backend
from .http import HttpChatBackend, HttpChatStream
from .models import Attachment, ChatRequest

__all__ = [
    "Attachment",
    "BackendError",
    "ChatBackend",
    "ChatRequest",
    "ChatStream",
    "HttpChatBackend",
    "HttpChatStream",
    "StreamAborted",
    "create_chat_backend",
]
