"""Message storage abstraction layer for agentstream."""

from .base import MessageStore
from .factory import create_message_store
from .in_memory import InMemoryMessageStore
from .models import (
    Agent,
    BackgroundProgress,
    ChangeType,
    Conversation,
    Message,
    MessageRow,
    ResponseChunk,
    ResponseStatus,
    Role,
    RowChange,
)

__all__ = [
    "Agent",
    "BackgroundProgress",
    "ChangeType",
    "Conversation",
    "InMemoryMessageStore",
    "Message",
    "MessageRow",
    "MessageStore",
    "ResponseChunk",
    "ResponseStatus",
    "Role",
    "RowChange",
    "create_message_store",
]
