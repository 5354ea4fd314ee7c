"""In-memory message store.

Dict-based storage used by tests and offline runs. Data is lost when the
process exits.
"""

from .base import MessageStore
from .models import Conversation, Message


class InMemoryMessageStore(MessageStore):
    """Message store kept in process memory."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self.reads = 0

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    async def find_conversation(self, user_id: str | None, agent_id: str) -> Conversation | None:
        for conversation in self._conversations.values():
            if conversation.agent_id == agent_id and conversation.user_id == user_id:
                return conversation
        return None

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = conversation
        return conversation

    async def get_message(self, message_id: str) -> Message | None:
        self.reads += 1
        message = self._messages.get(message_id)
        return message.model_copy() if message else None

    async def list_messages(self, conversation_id: str) -> list[Message]:
        self.reads += 1
        return [
            m.model_copy()
            for m in sorted(self._messages.values(), key=lambda m: m.created_at)
            if m.conversation_id == conversation_id
        ]

    def put_message(self, message: Message) -> None:
        """Insert or replace a message (stands in for the backend's writes)."""
        self._messages[message.id] = message.model_copy()

    @property
    def backend_type(self) -> str:
        return "memory"
