"""Abstract base class for message storage backends.

This module defines the interface the chat client uses to read persisted
state. The abstraction hides:
- Storage engine (PostgreSQL, in-memory)
- Table layout
- Connection management
"""

from abc import ABC, abstractmethod

from .models import Conversation, Message


class MessageStore(ABC):
    """Read (and lazy-create) access to conversations and messages."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the backend.

        Raises:
            ConnectionError: If connection fails
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the backend gracefully."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Retrieve a conversation by id."""

    @abstractmethod
    async def find_conversation(self, user_id: str | None, agent_id: str) -> Conversation | None:
        """Retrieve the primary conversation for a (user, agent) pair."""

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation."""

    async def get_or_create_conversation(
        self,
        user_id: str | None,
        agent_id: str,
        title: str = "New conversation",
    ) -> Conversation:
        """Find the (user, agent) conversation, creating it if absent."""
        existing = await self.find_conversation(user_id, agent_id)
        if existing is not None:
            return existing
        return await self.create_conversation(
            Conversation(agent_id=agent_id, user_id=user_id, title=title)
        )

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Retrieve one message by id.

        Returns:
            Message if found, None otherwise
        """

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Retrieve all messages of a conversation, oldest first."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
