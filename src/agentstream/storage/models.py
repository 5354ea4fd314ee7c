"""Data models for persisted conversations and messages."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class Role(str, Enum):
    """Message author."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ResponseStatus(str, Enum):
    """Lifecycle of a response generated in the background."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ResponseStatus.COMPLETED, ResponseStatus.FAILED)


class Agent(BaseModel):
    """The agent the user is talking to."""

    model_config = ConfigDict(frozen=True)

    id: str
    slug: str
    name: str = ""


class Conversation(BaseModel):
    """A durable chat between one user and one agent."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str = Field(description="Owning agent id")
    user_id: str | None = Field(default=None)
    title: str = Field(default="New conversation")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()


class Message(BaseModel):
    """An ordered unit of dialogue.

    The id is client-generated for optimistic entries and authoritative once
    persisted. Content is mutable while streaming.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    conversation_id: str | None = None
    role: Role
    content: str = ""
    llm_provider: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: ResponseStatus | None = Field(
        default=None,
        description="Set on rows produced by background generation",
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()


class ResponseChunk(BaseModel):
    """Partial chunk of a long response."""

    model_config = ConfigDict(extra="allow")

    chunk: str = ""


class MessageRow(BaseModel):
    """Row payload delivered by a push notification.

    Covers both plain message rows (``content``) and long-response tracking
    rows (``response_chunks``, ``status``, progress counters).
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    message_id: str | None = None
    conversation_id: str | None = None
    role: Role | None = None
    content: str | None = None
    llm_provider: str | None = None
    status: ResponseStatus | None = None
    total_characters: int | None = None
    current_chunk_index: int | None = None
    response_chunks: list[ResponseChunk] | None = None

    @property
    def target_id(self) -> str | None:
        """Id of the message this row describes."""
        return self.message_id or self.id

    @property
    def text(self) -> str | None:
        """Row content, reconstructed from ordered chunks when needed."""
        if self.content:
            return self.content
        if self.response_chunks:
            return "".join(c.chunk for c in self.response_chunks)
        return self.content

    def to_message(self) -> Message:
        """Convert an inserted message row to a Message."""
        return Message(
            id=self.target_id or str(uuid4()),
            conversation_id=self.conversation_id,
            role=self.role or Role.ASSISTANT,
            content=self.text or "",
            llm_provider=self.llm_provider,
            status=self.status,
        )


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RowChange(BaseModel):
    """A push notification for one table row."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: ChangeType = Field(alias="eventType")
    table: str = "agent_messages"
    new: MessageRow = Field(default_factory=MessageRow)


class BackgroundProgress(BaseModel):
    """Progress of a long response generated in the background."""

    message_id: str
    total_characters: int = 0
    chunks: int = 0
    status: ResponseStatus = ResponseStatus.GENERATING
