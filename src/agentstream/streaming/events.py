"""Typed server events emitted by the agent-chat stream.

The wire format is a JSON object with a ``type`` discriminator. Each type maps
to exactly one model so call sites match on the class instead of probing
optional fields.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..tools.models import ToolCommand

_WIRE = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class MessageStartEvent(BaseModel):
    """Backend assigned the persisted id of the assistant message."""

    model_config = _WIRE

    type: Literal["message_start"] = "message_start"
    message_id: str = Field(alias="messageId")


class ContentEvent(BaseModel):
    """A text delta to append to the assistant message."""

    model_config = _WIRE

    type: Literal["content"] = "content"
    text: str = ""


class SwitchingToBackgroundEvent(BaseModel):
    """Generation continues outside the HTTP connection."""

    model_config = _WIRE

    type: Literal["switching_to_background"] = "switching_to_background"
    message: str = ""


class CompleteEvent(BaseModel):
    """Logical end of the response (``complete`` or ``done``)."""

    model_config = _WIRE

    type: Literal["complete", "done"] = "complete"
    llm_provider: str | None = Field(default=None, alias="llmProvider")
    conversation_id: str | None = Field(default=None, alias="conversationId")


class ErrorEvent(BaseModel):
    """Backend reported a failure mid-stream."""

    model_config = _WIRE

    type: Literal["error"] = "error"
    error: str = "Unknown error"


class ToolExecuteLocallyEvent(BaseModel):
    """Backend asks the client to run a tool command locally."""

    model_config = _WIRE

    type: Literal["tool_execute_locally"] = "tool_execute_locally"
    data: ToolCommand


StreamEvent = Annotated[
    Union[
        MessageStartEvent,
        ContentEvent,
        SwitchingToBackgroundEvent,
        CompleteEvent,
        ErrorEvent,
        ToolExecuteLocallyEvent,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES = frozenset({
    "message_start",
    "content",
    "switching_to_background",
    "complete",
    "done",
    "error",
    "tool_execute_locally",
})

_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: Any) -> StreamEvent | None:
    """Convert a decoded JSON payload to a typed event.

    Returns None for non-object payloads and unknown ``type`` values.

    Raises:
        ValidationError: If a known event type carries malformed fields
    """
    if not isinstance(payload, dict):
        return None
    if payload.get("type") not in EVENT_TYPES:
        return None
    return _adapter.validate_python(payload)


__all__ = [
    "EVENT_TYPES",
    "CompleteEvent",
    "ContentEvent",
    "ErrorEvent",
    "MessageStartEvent",
    "StreamEvent",
    "SwitchingToBackgroundEvent",
    "ToolExecuteLocallyEvent",
    "parse_event",
]
