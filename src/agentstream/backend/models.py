"""Request models for the agent-chat endpoint."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    """File attached to a user message."""

    url: str
    name: str
    type: str


class ChatRequest(BaseModel):
    """Body of one agent-chat POST.

    Python attributes are snake_case; the serialized payload uses the
    camelCase names the backend expects.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(default="", description="User text (empty for silent turns)")
    conversation_id: str = Field(alias="conversationId")
    agent_slug: str = Field(alias="agentSlug")
    attachments: list[Attachment] | None = None
    forced_tool: str | None = Field(default=None, alias="forcedTool")
    mode_flags: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional mode switches merged into the top-level payload",
    )
    tool_server_result: dict[str, Any] | None = Field(default=None, alias="toolServerResult")
    dom_result: dict[str, Any] | None = Field(default=None, alias="domResult")
    silent: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON body, omitting unset optional fields."""
        payload = self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"mode_flags", "silent"},
        )
        for key, value in self.mode_flags.items():
            payload.setdefault(key, value)
        if self.silent:
            payload["silent"] = True
        return payload
