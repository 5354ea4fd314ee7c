"""Options and outcomes for chat turns."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..backend.models import Attachment
from ..storage.models import Agent

GENERIC_ERROR_TEXT = "Sorry, I could not get a response. Please try again."
INSUFFICIENT_CREDIT_TEXT = (
    "The AI provider has run out of credits. Please top up the account and try again."
)


class SendOptions(BaseModel):
    """Everything about a send besides its text.

    Replaces positional overloading: each concern has its own field.
    """

    attachments: list[Attachment] = Field(default_factory=list)
    forced_tool: str | None = Field(default=None, description="Tool the backend must use this turn")
    mode_flags: dict[str, Any] = Field(default_factory=dict, description="Extra top-level request switches")
    conversation_id: str | None = Field(default=None, description="Explicit conversation (else resolved lazily)")
    agent: Agent | None = Field(default=None, description="Agent override (else the selected agent)")
    silent: bool = Field(default=False, description="Tool round-trip turn without a user bubble")
    tool_server_result: dict[str, Any] | None = None
    dom_result: dict[str, Any] | None = None


class SendOutcome(str, Enum):
    """How a send ended."""

    COMPLETED = "completed"
    BACKGROUND = "background"
    RECOVERED = "recovered"
    FAILED = "failed"
    REJECTED_BUSY = "rejected_busy"
    REJECTED_MISMATCH = "rejected_mismatch"
    REJECTED_NO_AGENT = "rejected_no_agent"

    @property
    def rejected(self) -> bool:
        return self.value.startswith("rejected")
