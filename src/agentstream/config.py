"""Client configuration constants.

Centralizes timing values, limits and reserved markers for the chat client.
"""

from pydantic import BaseModel, Field

# Streaming configuration
STREAM_COMMIT_INTERVAL = 0.1  # Seconds between throttled UI commits
STREAM_REQUEST_TIMEOUT = 360.0  # Abort ceiling for one agent-chat request (6 minutes)

# Stall detection
STALL_POLL_INTERVAL = 5.0
STALL_THRESHOLD = 10.0

# Background handoff
HEARTBEAT_INTERVAL = 10.0  # Seconds between reconciliation polls
HEARTBEAT_MIN_GROWTH = 0  # Extra characters required before a poll result is applied
HANDOFF_CEILING = 600.0  # Hard teardown for subscription + poll (10 minutes)

# Tool execution
TOOL_SERVER_TIMEOUT = 30.0
DOM_SNAPSHOT_TIMEOUT = 30.0
MAX_SILENT_FOLLOWUPS = 25  # Tool round-trips chained after a single user send

# Conversation titles
CONVERSATION_TITLE_LENGTH = 50

# Terminal tokens inside SSE data lines
SSE_DATA_PREFIX = "data:"
SSE_COMMENT_PREFIX = ":"
SSE_NOOP_PAYLOADS = frozenset({"[DONE]", "keep-alive", '"keep-alive"'})

# Reserved system-message markers
MARKER_CONSULTATION_COMPLETE = "CONSULTATION_COMPLETE"
MARKER_PDF_VALIDATED = "PDF_VALIDATED"

# Substrings identifying an exhausted provider balance
INSUFFICIENT_CREDIT_MARKERS = (
    "insufficient credit",
    "insufficient_credit",
    "insufficient balance",
    "insufficient_quota",
    "payment required",
)


class ChatSettings(BaseModel):
    """Timing knobs for one ChatController.

    Defaults mirror the module constants; tests pass millisecond values.
    """

    commit_interval: float = Field(default=STREAM_COMMIT_INTERVAL, gt=0)
    request_timeout: float = Field(default=STREAM_REQUEST_TIMEOUT, gt=0)
    stall_poll_interval: float = Field(default=STALL_POLL_INTERVAL, gt=0)
    stall_threshold: float = Field(default=STALL_THRESHOLD, gt=0)
    heartbeat_interval: float = Field(default=HEARTBEAT_INTERVAL, gt=0)
    heartbeat_min_growth: int = Field(default=HEARTBEAT_MIN_GROWTH, ge=0)
    handoff_ceiling: float = Field(default=HANDOFF_CEILING, gt=0)
    max_silent_followups: int = Field(default=MAX_SILENT_FOLLOWUPS, ge=0)
