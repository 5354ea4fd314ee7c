"""In-process realtime channel.

Changes are published by calling ``publish``. Used by tests and by hosts
that already receive row changes from elsewhere.
"""

from ..diagnostics import DebugCallback
from ..storage.models import RowChange
from .base import RealtimeChannel, RowCallback, RowChangeFanout, Subscription


class InMemoryRealtimeChannel(RealtimeChannel):
    """Realtime channel backed by a local fan-out."""

    def __init__(self, debug_callback: DebugCallback | None = None) -> None:
        self._fanout = RowChangeFanout(debug_callback)

    async def connect(self) -> None:
        """Open channel (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        self._fanout = RowChangeFanout()

    async def subscribe_message(self, message_id: str, callback: RowCallback) -> Subscription:
        return self._fanout.add("message", message_id, callback)

    async def subscribe_conversation(self, conversation_id: str, callback: RowCallback) -> Subscription:
        return self._fanout.add("conversation", conversation_id, callback)

    def publish(self, change: RowChange) -> int:
        """Deliver a change to matching subscribers."""
        return self._fanout.dispatch(change)

    @property
    def subscriber_count(self) -> int:
        return self._fanout.subscriber_count

    @property
    def channel_type(self) -> str:
        return "memory"
