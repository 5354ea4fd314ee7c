"""Abstract push channel for row changes.

This module hides how row updates reach the client (in-process fan-out,
PostgreSQL LISTEN/NOTIFY, a hosted realtime service). Subscribers are
keyed either by message id or by conversation id.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from uuid import uuid4

from ..diagnostics import DebugCallback, DebugLog
from ..storage.models import RowChange

RowCallback = Callable[[RowChange], None]


class Subscription:
    """Handle returned by a subscribe call."""

    def __init__(self, fanout: "RowChangeFanout", key: tuple[str, str], token: str) -> None:
        self._fanout = fanout
        self._key = key
        self._token = token

    @property
    def active(self) -> bool:
        return self._fanout.has(self._key, self._token)

    async def unsubscribe(self) -> None:
        """Stop receiving changes. Idempotent."""
        self._fanout.remove(self._key, self._token)


class RowChangeFanout:
    """Routes a change to message-keyed and conversation-keyed callbacks."""

    def __init__(self, debug_callback: DebugCallback | None = None) -> None:
        self._log = DebugLog(debug_callback)
        self._subscribers: dict[tuple[str, str], dict[str, RowCallback]] = {}

    def add(self, kind: str, key: str, callback: RowCallback) -> Subscription:
        token = str(uuid4())
        self._subscribers.setdefault((kind, key), {})[token] = callback
        return Subscription(self, (kind, key), token)

    def has(self, key: tuple[str, str], token: str) -> bool:
        return token in self._subscribers.get(key, {})

    def remove(self, key: tuple[str, str], token: str) -> None:
        callbacks = self._subscribers.get(key)
        if not callbacks:
            return
        callbacks.pop(token, None)
        if not callbacks:
            del self._subscribers[key]

    @property
    def subscriber_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def dispatch(self, change: RowChange) -> int:
        """Deliver a change. Returns the number of callbacks invoked."""
        targets: list[RowCallback] = []
        row = change.new
        if row.target_id:
            targets.extend(self._subscribers.get(("message", row.target_id), {}).values())
        if row.conversation_id:
            targets.extend(self._subscribers.get(("conversation", row.conversation_id), {}).values())

        for callback in targets:
            try:
                callback(change)
            except Exception as e:
                self._log.error("Realtime", f"Subscriber failed on {change.event_type.value}: {e}")
        return len(targets)


class RealtimeChannel(ABC):
    """Push notification source for message rows."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel and drop all subscriptions."""

    @abstractmethod
    async def subscribe_message(self, message_id: str, callback: RowCallback) -> Subscription:
        """Receive changes for one message row."""

    @abstractmethod
    async def subscribe_conversation(self, conversation_id: str, callback: RowCallback) -> Subscription:
        """Receive changes for every row of a conversation."""

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Get the channel type identifier."""
