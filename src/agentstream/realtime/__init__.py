"""Realtime push abstraction layer for agentstream."""

from .base import RealtimeChannel, RowCallback, RowChangeFanout, Subscription
from .factory import create_realtime_channel
from .in_memory import InMemoryRealtimeChannel

__all__ = [
    "InMemoryRealtimeChannel",
    "RealtimeChannel",
    "RowCallback",
    "RowChangeFanout",
    "Subscription",
    "create_realtime_channel",
]
