"""Factory for creating realtime channels."""

from typing import Any

from .base import RealtimeChannel


def create_realtime_channel(backend: str = "memory", **config: Any) -> RealtimeChannel:
    """Create a realtime channel.

    Args:
        backend: Channel type ("memory" or "postgres")
        **config: Channel-specific configuration

    Returns:
        RealtimeChannel instance

    Raises:
        ValueError: If channel type is not supported
    """
    if backend == "memory":
        from .in_memory import InMemoryRealtimeChannel
        return InMemoryRealtimeChannel(**config)

    elif backend == "postgres":
        from .postgres import PostgresRealtimeChannel
        return PostgresRealtimeChannel(**config)

    raise ValueError(
        f"Unsupported realtime channel: {backend}. "
        f"Supported backends: memory, postgres"
    )
