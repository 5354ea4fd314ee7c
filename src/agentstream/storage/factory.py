"""Factory for creating message stores."""

from typing import Any

from .base import MessageStore


def create_message_store(backend: str = "memory", **config: Any) -> MessageStore:
    """
    Create a message store instance.

    Args:
        backend: Store type ("memory" or "postgres")
        **config: Backend-specific configuration

    Returns:
        MessageStore instance (call ``connect()`` before use)

    Raises:
        ValueError: If backend type is not supported

    Example:
        >>> store = create_message_store(
        ...     backend="postgres",
        ...     host="localhost",
        ...     port=5432,
        ...     database="postgres",
        ...     user="postgres",
        ...     password="postgres"
        ... )
        >>> await store.connect()
    """
    if backend == "memory":
        from .in_memory import InMemoryMessageStore
        return InMemoryMessageStore(**config)

    elif backend == "postgres":
        from .postgres import PostgresMessageStore
        return PostgresMessageStore(**config)

    raise ValueError(
        f"Unsupported message store: {backend}. "
        f"Supported backends: memory, postgres"
    )
