"""PostgreSQL message store implementation."""

import json
from typing import Any
from uuid import UUID

import asyncpg

from ..base import MessageStore
from ..models import Conversation, Message, ResponseStatus, Role
from . import queries


def _as_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


class PostgresMessageStore(MessageStore):
    """
    PostgreSQL message store.

    Hides all Postgres-specific details:
    - Connection pooling
    - SQL query construction
    - Row to model conversion
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ):
        """
        Initialize Postgres store.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            min_pool_size: Minimum connection pool size
            max_pool_size: Maximum connection pool size
        """
        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    @property
    def dsn_kwargs(self) -> dict[str, Any]:
        """Connection parameters, shared with the LISTEN/NOTIFY channel."""
        return {
            "host": self._host,
            "port": self._port,
            "database": self._database,
            "user": self._user,
            "password": self._password,
        }

    async def connect(self) -> None:
        """Establish database connection pool."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                **self.dsn_kwargs,
                min_size=self._min_pool_size,
                max_size=self._max_pool_size,
                command_timeout=30.0,
            )
        except Exception as e:
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Not connected to database")
        return self._pool

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        key = _as_uuid(conversation_id)
        if key is None:
            return None
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(queries.SELECT_CONVERSATION, key)
        return self._to_conversation(row) if row else None

    async def find_conversation(self, user_id: str | None, agent_id: str) -> Conversation | None:
        key = _as_uuid(agent_id)
        if key is None:
            return None
        user_key = _as_uuid(user_id) if user_id else None
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(queries.FIND_CONVERSATION, key, user_key)
        return self._to_conversation(row) if row else None

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                queries.INSERT_CONVERSATION,
                UUID(conversation.id),
                UUID(conversation.agent_id),
                UUID(conversation.user_id) if conversation.user_id else None,
                conversation.title,
                conversation.created_at,
            )
        return conversation

    async def get_message(self, message_id: str) -> Message | None:
        key = _as_uuid(message_id)
        if key is None:
            return None
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(queries.SELECT_MESSAGE, key)
        return self._to_message(row) if row else None

    async def list_messages(self, conversation_id: str) -> list[Message]:
        key = _as_uuid(conversation_id)
        if key is None:
            return []
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(queries.SELECT_MESSAGES, key)
        return [self._to_message(row) for row in rows]

    @staticmethod
    def _to_conversation(row: asyncpg.Record) -> Conversation:
        return Conversation(
            id=str(row["id"]),
            agent_id=str(row["agent_id"]),
            user_id=str(row["user_id"]) if row["user_id"] else None,
            title=row["title"] or "New conversation",
            created_at=row["created_at"],
        )

    @staticmethod
    def _to_message(row: asyncpg.Record) -> Message:
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return Message(
            id=str(row["id"]),
            conversation_id=str(row["conversation_id"]),
            role=Role(row["role"]),
            content=row["content"] or "",
            llm_provider=row["llm_provider"],
            metadata=metadata or {},
            status=ResponseStatus(row["long_status"]) if row["long_status"] else None,
            created_at=row["created_at"],
        )

    @property
    def backend_type(self) -> str:
        return "postgres"
