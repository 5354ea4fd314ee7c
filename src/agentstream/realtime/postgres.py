"""Realtime channel over PostgreSQL LISTEN/NOTIFY.

Expects a trigger that issues ``NOTIFY <channel>, '<json>'`` with a payload
shaped like ``{"eventType": "UPDATE", "table": "agent_messages", "new": {...}}``.
"""

import json
from typing import Any

import asyncpg
from pydantic import ValidationError

from ..diagnostics import DebugCallback, DebugLog
from ..storage.models import RowChange
from .base import RealtimeChannel, RowCallback, RowChangeFanout, Subscription

DEFAULT_CHANNEL = "agent_messages_changes"


class PostgresRealtimeChannel(RealtimeChannel):
    """Listens on one NOTIFY channel and fans changes out locally.

    Hidden design decisions:
    - Dedicated listener connection (not taken from a pool)
    - Payload decoding and validation
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        channel: str = DEFAULT_CHANNEL,
        debug_callback: DebugCallback | None = None,
    ):
        self._dsn_kwargs: dict[str, Any] = {
            "host": host,
            "port": port,
            "database": database,
            "user": user,
            "password": password,
        }
        self._channel = channel
        self._log = DebugLog(debug_callback)
        self._fanout = RowChangeFanout(debug_callback)
        self._conn: asyncpg.Connection | None = None

    async def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await asyncpg.connect(**self._dsn_kwargs)
            await self._conn.add_listener(self._channel, self._on_notify)
        except Exception as e:
            raise ConnectionError(f"Failed to listen on PostgreSQL channel {self._channel}: {e}") from e

    async def disconnect(self) -> None:
        if self._conn is not None:
            await self._conn.remove_listener(self._channel, self._on_notify)
            await self._conn.close()
            self._conn = None
        self._fanout = RowChangeFanout()

    async def subscribe_message(self, message_id: str, callback: RowCallback) -> Subscription:
        await self.connect()
        return self._fanout.add("message", message_id, callback)

    async def subscribe_conversation(self, conversation_id: str, callback: RowCallback) -> Subscription:
        await self.connect()
        return self._fanout.add("conversation", conversation_id, callback)

    def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            change = RowChange.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            self._log.warning("Realtime", f"Ignoring malformed notification on {channel}: {e}")
            return
        self._fanout.dispatch(change)

    @property
    def channel_type(self) -> str:
        return "postgres"
