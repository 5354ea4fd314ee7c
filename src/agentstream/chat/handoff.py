"""Background handoff: follow a response after its HTTP stream ended.

Push updates are applied as they arrive. A heartbeat poll catches missed
pushes but only ever grows the displayed content. A hard ceiling tears
both down even if the response never reaches a terminal status.
"""

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

from ..config import ChatSettings
from ..diagnostics import DebugCallback, DebugLog, short_id
from ..realtime.base import RealtimeChannel, Subscription
from ..storage.base import MessageStore
from ..storage.models import ResponseStatus, RowChange
from .state import MessageList


class BackgroundHandoff:
    """Push subscription plus heartbeat poll for one message."""

    def __init__(
        self,
        message_id: str,
        messages: MessageList,
        store: MessageStore,
        realtime: RealtimeChannel | None = None,
        settings: ChatSettings | None = None,
        on_finish: Callable[["BackgroundHandoff"], None] | None = None,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self.message_id = message_id
        self._messages = messages
        self._store = store
        self._realtime = realtime
        self._settings = settings or ChatSettings()
        self._on_finish = on_finish
        self._log = DebugLog(debug_callback)
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._done = asyncio.Event()
        self._finished = False
        self.final_status: ResponseStatus | None = None
        self.applied_polls = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._finished

    @property
    def displayed_length(self) -> int:
        message = self._messages.get(self.message_id)
        return len(message.content) if message else 0

    async def start(self) -> None:
        if self._task is not None:
            return
        if self._realtime is not None:
            self._subscription = await self._realtime.subscribe_message(self.message_id, self._on_change)
        self._task = asyncio.create_task(self._run())
        self._log.info("Handoff", f"Following {short_id(self.message_id)} in the background")

    async def stop(self) -> None:
        """Tear down subscription and poll. Safe to call more than once."""
        self._done.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        await self._teardown()

    async def wait(self) -> None:
        """Wait until the handoff has finished."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def _on_change(self, change: RowChange) -> None:
        row = change.new
        changes: dict[str, Any] = {}
        text = row.text
        if text is not None:
            changes["content"] = text
        if row.llm_provider:
            changes["llm_provider"] = row.llm_provider
        if row.status is not None:
            changes["status"] = row.status
        if changes:
            self._messages.update(self.message_id, **changes)
        if row.status is not None and row.status.terminal:
            self._finish(row.status)

    async def poll(self) -> bool:
        """Reconcile with the persisted message once.

        Returns:
            True if the displayed content was replaced
        """
        try:
            persisted = await self._store.get_message(self.message_id)
        except Exception as e:
            self._log.warning("Handoff", f"Heartbeat read failed for {short_id(self.message_id)}: {e}")
            return False
        if persisted is None:
            return False

        applied = False
        if len(persisted.content) > self.displayed_length + self._settings.heartbeat_min_growth:
            self._messages.update(
                self.message_id,
                content=persisted.content,
                llm_provider=persisted.llm_provider,
                status=persisted.status,
            )
            self.applied_polls += 1
            applied = True
            self._log.debug("Handoff", f"Heartbeat applied {len(persisted.content)} chars")

        if persisted.status is not None and persisted.status.terminal:
            self._finish(persisted.status)
        return applied

    def _finish(self, status: ResponseStatus) -> None:
        if self.final_status is None:
            self.final_status = status
            self._log.info("Handoff", f"{short_id(self.message_id)} reached {status.value}")
        self._done.set()

    async def _run(self) -> None:
        try:
            async with asyncio.timeout(self._settings.handoff_ceiling):
                while not self._done.is_set():
                    try:
                        await asyncio.wait_for(self._done.wait(), self._settings.heartbeat_interval)
                    except TimeoutError:
                        await self.poll()
        except TimeoutError:
            self._log.warning("Handoff", f"Ceiling reached for {short_id(self.message_id)}, stopping updates")
        finally:
            await self._teardown()

    async def _teardown(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
        if self._on_finish:
            self._on_finish(self)


class HandoffRegistry:
    """Live handoffs owned by a controller; they outlive their turn."""

    def __init__(self) -> None:
        self._handoffs: dict[str, BackgroundHandoff] = {}

    def __len__(self) -> int:
        return len(self._handoffs)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._handoffs

    def get(self, message_id: str) -> BackgroundHandoff | None:
        return self._handoffs.get(message_id)

    def add(self, handoff: BackgroundHandoff) -> None:
        self._handoffs[handoff.message_id] = handoff

    def discard(self, handoff: BackgroundHandoff) -> None:
        if self._handoffs.get(handoff.message_id) is handoff:
            del self._handoffs[handoff.message_id]

    async def wait_all(self) -> None:
        """Wait for every live handoff to finish."""
        for handoff in list(self._handoffs.values()):
            await handoff.wait()

    async def close_all(self) -> None:
        for handoff in list(self._handoffs.values()):
            await handoff.stop()
        self._handoffs.clear()
