"""Failure recovery for turns whose stream threw.

A dropped connection does not mean the backend failed: it often finishes
and persists the response anyway. Before showing an error the coordinator
checks whether the turn's message was persisted with content.
"""

from collections.abc import Awaitable, Callable
from enum import Enum

from ..config import INSUFFICIENT_CREDIT_MARKERS
from ..diagnostics import DebugCallback, DebugLog, short_id
from ..notifications import Notifier
from ..storage.base import MessageStore
from .models import GENERIC_ERROR_TEXT, INSUFFICIENT_CREDIT_TEXT
from .session import StreamSession
from .state import MessageList


class RecoveryOutcome(str, Enum):
    RECOVERED = "recovered"
    FAILED = "failed"


def is_insufficient_credit(error: BaseException | str | None) -> bool:
    text = str(error or "").lower()
    return any(marker in text for marker in INSUFFICIENT_CREDIT_MARKERS)


def error_text(error: BaseException | str | None) -> str:
    """User-facing text for a failed turn."""
    if is_insufficient_credit(error):
        return INSUFFICIENT_CREDIT_TEXT
    return GENERIC_ERROR_TEXT


class RecoveryCoordinator:
    """Decides between reloading persisted output and showing an error."""

    def __init__(
        self,
        store: MessageStore,
        messages: MessageList,
        notifier: Notifier,
        reload: Callable[[str], Awaitable[object]],
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._store = store
        self._messages = messages
        self._notifier = notifier
        self._reload = reload
        self._log = DebugLog(debug_callback)

    async def _persisted_content(self, session: StreamSession) -> str:
        candidates = [session.backend_message_id, session.placeholder_id]
        for message_id in dict.fromkeys(c for c in candidates if c):
            message = await self._store.get_message(message_id)
            if message is not None and message.content:
                return message.content
        return ""

    async def reconcile(self, session: StreamSession) -> bool:
        """Swap a truncated reply for its persisted copy when that is longer.

        Returns:
            True if the displayed content was replaced
        """
        try:
            content = await self._persisted_content(session)
        except Exception as e:
            self._log.warning("Recovery", f"Could not read persisted message: {e}")
            return False

        displayed = self._messages.get(session.message_id)
        if displayed is None or len(content) <= len(displayed.content):
            return False
        self._messages.set_content(session.message_id, content)
        self._log.info(
            "Recovery",
            f"Replaced truncated reply {short_id(session.message_id)}: {len(displayed.content)} -> {len(content)} chars",
        )
        return True

    async def recover(self, session: StreamSession, error: BaseException) -> RecoveryOutcome:
        """Resolve a turn that ended with a transport error or abort."""
        await session.dispose()
        self._log.warning("Recovery", f"Stream for {short_id(session.message_id)} failed: {error!r}")

        try:
            content = await self._persisted_content(session)
        except Exception as e:
            self._log.error("Recovery", f"Could not read persisted message: {e}")
            content = ""

        if content:
            self._notifier.info("Recovering response", "The connection dropped but the response was saved.")
            try:
                await self._reload(session.conversation_id)
            except (LookupError, ConnectionError, RuntimeError) as e:
                self._log.error("Recovery", f"Reload after recovery failed: {e}")
            self._log.info("Recovery", f"Recovered {len(content)} chars for {short_id(session.message_id)}")
            return RecoveryOutcome.RECOVERED

        self._messages.set_content(session.message_id, error_text(error))
        self._notifier.error("Failed to get response", str(error) or type(error).__name__)
        return RecoveryOutcome.FAILED
