"""Process-wide automation session slot.

Hides where the current browser session id lives:
- Initialized from a persisted JSON file at construction (if configured)
- Written whenever a session is established (last-establish-wins)
- Cleared on explicit logout or agent deletion
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..diagnostics import DebugCallback, DebugLog, short_id

if TYPE_CHECKING:
    from .client import ToolServerClient

SessionListener = Callable[[str | None], None]


class AutomationSessionService:
    """Holds the current automation session id.

    Injected into the dispatch router so tests can substitute their own
    instance instead of relying on module globals.
    """

    def __init__(
        self,
        state_file: Path | None = None,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._state_file = state_file
        self._log = DebugLog(debug_callback)
        self._listeners: list[SessionListener] = []
        self._session_id: str | None = self._load()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def has_active_session(self) -> bool:
        return self._session_id is not None

    def resolve(self, explicit: str | None = None) -> str | None:
        """Explicit id, else the current one, else None."""
        return explicit or self._session_id

    def set(self, session_id: str | None) -> None:
        """Overwrite the slot unconditionally and persist it."""
        self._session_id = session_id
        self._save()
        self._notify()
        if session_id:
            self._log.info("Session", f"Automation session set: {short_id(session_id)}")

    def capture_from_result(self, result: dict[str, Any] | None) -> bool:
        """Adopt ``session_id`` from a tool result when present.

        Returns:
            True if the slot was updated
        """
        if not result:
            return False
        session_id = result.get("session_id")
        if isinstance(session_id, str) and session_id:
            self.set(session_id)
            return True
        return False

    def clear(self) -> None:
        """Forget the session (logout or agent deletion)."""
        self._session_id = None
        if self._state_file is not None and self._state_file.exists():
            self._state_file.unlink()
        self._notify()

    async def end_session(self, client: "ToolServerClient") -> None:
        """Stop the remote browser session, then clear the slot."""
        if self._session_id is None:
            return
        try:
            await client.browser_stop(self._session_id)
        except Exception as e:
            self._log.warning("Session", f"Error stopping session {short_id(self._session_id)}: {e}")
        self.clear()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._session_id)

    def _load(self) -> str | None:
        if self._state_file is None or not self._state_file.exists():
            return None
        try:
            data = json.loads(self._state_file.read_text())
        except (OSError, json.JSONDecodeError) as e:
            self._log.warning("Session", f"Ignoring unreadable session file {self._state_file}: {e}")
            return None
        session_id = data.get("session_id") if isinstance(data, dict) else None
        return session_id if isinstance(session_id, str) and session_id else None

    def _save(self) -> None:
        if self._state_file is None:
            return
        if self._session_id is None:
            if self._state_file.exists():
                self._state_file.unlink()
            return
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        self._state_file.write_text(json.dumps({"session_id": self._session_id}))
