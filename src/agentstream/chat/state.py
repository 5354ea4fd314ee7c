"""Observable ordered message list.

All mutation is addressed by message id, never by position, so late
updates (push, poll, recovery) land on the right entry regardless of what
was inserted in between.
"""

from collections.abc import Callable, Iterator
from typing import Any

from ..storage.models import Message

Listener = Callable[[list[Message]], None]


class MessageList:
    """Messages of the open conversation, oldest first."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return self._index(message_id) is not None

    def _index(self, message_id: object) -> int | None:
        for i, message in enumerate(self._messages):
            if message.id == message_id:
                return i
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a snapshot after each change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def get(self, message_id: str) -> Message | None:
        index = self._index(message_id)
        return None if index is None else self._messages[index]

    def snapshot(self) -> list[Message]:
        return [m.model_copy() for m in self._messages]

    def append(self, message: Message) -> None:
        self._messages.append(message)
        self._changed()

    def upsert(self, message: Message) -> bool:
        """Insert or replace by id. Returns True when inserted."""
        index = self._index(message.id)
        if index is None:
            self._messages.append(message)
            self._changed()
            return True
        self._messages[index] = message
        self._changed()
        return False

    def update(self, message_id: str, **changes: Any) -> Message | None:
        """Patch fields of one message. Unknown ids are ignored."""
        index = self._index(message_id)
        if index is None:
            return None
        updated = self._messages[index].model_copy(update=changes)
        self._messages[index] = updated
        self._changed()
        return updated

    def set_content(self, message_id: str, content: str) -> Message | None:
        return self.update(message_id, content=content)

    def rekey(self, old_id: str, new_id: str) -> None:
        """Give an optimistic entry its persisted id.

        If the persisted id is already present (a push beat the stream),
        the optimistic entry is dropped.
        """
        if old_id == new_id:
            return
        if new_id in self:
            self.remove(old_id)
            return
        self.update(old_id, id=new_id)

    def remove(self, message_id: str) -> bool:
        index = self._index(message_id)
        if index is None:
            return False
        del self._messages[index]
        self._changed()
        return True

    def replace_all(self, messages: list[Message]) -> None:
        self._messages = list(messages)
        self._changed()

    def clear(self) -> None:
        self.replace_all([])
