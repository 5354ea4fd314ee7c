"""User-facing transient notifications (toasts).

Diagnostics go through ``DebugLog``; notifications are what the user is
meant to see. The host supplies the sink: a Rich console in the CLI, a
recording list in tests.
"""

from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    level: NotificationLevel
    title: str
    description: str | None = None


class Notifier(ABC):
    """Sink for user-facing notifications."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Show a notification."""

    def info(self, title: str, description: str | None = None) -> None:
        self.notify(Notification(level=NotificationLevel.INFO, title=title, description=description))

    def success(self, title: str, description: str | None = None) -> None:
        self.notify(Notification(level=NotificationLevel.SUCCESS, title=title, description=description))

    def warning(self, title: str, description: str | None = None) -> None:
        self.notify(Notification(level=NotificationLevel.WARNING, title=title, description=description))

    def error(self, title: str, description: str | None = None) -> None:
        self.notify(Notification(level=NotificationLevel.ERROR, title=title, description=description))


class NullNotifier(Notifier):
    """Discards everything."""

    def notify(self, notification: Notification) -> None:
        pass


class RecordingNotifier(Notifier):
    """Keeps every notification in order."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def titles(self, level: NotificationLevel | None = None) -> list[str]:
        return [n.title for n in self.notifications if level is None or n.level == level]
