"""Desktop notification hooks for finished queues."""
from typing import Protocol

from fiefdom.utils.logger import get_logger

logger = get_logger()


class Notifier(Protocol):
    def request_permission(self) -> None:
        ...

    def can_notify(self) -> bool:
        """True when permission is granted and the player is not looking at the page."""
        ...

    def notify(self, title: str, body: str) -> None:
        ...


class LoggingNotifier:
    """Notifier for headless clients: every notification becomes a log line."""

    def __init__(self, granted: bool = True, hidden: bool = True):
        self.granted = granted
        self.hidden = hidden

    def request_permission(self) -> None:
        logger.debug("notifications.permission_requested")

    def can_notify(self) -> bool:
        return self.granted and self.hidden

    def notify(self, title: str, body: str) -> None:
        logger.info(f"{title}: {body}")
