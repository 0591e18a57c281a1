"""
User-visible activity log for sync runs.
Entries are appended in order and pushed to subscribers as they arrive.
"""

from collections.abc import Callable

import structlog

from vinesync.models.inventory import LogLevel, SyncLogEntry

logger = structlog.get_logger()

Subscriber = Callable[[SyncLogEntry], None]


class ActivityLog:
    """Ordered, append-only log of sync activity."""

    def __init__(self):
        self._entries: list[SyncLogEntry] = []
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """
        Register a callback for new entries.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def add(self, message: str, level: LogLevel = LogLevel.INFO) -> SyncLogEntry:
        entry = SyncLogEntry(message=message, level=level)
        self._entries.append(entry)

        for subscriber in list(self._subscribers):
            try:
                subscriber(entry)
            except Exception as e:
                logger.error("Activity log subscriber failed", error=str(e), message=message)

        return entry

    def clear(self):
        self._entries.clear()

    @property
    def entries(self) -> list[SyncLogEntry]:
        return list(self._entries)

    @property
    def messages(self) -> list[str]:
        return [entry.message for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
