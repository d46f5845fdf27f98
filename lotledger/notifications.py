"""
notifications.py - Success notifications and in-process delivery

Core concepts:
1. Notification: Immutable record of something the ledger just committed
2. NotificationBus: Append-only log plus a registry of subscriber functions
3. Subscribers: Plain functions Notification -> None

Notifications are only published for operations that committed. The log is
the ledger's audit trail of successful calls.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple


class NotificationType(str, Enum):
    ROLE_REQUESTED = "role_requested"
    STATUS_CHANGED = "status_changed"
    LOT_CREATED = "lot_created"
    TRANSFER_REQUESTED = "transfer_requested"
    TRANSFER_ACCEPTED = "transfer_accepted"
    TRANSFER_REJECTED = "transfer_rejected"


@dataclass(frozen=True, slots=True)
class Notification:
    """
    Immutable notification of a committed change.

    Attributes:
        sequence: Position in the ledger's notification log (from 0)
        kind: What happened
        timestamp: Logical ledger time of the commit
        params: Payload as a frozen tuple of (key, value) pairs, sorted by key
    """
    sequence: int
    kind: NotificationType
    timestamp: datetime
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        """Get params as a dictionary for convenience."""
        return dict(self.params)

    def __repr__(self) -> str:
        payload = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"Notification(#{self.sequence} {self.kind.value}: {payload})"


Subscriber = Callable[[Notification], None]


class NotificationBus:
    """
    Append-only notification log with synchronous subscribers.

    Publishing and delivery are separate steps: the ledger publishes while
    it holds its call guard and delivers after releasing it, so subscribers
    may call back into the ledger.
    """

    def __init__(self):
        self._log: List[Notification] = []
        self._subscribers: List[Tuple[Subscriber, Optional[FrozenSet[NotificationType]]]] = []

    @property
    def log(self) -> Tuple[Notification, ...]:
        return tuple(self._log)

    def subscribe(
        self,
        handler: Subscriber,
        kinds: Optional[Iterable[NotificationType]] = None,
    ) -> Callable[[], None]:
        """
        Register handler for all notifications, or only for the given kinds.

        Returns a function that removes the subscription.
        """
        entry = (handler, frozenset(kinds) if kinds is not None else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, kind: NotificationType, timestamp: datetime, **params: Any) -> Notification:
        """Append a notification to the log and return it. Does not deliver."""
        notification = Notification(
            sequence=len(self._log),
            kind=kind,
            timestamp=timestamp,
            params=tuple(sorted(params.items())),
        )
        self._log.append(notification)
        return notification

    def deliver(self, notifications: Iterable[Notification]) -> None:
        """
        Call matching subscribers for each notification, in subscription order.

        Raises:
            Exception: Anything a subscriber raises propagates unchanged.
        """
        for notification in notifications:
            for handler, kinds in list(self._subscribers):
                if kinds is None or notification.kind in kinds:
                    handler(notification)

    def copy(self) -> NotificationBus:
        """Copy of the log without subscribers."""
        cloned = NotificationBus()
        cloned._log = list(self._log)
        return cloned
