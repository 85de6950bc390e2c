"""Fire-and-forget notifications sent after a transaction commits."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from leave_ledger.models.enums import NotificationKind

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    """A message for one recipient."""

    kind: NotificationKind
    recipient_id: uuid.UUID
    subject: str
    payload: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class NotificationSink(Protocol):
    """Delivery channel for notifications."""

    async def send(self, notification: Notification) -> None:
        """Deliver one notification."""
        ...


class LoggingNotificationSink:
    """Sink that only writes notifications to the log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s: %s",
            notification.kind.value,
            notification.recipient_id,
            notification.subject,
        )


class InMemoryNotificationSink:
    """Sink that keeps notifications in memory for tests."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]


async def dispatch(sink: NotificationSink, notifications: list[Notification]) -> None:
    """Send each notification, logging and swallowing delivery failures.

    Called only after the triggering transaction has committed; a failing
    sink must not affect ledger state.
    """
    for notification in notifications:
        try:
            await sink.send(notification)
        except Exception:
            logger.exception(
                "Failed to deliver %s notification to %s", notification.kind.value, notification.recipient_id
            )
