"""
Notifications sent after movements are recorded.

Delivery is best effort: a notifier failure is logged and never undoes or
fails the movement that triggered it.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .enums import NotificationKind
from ..domain.movements import MovementRecord
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("ledger")


class MovementNotification(BaseModel):
    """One message for one recipient about one movement."""

    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    recipient_id: UUID
    movement_id: UUID
    asset_id: UUID
    previous_id: Optional[UUID] = None
    current_id: UUID


class MovementNotifier(ABC):
    """Receives notifications for recorded movements."""

    @abstractmethod
    async def notify(self, notification: MovementNotification) -> None:
        pass


class LoggingNotifier(MovementNotifier):
    """Writes notifications to the ledger log."""

    async def notify(self, notification: MovementNotification) -> None:
        logger.info(
            f"Notify {notification.recipient_id}: {notification.kind.value} "
            f"for asset {notification.asset_id} (movement {notification.movement_id})"
        )


def notifications_for(record: MovementRecord) -> List[MovementNotification]:
    """
    Notifications a recorded movement produces.

    A move to a new location goes to the custodian holding the asset; it is
    skipped when nobody holds it. A hand-over goes to the new custodian.
    """
    if record.to_location_id is not None:
        if record.from_custodian_id is None:
            return []
        return [
            MovementNotification(
                kind=NotificationKind.LOCATION_CHANGED,
                recipient_id=record.from_custodian_id,
                movement_id=record.id,
                asset_id=record.asset_id,
                previous_id=record.from_location_id,
                current_id=record.to_location_id,
            )
        ]

    return [
        MovementNotification(
            kind=NotificationKind.CUSTODIAN_ASSIGNED,
            recipient_id=record.to_custodian_id,
            movement_id=record.id,
            asset_id=record.asset_id,
            previous_id=record.from_custodian_id,
            current_id=record.to_custodian_id,
        )
    ]


async def publish(notifier: MovementNotifier, records: Iterable[MovementRecord]) -> None:
    """Send every notification the records produce, logging failures."""
    for record in records:
        for notification in notifications_for(record):
            try:
                await notifier.notify(notification)
            except Exception as e:
                log_exception(
                    "ledger",
                    e,
                    {
                        "operation": "notify",
                        "movement_id": str(record.id),
                        "kind": notification.kind.value,
                    },
                )
