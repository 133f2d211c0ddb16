"""
Single entry point for admin notifications.

The event is stored, one pending delivery is created per subscribed
recipient and channel, and the Celery dispatcher is asked to send them.
Nothing here raises: a notification must never break a payment or render flow.
"""
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from app.models.notification import NotificationDelivery, NotificationEvent, NotificationRecipient
from app.services.notifications.types import ActorType, DeliveryStatus

logger = logging.getLogger(__name__)


def enqueue_dispatch() -> None:
    from app.workers.tasks.notifications import dispatch_pending_notifications

    dispatch_pending_notifications.delay()


def emit_notification(
    db: Session,
    notification_type: str,
    summary: str,
    metadata: dict[str, Any] | None = None,
    actor_type: str = ActorType.SYSTEM,
    actor_identifier: str = "system",
) -> str | None:
    """Returns the event id, or None when nothing was recorded."""
    try:
        event = NotificationEvent(
            id=str(uuid4()),
            notification_type=notification_type,
            actor_type=actor_type,
            actor_identifier=actor_identifier,
            summary=summary,
            event_metadata=metadata or {},
        )
        db.add(event)
        db.flush()

        recipients = (
            db.query(NotificationRecipient)
            .filter(NotificationRecipient.is_active.is_(True))
            .all()
        )
        deliveries = [
            NotificationDelivery(
                id=str(uuid4()),
                event_id=event.id,
                recipient_id=recipient.id,
                channel=channel,
                status=DeliveryStatus.PENDING,
            )
            for recipient in recipients
            for channel in recipient.channels_for(notification_type)
        ]
        db.add_all(deliveries)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning("notification_emit_failed", extra={"error": str(e), "notification_type": notification_type})
        return None

    logger.info(
        "notification_emitted",
        extra={"event_id": event.id, "notification_type": notification_type, "count": len(deliveries)},
    )
    if deliveries:
        try:
            enqueue_dispatch()
        except Exception as e:
            logger.warning("notification_dispatch_enqueue_failed", extra={"event_id": event.id, "error": str(e)})
    return event.id
