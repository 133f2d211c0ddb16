"""
Notification delivery worker.
Enqueued after every emitted event; also swept periodically by beat.
"""
import logging

from sqlalchemy.orm import Session

from app.core.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger("notifications")


@celery_app.task(name="app.workers.tasks.notifications.dispatch_pending_notifications")
def dispatch_pending_notifications(limit: int | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        stats = NotificationDispatcher(db).dispatch_pending(limit=limit)
        if stats["sent"] or stats["failed"]:
            logger.info("notification_batch_complete", extra={"count": stats["sent"] + stats["failed"]})
        return stats
    except Exception:
        logger.exception("notification_batch_failed")
        db.rollback()
        raise
    finally:
        db.close()
