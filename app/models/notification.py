"""
Notification events and their per-recipient deliveries.
An event is written once; deliveries are created pending and dispatched by a Celery task.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class NotificationEvent(Base):
    __tablename__ = "notification_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    notification_type = Column(String, nullable=False, index=True)
    actor_type = Column(String, nullable=False, default="system")  # admin / user / system
    actor_identifier = Column(String, nullable=True)
    summary = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class NotificationRecipient(Base):
    __tablename__ = "notification_recipients"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notification_types = Column(JSONB, nullable=False, default=list)  # empty = subscribed to nothing
    via_email = Column(Boolean, nullable=False, default=True)
    via_sms = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def channels_for(self, notification_type: str) -> list[str]:
        if not self.is_active or notification_type not in (self.notification_types or []):
            return []
        channels = []
        if self.via_email and self.email:
            channels.append("email")
        if self.via_sms and self.phone:
            channels.append("sms")
        return channels


class NotificationDelivery(Base):
    __tablename__ = "notification_deliveries"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    event_id = Column(String, ForeignKey("notification_events.id"), nullable=False, index=True)
    recipient_id = Column(String, ForeignKey("notification_recipients.id"), nullable=False)
    channel = Column(String, nullable=False)  # email / sms
    status = Column(String, nullable=False, default="pending")  # pending / sent / failed
    provider_response = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
