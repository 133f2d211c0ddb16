"""
Sends pending notification deliveries.
Email goes to a Make scenario webhook, SMS to the Blaze SMS API. Each delivery is tried once.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.notification import NotificationDelivery, NotificationEvent, NotificationRecipient
from app.services.notifications.render import render_message
from app.services.notifications.types import Channel, DeliveryStatus
from app.utils.metrics import notifications_dispatched_total

logger = logging.getLogger(__name__)

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")


@dataclass
class SendResult:
    success: bool
    response: str = ""


def sanitize_sms(message: str) -> str:
    """Single line of printable ASCII."""
    flattened = message.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    return _NON_PRINTABLE.sub("", flattened).strip()


class NotificationDispatcher:
    def __init__(self, db: Session, http_client: httpx.Client | None = None) -> None:
        self.db = db
        self._client = http_client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=settings.http_client_timeout)
        return self._client

    def dispatch_pending(self, limit: int | None = None) -> dict[str, int]:
        deliveries = (
            self.db.query(NotificationDelivery)
            .filter(NotificationDelivery.status == DeliveryStatus.PENDING)
            .order_by(NotificationDelivery.created_at.asc())
            .limit(limit or settings.notification_dispatch_batch_size)
            .all()
        )
        stats = {"sent": 0, "failed": 0}
        for delivery in deliveries:
            if self.dispatch_one(delivery):
                stats["sent"] += 1
            else:
                stats["failed"] += 1
        return stats

    def dispatch_one(self, delivery: NotificationDelivery) -> bool:
        event = self.db.get(NotificationEvent, delivery.event_id)
        recipient = self.db.get(NotificationRecipient, delivery.recipient_id)

        if event is None or recipient is None:
            result = SendResult(False, "event or recipient not found")
        elif delivery.channel == Channel.EMAIL:
            result = self.send_email(delivery, event, recipient)
        elif delivery.channel == Channel.SMS:
            result = self.send_sms(delivery, event, recipient)
        else:
            result = SendResult(False, f"unknown channel: {delivery.channel}")

        delivery.status = DeliveryStatus.SENT if result.success else DeliveryStatus.FAILED
        delivery.provider_response = result.response[:2000]
        if result.success:
            delivery.sent_at = datetime.now(timezone.utc)
        self.db.add(delivery)
        self.db.commit()

        notifications_dispatched_total.labels(channel=delivery.channel, status=delivery.status).inc()
        log = logger.info if result.success else logger.warning
        log(
            "notification_delivery_processed",
            extra={
                "delivery_id": delivery.id,
                "event_id": delivery.event_id,
                "channel": delivery.channel,
                "outcome": delivery.status,
                "error": None if result.success else result.response,
            },
        )
        return result.success

    def send_email(
        self,
        delivery: NotificationDelivery,
        event: NotificationEvent,
        recipient: NotificationRecipient,
    ) -> SendResult:
        if not settings.make_notification_webhook_url:
            return SendResult(False, "MAKE_NOTIFICATION_WEBHOOK_URL not configured")
        if not recipient.email:
            return SendResult(False, "recipient has no email address")

        metadata = event.event_metadata or {}
        message = render_message(event.notification_type, Channel.EMAIL, metadata)
        payload: dict[str, Any] = {
            "event_id": event.id,
            "notification_type": event.notification_type,
            "recipient": {"name": recipient.name, "email": recipient.email},
            "subject": message.subject,
            "body": message.body,
            "metadata": metadata,
        }
        try:
            response = self.client.post(settings.make_notification_webhook_url, json=payload)
        except httpx.HTTPError as e:
            return SendResult(False, str(e))
        if not response.is_success:
            return SendResult(False, f"Make webhook failed: {response.status_code}")
        return SendResult(True, response.text)

    def send_sms(
        self,
        delivery: NotificationDelivery,
        event: NotificationEvent,
        recipient: NotificationRecipient,
    ) -> SendResult:
        if not settings.blaze_api_key:
            return SendResult(False, "BLAZE_API_KEY not configured")
        if not recipient.phone:
            return SendResult(False, "recipient has no phone number")

        message = render_message(event.notification_type, Channel.SMS, event.event_metadata or {})
        payload = {
            "api_key": settings.blaze_api_key,
            "message": sanitize_sms(message.body),
            "phone": recipient.phone,
            "sender_id": settings.blaze_sender_id,
        }
        try:
            response = self.client.post(settings.blaze_api_url, json=payload)
        except httpx.HTTPError as e:
            return SendResult(False, str(e))
        return interpret_blaze_response(response)


def interpret_blaze_response(response: httpx.Response) -> SendResult:
    """Blaze reports errors in several shapes; success is success=true or response-code 200."""
    try:
        data = response.json()
    except ValueError:
        data = {}
    text = response.text[:2000]
    if not response.is_success:
        return SendResult(False, f"Blaze API failed: {response.status_code} {text}")
    if not isinstance(data, dict):
        return SendResult(False, f"Blaze API unexpected response: {text}")
    if data.get("error"):
        return SendResult(False, str(data["error"]))
    if data.get("status") == "error" or data.get("statusCode"):
        return SendResult(False, str(data.get("reason") or f"Error {data.get('statusCode')}"))
    if data.get("success") is True or data.get("response-code") == 200:
        return SendResult(True, text)
    return SendResult(False, str(data.get("response-description") or "Unknown error from Blaze API"))
