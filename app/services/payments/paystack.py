"""
Paystack webhooks (mobile money checkout started in the browser).
The payment row is created here, on charge.success, keyed by the Paystack reference.
"""
import hashlib
import hmac
import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import UnauthorizedError, ValidationError
from app.models.payment import PaymentProvider, PaymentStatus
from app.models.poster import PosterStatus
from app.services.notifications.emitter import emit_notification
from app.services.notifications.types import NotificationType
from app.services.payments.repository import PaymentRepository
from app.services.posters.repository import PosterRepository
from app.utils.metrics import payment_callbacks_total
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"


def compute_signature(raw_body: bytes, secret_key: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret_key: str | None = None) -> bool:
    secret = settings.paystack_secret_key if secret_key is None else secret_key
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_signature(raw_body, secret), signature.strip().lower())


class PaystackWebhookService:
    def __init__(
        self,
        db: Session,
        payments: PaymentRepository | None = None,
        posters: PosterRepository | None = None,
    ) -> None:
        self.db = db
        self.payments = payments or PaymentRepository(db)
        self.posters = posters or PosterRepository(db)

    def handle(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        if not verify_signature(raw_body, signature):
            payment_callbacks_total.labels(provider="paystack", outcome="bad_signature").inc()
            raise UnauthorizedError("Invalid signature")

        try:
            event = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Invalid JSON") from e
        if not isinstance(event, dict):
            raise ValidationError("Invalid JSON")

        event_type = event.get("event")
        if event_type != CHARGE_SUCCESS:
            payment_callbacks_total.labels(provider="paystack", outcome="ignored").inc()
            logger.info("paystack_event_ignored", extra={"outcome": event_type})
            return {"success": True, "message": "Event type not handled"}

        return self._record_charge(event.get("data") or {})

    def _record_charge(self, data: dict[str, Any]) -> dict[str, Any]:
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
        session_id = metadata.get("sessionId") or metadata.get("session_id")
        reference = data.get("reference")
        if not session_id or not reference:
            payment_callbacks_total.labels(provider="paystack", outcome="unlinked").inc()
            logger.warning("paystack_charge_unlinked", extra={"checkout_id": reference})
            return {"success": True, "message": "Missing sessionId or reference"}

        if self.payments.find_by_code(reference) is not None:
            payment_callbacks_total.labels(provider="paystack", outcome="duplicate").inc()
            logger.info("paystack_charge_duplicate", extra={"checkout_id": reference, "session_id": session_id})
            return {"success": True, "message": "Payment already recorded"}

        # Paystack amounts are in the subunit (cents)
        try:
            amount = int(data.get("amount") or 0) // 100
        except (TypeError, ValueError) as e:
            raise ValidationError("Invalid amount") from e
        phone_raw = customer.get("phone") or metadata.get("phone")
        phone = normalize_phone(phone_raw) if phone_raw else None

        payment = self.payments.create(
            session_id=str(session_id),
            phone_number=phone,
            amount=amount,
            status=PaymentStatus.PAID,
            mpesa_code=str(reference),
            image_url=metadata.get("posterUrl"),
            provider=PaymentProvider.PAYSTACK,
        )
        self.posters.set_status(str(session_id), PosterStatus.COMPLETED)

        payment_callbacks_total.labels(provider="paystack", outcome="paid").inc()
        logger.info(
            "paystack_payment_paid",
            extra={"payment_id": payment.id, "session_id": session_id, "checkout_id": reference},
        )
        emit_notification(
            self.db,
            NotificationType.PAYMENT_SUCCESS,
            summary=f"Payment of KES {amount} received via Paystack",
            metadata={
                "session_id": session_id,
                "amount": amount,
                "phone": phone,
                "receipt": reference,
                "provider": PaymentProvider.PAYSTACK,
            },
        )
        return {"success": True, "message": "Payment recorded"}
