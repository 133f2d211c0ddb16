"""
M-Pesa STK Push payments for generated posters.

initiate() records a Pending payment and asks Daraja to prompt the customer.
handle_callback() settles it when the provider reports back: matched by the
checkout id stored in mpesa_code, or else by the customer's most recent
Pending payment. Only Pending payments ever change status.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AppError, NotFoundError, PersistenceError, ValidationError
from app.core.logging import redact
from app.models.payment import Payment, PaymentProvider, PaymentStatus
from app.models.poster import PosterStatus
from app.services.gateways.daraja import DarajaClient, get_daraja_client
from app.services.notifications.emitter import emit_notification
from app.services.notifications.types import NotificationType
from app.services.payments.callbacks import PaymentCallback, parse_payment_callback
from app.services.payments.repository import PaymentRepository
from app.services.posters.repository import PosterRepository
from app.services.templates.service import TemplateService, resolve_price
from app.utils.metrics import payment_callbacks_total, payment_initiations_total
from app.utils.phone import normalize_phone, to_local_format
from app.utils.validation import is_valid_kenya_local_phone, is_valid_mpesa_receipt

logger = logging.getLogger(__name__)


class MpesaPaymentService:
    def __init__(
        self,
        db: Session,
        daraja: DarajaClient | None = None,
        payments: PaymentRepository | None = None,
        posters: PosterRepository | None = None,
        templates: TemplateService | None = None,
    ) -> None:
        self.db = db
        self._daraja = daraja
        self.payments = payments or PaymentRepository(db)
        self.posters = posters or PosterRepository(db)
        self.templates = templates or TemplateService(db)

    @property
    def daraja(self) -> DarajaClient:
        if self._daraja is None:
            self._daraja = get_daraja_client()
        return self._daraja

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate(self, session_id: str | None, phone_number: str | None) -> dict[str, Any]:
        """Amount always comes from the template record, never from the client."""
        if not session_id or not phone_number:
            raise ValidationError("Missing required fields")

        poster = self.posters.get_by_session(session_id)
        if poster is None:
            raise NotFoundError("Invalid session_id")

        template = self.templates.resolve(poster.template_id, poster.template_uuid)
        amount = resolve_price(template)
        if amount is None:
            raise ValidationError("Price not configured for this template")

        phone = normalize_phone(phone_number)
        if not is_valid_kenya_local_phone(to_local_format(phone)):
            # Daraja will reject it; the attempt is still recorded
            logger.warning("mpesa_phone_unrecognized", extra={"session_id": session_id})
        payment = self.payments.create(
            session_id=session_id,
            phone_number=phone,
            amount=amount,
            image_url=poster.image_url,
        )

        try:
            ack = self.daraja.initiate_push(
                amount=amount,
                phone_number=phone,
                account_reference=settings.mpesa_account_reference,
                transaction_desc=settings.mpesa_transaction_desc,
            )
        except AppError as e:
            # Row stays Pending; only a callback finalizes a payment
            payment_initiations_total.labels(status="failed").inc()
            logger.warning(
                "mpesa_initiate_failed",
                extra={"session_id": session_id, "payment_id": payment.id, "error": str(e)},
            )
            raise

        checkout_id = ack.get("CheckoutRequestID")
        if checkout_id:
            try:
                self.payments.set_code(payment, checkout_id)
            except PersistenceError as e:
                # The callback can still match this payment by phone
                logger.error(
                    "mpesa_checkout_id_not_saved",
                    extra={"payment_id": payment.id, "checkout_id": checkout_id, "error": str(e)},
                )

        payment_initiations_total.labels(status="sent").inc()
        logger.info(
            "mpesa_stk_push_sent",
            extra={"session_id": session_id, "payment_id": payment.id, "checkout_id": checkout_id},
        )
        return {
            "success": True,
            "session_id": session_id,
            "amount": amount,
            "phone": phone,
            "CheckoutRequestID": checkout_id,
            "MerchantRequestID": ack.get("MerchantRequestID"),
            "CustomerMessage": ack.get("CustomerMessage"),
        }

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def handle_callback(self, payload: Any) -> dict[str, Any]:
        """Always returns an acknowledgment; the provider has nothing useful to retry."""
        callback = parse_payment_callback(payload)
        if callback is None:
            payment_callbacks_total.labels(provider="mpesa", outcome="unparseable").inc()
            logger.warning(
                "mpesa_callback_unrecognized",
                extra={"payload": redact(payload) if isinstance(payload, (dict, list)) else None},
            )
            return {"success": True, "message": "Callback ignored: unrecognized payload"}

        logger.info(
            "mpesa_callback_received",
            extra={
                "checkout_id": callback.correlation_id,
                "outcome": "success" if callback.success else f"result_code={callback.result_code}",
                "provider": callback.source,
            },
        )
        try:
            if callback.success:
                message = self._settle_success(callback)
            else:
                message = self._settle_failure(callback)
        except PersistenceError as e:
            payment_callbacks_total.labels(provider="mpesa", outcome="persist_failed").inc()
            logger.exception(
                "mpesa_callback_persist_failed",
                extra={"checkout_id": callback.correlation_id, "error": str(e)},
            )
            message = "Callback received"
        return {"success": True, "message": message}

    def _match(self, callback: PaymentCallback) -> tuple[Payment | None, str | None]:
        if callback.correlation_id:
            payment = self.payments.find_by_code(callback.correlation_id)
            if payment is not None:
                return payment, "id"
        if callback.phone:
            payment = self.payments.latest_pending_for_phone(normalize_phone(callback.phone))
            if payment is not None:
                return payment, "phone"
        return None, None

    def _settle_success(self, callback: PaymentCallback) -> str:
        if callback.receipt and self.payments.find_paid_by_receipt(callback.receipt):
            payment_callbacks_total.labels(provider="mpesa", outcome="duplicate").inc()
            logger.info("mpesa_callback_duplicate", extra={"checkout_id": callback.correlation_id})
            return "Payment already recorded"

        payment, matched_by = self._match(callback)
        if payment is None:
            payment_callbacks_total.labels(provider="mpesa", outcome="unmatched").inc()
            logger.warning(
                "mpesa_callback_unmatched",
                extra={"checkout_id": callback.correlation_id, "outcome": "success"},
            )
            return "No matching payment"
        if payment.status != PaymentStatus.PENDING:
            payment_callbacks_total.labels(provider="mpesa", outcome="already_final").inc()
            logger.info(
                "mpesa_callback_already_final",
                extra={"payment_id": payment.id, "matched_by": matched_by, "outcome": payment.status},
            )
            return "Payment already finalized"

        receipt = callback.receipt
        if receipt and not is_valid_mpesa_receipt(receipt):
            logger.error(
                "mpesa_receipt_invalid",
                extra={"payment_id": payment.id, "checkout_id": callback.correlation_id, "error": receipt},
            )
            receipt = None

        self.payments.mark_paid(payment, amount=callback.amount, receipt=receipt)
        self.posters.set_status(payment.session_id, PosterStatus.COMPLETED)

        payment_callbacks_total.labels(provider="mpesa", outcome="paid").inc()
        logger.info(
            "mpesa_payment_paid",
            extra={
                "payment_id": payment.id,
                "session_id": payment.session_id,
                "checkout_id": callback.correlation_id,
                "matched_by": matched_by,
            },
        )
        emit_notification(
            self.db,
            NotificationType.PAYMENT_SUCCESS,
            summary=f"Payment of KES {payment.amount} received",
            metadata={
                "session_id": payment.session_id,
                "amount": payment.amount,
                "phone": payment.phone_number,
                "receipt": callback.receipt,
                "provider": PaymentProvider.MPESA,
                "matched_by": matched_by,
            },
        )
        return "Payment recorded"

    def _settle_failure(self, callback: PaymentCallback) -> str:
        payment, matched_by = self._match(callback)
        if payment is None:
            payment_callbacks_total.labels(provider="mpesa", outcome="unmatched").inc()
            logger.warning(
                "mpesa_callback_unmatched",
                extra={"checkout_id": callback.correlation_id, "outcome": "failure"},
            )
            return "No matching payment"
        if payment.status != PaymentStatus.PENDING:
            payment_callbacks_total.labels(provider="mpesa", outcome="already_final").inc()
            return "Payment already finalized"

        self.payments.mark_failed(payment)
        payment_callbacks_total.labels(provider="mpesa", outcome="failed").inc()
        logger.info(
            "mpesa_payment_failed",
            extra={
                "payment_id": payment.id,
                "session_id": payment.session_id,
                "matched_by": matched_by,
                "error": callback.description,
            },
        )
        emit_notification(
            self.db,
            NotificationType.PAYMENT_FAILED,
            summary=f"Payment failed for session {payment.session_id}",
            metadata={
                "session_id": payment.session_id,
                "amount": payment.amount,
                "phone": payment.phone_number,
                "reason": callback.description,
                "result_code": callback.result_code,
            },
        )
        return "Payment failure recorded"
