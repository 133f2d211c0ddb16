"""
Row access for payments.
Only Pending rows are ever transitioned; Paid/Failed are final.
"""
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.models.payment import Payment, PaymentProvider, PaymentStatus


class PaymentRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        session_id: str,
        phone_number: str | None,
        amount: int,
        status: str = PaymentStatus.PENDING,
        mpesa_code: str | None = None,
        image_url: str | None = None,
        provider: str = PaymentProvider.MPESA,
    ) -> Payment:
        payment = Payment(
            session_id=session_id,
            phone_number=phone_number,
            amount=amount,
            status=status,
            mpesa_code=mpesa_code,
            image_url=image_url,
            provider=provider,
        )
        try:
            self.db.add(payment)
            self.db.commit()
            self.db.refresh(payment)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"payments insert failed: {e}") from e
        return payment

    def find_by_code(self, code: str) -> Payment | None:
        """Payment whose mpesa_code currently equals the request id / reference / receipt."""
        try:
            return (
                self.db.query(Payment)
                .filter(Payment.mpesa_code == code)
                .order_by(Payment.created_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"payments select failed: {e}") from e

    def find_paid_by_receipt(self, receipt: str) -> Payment | None:
        try:
            return (
                self.db.query(Payment)
                .filter(Payment.mpesa_code == receipt, Payment.status == PaymentStatus.PAID)
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"payments select failed: {e}") from e

    def latest_pending_for_phone(self, phone_number: str) -> Payment | None:
        """
        Most recently created Pending payment for a number.
        Two concurrent Pending payments from one number cannot be told apart here.
        """
        try:
            return (
                self.db.query(Payment)
                .filter(
                    Payment.phone_number == phone_number,
                    Payment.status == PaymentStatus.PENDING,
                )
                .order_by(Payment.created_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"payments select failed: {e}") from e

    def set_code(self, payment: Payment, code: str) -> Payment:
        payment.mpesa_code = code
        return self._save(payment)

    def mark_paid(self, payment: Payment, amount: int | None, receipt: str | None) -> Payment:
        payment.status = PaymentStatus.PAID
        if amount is not None:
            payment.amount = amount
        if receipt:
            payment.mpesa_code = receipt
        return self._save(payment)

    def mark_failed(self, payment: Payment) -> Payment:
        payment.status = PaymentStatus.FAILED
        return self._save(payment)

    def _save(self, payment: Payment) -> Payment:
        payment.updated_at = datetime.now(timezone.utc)
        try:
            self.db.add(payment)
            self.db.commit()
            self.db.refresh(payment)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"payments update failed: {e}") from e
        return payment
