"""
Payment model — one row per payment attempt (M-Pesa STK Push or Paystack).
mpesa_code holds the gateway request id while Pending and the receipt code once Paid.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class PaymentStatus:
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentProvider:
    MPESA = "mpesa"
    PAYSTACK = "paystack"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    session_id = Column(String, nullable=False, index=True)
    phone_number = Column(String, nullable=True, index=True)  # 2547XXXXXXXX, no plus
    mpesa_code = Column(String, nullable=True, index=True)
    amount = Column(Integer, nullable=False)  # KES
    status = Column(String, nullable=False, default=PaymentStatus.PENDING)
    provider = Column(String, nullable=False, default=PaymentProvider.MPESA)
    image_url = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
