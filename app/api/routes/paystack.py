from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.payments import CallbackAck
from app.services.payments.paystack import PaystackWebhookService


router = APIRouter(prefix="/api/paystack", tags=["payments"])


@router.post("/webhook", response_model=CallbackAck)
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> dict:
    # Signature covers the exact bytes Paystack sent
    raw = await request.body()
    service = PaystackWebhookService(db)
    return await run_in_threadpool(service.handle, raw, x_paystack_signature)
