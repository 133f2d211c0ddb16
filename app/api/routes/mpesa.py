import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.payments import CallbackAck, MpesaInitiateRequest, MpesaInitiateResponse
from app.services.payments.mpesa import MpesaPaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mpesa", tags=["payments"])


@router.post("/initiate", response_model=MpesaInitiateResponse)
def mpesa_initiate(payload: MpesaInitiateRequest, db: Session = Depends(get_db)) -> dict:
    service = MpesaPaymentService(db)
    return service.initiate(payload.session_id, payload.phone_number)


@router.post("/callback", response_model=CallbackAck)
async def mpesa_callback(request: Request, db: Session = Depends(get_db)) -> dict:
    """Always 200: an unparseable or unmatched callback is logged, never retried."""
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        logger.warning("mpesa_callback_invalid_json", extra={"path": request.url.path})
        payload = None
    service = MpesaPaymentService(db)
    return await run_in_threadpool(service.handle_callback, payload)
