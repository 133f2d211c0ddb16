from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.generation.callback import GenerationCallbackService


router = APIRouter(prefix="/api/make", tags=["generation"])


@router.post("/placid-callback")
def placid_callback(payload: dict = Body(...), db: Session = Depends(get_db)) -> dict:
    """Placid webhook_success (directly or relayed by Make)."""
    service = GenerationCallbackService(db)
    return service.handle(payload)
