from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.generation import GenerateRequest, GenerateResponse
from app.services.generation.service import GenerationService


router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate", response_model=GenerateResponse)
def generate_poster(payload: GenerateRequest, db: Session = Depends(get_db)) -> dict:
    service = GenerationService(db)
    return service.generate(
        template_uuid=payload.template_uuid,
        input_data=payload.input_data,
        session_id=payload.session_id,
        template_id=payload.template_id,
    )
