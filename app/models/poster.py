from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from app.db.base import Base


class PosterStatus:
    """Allowed values of generated_posters.status (Postgres enum)."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    ALL = frozenset({PENDING, PROCESSING, AWAITING_PAYMENT, COMPLETED, FAILED})


class GeneratedPoster(Base):
    __tablename__ = "generated_posters"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    # Correlation key shared by the generation and payment flows; one row per session
    session_id = Column(String, unique=True, nullable=False, index=True)
    template_id = Column(String, nullable=True)
    template_uuid = Column(String, nullable=True)
    template_name = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    status = Column(String, nullable=True, default=PosterStatus.PENDING)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
