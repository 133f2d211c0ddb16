"""
PosterTemplate — curated Placid templates shown in the storefront.
Read-only for the generation/payment core: price and field schema come from here.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class PosterTemplate(Base):
    __tablename__ = "poster_templates"

    template_id = Column(String, primary_key=True)
    template_uuid = Column(String, unique=True, nullable=False, index=True)  # Placid template uuid
    template_name = Column(String, nullable=False)
    price = Column(Integer, nullable=True)  # KES
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    thumbnail = Column(Text, nullable=True)
    # [{"name": "photo", "label": "Photo", "type": "image", "required": true}, ...]
    fields_required = Column(JSONB, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def image_field_names(self) -> set[str]:
        return {
            str(f.get("name"))
            for f in (self.fields_required or [])
            if isinstance(f, dict) and f.get("type") == "image" and f.get("name")
        }
