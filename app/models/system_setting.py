from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class SystemSetting(Base):
    """Admin-controlled switches, e.g. maintenance_placid = {"enabled": true, "message": "..."}."""

    __tablename__ = "system_settings"

    setting_key = Column(String, primary_key=True)
    setting_value = Column(JSONB, nullable=False, default=dict)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
