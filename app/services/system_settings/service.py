"""System switches from the admin dashboard: per-engine maintenance mode and friends."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PersistenceError
from app.models.system_setting import SystemSetting

logger = logging.getLogger(__name__)

MAINTENANCE_ENGINES = ("placid", "ai")


@dataclass
class MaintenanceStatus:
    is_under_maintenance: bool
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {"isUnderMaintenance": self.is_under_maintenance, "message": self.message}


class SystemSettingsService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, key: str) -> SystemSetting | None:
        return self.db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()

    def list_all(self) -> list[dict[str, Any]]:
        rows = self.db.query(SystemSetting).order_by(SystemSetting.setting_key.asc()).all()
        return [self.as_dict(row) for row in rows]

    @staticmethod
    def as_dict(row: SystemSetting) -> dict[str, Any]:
        return {
            "setting_key": row.setting_key,
            "setting_value": row.setting_value,
            "updated_by": row.updated_by,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        }

    def update(self, key: str, value: dict[str, Any], updated_by: str | None = None) -> dict[str, Any]:
        row = self.get(key)
        if row is None:
            raise NotFoundError(f"Unknown setting: {key}")
        row.setting_value = value
        row.updated_by = updated_by or "admin"
        row.updated_at = datetime.now(timezone.utc)
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"system_settings update failed: {e}") from e
        logger.info("system_setting_updated", extra={"setting_key": key})
        return self.as_dict(row)

    def maintenance_status(self, engine: str) -> MaintenanceStatus:
        """A missing row or an unreadable table never blocks generation."""
        try:
            row = self.get(f"maintenance_{engine}")
        except SQLAlchemyError as e:
            logger.warning("maintenance_status_unavailable", extra={"provider": engine, "error": str(e)})
            return MaintenanceStatus(False, "")
        if row is None or not isinstance(row.setting_value, dict):
            return MaintenanceStatus(False, "")
        value = row.setting_value
        return MaintenanceStatus(
            is_under_maintenance=bool(value.get("enabled", False)),
            message=value.get("message") or f"{engine.upper()} poster generation is currently unavailable.",
        )

    def all_maintenance_status(self) -> dict[str, dict[str, Any]]:
        return {engine: self.maintenance_status(engine).as_dict() for engine in MAINTENANCE_ENGINES}
