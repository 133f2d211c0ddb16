from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.api.deps import require_admin_key
from app.db.session import get_db
from app.schemas.system_settings import SystemSettingUpdate
from app.services.notifications.emitter import emit_notification
from app.services.notifications.types import ActorType, NotificationType
from app.services.system_settings.service import SystemSettingsService


router = APIRouter(prefix="/api", tags=["system-settings"])


@router.get("/maintenance-status")
def maintenance_status(response: Response, db: Session = Depends(get_db)) -> dict:
    """Public; the storefront polls this, so it must never be cached."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    svc = SystemSettingsService(db)
    return {"success": True, **svc.all_maintenance_status()}


@router.get("/admin/system-settings", dependencies=[Depends(require_admin_key)])
def system_settings_list(db: Session = Depends(get_db)) -> dict:
    svc = SystemSettingsService(db)
    return {"success": True, "settings": svc.list_all()}


@router.post("/admin/system-settings", dependencies=[Depends(require_admin_key)])
def system_settings_update(payload: SystemSettingUpdate, db: Session = Depends(get_db)) -> dict:
    svc = SystemSettingsService(db)
    updated_by = payload.updated_by or "admin"
    setting = svc.update(payload.setting_key, payload.setting_value.model_dump(), updated_by=updated_by)
    emit_notification(
        db,
        NotificationType.SYSTEM_SETTING_CHANGED,
        summary=f"{payload.setting_key} updated",
        metadata={"setting_key": payload.setting_key, "updated_by": updated_by, **payload.setting_value.model_dump()},
        actor_type=ActorType.ADMIN,
        actor_identifier=updated_by,
    )
    return {"success": True, "setting": setting}
