"""
Poster render requests: template lookup, layer building, the Placid call
and the generated_posters row that the callback and payment flows later find by session_id.
"""
import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import GatewayError, MaintenanceError, ValidationError
from app.models.poster import PosterStatus
from app.services.gateways.placid import PlacidClient, get_placid_client
from app.services.generation.layers import build_layers
from app.services.notifications.emitter import emit_notification
from app.services.notifications.types import NotificationType
from app.services.posters.repository import PosterRepository
from app.services.system_settings.service import SystemSettingsService
from app.services.templates.service import TemplateService
from app.storage.base import AssetStorage
from app.storage.local import get_storage
from app.utils.metrics import poster_generations_total

logger = logging.getLogger(__name__)


class GenerationService:
    def __init__(
        self,
        db: Session,
        placid: PlacidClient | None = None,
        storage: AssetStorage | None = None,
        posters: PosterRepository | None = None,
        templates: TemplateService | None = None,
        system_settings: SystemSettingsService | None = None,
    ) -> None:
        self.db = db
        self.placid = placid or get_placid_client()
        self.storage = storage or get_storage()
        self.posters = posters or PosterRepository(db)
        self.templates = templates or TemplateService(db)
        self.system_settings = system_settings or SystemSettingsService(db)

    def generate(
        self,
        template_uuid: str | None,
        input_data: dict[str, Any] | None,
        session_id: str | None,
        template_id: str | None = None,
    ) -> dict[str, Any]:
        if not template_uuid or not input_data or not session_id:
            raise ValidationError("Missing required fields")

        maintenance = self.system_settings.maintenance_status("placid")
        if maintenance.is_under_maintenance:
            raise MaintenanceError(maintenance.message)

        template = self.templates.resolve(template_id, template_uuid)
        template_name = template.template_name if template else None
        image_fields = template.image_field_names() if template else set()

        layers = build_layers(input_data, image_fields, session_id, self.storage)
        context = {
            "session_id": session_id,
            "template_id": template_id,
            "template_uuid": template_uuid,
        }

        try:
            result = self.placid.render_template(
                template_uuid=template_uuid,
                layers=layers,
                webhook_url=settings.placid_webhook_url,
                passthrough=json.dumps(context),
                meta=context,
            )
        except GatewayError as e:
            # Failed attempts stay visible on the admin dashboard
            self.posters.upsert(
                session_id,
                template_id=template_id,
                template_uuid=template_uuid,
                template_name=template_name,
                image_url=None,
                status=PosterStatus.FAILED,
            )
            poster_generations_total.labels(status=PosterStatus.FAILED).inc()
            logger.warning(
                "placid_render_failed",
                extra={"session_id": session_id, "template_id": template_id, "error": str(e)},
            )
            emit_notification(
                self.db,
                NotificationType.POSTER_GENERATION_FAILED,
                summary=f"Poster generation failed for session {session_id}",
                metadata={**context, "template_name": template_name, "error": str(e)},
            )
            raise

        status = PosterStatus.AWAITING_PAYMENT if result.url else PosterStatus.PENDING
        self.posters.upsert(
            session_id,
            # Without a URL, a callback that already landed keeps its image and status
            insert_only=() if result.url else ("image_url", "status"),
            template_id=template_id,
            template_uuid=template_uuid,
            template_name=template_name,
            image_url=result.url,
            status=status,
        )
        poster_generations_total.labels(status=status).inc()
        logger.info(
            "poster_generation_recorded",
            extra={"session_id": session_id, "template_id": template_id, "outcome": status},
        )

        if result.url:
            emit_notification(
                self.db,
                NotificationType.POSTER_GENERATED,
                summary=f"Poster generated for session {session_id}",
                metadata={**context, "template_name": template_name, "image_url": result.url},
            )

        return {"success": True, "image_url": result.url, "session_id": session_id}
