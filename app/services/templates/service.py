from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.models.template import PosterTemplate


class TemplateService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve(self, template_id: str | None, template_uuid: str | None) -> PosterTemplate | None:
        """Look up by template_id first, then by Placid template_uuid."""
        try:
            if template_id:
                row = (
                    self.db.query(PosterTemplate)
                    .filter(PosterTemplate.template_id == str(template_id))
                    .first()
                )
                if row:
                    return row
            if template_uuid:
                return (
                    self.db.query(PosterTemplate)
                    .filter(PosterTemplate.template_uuid == template_uuid)
                    .first()
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"poster_templates select failed: {e}") from e
        return None


def resolve_price(template: PosterTemplate | None) -> int | None:
    """Stored template price in KES, or None when missing / not positive."""
    if template is None or template.price is None:
        return None
    try:
        price = int(template.price)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None
