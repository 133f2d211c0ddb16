"""
Row access for generated_posters, keyed by session_id.
All writes commit immediately; database failures surface as PersistenceError.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.models.poster import GeneratedPoster

logger = logging.getLogger(__name__)


class PosterRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_session(self, session_id: str) -> GeneratedPoster | None:
        try:
            return (
                self.db.query(GeneratedPoster)
                .filter(GeneratedPoster.session_id == session_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"generated_posters select failed: {e}") from e

    def fetch_image_url(self, session_id: str) -> str | None:
        """Fresh read of the stored URL (used to verify a write persisted)."""
        try:
            return (
                self.db.query(GeneratedPoster.image_url)
                .filter(GeneratedPoster.session_id == session_id)
                .limit(1)
                .scalar()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"generated_posters verify read failed: {e}") from e

    def upsert(self, session_id: str, insert_only: Iterable[str] = (), **fields: Any) -> None:
        """
        INSERT ... ON CONFLICT (session_id) DO UPDATE with only the given fields.
        Fields named in insert_only are written on insert and never overwrite an existing row.
        """
        values = {**fields, "session_id": session_id, "updated_at": datetime.now(timezone.utc)}
        stmt = self.build_upsert(values, insert_only)
        self._execute_write(stmt, "upsert")

    @staticmethod
    def build_upsert(values: dict[str, Any], insert_only: Iterable[str] = ()):
        skip = {"session_id", *insert_only}
        stmt = insert(GeneratedPoster.__table__).values(id=str(uuid4()), **values)
        return stmt.on_conflict_do_update(
            index_elements=[GeneratedPoster.session_id],
            set_={k: v for k, v in values.items() if k not in skip},
        )

    def update_image_url(self, session_id: str, image_url: str, status: str) -> int:
        return self._update(session_id, {"image_url": image_url, "status": status})

    def set_status(self, session_id: str, status: str) -> int:
        return self._update(session_id, {"status": status})

    def _update(self, session_id: str, values: dict[str, Any]) -> int:
        values = {**values, "updated_at": datetime.now(timezone.utc)}
        try:
            count = (
                self.db.query(GeneratedPoster)
                .filter(GeneratedPoster.session_id == session_id)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"generated_posters update failed: {e}") from e

    def _execute_write(self, stmt, operation: str) -> None:
        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"generated_posters {operation} failed: {e}") from e