"""
Placid webhook_success / Make scenario callback.

Links the finished image back to its generated_posters row by session_id.
Unlinkable callbacks are acknowledged so the provider stops retrying; only a
write that never verifies answers 5xx, which makes the provider try again later.
"""
import logging
import time
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import PersistenceError, ValidationError
from app.core.logging import redact
from app.models.poster import PosterStatus
from app.services.generation.extractors import extract_image_url, extract_session_id
from app.services.posters.repository import PosterRepository
from app.utils.metrics import persistence_retries_total, placid_callbacks_total

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Linear backoff: base × attempt (0.4s, 0.8s, ...)."""
    return base_seconds * attempt


class GenerationCallbackService:
    def __init__(
        self,
        db: Session,
        posters: PosterRepository | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.posters = posters or PosterRepository(db)
        self.sleep = sleep
        self.max_attempts = max_attempts or settings.callback_update_max_attempts
        self.backoff_seconds = (
            settings.callback_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        image_url = extract_image_url(payload)
        session_id = extract_session_id(payload)
        if not image_url:
            raise ValidationError("Missing image_url")

        logger.info(
            "placid_callback_received",
            extra={"session_id": session_id, "outcome": payload.get("status")},
        )

        if not session_id:
            placid_callbacks_total.labels(outcome="unlinked").inc()
            logger.warning("placid_callback_unlinked", extra={"payload": redact(payload)})
            return {"success": True, "linked": False}

        existing = self.posters.get_by_session(session_id)

        if existing is not None and existing.image_url == image_url:
            placid_callbacks_total.labels(outcome="idempotent").inc()
            logger.info("placid_callback_idempotent_skip", extra={"session_id": session_id})
            return {"success": True, "updated": False, "idempotent": True}

        if existing is not None:
            if not self.update_with_retry(session_id, image_url):
                placid_callbacks_total.labels(outcome="persist_failed").inc()
                raise PersistenceError(f"Failed to persist image_url for session {session_id}")
            placid_callbacks_total.labels(outcome="updated").inc()
            logger.info("placid_callback_updated", extra={"session_id": session_id})
            return {"success": True, "updated": True}

        # Callback won the race against the generate request's own write
        self.posters.upsert(session_id, image_url=image_url, status=PosterStatus.AWAITING_PAYMENT)
        verified = self.verify(session_id, image_url)
        placid_callbacks_total.labels(outcome="upserted").inc()
        logger.info("placid_callback_upserted", extra={"session_id": session_id, "outcome": f"verified={verified}"})
        return {"success": True, "upserted": True, "verified": verified}

    def update_with_retry(self, session_id: str, image_url: str) -> bool:
        """Update then re-read, up to max_attempts; no wait after the last attempt."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.posters.update_image_url(session_id, image_url, PosterStatus.AWAITING_PAYMENT)
                if self.verify(session_id, image_url):
                    return True
            except PersistenceError as e:
                logger.warning(
                    "placid_callback_write_error",
                    extra={"session_id": session_id, "attempt": attempt, "error": str(e)},
                )

            persistence_retries_total.labels(operation="poster_image_url").inc()
            if attempt < self.max_attempts:
                delay = backoff_delay(attempt, self.backoff_seconds)
                logger.warning(
                    "placid_callback_retry",
                    extra={
                        "session_id": session_id,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": delay,
                    },
                )
                self.sleep(delay)
        return False

    def verify(self, session_id: str, image_url: str) -> bool:
        try:
            return self.posters.fetch_image_url(session_id) == image_url
        except PersistenceError as e:
            logger.warning("placid_callback_verify_failed", extra={"session_id": session_id, "error": str(e)})
            return False
