"""Tests for the Placid callback: linking, idempotency, retry-with-verify, race upsert."""
import json
from unittest.mock import MagicMock

import pytest

from app.core.errors import PersistenceError, ValidationError
from app.services.generation.callback import GenerationCallbackService, backoff_delay

NEW_URL = "https://cdn.placid.app/new.png"


def _poster(image_url=None):
    poster = MagicMock()
    poster.session_id = "s1"
    poster.image_url = image_url
    return poster


def _service(existing=None, verify_reads=None):
    posters = MagicMock()
    posters.get_by_session.return_value = existing
    if verify_reads is not None:
        posters.fetch_image_url.side_effect = verify_reads
    sleep = MagicMock()
    svc = GenerationCallbackService(MagicMock(), posters=posters, sleep=sleep, max_attempts=3, backoff_seconds=0.4)
    return svc, posters, sleep


class TestBackoff:
    def test_linear(self):
        assert backoff_delay(1, 0.4) == pytest.approx(0.4)
        assert backoff_delay(2, 0.4) == pytest.approx(0.8)
        assert backoff_delay(3, 0.4) == pytest.approx(1.2)


class TestHandle:
    def test_missing_image_url(self):
        svc, posters, _ = _service()
        with pytest.raises(ValidationError):
            svc.handle({"session_id": "s1", "status": "finished"})
        posters.get_by_session.assert_not_called()

    def test_unlinked_callback_is_acknowledged_without_writes(self):
        svc, posters, _ = _service()

        result = svc.handle({"status": "finished", "image_url": NEW_URL})

        assert result == {"success": True, "linked": False}
        posters.get_by_session.assert_not_called()
        posters.upsert.assert_not_called()
        posters.update_image_url.assert_not_called()

    def test_same_url_is_idempotent(self):
        svc, posters, sleep = _service(existing=_poster("https://x/a.png"))

        result = svc.handle({"session_id": "s1", "image_url": "https://x/a.png"})

        assert result == {"success": True, "updated": False, "idempotent": True}
        posters.update_image_url.assert_not_called()
        posters.upsert.assert_not_called()
        sleep.assert_not_called()

    def test_existing_row_is_updated(self):
        svc, posters, sleep = _service(existing=_poster(None), verify_reads=[NEW_URL])

        result = svc.handle({"passthrough": json.dumps({"session_id": "s1"}), "url": NEW_URL})

        assert result == {"success": True, "updated": True}
        posters.update_image_url.assert_called_once_with("s1", NEW_URL, "AWAITING_PAYMENT")
        sleep.assert_not_called()

    def test_two_failed_verifications_then_success(self):
        svc, posters, sleep = _service(
            existing=_poster("https://x/old.png"),
            verify_reads=["https://x/old.png", None, NEW_URL],
        )

        result = svc.handle({"session_id": "s1", "image_url": NEW_URL})

        assert result == {"success": True, "updated": True}
        assert posters.update_image_url.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [pytest.approx(0.4), pytest.approx(0.8)]

    def test_three_failed_verifications_raise(self):
        svc, posters, sleep = _service(
            existing=_poster("https://x/old.png"),
            verify_reads=["https://x/old.png"] * 3,
        )

        with pytest.raises(PersistenceError) as exc_info:
            svc.handle({"session_id": "s1", "image_url": NEW_URL})

        assert exc_info.value.status_code == 500
        assert posters.update_image_url.call_count == 3
        # No wait after the final attempt
        assert sleep.call_count == 2

    def test_write_errors_count_as_failed_attempts(self):
        svc, posters, sleep = _service(existing=_poster(None), verify_reads=[NEW_URL])
        posters.update_image_url.side_effect = [PersistenceError("db down"), 1]

        result = svc.handle({"session_id": "s1", "image_url": NEW_URL})

        assert result["updated"] is True
        assert posters.update_image_url.call_count == 2
        sleep.assert_called_once()

    def test_missing_row_is_upserted_and_verified_once(self):
        svc, posters, sleep = _service(existing=None, verify_reads=[NEW_URL])

        result = svc.handle({"meta": {"session_id": "s1"}, "storage_path": NEW_URL})

        assert result == {"success": True, "upserted": True, "verified": True}
        posters.upsert.assert_called_once_with("s1", image_url=NEW_URL, status="AWAITING_PAYMENT")
        posters.fetch_image_url.assert_called_once_with("s1")
        sleep.assert_not_called()

    def test_upsert_verification_failure_is_reported_not_retried(self):
        svc, posters, sleep = _service(existing=None, verify_reads=[None])

        result = svc.handle({"session_id": "s1", "image_url": NEW_URL})

        assert result == {"success": True, "upserted": True, "verified": False}
        posters.upsert.assert_called_once()
        sleep.assert_not_called()
